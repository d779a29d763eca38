"""Sphinx configuration for the Auth Service documentation."""

from __future__ import annotations

import os
import sys
from datetime import datetime

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SCHEMAS_DIR = os.path.abspath(os.path.join(ROOT_DIR, "..", "..", "libs", "python"))
sys.path.insert(0, ROOT_DIR)
sys.path.insert(0, SCHEMAS_DIR)

# Importing app.main resolves settings; docs builds only need a placeholder key.
os.environ.setdefault("JWT_SECRET", "sphinx-build")


project = "Auth Service"
author = "Platform Team"
copyright = f"{datetime.now():%Y}, {author}"
release = "0.1.0"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
    "sphinx_autodoc_typehints",
]

autodoc_typehints = "description"
autodoc_preserve_defaults = True
napoleon_google_docstring = False
napoleon_numpy_docstring = True

templates_path = ["_templates"]
exclude_patterns: list[str] = ["_build", "Thumbs.db", ".DS_Store"]

html_theme = "alabaster"
html_static_path = ["_static"]
