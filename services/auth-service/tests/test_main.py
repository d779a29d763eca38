from __future__ import annotations

from fastapi.testclient import TestClient

import app.main as main


def test_run_serves_on_configured_host_and_port(monkeypatch):
    calls = []
    monkeypatch.setattr(main.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

    main.run()

    served, options = calls[0]
    assert served is main.app
    assert options["host"] == main.settings.http_host
    assert options["port"] == main.settings.http_port


def test_healthz_and_metrics_are_exposed():
    # No context manager: the lifespan (and its Postgres pool) is not started.
    client = TestClient(main.app)

    assert client.get("/healthz").json() == {"status": "ok"}
    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert "auth_events_total" in metrics.text
