"""Prometheus counters for the auth workflows."""

from __future__ import annotations

from prometheus_client import Counter

AUTH_EVENTS = Counter(
    "auth_events_total",
    "Identity workflow outcomes by event and result.",
    ["event", "outcome"],
)

NOTIFICATION_FAILURES = Counter(
    "notification_failures_total",
    "Verification or recovery emails that could not be handed to the gateway.",
    ["template"],
)


def record(event: str, outcome: str) -> None:
    AUTH_EVENTS.labels(event=event, outcome=outcome).inc()
