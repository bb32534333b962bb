"""Prometheus metrics for botgate."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# Assistant runs
botgate_runs_total = Counter(
    "botgate_runs_total",
    "Assistant runs by call path and terminal state",
    ["path", "status"],
)
botgate_run_polls_total = Counter(
    "botgate_run_polls_total",
    "Run status polls issued to the assistant provider",
    ["path"],
)
botgate_run_duration_seconds = Histogram(
    "botgate_run_duration_seconds",
    "Wall time from run creation to terminal state",
    ["path"],
    buckets=(1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0),
)

# Chat webhook
botgate_webhook_events_total = Counter(
    "botgate_webhook_events_total",
    "Inbound chat webhook events by outcome",
    ["outcome"],
)

# Providers
botgate_provider_errors_total = Counter(
    "botgate_provider_errors_total",
    "Failed provider calls by operation and upstream status",
    ["provider", "operation", "status"],
)
