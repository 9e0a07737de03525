"""Prometheus metrics for the share service.

Metric naming follows Prometheus conventions. Labels are kept to small,
fixed vocabularies (operation names, outcome codes, purge reasons); share
ids are never used as label values.

Usage::

    from ephemeral_share.app.observability.metrics import SHARE_OPERATIONS_TOTAL

    SHARE_OPERATIONS_TOTAL.labels(operation="access", outcome="ok").inc()
"""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# HTTP request metrics
# ---------------------------------------------------------------------------

HTTP_REQUESTS_TOTAL = Counter(
    "http_server_requests_total",
    "Total HTTP requests by method, path pattern, and status code.",
    labelnames=["method", "path", "status"],
    registry=REGISTRY,
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_server_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

HTTP_REQUESTS_IN_FLIGHT = Gauge(
    "http_server_requests_in_flight",
    "Number of HTTP requests currently being processed.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Share lifecycle metrics
# ---------------------------------------------------------------------------

SHARE_OPERATIONS_TOTAL = Counter(
    "share_operations_total",
    "Engine operations by name and outcome (ok or error code).",
    labelnames=["operation", "outcome"],
    registry=REGISTRY,
)

SHARE_PURGES_TOTAL = Counter(
    "share_purges_total",
    "Share records removed from the store, by reason.",
    labelnames=["reason"],
    registry=REGISTRY,
)

SHARE_BLOB_ORPHANS_TOTAL = Counter(
    "share_blob_orphans_total",
    "Blob deletions that failed after the share record was removed.",
    registry=REGISTRY,
)

SHARE_PENDING_BLOB_DELETIONS = Gauge(
    "share_pending_blob_deletions",
    "Post-download blob deletions waiting for their grace window.",
    registry=REGISTRY,
)

# ---------------------------------------------------------------------------
# Reaper metrics
# ---------------------------------------------------------------------------

REAPER_SWEEPS_TOTAL = Counter(
    "share_reaper_sweeps_total",
    "Reaper sweeps by result.",
    labelnames=["result"],
    registry=REGISTRY,
)


def metrics_text() -> tuple[bytes, str]:
    """Generate Prometheus exposition text and content-type header."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
