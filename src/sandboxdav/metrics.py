"""Prometheus metrics definitions for SandboxDAV.

All custom metrics use the ``sandboxdav_`` prefix. These are
*application-level* protocol metrics; ``prometheus-fastapi-instrumentator``
provides the HTTP-level ones (request count, duration, sizes).

Counters reset to zero on restart.
"""

from __future__ import annotations

from prometheus_client import Counter

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# ---------------------------------------------------------------------------
# Protocol operation counter  (labels: method, status)
# ---------------------------------------------------------------------------
dav_operations_total: Counter | None = None

# ---------------------------------------------------------------------------
# Byte counters
# ---------------------------------------------------------------------------
bytes_received_total: Counter | None = None
bytes_sent_total: Counter | None = None

# ---------------------------------------------------------------------------
# Write reconciliation
# ---------------------------------------------------------------------------
stranded_writes_reaped_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    Must be called once when metrics are enabled. When metrics are disabled
    the module-level references stay ``None`` and nothing is registered in
    the global registry.
    """
    global _initialized
    global dav_operations_total, bytes_received_total, bytes_sent_total
    global stranded_writes_reaped_total

    if _initialized:
        return

    dav_operations_total = Counter(
        "sandboxdav_dav_operations_total",
        "Total WebDAV operations by method and response status",
        ["method", "status"],
    )

    bytes_received_total = Counter(
        "sandboxdav_bytes_received_total",
        "Total bytes received in request bodies",
    )

    bytes_sent_total = Counter(
        "sandboxdav_bytes_sent_total",
        "Total bytes sent in response bodies",
    )

    stranded_writes_reaped_total = Counter(
        "sandboxdav_stranded_writes_reaped_total",
        "Pending writes tombstoned by the reconciler",
    )

    _initialized = True
