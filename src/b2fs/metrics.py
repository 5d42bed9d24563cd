"""Prometheus metrics definitions for b2fs.

All metrics use the ``b2fs_`` prefix. They stay ``None`` until
``init_metrics()`` is called, so a process that leaves metrics disabled
registers nothing in the global ``prometheus_client`` registry. Call sites
go through ``record_operation`` and friends, which are no-ops while the
metrics are disabled.
"""

from __future__ import annotations

from prometheus_client import Counter

_initialized: bool = False

# ---------------------------------------------------------------------------
# Adapter operation counter  (labels: operation, status)
# ---------------------------------------------------------------------------
operations_total: Counter | None = None

# ---------------------------------------------------------------------------
# Byte and part counters
# ---------------------------------------------------------------------------
bytes_uploaded_total: Counter | None = None
bytes_downloaded_total: Counter | None = None
parts_uploaded_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics. Idempotent."""
    global _initialized
    global operations_total, bytes_uploaded_total, bytes_downloaded_total
    global parts_uploaded_total

    if _initialized:
        return

    operations_total = Counter(
        "b2fs_operations_total",
        "Total adapter operations by type and outcome",
        ["operation", "status"],
    )

    bytes_uploaded_total = Counter(
        "b2fs_bytes_uploaded_total",
        "Total bytes sent to the store",
    )

    bytes_downloaded_total = Counter(
        "b2fs_bytes_downloaded_total",
        "Total bytes read from the store",
    )

    parts_uploaded_total = Counter(
        "b2fs_parts_uploaded_total",
        "Total large-file parts uploaded",
    )

    _initialized = True


def record_operation(operation: str, status: str) -> None:
    if operations_total is not None:
        operations_total.labels(operation=operation, status=status).inc()


def record_upload(nbytes: int, parts: int = 0) -> None:
    if bytes_uploaded_total is not None:
        bytes_uploaded_total.inc(nbytes)
    if parts and parts_uploaded_total is not None:
        parts_uploaded_total.inc(parts)


def record_download(nbytes: int) -> None:
    if bytes_downloaded_total is not None:
        bytes_downloaded_total.inc(nbytes)
