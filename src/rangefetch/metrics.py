"""
Prometheus metrics for chunked download monitoring.

Provides instrumentation for:
- Download outcomes by status
- Per-part attempt outcomes and retries
- Bytes transferred
- End-to-end download duration
"""

from prometheus_client import Counter, Histogram

downloads_total = Counter(
    "rangefetch_downloads_total",
    "Total number of chunked downloads by final status",
    ["status"],  # status: success, failed, cancelled
)

part_attempts_total = Counter(
    "rangefetch_part_attempts_total",
    "Total number of part GET attempts by outcome",
    ["outcome"],  # outcome: success, transient_error, rejected, write_error
)

part_retries_total = Counter(
    "rangefetch_part_retries_total",
    "Total number of part retries scheduled after a failed attempt",
)

bytes_downloaded_total = Counter(
    "rangefetch_bytes_downloaded_total",
    "Total bytes written to part artifacts",
)

download_duration_seconds = Histogram(
    "rangefetch_download_duration_seconds",
    "Time from metadata request to assembled file",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0),
)


def record_download(status: str, duration_seconds: float) -> None:
    """Record a finished download."""
    downloads_total.labels(status=status).inc()
    if status == "success":
        download_duration_seconds.observe(duration_seconds)


def record_part_attempt(outcome: str) -> None:
    """Record one part GET attempt."""
    part_attempts_total.labels(outcome=outcome).inc()


def record_part_retry() -> None:
    """Record a scheduled part retry."""
    part_retries_total.inc()


def record_bytes(num_bytes: int) -> None:
    """Record bytes persisted to part artifacts."""
    bytes_downloaded_total.inc(num_bytes)
