"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Sync cycle metrics
sync_runs = Counter(
    "certsync_sync_runs_total",
    "Total sync cycles",
    ["outcome"],  # clean, partial, skipped
)

sync_duration = Histogram(
    "certsync_sync_duration_seconds",
    "Sync cycle duration",
)

# Per-record metrics
certificate_uploads = Counter(
    "certsync_certificate_uploads_total",
    "Certificates uploaded to the remote",
    ["result"],  # success, failure
)

certificate_downloads = Counter(
    "certsync_certificate_downloads_total",
    "Remote certificates processed during download",
    ["result"],  # merged, skipped, failure
)
