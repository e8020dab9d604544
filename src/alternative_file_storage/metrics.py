"""Prometheus metrics for the storage client."""

from prometheus_client import Counter, Histogram

# Request metrics
request_total = Counter(
    "alternative_file_storage_request_total",
    "Total number of object storage HTTP requests",
    ["api_type", "operation", "result"],
)

request_duration_seconds = Histogram(
    "alternative_file_storage_request_duration_seconds",
    "Duration of object storage HTTP requests in seconds",
    ["api_type", "operation"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

bytes_transferred_total = Counter(
    "alternative_file_storage_bytes_transferred_total",
    "Total payload bytes sent or received",
    ["direction"],
)

# Error metrics
error_total = Counter(
    "alternative_file_storage_error_total",
    "Total number of failed operations by error kind",
    ["operation", "kind"],
)

# Listing metrics
listing_pages_total = Counter(
    "alternative_file_storage_listing_pages_total",
    "Total number of bucket listing pages fetched",
)

# Probe metrics
probe_total = Counter(
    "alternative_file_storage_probe_total",
    "Storage validation probe results",
    ["result"],
)
