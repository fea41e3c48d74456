"""Prometheus metrics for store lifecycle."""
from prometheus_client import Counter, Histogram, start_http_server

STORES_CREATED = Counter(
    "store_created_total",
    "Total number of stores created",
)

STORES_DELETED = Counter(
    "store_deletion_total",
    "Total number of stores deleted",
)

# 5s, 10s, 20s, ... 640s
PROVISIONING_BUCKETS = tuple(5.0 * 2 ** i for i in range(8))

PROVISIONING_SECONDS = Histogram(
    "store_provisioning_seconds",
    "Time taken for a store to go from creation to Ready",
    buckets=PROVISIONING_BUCKETS,
)


def record_created():
    STORES_CREATED.inc()


def record_deleted():
    STORES_DELETED.inc()


def observe_provisioning(seconds: float):
    PROVISIONING_SECONDS.observe(seconds)


def start_metrics_server(port: int):
    """Expose /metrics on ``port``. A port of 0 disables the exporter."""
    if port:
        start_http_server(port)
