"""
Prometheus metrics for the secure batch engine

Counts every export/ingest outcome, every gate rejection and every
audit-write failure so an operator can alert on security-relevant events.
"""
import os
from typing import Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# OPERATION METRICS
# =======================

operations_total = Counter(
    name="secure_batch_operations_total",
    documentation="Export and ingest requests by outcome",
    labelnames=["operation", "outcome"],  # outcome: success, denied, rate_limited, failed, ...
    registry=REGISTRY,
)

items_total = Counter(
    name="secure_batch_items_total",
    documentation="Records processed by chunk workers",
    labelnames=["operation", "status"],  # status: succeeded, failed
    registry=REGISTRY,
)

batch_size = Histogram(
    name="secure_batch_batch_size_records",
    documentation="Number of records in each export or ingest batch",
    labelnames=["operation"],
    buckets=[1, 10, 50, 100, 500, 1000, 5000, 10000],
    registry=REGISTRY,
)

chunk_duration_seconds = Histogram(
    name="secure_batch_chunk_duration_seconds",
    documentation="Time spent processing a single chunk",
    labelnames=["operation"],
    buckets=[0.001, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0],
    registry=REGISTRY,
)

item_retries_total = Counter(
    name="secure_batch_item_retries_total",
    documentation="Retry attempts after a repository or storage failure",
    labelnames=["operation"],
    registry=REGISTRY,
)

# =======================
# SECURITY METRICS
# =======================

rate_limit_rejections_total = Counter(
    name="secure_batch_rate_limit_rejections_total",
    documentation="Requests rejected by the daily rate limiter",
    labelnames=["operation_class"],
    registry=REGISTRY,
)

authorization_denials_total = Counter(
    name="secure_batch_authorization_denials_total",
    documentation="Export requests rejected by field authorization",
    labelnames=["reason"],  # reason: denied, approval_required
    registry=REGISTRY,
)

anomaly_flags_total = Counter(
    name="secure_batch_anomaly_flags_total",
    documentation="Advisory anomaly flags raised on principals",
    labelnames=["kind"],
    registry=REGISTRY,
)

threats_detected_total = Counter(
    name="secure_batch_threats_detected_total",
    documentation="Threat patterns found by the input sanitizer",
    labelnames=["threat", "direction"],  # direction: inbound, outbound
    registry=REGISTRY,
)

audit_write_failures_total = Counter(
    name="secure_batch_audit_write_failures_total",
    documentation="Audit records that could not be persisted",
    labelnames=["classification"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """Generate Prometheus metrics in text format"""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Content type for the Prometheus exposition format"""
    return CONTENT_TYPE_LATEST


def start_metrics_server(port: Optional[int] = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    # Imported lazily so importing this module never binds a port
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    if value <= 0:
        return
    counter.labels(**labels).inc(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    """
    Observe a value in a histogram metric

    Args:
        histogram: Prometheus Histogram metric
        value: Value to observe
        **labels: Label values for the metric
    """
    histogram.labels(**labels).observe(value)


def get_counter_value(counter: Counter, **labels) -> float:
    """Read back the current value of a labelled counter (used by tests and the CLI)."""
    value = REGISTRY.get_sample_value(f"{counter._name}_total", labels)
    return value or 0.0


# =======================
# BATCH-SPECIFIC HELPERS
# =======================

def record_batch_outcome(operation: str, succeeded: int, failed: int) -> None:
    """
    Record item counts for a finished batch.

    Args:
        operation: "export" or "ingest"
        succeeded: Items that passed every gate
        failed: Items recorded as failures
    """
    increment_counter(items_total, succeeded, operation=operation, status="succeeded")
    increment_counter(items_total, failed, operation=operation, status="failed")
    observe_histogram(batch_size, succeeded + failed, operation=operation)
