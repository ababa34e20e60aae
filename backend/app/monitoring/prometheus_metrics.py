"""
Prometheus metrics module for the scheduling core.

Service timings come from the @measure_operation decorator; the
transaction, optimistic-lock and recurring-generation counters are fed
directly by the coordinator, the lock guard and the recurring slot manager.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "lessonbook_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "lessonbook_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "lessonbook_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

transaction_attempts_total = Counter(
    "lessonbook_transaction_attempts_total",
    "Unit-of-work attempts by policy and outcome",
    ["policy", "outcome"],  # committed | retried | failed
    registry=REGISTRY,
)

transaction_duration_seconds = Histogram(
    "lessonbook_transaction_duration_seconds",
    "Duration of a single unit-of-work attempt",
    ["policy"],
    registry=REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

optimistic_lock_conflicts_total = Counter(
    "lessonbook_optimistic_lock_conflicts_total",
    "Version mismatches detected on guarded updates",
    ["entity"],
    registry=REGISTRY,
)

booking_conflicts_total = Counter(
    "lessonbook_booking_conflicts_total",
    "Bookings rejected because the slot was taken before commit",
    ["source"],  # recheck | unique_index
    registry=REGISTRY,
)

recurring_lessons_generated_total = Counter(
    "lessonbook_recurring_lessons_generated_total",
    "Lessons materialized from recurring slots",
    ["trigger"],  # create | backfill
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingEngine')
            operation: Operation/method name (e.g., 'book_single')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_transaction_attempt(policy: str, outcome: str, duration: float) -> None:
        transaction_attempts_total.labels(policy=policy, outcome=outcome).inc()
        transaction_duration_seconds.labels(policy=policy).observe(max(duration, 0.0))

    @staticmethod
    def inc_optimistic_lock_conflict(entity: str) -> None:
        optimistic_lock_conflicts_total.labels(entity=entity).inc()

    @staticmethod
    def inc_booking_conflict(source: str) -> None:
        booking_conflicts_total.labels(source=source).inc()

    @staticmethod
    def inc_recurring_lessons_generated(trigger: str, count: int) -> None:
        if count > 0:
            recurring_lessons_generated_total.labels(trigger=trigger).inc(count)

    @staticmethod
    def get_metrics() -> bytes:
        """
        Generate Prometheus metrics in exposition format.

        Returns:
            Metrics data in Prometheus text format
        """
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)


# Singleton instance
prometheus_metrics = PrometheusMetrics()
