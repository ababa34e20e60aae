# backend/app/services/transaction_coordinator.py
"""
Retryable, timeout-bounded unit of work.

Every mutating scheduling path runs through ``TransactionCoordinator.execute``.
The caller passes a zero-argument operation that works against the
coordinator's session; the coordinator opens the transaction with the
policy's isolation level, commits, and decides whether a failure is worth
another attempt based on the ``retryable`` flag the storage adapter put on
the error.
"""

from dataclasses import dataclass, replace
import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    DomainException,
    RepositoryException,
    ServiceException,
    TransactionTimeoutException,
    TransientStoreException,
)
from ..core.timezone_utils import Clock
from ..database.errors import translate_db_error
from ..database.session_utils import get_dialect_name, has_pending_changes, supports_isolation_level
from ..monitoring.prometheus_metrics import prometheus_metrics
from .base import BaseService

logger = logging.getLogger(__name__)

T = TypeVar("T")

SERIALIZABLE = "SERIALIZABLE"


@dataclass(frozen=True)
class TransactionPolicy:
    """Timeout, retry budget and isolation level for one class of operation."""

    name: str
    timeout_seconds: float
    max_retries: int
    isolation_level: Optional[str] = None
    base_delay: float = settings.transaction_retry_base_delay
    max_delay: float = settings.transaction_retry_max_delay

    def backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based), capped at ``max_delay``."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def with_isolation(self, isolation_level: Optional[str]) -> "TransactionPolicy":
        return replace(self, isolation_level=isolation_level)


class TransactionPolicies:
    """Operation-class presets."""

    BOOKING = TransactionPolicy(
        "booking",
        timeout_seconds=settings.booking_transaction_timeout,
        max_retries=settings.booking_transaction_retries,
        isolation_level=SERIALIZABLE,
    )
    CANCELLATION = TransactionPolicy(
        "cancellation",
        timeout_seconds=settings.cancellation_transaction_timeout,
        max_retries=settings.cancellation_transaction_retries,
    )
    BULK = TransactionPolicy(
        "bulk",
        timeout_seconds=settings.bulk_transaction_timeout,
        max_retries=0,
    )
    HEALTH_CHECK = TransactionPolicy(
        "health_check",
        timeout_seconds=settings.health_check_timeout,
        max_retries=0,
    )
    DEFAULT = TransactionPolicy(
        "default",
        timeout_seconds=settings.default_transaction_timeout,
        max_retries=0,
    )


class TransactionCoordinator(BaseService):
    """
    Runs units of work inside explicit transactions.

    Args:
        db: Session the operations work against
        sleep: Called with the backoff delay between attempts
        monotonic: Source of elapsed time for timeout checks
    """

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        sleep: Callable[[float], None] = time.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        super().__init__(db, clock)
        self._sleep = sleep
        self._monotonic = monotonic

    def execute(
        self,
        operation: Callable[[], T],
        policy: TransactionPolicy = TransactionPolicies.DEFAULT,
        description: str = "unit of work",
    ) -> T:
        """
        Run ``operation`` in a transaction and commit its result.

        Domain exceptions raised by the operation roll the transaction back
        and propagate unchanged. Storage errors flagged retryable are retried
        up to ``policy.max_retries`` times with capped exponential backoff;
        when the budget is spent a TransientStoreException is raised. Any
        other storage error propagates as the RepositoryException it is.
        """
        attempt = 0
        while True:
            attempt += 1
            started = self._monotonic()
            try:
                result = self._run_once(operation, policy, description, started)
            except DomainException:
                self._rollback()
                prometheus_metrics.record_transaction_attempt(
                    policy.name, "failed", self._monotonic() - started
                )
                raise
            except RepositoryException as exc:
                self._rollback()
                elapsed = self._monotonic() - started
                if not exc.retryable:
                    prometheus_metrics.record_transaction_attempt(policy.name, "failed", elapsed)
                    raise
                if attempt > policy.max_retries:
                    prometheus_metrics.record_transaction_attempt(policy.name, "failed", elapsed)
                    self.logger.warning(
                        f"{description} failed after {attempt} attempt(s): {exc}",
                        extra={"policy": policy.name, "error_kind": exc.kind.value},
                    )
                    raise TransientStoreException(
                        details={
                            "operation": description,
                            "attempts": attempt,
                            "error_kind": exc.kind.value,
                        }
                    ) from exc
                delay = policy.backoff(attempt)
                prometheus_metrics.record_transaction_attempt(policy.name, "retried", elapsed)
                self.logger.warning(
                    f"Retrying {description} in {delay:.2f}s (attempt {attempt}/{policy.max_retries + 1}): {exc}",
                    extra={"policy": policy.name, "error_kind": exc.kind.value},
                )
                self._sleep(delay)
                continue

            prometheus_metrics.record_transaction_attempt(
                policy.name, "committed", self._monotonic() - started
            )
            return result

    def _run_once(
        self,
        operation: Callable[[], T],
        policy: TransactionPolicy,
        description: str,
        started: float,
    ) -> T:
        self._begin(policy)
        try:
            result = operation()
            self.db.flush()
            elapsed = self._monotonic() - started
            if elapsed > policy.timeout_seconds:
                raise TransactionTimeoutException(description, policy.timeout_seconds, elapsed)
            self.db.commit()
        except SQLAlchemyError as exc:
            raise translate_db_error(exc, description)
        return result

    def _begin(self, policy: TransactionPolicy) -> None:
        """Start a fresh transaction configured for ``policy``."""
        if self.db.in_transaction():
            if has_pending_changes(self.db):
                raise ServiceException(
                    "Cannot start a unit of work with uncommitted changes pending",
                    details={"policy": policy.name},
                )
            # Close the implicit read transaction so isolation applies from the first statement
            self.db.rollback()

        dialect = get_dialect_name(self.db)
        try:
            if policy.isolation_level and supports_isolation_level(dialect, policy.isolation_level):
                self.db.connection(execution_options={"isolation_level": policy.isolation_level})
            else:
                self.db.connection()
            if dialect == "postgresql":
                timeout_ms = int(policy.timeout_seconds * 1000)
                self.db.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
        except SQLAlchemyError as exc:
            raise translate_db_error(exc, f"begin {policy.name} transaction")

    def _rollback(self) -> None:
        try:
            self.db.rollback()
        except SQLAlchemyError as exc:
            self.logger.error(f"Rollback failed: {exc}")

    @BaseService.measure_operation("health_check")
    def health_check(self) -> Dict[str, Any]:
        """
        Run ``SELECT 1`` under the health-check preset.

        Returns:
            Dict with ``healthy``, ``response_time_ms`` and, on failure, ``error``
        """
        started = self._monotonic()
        try:
            self.execute(
                lambda: self.db.execute(text("SELECT 1")).scalar(),
                TransactionPolicies.HEALTH_CHECK,
                "database health check",
            )
        except (DomainException, RepositoryException) as exc:
            self.logger.warning(f"Database health check failed: {exc}")
            return {
                "healthy": False,
                "response_time_ms": round((self._monotonic() - started) * 1000, 2),
                "error": str(exc.__cause__ or exc),
            }
        return {
            "healthy": True,
            "response_time_ms": round((self._monotonic() - started) * 1000, 2),
            "error": None,
        }

