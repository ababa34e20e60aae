# backend/app/services/base.py
"""
Base Service Pattern for the scheduling core

Provides common functionality for all service classes including:
- Clock injection
- Logging
- Performance monitoring

Transaction boundaries are owned by the TransactionCoordinator; services
hand it zero-argument units of work instead of committing themselves.
"""

from datetime import datetime
from functools import wraps
import logging
import time
from typing import Any, Callable, Optional, TypeVar, cast

from sqlalchemy.orm import Session

from ..core.timezone_utils import Clock, utc_now
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# Operations slower than this are logged as warnings
SLOW_OPERATION_SECONDS = 1.0


class BaseService:
    """
    Base class for all service layer components.

    Provides common patterns for:
    - Database session management
    - Current-time lookup through an injectable clock
    - Structured operation logging
    """

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        """
        Initialize base service.

        Args:
            db: Database session
            clock: Returns the current aware UTC instant; defaults to the wall clock
        """
        self.db = db
        self.clock: Clock = clock or utc_now
        self.logger = logging.getLogger(self.__class__.__name__)

    def now(self) -> datetime:
        return self.clock()

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """
        Decorator recording duration and outcome of a service operation.

        Usage:
            @BaseService.measure_operation("book_single")
            def book_single(self, ...):
                ...
        """

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self, *args, **kwargs):
                start_time = time.perf_counter()
                success = False
                error_type = None

                try:
                    result = func(self, *args, **kwargs)
                    success = True
                    return result
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.perf_counter() - start_time
                    if elapsed > SLOW_OPERATION_SECONDS:
                        self.logger.warning(
                            f"Slow operation detected: {operation_name} took {elapsed:.2f}s",
                            extra={"operation": operation_name, "duration_seconds": elapsed},
                        )

                    prometheus_metrics.record_service_operation(
                        service=self.__class__.__name__,
                        operation=operation_name,
                        duration=elapsed,
                        status="success" if success else "error",
                        error_type=error_type,
                    )

            wrapper._operation_name = operation_name  # type: ignore[attr-defined]
            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context) -> None:
        """
        Log an operation with context.

        Args:
            operation: Operation name
            **context: Ids and requested window, passed through ``extra``
        """
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, **context})
