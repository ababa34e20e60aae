# backend/app/core/exceptions.py
"""
Domain-specific exceptions for the scheduling core.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
Services raise them; route handlers convert them with
``to_http_exception()``.
"""

from enum import Enum
from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when a booking request breaks a business rule or is malformed."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a referenced lesson, slot or teacher does not exist."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details,
            },
        )


# Specific scheduling exceptions


class BookingConflictException(ConflictException):
    """
    Raised when the requested slot was taken between validation and commit.

    Callers must fetch fresh slots before retrying; replaying the same
    request will hit the same conflict.
    """

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot conflicts with an existing booking",
            code="BOOKING_CONFLICT",
            details=details or {},
        )


class OptimisticLockException(ConflictException):
    """Raised when a version-guarded row was modified by someone else."""

    def __init__(
        self,
        entity: str,
        entity_id: str,
        expected_version: int,
        current_version: int,
    ):
        self.entity = entity
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.current_version = current_version
        super().__init__(
            message=(
                f"Concurrent modification detected on {entity} {entity_id}. "
                f"Expected version {expected_version}, but current version is {current_version}."
            ),
            code="OPTIMISTIC_LOCK_CONFLICT",
            details={
                "entity": entity,
                "entity_id": entity_id,
                "expected_version": expected_version,
                "current_version": current_version,
            },
        )


class TransientStoreException(ServiceException):
    """
    Raised once a retryable storage failure outlived its retry budget.

    Surfaces to clients as a service-unavailable condition.
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(
        self,
        message: str = "Service temporarily unavailable. Please retry.",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, code="TRANSIENT_STORE_ERROR", details=details or {})

    def to_http_exception(self) -> HTTPException:
        exc = super().to_http_exception()
        exc.headers = {"Retry-After": "2"}
        return exc


class StoreErrorKind(str, Enum):
    """Classification assigned by the storage adapter to a failed statement."""

    DEADLOCK = "deadlock"
    SERIALIZATION = "serialization"
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    INTEGRITY = "integrity"
    OTHER = "other"


RETRYABLE_STORE_ERRORS = frozenset(
    {
        StoreErrorKind.DEADLOCK,
        StoreErrorKind.SERIALIZATION,
        StoreErrorKind.TIMEOUT,
        StoreErrorKind.CONNECTION,
    }
)


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    ``kind`` and ``retryable`` are set by the storage adapter from driver
    error codes, so callers can decide on retries without parsing messages.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: StoreErrorKind = StoreErrorKind.OTHER,
        retryable: Optional[bool] = None,
    ) -> None:
        self.kind = kind
        self.retryable = kind in RETRYABLE_STORE_ERRORS if retryable is None else retryable
        super().__init__(message)

    @property
    def is_integrity_violation(self) -> bool:
        return self.kind == StoreErrorKind.INTEGRITY


class TransactionTimeoutException(RepositoryException):
    """Raised when a unit of work ran longer than its policy allows."""

    def __init__(self, description: str, timeout_seconds: float, elapsed_seconds: float):
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        super().__init__(
            f"{description} exceeded its {timeout_seconds:.1f}s timeout ({elapsed_seconds:.2f}s)",
            kind=StoreErrorKind.TIMEOUT,
        )
