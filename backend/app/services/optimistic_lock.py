# backend/app/services/optimistic_lock.py
"""
Optimistic locking for version-stamped rows (lessons, recurring slots).

Lost updates are detected rather than prevented: a guarded write only
applies when the stored version still equals the one the caller read.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar

from ..core.config import settings
from ..core.exceptions import NotFoundException, OptimisticLockException
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.base_repository import IVersionedRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M")


class OptimisticLockGuard:
    """Compare-and-set updates over any IVersionedRepository."""

    def update(
        self,
        repository: IVersionedRepository[M],
        entity_id: str,
        expected_version: int,
        patch: Dict[str, Any],
    ) -> M:
        """
        Apply ``patch`` if the row is still at ``expected_version``.

        Returns:
            The refreshed entity, at ``expected_version + 1``

        Raises:
            OptimisticLockException: The row exists at another version
            NotFoundException: The row no longer exists
        """
        entity_name = getattr(getattr(repository, "model", None), "__name__", "entity")
        changed = repository.conditional_update(entity_id, expected_version, patch)
        if changed:
            entity = repository.get_by_id(entity_id, populate_existing=True)
            if entity is None:
                raise NotFoundException(
                    f"{entity_name} not found", details={"entity_id": entity_id}
                )
            return entity

        current = repository.get_by_id(entity_id, populate_existing=True)
        if current is None:
            raise NotFoundException(f"{entity_name} not found", details={"entity_id": entity_id})

        prometheus_metrics.inc_optimistic_lock_conflict(entity_name)
        logger.warning(
            f"Version conflict on {entity_name} {entity_id}: "
            f"expected {expected_version}, found {current.version}",
            extra={"entity": entity_name, "entity_id": entity_id},
        )
        raise OptimisticLockException(
            entity=entity_name,
            entity_id=entity_id,
            expected_version=expected_version,
            current_version=current.version,
        )


def run_with_retry(
    operation: Callable[[], T],
    max_retries: Optional[int] = None,
    base_delay: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Re-run ``operation`` from scratch when it hits an OptimisticLockException.

    ``operation`` must re-read everything it depends on; only the whole
    read-modify-write sequence is repeated, never the write alone. The
    delay before retry ``n`` is ``base_delay * 2**n``.
    """
    retries = settings.optimistic_lock_max_retries if max_retries is None else max_retries
    delay = settings.optimistic_lock_base_delay if base_delay is None else base_delay

    attempt = 0
    while True:
        try:
            return operation()
        except OptimisticLockException as exc:
            if attempt >= retries:
                raise
            wait = delay * (2**attempt)
            logger.warning(
                f"Optimistic lock conflict on {exc.entity} {exc.entity_id}, "
                f"retrying in {wait:.2f}s ({attempt + 1}/{retries})"
            )
            attempt += 1
            sleep(wait)
