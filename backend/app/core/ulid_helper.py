"""ULID generation helpers for primary keys and batch tags."""

from typing import Optional

import ulid


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ulid.ULID())


def generate_batch_tag(prefix: str = "batch", owner_id: Optional[str] = None) -> str:
    """
    Tag shared by every lesson created in one multi-row operation.

    Subscription-owned batches reuse the subscription id so the tag is
    recognisable; ad-hoc batches get a fresh ULID.
    """
    return f"{prefix}-{owner_id or generate_ulid()}"
