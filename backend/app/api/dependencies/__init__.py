# backend/app/api/dependencies/__init__.py
"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from .database import get_clock, get_db
from .services import (
    get_availability_service,
    get_booking_engine,
    get_recurring_slot_manager,
    get_slot_generator,
    get_transaction_coordinator,
)

__all__ = [
    # Database
    "get_db",
    "get_clock",
    # Services
    "get_availability_service",
    "get_booking_engine",
    "get_recurring_slot_manager",
    "get_slot_generator",
    "get_transaction_coordinator",
]
