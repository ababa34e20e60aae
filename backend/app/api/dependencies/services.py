# backend/app/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected. Services are built
per request around the request's session and the shared clock.
"""

import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...core.timezone_utils import Clock
from ...services.availability_service import AvailabilityService
from ...services.booking_engine import BookingEngine
from ...services.recurring_slot_manager import RecurringSlotManager
from ...services.slot_generator import SlotGenerator
from ...services.transaction_coordinator import TransactionCoordinator
from .database import get_clock, get_db

logger = logging.getLogger(__name__)


def get_transaction_coordinator(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TransactionCoordinator:
    return TransactionCoordinator(db, clock=clock)


def get_slot_generator(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> SlotGenerator:
    """
    Get slot generator instance.

    Args:
        db: Database session
        clock: Current-time source deciding which slots are in the past

    Returns:
        SlotGenerator instance
    """
    return SlotGenerator(db, clock=clock)


def get_booking_engine(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> BookingEngine:
    """
    Get booking engine instance with its validator and coordinator.

    Args:
        db: Database session
        clock: Current-time source shared by validation and cancellation

    Returns:
        BookingEngine instance
    """
    return BookingEngine(db, clock=clock)


def get_recurring_slot_manager(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> RecurringSlotManager:
    return RecurringSlotManager(db, clock=clock)


def get_availability_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> AvailabilityService:
    return AvailabilityService(db, clock=clock)
