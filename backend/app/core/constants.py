"""Scheduling constants shared across the booking core."""

from __future__ import annotations

BRAND_NAME = "LessonBook"
API_TITLE = f"{BRAND_NAME} Scheduling API"
API_DESCRIPTION = "Availability, booking and recurring lessons for one-to-one teaching"
API_VERSION = "1.0.0"

# Lesson durations the platform knows how to price (minutes)
LESSON_DURATIONS = (30, 60)
MAX_LESSON_DURATION = max(LESSON_DURATIONS)

# Slot candidates start on this grid inside an availability window
SLOT_INCREMENT_MINUTES = 30

# Flat billing approximation for indefinite weekly subscriptions.
# A weekday occurs 4 or 5 times in a calendar month; billing keeps the flat 4x
# figure and exposes the exact count separately (see services.recurring_billing).
STANDARD_OCCURRENCES_PER_MONTH = 4

# Fixed-length weekly batches
MIN_RECURRING_WEEKS = 2
MAX_RECURRING_WEEKS = 52

# Lesson settings bounds
MIN_ADVANCE_BOOKING_DAYS = 1
MAX_ADVANCE_BOOKING_DAYS = 90

# Sunday-first, matching the day_of_week column (0 = Sunday ... 6 = Saturday)
DAYS_OF_WEEK = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

# Wall-clock strings stored on availability windows and recurring slots
TIME_FORMAT = "%H:%M"
