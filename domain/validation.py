"""Conflict detection for proposed booking windows.

The checks run in a fixed order and stop at the first violation, so a
request that breaks several rules always reports the same one.
"""
from typing import Iterable, List, Optional
from uuid import UUID

from domain.entities import Booking, Facility
from domain.errors import (
    FacilityUnavailableError, InvalidWindowError, OutsideOperatingHoursError,
    DurationTooShortError, CapacityExceededError, UnderMaintenanceError,
    SlotConflictError,
)
from domain.value_objects import TimeWindow, SLOT_MINUTES


def find_conflicts(
    window: TimeWindow,
    bookings: Iterable[Booking],
    exclude_id: Optional[UUID] = None,
) -> List[Booking]:
    """Occupying bookings on the window's date that overlap it"""
    return [
        b for b in bookings
        if b.booking_id != exclude_id
        and b.occupies_slot
        and b.booking_date == window.booking_date
        and window.overlaps(b.start_time, b.end_time)
    ]


def ensure_no_conflict(
    window: TimeWindow,
    bookings: Iterable[Booking],
    exclude_id: Optional[UUID] = None,
) -> None:
    if find_conflicts(window, bookings, exclude_id):
        raise SlotConflictError(
            f"Time slot {window.start_time.strftime('%H:%M')} - "
            f"{window.end_time.strftime('%H:%M')} on {window.booking_date} is already booked."
        )


def ensure_within_hours(facility: Facility, window: TimeWindow) -> None:
    if window.start_time < facility.opening_time or window.end_time > facility.closing_time:
        raise OutsideOperatingHoursError(
            "Booking must be within operating hours: "
            f"{facility.opening_time.strftime('%H:%M')} - {facility.closing_time.strftime('%H:%M')}"
        )


def validate_booking_window(
    facility: Facility,
    window: TimeWindow,
    attendees: int,
    under_maintenance: bool,
    existing: Iterable[Booking],
    exclude_id: Optional[UUID] = None,
) -> None:
    """Validate a proposed booking against facility rules and existing bookings"""
    # 1. Facility toggled on
    if not facility.is_available:
        raise FacilityUnavailableError(f"Facility '{facility.name}' is currently unavailable.")

    # 2. Window ordering
    if not window.start_time < window.end_time:
        raise InvalidWindowError("End time must be after start time.")

    # 3. Operating hours
    ensure_within_hours(facility, window)

    # 4. Minimum duration
    if window.duration_minutes() < SLOT_MINUTES:
        raise DurationTooShortError(f"Minimum booking duration is {SLOT_MINUTES} minutes.")

    # 5. Capacity
    if attendees > facility.capacity:
        raise CapacityExceededError(
            f"Attendees ({attendees}) exceeds facility capacity ({facility.capacity})."
        )

    # 6. Maintenance
    if under_maintenance:
        raise UnderMaintenanceError(
            f"Facility '{facility.name}' is under maintenance on {window.booking_date}"
        )

    # 7. Overlap with confirmed/active bookings
    ensure_no_conflict(window, existing, exclude_id)
