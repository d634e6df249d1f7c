"""Domain Entities - Aggregates"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from datetime import datetime, date, time, timedelta
from typing import Optional, Tuple

from domain.enums import (
    BookingStatus, WaitlistStatus, ApprovalDecision,
    OCCUPYING_STATUSES, TERMINAL_STATUSES,
)
from domain.errors import (
    InvalidTransitionError, MaxExtensionsReachedError, OutsideOperatingHoursError,
)
from domain.value_objects import TimeWindow, SLOT_MINUTES, shift_time


DEFAULT_MAX_EXTENSIONS = 2
PROMOTED_PURPOSE = "Promoted from waitlist"


class Facility(BaseModel):
    """Catalog snapshot of a bookable facility (owned by the catalog context)"""
    facility_id: str
    name: str
    capacity: int = Field(ge=1)
    opening_time: time = time(7, 0)
    closing_time: time = time(22, 0)
    is_available: bool = True
    requires_approval: bool = False

    class Config:
        from_attributes = True


class MaintenanceWindow(BaseModel):
    """Inclusive date range during which a facility cannot be booked"""
    maintenance_id: UUID = Field(default_factory=uuid4)
    facility_id: str
    start_date: date
    end_date: date
    reason: str
    created_by: Optional[UUID] = None

    class Config:
        from_attributes = True

    def covers(self, on_date: date) -> bool:
        return self.start_date <= on_date <= self.end_date


# Lifecycle table; terminal statuses have no way out except check-out of an expired session
ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {
        BookingStatus.CONFIRMED, BookingStatus.REJECTED, BookingStatus.CANCELLED,
    },
    BookingStatus.CONFIRMED: {
        BookingStatus.ACTIVE, BookingStatus.CANCELLED,
        BookingStatus.COMPLETED, BookingStatus.EXPIRED,
    },
    BookingStatus.ACTIVE: {
        BookingStatus.CANCELLED, BookingStatus.COMPLETED, BookingStatus.EXPIRED,
    },
}


class Booking(BaseModel):
    """Booking Aggregate Root Entity"""

    # Identity
    booking_id: UUID = Field(default_factory=uuid4)

    # References to other contexts
    facility_id: str
    user_id: UUID

    # Window
    booking_date: date
    start_time: time
    end_time: time

    # Status
    status: BookingStatus = BookingStatus.CONFIRMED

    # Details
    purpose: str
    attendees: int = Field(ge=1)
    is_recurring: bool = False
    recurrence_rule: Optional[str] = None
    notes: Optional[str] = None

    # Session tracking
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    max_extensions: int = Field(ge=0, default=DEFAULT_MAX_EXTENSIONS)
    extension_count: int = Field(ge=0, default=0)
    original_end_time: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    reminder_sent: bool = False

    # Metadata
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== FACTORY METHODS ====================
    @staticmethod
    def create(
        facility_id: str,
        user_id: UUID,
        window: TimeWindow,
        purpose: str,
        attendees: int,
        requires_approval: bool = False,
        notes: Optional[str] = None,
        is_recurring: bool = False,
        recurrence_rule: Optional[str] = None,
    ) -> "Booking":
        """Create a booking for a window that already passed validation"""
        status = BookingStatus.PENDING if requires_approval else BookingStatus.CONFIRMED
        return Booking(
            facility_id=facility_id,
            user_id=user_id,
            booking_date=window.booking_date,
            start_time=window.start_time,
            end_time=window.end_time,
            status=status,
            purpose=purpose,
            attendees=attendees,
            notes=notes,
            is_recurring=is_recurring,
            recurrence_rule=recurrence_rule,
        )

    @staticmethod
    def from_waitlist(entry: "WaitlistEntry") -> "Booking":
        """New confirmed booking for a promoted waitlist entry"""
        return Booking(
            facility_id=entry.facility_id,
            user_id=entry.user_id,
            booking_date=entry.waitlist_date,
            start_time=entry.start_time,
            end_time=entry.end_time,
            status=BookingStatus.CONFIRMED,
            purpose=entry.purpose or PROMOTED_PURPOSE,
            attendees=1,
        )

    # ==================== QUERY METHODS ====================
    @property
    def window(self) -> TimeWindow:
        return TimeWindow(
            booking_date=self.booking_date,
            start_time=self.start_time,
            end_time=self.end_time,
        )

    @property
    def end_datetime(self) -> datetime:
        return datetime.combine(self.booking_date, self.end_time)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def occupies_slot(self) -> bool:
        return self.status in OCCUPYING_STATUSES

    @property
    def slot_key(self) -> Tuple[str, date]:
        """Lock partition for this booking"""
        return (self.facility_id, self.booking_date)

    def is_expirable(self, now: datetime) -> bool:
        """Past its end and not yet auto-expired"""
        return (
            self.status in OCCUPYING_STATUSES
            and self.expired_at is None
            and now > self.end_datetime
        )

    def needs_reminder(self, now: datetime, lead: timedelta) -> bool:
        """Ends inside (now, now + lead) and has not been reminded"""
        return (
            self.status in OCCUPYING_STATUSES
            and not self.reminder_sent
            and now < self.end_datetime < now + lead
        )

    # ==================== STATE TRANSITION METHODS ====================
    def _transition(self, target: BookingStatus, now: Optional[datetime] = None) -> None:
        allowed = ALLOWED_TRANSITIONS.get(self.status, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot move booking from {self.status.value} to {target.value}"
            )
        self.status = target
        self._touch(now)

    def _touch(self, now: Optional[datetime] = None) -> None:
        self.updated_at = now or datetime.now()
        self.version += 1

    def approve(self) -> None:
        """Admin approval of a pending booking"""
        if self.status != BookingStatus.PENDING:
            raise InvalidTransitionError(
                f"Only PENDING bookings can be approved. Current status: {self.status.value}"
            )
        self._transition(BookingStatus.CONFIRMED)

    def reject(self) -> None:
        """Admin rejection of a pending booking"""
        if self.status != BookingStatus.PENDING:
            raise InvalidTransitionError(
                f"Only PENDING bookings can be rejected. Current status: {self.status.value}"
            )
        self._transition(BookingStatus.REJECTED)

    def cancel(self) -> None:
        if self.status == BookingStatus.CANCELLED:
            raise InvalidTransitionError("Booking is already cancelled.")
        if self.is_terminal:
            raise InvalidTransitionError(f"Cannot cancel a {self.status.value} booking.")
        self._transition(BookingStatus.CANCELLED)

    def check_in(self, now: Optional[datetime] = None) -> None:
        """Record arrival; the booking stays CONFIRMED"""
        if self.status != BookingStatus.CONFIRMED:
            raise InvalidTransitionError("Only CONFIRMED bookings can be checked in.")
        if self.check_in_time is not None:
            raise InvalidTransitionError("Booking is already checked in.")
        now = now or datetime.now()
        self.check_in_time = now
        self._touch(now)

    def check_out(self, now: Optional[datetime] = None) -> None:
        """Close a checked-in session, including one the expiry job already closed"""
        if self.check_in_time is None:
            raise InvalidTransitionError("Cannot check out - no check-in recorded.")
        now = now or datetime.now()
        if self.status == BookingStatus.EXPIRED:
            self.status = BookingStatus.COMPLETED
            self._touch(now)
        else:
            self._transition(BookingStatus.COMPLETED, now)
        self.check_out_time = now

    def extended_end_time(self) -> time:
        """End time after one more extension, if the booking may be extended"""
        if self.status not in OCCUPYING_STATUSES:
            raise InvalidTransitionError(
                "Only confirmed or active bookings can be extended. "
                f"Current status: {self.status.value}"
            )
        if self.extension_count >= self.max_extensions:
            raise MaxExtensionsReachedError(
                f"Maximum extensions ({self.max_extensions}) reached for this booking."
            )
        new_end = shift_time(self.end_time, SLOT_MINUTES)
        if new_end is None:
            raise OutsideOperatingHoursError("Extension would run past midnight.")
        return new_end

    def extend(self, now: Optional[datetime] = None) -> None:
        """Add one 30-minute slot to the end of the booking"""
        new_end = self.extended_end_time()
        if self.original_end_time is None:
            self.original_end_time = self.end_datetime
        self.end_time = new_end
        self.extension_count += 1
        self.reminder_sent = False
        self._touch(now)

    def expire(self, now: datetime) -> bool:
        """Auto-expire; a second call is a no-op"""
        if not self.is_expirable(now):
            return False
        self._transition(BookingStatus.EXPIRED, now)
        self.expired_at = now
        return True

    def mark_reminded(self, now: Optional[datetime] = None) -> None:
        self.reminder_sent = True
        self._touch(now)

    # ==================== MODIFICATION METHODS ====================
    def ensure_editable(self) -> None:
        if self.is_terminal:
            raise InvalidTransitionError(f"Cannot update a {self.status.value} booking.")

    def reschedule(
        self,
        window: TimeWindow,
        purpose: str,
        attendees: int,
        notes: Optional[str] = None,
        is_recurring: bool = False,
        recurrence_rule: Optional[str] = None,
    ) -> None:
        """Replace the editable details of a live booking.

        Moving the booking to a different window starts its extension
        allowance afresh.
        """
        self.ensure_editable()
        if window != self.window:
            self.extension_count = 0
            self.original_end_time = None
        self.booking_date = window.booking_date
        self.start_time = window.start_time
        self.end_time = window.end_time
        self.purpose = purpose
        self.attendees = attendees
        self.notes = notes
        self.is_recurring = is_recurring
        self.recurrence_rule = recurrence_rule
        self.reminder_sent = False
        self._touch()


class WaitlistEntry(BaseModel):
    """Waitlist Aggregate Root Entity"""

    # Identity
    waitlist_id: UUID = Field(default_factory=uuid4)

    # Request Details
    facility_id: str
    user_id: UUID
    waitlist_date: date
    start_time: time
    end_time: time
    purpose: Optional[str] = None

    # Queue state
    position: int = Field(ge=1)
    status: WaitlistStatus = WaitlistStatus.WAITING

    # Timestamps
    joined_at: datetime = Field(default_factory=datetime.now)

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def join(
        facility_id: str,
        user_id: UUID,
        window: TimeWindow,
        position: int,
        purpose: Optional[str] = None,
    ) -> "WaitlistEntry":
        """Queue a request at the given position"""
        return WaitlistEntry(
            facility_id=facility_id,
            user_id=user_id,
            waitlist_date=window.booking_date,
            start_time=window.start_time,
            end_time=window.end_time,
            purpose=purpose,
            position=position,
            status=WaitlistStatus.WAITING,
        )

    @property
    def partition_key(self) -> Tuple[str, date, time]:
        return (self.facility_id, self.waitlist_date, self.start_time)

    @property
    def is_waiting(self) -> bool:
        return self.status == WaitlistStatus.WAITING

    # ==================== STATE TRANSITION METHODS ====================
    def promote(self) -> None:
        if self.status != WaitlistStatus.WAITING:
            raise InvalidTransitionError(
                f"Cannot promote waitlist entry with status {self.status.value}"
            )
        self.status = WaitlistStatus.PROMOTED

    def expire(self) -> None:
        if self.status == WaitlistStatus.WAITING:
            self.status = WaitlistStatus.EXPIRED

    def move_up(self) -> None:
        """Close the gap left by an entry ahead in the queue"""
        if self.position > 1:
            self.position -= 1


class BookingApproval(BaseModel):
    """Immutable audit record of an admin decision"""
    approval_id: UUID = Field(default_factory=uuid4)
    booking_id: UUID
    reviewed_by: Optional[UUID] = None
    decision: ApprovalDecision
    remarks: Optional[str] = None
    reviewed_at: datetime = Field(default_factory=datetime.now)

    class Config:
        frozen = True
        from_attributes = True
