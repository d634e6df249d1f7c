"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from typing import AsyncContextManager, Hashable, Iterable, Optional, List
from uuid import UUID
from datetime import date, time

from domain.entities import Booking, WaitlistEntry, BookingApproval, Facility, MaintenanceWindow
from domain.enums import BookingStatus
from domain.value_objects import NotificationRequest


class BookingRepository(ABC):
    """Repository interface for Booking Aggregate"""

    @abstractmethod
    async def save(self, booking: Booking) -> Booking:
        """Save booking"""
        pass

    @abstractmethod
    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Booking]:
        """Find all bookings"""
        pass

    @abstractmethod
    async def find_by_user_id(self, user_id: UUID) -> List[Booking]:
        """Find a user's bookings, newest date first"""
        pass

    @abstractmethod
    async def find_by_facility(self, facility_id: str, on_date: Optional[date] = None) -> List[Booking]:
        """Find bookings for a facility, optionally on one date"""
        pass

    @abstractmethod
    async def find_by_statuses(self, statuses: Iterable[BookingStatus]) -> List[Booking]:
        """Find bookings whose status is in statuses"""
        pass

    @abstractmethod
    async def find_occupying(self, facility_id: str, on_date: date) -> List[Booking]:
        """Find CONFIRMED/ACTIVE bookings for a facility on a date"""
        pass

    @abstractmethod
    async def update(self, booking: Booking) -> Booking:
        """Update booking"""
        pass

    @abstractmethod
    async def delete(self, booking_id: UUID) -> bool:
        """Delete booking"""
        pass


class WaitlistRepository(ABC):
    """Repository interface for Waitlist Aggregate"""

    @abstractmethod
    async def save(self, waitlist_entry: WaitlistEntry) -> WaitlistEntry:
        """Save waitlist entry"""
        pass

    @abstractmethod
    async def find_by_id(self, waitlist_id: UUID) -> Optional[WaitlistEntry]:
        """Find waitlist entry by ID"""
        pass

    @abstractmethod
    async def find_all(self) -> List[WaitlistEntry]:
        """Find all waitlist entries"""
        pass

    @abstractmethod
    async def find_all_waiting(self) -> List[WaitlistEntry]:
        """Find every WAITING entry"""
        pass

    @abstractmethod
    async def find_waiting_by_user(self, user_id: UUID) -> List[WaitlistEntry]:
        """Find a user's WAITING entries"""
        pass

    @abstractmethod
    async def find_waiting_by_facility(self, facility_id: str) -> List[WaitlistEntry]:
        """Find WAITING entries for a facility ordered by slot and position"""
        pass

    @abstractmethod
    async def find_queue(self, facility_id: str, on_date: date, start_time: time) -> List[WaitlistEntry]:
        """Find WAITING entries of one slot ordered by position"""
        pass

    @abstractmethod
    async def exists_waiting(self, facility_id: str, user_id: UUID, on_date: date, start_time: time) -> bool:
        """Check whether a user already waits for a slot"""
        pass

    @abstractmethod
    async def update(self, waitlist_entry: WaitlistEntry) -> WaitlistEntry:
        """Update waitlist entry"""
        pass

    @abstractmethod
    async def delete(self, waitlist_id: UUID) -> bool:
        """Delete waitlist entry"""
        pass


class ApprovalRepository(ABC):
    """Append-only store of approval decisions"""

    @abstractmethod
    async def save(self, approval: BookingApproval) -> BookingApproval:
        pass

    @abstractmethod
    async def find_all(self) -> List[BookingApproval]:
        pass

    @abstractmethod
    async def find_by_booking_id(self, booking_id: UUID) -> List[BookingApproval]:
        pass

    @abstractmethod
    async def delete_by_booking_id(self, booking_id: UUID) -> int:
        """Remove a booking's history (purge only); returns rows removed"""
        pass


class FacilityRepository(ABC):
    """Read access to the facility catalog"""

    @abstractmethod
    async def find_by_id(self, facility_id: str) -> Optional[Facility]:
        pass

    @abstractmethod
    async def save(self, facility: Facility) -> Facility:
        pass


class MaintenanceRepository(ABC):
    """Read access to maintenance blocks"""

    @abstractmethod
    async def is_blocked(self, facility_id: str, on_date: date) -> bool:
        """Check whether any maintenance window covers the date"""
        pass

    @abstractmethod
    async def find_by_facility(self, facility_id: str) -> List[MaintenanceWindow]:
        pass

    @abstractmethod
    async def save(self, window: MaintenanceWindow) -> MaintenanceWindow:
        pass


class UnitOfWork(ABC):
    """Groups repository writes so they commit or roll back together"""

    @abstractmethod
    def transaction(self) -> AsyncContextManager[None]:
        pass


class SlotLockProvider(ABC):
    """Serializes check-then-write sequences per (facility, date)"""

    @abstractmethod
    def hold(self, *keys: Hashable) -> AsyncContextManager[None]:
        pass


class Notifier(ABC):
    """Outbound port to the notification collaborator"""

    @abstractmethod
    async def send(self, request: NotificationRequest) -> None:
        pass
