"""In-Memory Repository Implementations.

Stored entities are copied on the way in and on the way out, so callers
only change stored state through save/update/delete. Writes made inside
InMemoryUnitOfWork.transaction() are recorded in an undo log that is
replayed if the transaction body raises.
"""
from contextlib import asynccontextmanager
from contextvars import ContextVar
from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple
from uuid import UUID
from datetime import date, time

from domain.repositories import (
    BookingRepository, WaitlistRepository, ApprovalRepository,
    FacilityRepository, MaintenanceRepository, UnitOfWork,
)
from domain.entities import Booking, WaitlistEntry, BookingApproval, Facility, MaintenanceWindow
from domain.enums import BookingStatus, WaitlistStatus, OCCUPYING_STATUSES


_MISSING = object()


class _UndoLog:
    """Previous values of every key written during one transaction"""

    def __init__(self):
        self._entries: List[Tuple[Dict, Hashable, Any]] = []

    def record(self, storage: Dict, key: Hashable) -> None:
        self._entries.append((storage, key, storage.get(key, _MISSING)))

    def rollback(self) -> None:
        for storage, key, previous in reversed(self._entries):
            if previous is _MISSING:
                storage.pop(key, None)
            else:
                storage[key] = previous
        self._entries.clear()


_active_undo_log: ContextVar[Optional[_UndoLog]] = ContextVar("_active_undo_log", default=None)


class InMemoryUnitOfWork(UnitOfWork):
    """Transaction boundary over the in-memory repositories"""

    @asynccontextmanager
    async def transaction(self):
        if _active_undo_log.get() is not None:
            # Nested: join the outer transaction
            yield
            return

        undo_log = _UndoLog()
        token = _active_undo_log.set(undo_log)
        try:
            yield
        except BaseException:
            undo_log.rollback()
            raise
        finally:
            _active_undo_log.reset(token)


class _InMemoryTable:
    """Copy-in/copy-out storage shared by the repositories below"""

    def __init__(self):
        self._storage: Dict[Hashable, Any] = {}

    def _read(self, key: Hashable):
        item = self._storage.get(key)
        return item.model_copy(deep=True) if item is not None else None

    def _rows(self) -> List[Any]:
        return [item.model_copy(deep=True) for item in self._storage.values()]

    def _write(self, key: Hashable, item) -> None:
        undo_log = _active_undo_log.get()
        if undo_log is not None:
            undo_log.record(self._storage, key)
        self._storage[key] = item.model_copy(deep=True)

    def _remove(self, key: Hashable) -> bool:
        if key not in self._storage:
            return False
        undo_log = _active_undo_log.get()
        if undo_log is not None:
            undo_log.record(self._storage, key)
        del self._storage[key]
        return True


class InMemoryBookingRepository(_InMemoryTable, BookingRepository):
    """In-memory implementation of BookingRepository"""

    async def save(self, booking: Booking) -> Booking:
        """Save booking to memory"""
        self._write(booking.booking_id, booking)
        return booking

    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID"""
        return self._read(booking_id)

    async def find_all(self) -> List[Booking]:
        """Find all bookings"""
        return self._rows()

    async def find_by_user_id(self, user_id: UUID) -> List[Booking]:
        """Find bookings by user ID, newest first"""
        bookings = [b for b in self._rows() if b.user_id == user_id]
        return sorted(bookings, key=lambda b: (b.booking_date, b.start_time), reverse=True)

    async def find_by_facility(self, facility_id: str, on_date: Optional[date] = None) -> List[Booking]:
        """Find bookings for a facility"""
        bookings = [
            b for b in self._rows()
            if b.facility_id == facility_id and (on_date is None or b.booking_date == on_date)
        ]
        return sorted(bookings, key=lambda b: (b.booking_date, b.start_time))

    async def find_by_statuses(self, statuses: Iterable[BookingStatus]) -> List[Booking]:
        """Find bookings by status"""
        wanted = set(statuses)
        return [b for b in self._rows() if b.status in wanted]

    async def find_occupying(self, facility_id: str, on_date: date) -> List[Booking]:
        """Find bookings holding a slot on the date"""
        return [
            b for b in self._rows()
            if b.facility_id == facility_id
            and b.booking_date == on_date
            and b.status in OCCUPYING_STATUSES
        ]

    async def update(self, booking: Booking) -> Booking:
        """Update booking"""
        if booking.booking_id in self._storage:
            self._write(booking.booking_id, booking)
            return booking
        raise ValueError("Booking not found")

    async def delete(self, booking_id: UUID) -> bool:
        """Delete booking"""
        return self._remove(booking_id)


class InMemoryWaitlistRepository(_InMemoryTable, WaitlistRepository):
    """In-memory implementation of WaitlistRepository"""

    async def save(self, waitlist_entry: WaitlistEntry) -> WaitlistEntry:
        """Save waitlist entry to memory"""
        self._write(waitlist_entry.waitlist_id, waitlist_entry)
        return waitlist_entry

    async def find_by_id(self, waitlist_id: UUID) -> Optional[WaitlistEntry]:
        """Find waitlist entry by ID"""
        return self._read(waitlist_id)

    async def find_all(self) -> List[WaitlistEntry]:
        """Find all waitlist entries"""
        return self._rows()

    async def find_all_waiting(self) -> List[WaitlistEntry]:
        return [e for e in self._rows() if e.status == WaitlistStatus.WAITING]

    async def find_waiting_by_user(self, user_id: UUID) -> List[WaitlistEntry]:
        """Find waitlist entries for a user"""
        return [e for e in await self.find_all_waiting() if e.user_id == user_id]

    async def find_waiting_by_facility(self, facility_id: str) -> List[WaitlistEntry]:
        """Find waiting entries for a facility"""
        entries = [e for e in await self.find_all_waiting() if e.facility_id == facility_id]
        return sorted(entries, key=lambda e: (e.waitlist_date, e.start_time, e.position))

    async def find_queue(self, facility_id: str, on_date: date, start_time: time) -> List[WaitlistEntry]:
        """Find the waiting queue of one slot"""
        entries = [
            e for e in await self.find_all_waiting()
            if e.partition_key == (facility_id, on_date, start_time)
        ]
        return sorted(entries, key=lambda e: e.position)

    async def exists_waiting(self, facility_id: str, user_id: UUID, on_date: date, start_time: time) -> bool:
        return any(
            e.user_id == user_id
            for e in await self.find_queue(facility_id, on_date, start_time)
        )

    async def update(self, waitlist_entry: WaitlistEntry) -> WaitlistEntry:
        """Update waitlist entry"""
        if waitlist_entry.waitlist_id in self._storage:
            self._write(waitlist_entry.waitlist_id, waitlist_entry)
            return waitlist_entry
        raise ValueError("Waitlist entry not found")

    async def delete(self, waitlist_id: UUID) -> bool:
        """Delete waitlist entry"""
        return self._remove(waitlist_id)


class InMemoryApprovalRepository(_InMemoryTable, ApprovalRepository):
    """In-memory implementation of ApprovalRepository"""

    async def save(self, approval: BookingApproval) -> BookingApproval:
        self._write(approval.approval_id, approval)
        return approval

    async def find_all(self) -> List[BookingApproval]:
        return sorted(self._rows(), key=lambda a: a.reviewed_at)

    async def find_by_booking_id(self, booking_id: UUID) -> List[BookingApproval]:
        return [a for a in await self.find_all() if a.booking_id == booking_id]

    async def delete_by_booking_id(self, booking_id: UUID) -> int:
        removed = 0
        for approval in await self.find_by_booking_id(booking_id):
            if self._remove(approval.approval_id):
                removed += 1
        return removed


class InMemoryFacilityRepository(_InMemoryTable, FacilityRepository):
    """In-memory stand-in for the facility catalog"""

    def __init__(self, facilities: Iterable[Facility] = ()):
        super().__init__()
        for facility in facilities:
            self._storage[facility.facility_id] = facility.model_copy(deep=True)

    async def find_by_id(self, facility_id: str) -> Optional[Facility]:
        return self._read(facility_id)

    async def save(self, facility: Facility) -> Facility:
        self._write(facility.facility_id, facility)
        return facility


class InMemoryMaintenanceRepository(_InMemoryTable, MaintenanceRepository):
    """In-memory stand-in for maintenance schedules"""

    async def is_blocked(self, facility_id: str, on_date: date) -> bool:
        return any(w.covers(on_date) for w in await self.find_by_facility(facility_id))

    async def find_by_facility(self, facility_id: str) -> List[MaintenanceWindow]:
        return [w for w in self._rows() if w.facility_id == facility_id]

    async def save(self, window: MaintenanceWindow) -> MaintenanceWindow:
        self._write(window.maintenance_id, window)
        return window
