"""Domain Value Objects"""
from pydantic import BaseModel, Field
from datetime import date, datetime, time, timedelta
from uuid import UUID
from typing import List, Optional

from domain.enums import UserRole, NotificationType


SLOT_MINUTES = 30


def shift_time(value: time, minutes: int) -> Optional[time]:
    """Move a wall-clock time by minutes; None when it leaves the day"""
    moved = datetime.combine(date.min, value) + timedelta(minutes=minutes)
    if moved.date() != date.min:
        return None
    return moved.time()


def windows_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """Half-open interval overlap; touching endpoints do not conflict"""
    return start_a < end_b and end_a > start_b


class TimeWindow(BaseModel):
    """Value Object for a same-day [start, end) window"""
    booking_date: date
    start_time: time
    end_time: time

    def duration_minutes(self) -> int:
        """Length of the window in whole minutes"""
        start = datetime.combine(self.booking_date, self.start_time)
        end = datetime.combine(self.booking_date, self.end_time)
        return int((end - start).total_seconds() // 60)

    def overlaps(self, start_time: time, end_time: time) -> bool:
        return windows_overlap(self.start_time, self.end_time, start_time, end_time)

    def start_datetime(self) -> datetime:
        return datetime.combine(self.booking_date, self.start_time)

    def end_datetime(self) -> datetime:
        return datetime.combine(self.booking_date, self.end_time)

    class Config:
        frozen = True


class Slot(BaseModel):
    """Value Object for one 30-minute availability slot"""
    start_time: time
    end_time: time
    available: bool

    class Config:
        frozen = True


class Actor(BaseModel):
    """The authenticated caller of a core operation"""
    user_id: UUID
    role: UserRole = UserRole.STUDENT

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_staff(self) -> bool:
        """Front-desk roles that see and check in every booking"""
        return self.role in (UserRole.ADMIN, UserRole.SECURITY)

    def can_act_for(self, owner_id: UUID) -> bool:
        """Owner or admin"""
        return self.is_admin or self.user_id == owner_id

    class Config:
        frozen = True


class NotificationRequest(BaseModel):
    """Fire-and-forget message for the notification collaborator"""
    user_id: UUID
    booking_id: Optional[UUID] = None
    title: str
    message: str
    notification_type: NotificationType
    created_at: datetime = Field(default_factory=datetime.now)

    class Config:
        frozen = True


class FacilityAvailability(BaseModel):
    """Slot grid of one facility on one date"""
    facility_id: str
    facility_name: str
    availability_date: date
    slots: List[Slot]
