"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel
from datetime import date, datetime, time
from uuid import UUID
from typing import List, Optional

from domain.enums import BookingStatus, WaitlistStatus, ApprovalDecision, UserRole


class CamelModel(BaseModel):
    """camelCase on the wire, snake_case in Python"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


def _whole_minutes(value: time) -> time:
    if value.second or value.microsecond:
        raise ValueError("Time must be given in whole minutes (HH:MM)")
    return value


# ============================================================================
# BOOKING SCHEMAS
# ============================================================================

class UpdateBookingRequest(CamelModel):
    """Update booking request DTO"""
    booking_date: date = Field(alias="date")
    start_time: time
    end_time: time
    purpose: str = Field(min_length=1, max_length=500)
    attendees: int = Field(ge=1)
    notes: Optional[str] = Field(None, max_length=1000)
    is_recurring: bool = False
    recurrence_rule: Optional[str] = Field(None, max_length=255)

    @field_validator("start_time", "end_time")
    @classmethod
    def check_whole_minutes(cls, value: time) -> time:
        return _whole_minutes(value)


class CreateBookingRequest(UpdateBookingRequest):
    """Create booking request DTO"""
    facility_id: str = Field(min_length=1)


class BookingResponse(CamelModel):
    """Booking response DTO"""
    booking_id: UUID
    facility_id: str
    user_id: UUID
    booking_date: date = Field(alias="date")
    start_time: time
    end_time: time
    status: BookingStatus
    purpose: str
    attendees: int
    is_recurring: bool
    recurrence_rule: Optional[str] = None
    notes: Optional[str] = None
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    extension_count: int
    max_extensions: int
    original_end_time: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    reminder_sent: bool
    created_at: datetime
    updated_at: datetime
    version: int


# ============================================================================
# AVAILABILITY SCHEMAS
# ============================================================================

class SlotResponse(CamelModel):
    """One 30-minute slot"""
    start_time: time
    end_time: time
    available: bool


class AvailabilityResponse(CamelModel):
    """Availability response DTO"""
    facility_id: str
    facility_name: str
    availability_date: date = Field(alias="date")
    slots: List[SlotResponse]


# ============================================================================
# WAITLIST SCHEMAS
# ============================================================================

class JoinWaitlistRequest(CamelModel):
    """Join waitlist request DTO"""
    facility_id: str = Field(min_length=1)
    waitlist_date: date = Field(alias="date")
    start_time: time
    end_time: time
    purpose: Optional[str] = Field(None, max_length=500)

    @field_validator("start_time", "end_time")
    @classmethod
    def check_whole_minutes(cls, value: time) -> time:
        return _whole_minutes(value)


class WaitlistResponse(CamelModel):
    """Waitlist response DTO"""
    waitlist_id: UUID
    facility_id: str
    user_id: UUID
    waitlist_date: date = Field(alias="date")
    start_time: time
    end_time: time
    purpose: Optional[str] = None
    position: int
    status: WaitlistStatus
    joined_at: datetime


# ============================================================================
# APPROVAL SCHEMAS
# ============================================================================

class ApprovalDecisionRequest(CamelModel):
    """Approve/reject request DTO"""
    remarks: Optional[str] = Field(None, max_length=1000)


class ApprovalResponse(CamelModel):
    """Approval record response DTO"""
    approval_id: UUID
    booking_id: UUID
    reviewed_by: Optional[UUID] = None
    decision: ApprovalDecision
    remarks: Optional[str] = None
    reviewed_at: datetime


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str

class TokenData(BaseModel):
    """Token payload DTO"""
    username: Optional[str] = None
    role: Optional[UserRole] = None

class UserResponse(BaseModel):
    """User response DTO"""
    user_id: UUID
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: UserRole
    disabled: bool
