"""Domain Enums"""
from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    NO_SHOW = "NO_SHOW"
    EXPIRED = "EXPIRED"


# Statuses that hold a facility slot
OCCUPYING_STATUSES = frozenset({BookingStatus.CONFIRMED, BookingStatus.ACTIVE})

TERMINAL_STATUSES = frozenset({
    BookingStatus.CANCELLED,
    BookingStatus.REJECTED,
    BookingStatus.COMPLETED,
    BookingStatus.EXPIRED,
    BookingStatus.NO_SHOW,
})


class WaitlistStatus(str, Enum):
    WAITING = "WAITING"
    PROMOTED = "PROMOTED"
    EXPIRED = "EXPIRED"


class ApprovalDecision(str, Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class UserRole(str, Enum):
    STUDENT = "STUDENT"
    STAFF = "STAFF"
    ADMIN = "ADMIN"
    SECURITY = "SECURITY"
    VISITOR = "VISITOR"


class NotificationType(str, Enum):
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    BOOKING_PENDING = "BOOKING_PENDING"
    BOOKING_REJECTED = "BOOKING_REJECTED"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    BOOKING_EXTENDED = "BOOKING_EXTENDED"
    BOOKING_EXPIRED = "BOOKING_EXPIRED"
    BOOKING_REMINDER = "BOOKING_REMINDER"
    WAITLIST_PROMOTED = "WAITLIST_PROMOTED"
