"""Domain Errors - typed failures for every booking rule.

Every error carries a stable code, a category and the HTTP status the API
layer maps it to. Business-rule and validation failures also derive from
ValueError, the way plain domain code signals a rejected operation.
"""
from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    AUTHORIZATION = "authorization"
    INTERNAL = "internal"


class BookingError(Exception):
    """Base exception for all booking core errors"""

    code = "BOOKING_ERROR"
    category = ErrorCategory.INTERNAL
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict:
        """Convert to the REST error envelope"""
        return {
            "detail": self.message,
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
            },
        }


class BusinessRuleError(BookingError, ValueError):
    """A request that is well-formed but violates a booking rule"""
    code = "BUSINESS_RULE_VIOLATION"
    category = ErrorCategory.BUSINESS_RULE
    http_status = 400


# ==================== CONFLICT DETECTOR ====================

class FacilityUnavailableError(BusinessRuleError):
    code = "FACILITY_UNAVAILABLE"


class InvalidWindowError(BusinessRuleError):
    code = "INVALID_WINDOW"


class OutsideOperatingHoursError(BusinessRuleError):
    code = "OUTSIDE_OPERATING_HOURS"


class DurationTooShortError(BusinessRuleError):
    code = "DURATION_TOO_SHORT"


class CapacityExceededError(BusinessRuleError):
    code = "CAPACITY_EXCEEDED"


class UnderMaintenanceError(BusinessRuleError):
    code = "UNDER_MAINTENANCE"


class SlotConflictError(BusinessRuleError):
    code = "SLOT_CONFLICT"


# ==================== LIFECYCLE ====================

class InvalidTransitionError(BusinessRuleError):
    code = "INVALID_STATUS_TRANSITION"


class MaxExtensionsReachedError(BusinessRuleError):
    code = "MAX_EXTENSIONS_REACHED"


# ==================== WAITLIST ====================

class AlreadyWaitlistedError(BusinessRuleError):
    code = "ALREADY_WAITLISTED"


# ==================== ACCESS / LOOKUP ====================

class UnauthorizedError(BookingError):
    code = "UNAUTHORIZED"
    category = ErrorCategory.AUTHORIZATION
    http_status = 403


class ResourceNotFoundError(BookingError):
    code = "RESOURCE_NOT_FOUND"
    category = ErrorCategory.RESOURCE_NOT_FOUND
    http_status = 404

    def __init__(self, resource_type: str, resource_id, message: Optional[str] = None):
        super().__init__(message or f"{resource_type} not found with id: {resource_id}")
        self.resource_type = resource_type
        self.resource_id = resource_id
