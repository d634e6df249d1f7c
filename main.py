import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable, List, Optional
from uuid import UUID

from fastapi import FastAPI, HTTPException, Depends, Query
from fastapi.security import OAuth2PasswordRequestForm

from api.schemas import (
    # Bookings
    CreateBookingRequest, UpdateBookingRequest, BookingResponse,
    AvailabilityResponse, SlotResponse,
    # Waitlist
    JoinWaitlistRequest, WaitlistResponse,
    # Approvals
    ApprovalDecisionRequest, ApprovalResponse,
    # Auth
    Token, UserResponse
)
from api.dependencies import (
    get_current_active_user, get_current_actor, require_roles, fake_users_db, get_user,
)
from api.error_handlers import register_error_handlers
from infrastructure.security import verify_password, create_access_token, ACCESS_TOKEN_EXPIRE_MINUTES
from infrastructure.config import Settings, get_settings
from infrastructure.observability import setup_logging
from infrastructure.locks import SlotLocks
from infrastructure.notifications import LoggingNotifier
from infrastructure.repositories.in_memory_repositories import (
    InMemoryBookingRepository, InMemoryWaitlistRepository, InMemoryApprovalRepository,
    InMemoryFacilityRepository, InMemoryMaintenanceRepository, InMemoryUnitOfWork,
)
from application.services import BookingService, WaitlistService, ApprovalService
from application.scheduler import BookingExpiryScheduler
from domain.auth import User
from domain.entities import Facility
from domain.enums import BookingStatus, WaitlistStatus, UserRole
from domain.errors import UnauthorizedError
from domain.value_objects import Actor

logger = logging.getLogger(__name__)


DEMO_FACILITIES = [
    Facility(facility_id="LAB-1", name="Computer Lab 1", capacity=40),
    Facility(facility_id="ROOM-101", name="Seminar Room 101", capacity=20,
             opening_time=time(8, 0), closing_time=time(20, 0)),
    Facility(facility_id="GREAT-HALL", name="Great Hall", capacity=300, requires_approval=True),
    Facility(facility_id="POOL", name="Swimming Pool", capacity=30, is_available=False),
]


class BookingContainer:
    """Repositories, services and the scheduler of one app instance"""

    def __init__(
        self,
        settings: Settings,
        clock: Callable[[], datetime] = datetime.now,
        facilities: Iterable[Facility] = (),
    ):
        self.settings = settings

        # Initialize repositories
        self.bookings = InMemoryBookingRepository()
        self.waitlist = InMemoryWaitlistRepository()
        self.approvals = InMemoryApprovalRepository()
        self.facilities = InMemoryFacilityRepository(facilities)
        self.maintenance = InMemoryMaintenanceRepository()
        self.uow = InMemoryUnitOfWork()
        self.locks = SlotLocks()
        self.notifier = LoggingNotifier()

        self.waitlist_service = WaitlistService(
            self.waitlist, self.bookings, self.facilities, self.uow, self.locks, clock=clock,
        )
        self.booking_service = BookingService(
            self.bookings, self.facilities, self.maintenance, self.approvals,
            self.waitlist_service, self.notifier, self.uow, self.locks,
            clock=clock,
            reminder_lead=timedelta(minutes=settings.reminder_lead_minutes),
        )
        self.approval_service = ApprovalService(
            self.approvals, self.bookings, self.notifier, self.uow, self.locks,
        )
        self.scheduler = BookingExpiryScheduler(
            self.booking_service,
            self.waitlist_service,
            expiry_interval=settings.expiry_interval_seconds,
            reminder_interval=settings.reminder_interval_seconds,
            waitlist_sweep_interval=settings.waitlist_sweep_interval_seconds,
        )


_settings = get_settings()
container = BookingContainer(
    _settings, facilities=DEMO_FACILITIES if _settings.seed_demo_data else (),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle"""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    if settings.scheduler_enabled:
        container.scheduler.start()
    logger.info("Facility Booking API started")
    yield
    await container.scheduler.stop()
    logger.info("Facility Booking API shutting down")


app = FastAPI(
    title="Facility Booking API",
    description="Booking core for campus facilities: availability, bookings, waitlist and approvals",
    version="1.0.0",
    lifespan=lifespan,
)
register_error_handlers(app)

# Dependency injection
def get_container() -> BookingContainer:
    return container

def get_booking_service(c: BookingContainer = Depends(get_container)) -> BookingService:
    return c.booking_service

def get_waitlist_service(c: BookingContainer = Depends(get_container)) -> WaitlistService:
    return c.waitlist_service

def get_approval_service(c: BookingContainer = Depends(get_container)) -> ApprovalService:
    return c.approval_service

require_admin = require_roles(UserRole.ADMIN)
require_staff_desk = require_roles(UserRole.ADMIN, UserRole.SECURITY)

# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

@app.get("/api/enums/booking-status", tags=["Enum Reference"])
async def get_booking_statuses():
    """Get all BookingStatus enum values"""
    return {
        "values": [f"{item.name}" for item in BookingStatus],
        "description": "Booking status values: PENDING, CONFIRMED, ACTIVE, COMPLETED, CANCELLED, REJECTED, NO_SHOW, EXPIRED"
    }

@app.get("/api/enums/waitlist-status", tags=["Enum Reference"])
async def get_waitlist_statuses():
    """Get all WaitlistStatus enum values"""
    return {
        "values": [f"{item.name}" for item in WaitlistStatus],
        "description": "Waitlist status values: WAITING, PROMOTED, EXPIRED"
    }

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = get_user(fake_users_db, form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token_expires = timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        data={"sub": user.username, "role": user.role.value}, expires_delta=access_token_expires
    )
    logger.info("Access token issued", extra={"user_id": str(user.user_id)})
    return {"access_token": access_token, "token_type": "bearer"}

@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return current_user

# ============================================================================
# BOOKING ENDPOINTS
# ============================================================================

@app.post("/bookings", response_model=BookingResponse, status_code=201, tags=["Bookings"])
async def create_booking(
    request: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor)
):
    """Create new booking"""
    booking = await service.create_booking(
        actor=actor,
        facility_id=request.facility_id,
        booking_date=request.booking_date,
        start_time=request.start_time,
        end_time=request.end_time,
        purpose=request.purpose,
        attendees=request.attendees,
        notes=request.notes,
        is_recurring=request.is_recurring,
        recurrence_rule=request.recurrence_rule,
    )
    return _booking_to_response(booking)

@app.get("/bookings", response_model=List[BookingResponse], tags=["Bookings"])
async def get_all_bookings(
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(require_admin)
):
    """Get all bookings"""
    bookings = await service.list_all()
    return [_booking_to_response(b) for b in bookings]

@app.get("/bookings/my", response_model=List[BookingResponse], tags=["Bookings"])
async def get_my_bookings(
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor)
):
    """Get the caller's bookings, newest first"""
    bookings = await service.list_for_user(actor.user_id)
    return [_booking_to_response(b) for b in bookings]

@app.get("/bookings/today", response_model=List[BookingResponse], tags=["Bookings"])
async def get_todays_bookings(
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(require_staff_desk)
):
    """Get today's confirmed and active bookings"""
    bookings = await service.list_today()
    return [_booking_to_response(b) for b in bookings]

@app.get("/bookings/availability", response_model=AvailabilityResponse, tags=["Bookings"])
async def check_availability(
    facility_id: str = Query(..., alias="facilityId"),
    on_date: date = Query(..., alias="date"),
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor)
):
    """Get the 30-minute slot grid of a facility for one day"""
    availability = await service.check_availability(facility_id, on_date)
    return AvailabilityResponse(
        facility_id=availability.facility_id,
        facility_name=availability.facility_name,
        availability_date=availability.availability_date,
        slots=[
            SlotResponse(start_time=s.start_time, end_time=s.end_time, available=s.available)
            for s in availability.slots
        ],
    )

@app.get("/bookings/status/{status}", response_model=List[BookingResponse], tags=["Bookings"])
async def get_bookings_by_status(
    status: BookingStatus,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(require_admin)
):
    """Get bookings in one status"""
    bookings = await service.list_by_status(status)
    return [_booking_to_response(b) for b in bookings]

@app.get("/bookings/facility/{facility_id}", response_model=List[BookingResponse], tags=["Bookings"])
async def get_facility_bookings(
    facility_id: str,
    on_date: Optional[date] = Query(None, alias="date"),
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor)
):
    """Get bookings for a facility, optionally on one date"""
    bookings = await service.list_by_facility(facility_id, on_date)
    return [_booking_to_response(b) for b in bookings]

@app.get("/bookings/{booking_id}", response_model=BookingResponse, tags=["Bookings"])
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor)
):
    """Get booking by ID"""
    booking = await service.get_booking(booking_id)
    if not (actor.can_act_for(booking.user_id) or actor.is_staff):
        raise UnauthorizedError("You are not authorised to view this booking.")
    return _booking_to_response(booking)

@app.put("/bookings/{booking_id}", response_model=BookingResponse, tags=["Bookings"])
async def update_booking(
    booking_id: UUID,
    request: UpdateBookingRequest,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor)
):
    """Move or edit a booking; the new window is validated again"""
    booking = await service.update_booking(
        booking_id=booking_id,
        actor=actor,
        booking_date=request.booking_date,
        start_time=request.start_time,
        end_time=request.end_time,
        purpose=request.purpose,
        attendees=request.attendees,
        notes=request.notes,
        is_recurring=request.is_recurring,
        recurrence_rule=request.recurrence_rule,
    )
    return _booking_to_response(booking)

@app.patch("/bookings/{booking_id}/cancel", response_model=BookingResponse, tags=["Bookings"])
async def cancel_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor)
):
    """Cancel booking; the head of the slot's waitlist is promoted"""
    booking = await service.cancel_booking(booking_id, actor)
    return _booking_to_response(booking)

@app.patch("/bookings/{booking_id}/check-in", response_model=BookingResponse, tags=["Bookings"])
async def check_in_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(require_staff_desk)
):
    """Record arrival"""
    booking = await service.check_in(booking_id)
    return _booking_to_response(booking)

@app.patch("/bookings/{booking_id}/check-out", response_model=BookingResponse, tags=["Bookings"])
async def check_out_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(require_staff_desk)
):
    """Record departure"""
    booking = await service.check_out(booking_id)
    return _booking_to_response(booking)

@app.patch("/bookings/{booking_id}/extend", response_model=BookingResponse, tags=["Bookings"])
async def extend_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(get_current_actor)
):
    """Extend booking by one 30-minute slot"""
    booking = await service.extend_booking(booking_id, actor)
    return _booking_to_response(booking)

@app.delete("/bookings/{booking_id}", status_code=204, tags=["Bookings"])
async def delete_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    actor: Actor = Depends(require_admin)
):
    """Delete a booking and its approval history"""
    await service.purge_booking(booking_id, actor)

# ============================================================================
# WAITLIST ENDPOINTS
# ============================================================================

@app.post("/waitlist", response_model=WaitlistResponse, status_code=201, tags=["Waitlist"])
async def join_waitlist(
    request: JoinWaitlistRequest,
    service: WaitlistService = Depends(get_waitlist_service),
    actor: Actor = Depends(get_current_actor)
):
    """Join the waitlist of a taken slot"""
    entry = await service.join(
        actor=actor,
        facility_id=request.facility_id,
        waitlist_date=request.waitlist_date,
        start_time=request.start_time,
        end_time=request.end_time,
        purpose=request.purpose,
    )
    return _waitlist_to_response(entry)

@app.get("/waitlist", response_model=List[WaitlistResponse], tags=["Waitlist"])
async def get_all_waitlist_entries(
    service: WaitlistService = Depends(get_waitlist_service),
    actor: Actor = Depends(require_admin)
):
    """Get all waitlist entries"""
    entries = await service.list_all()
    return [_waitlist_to_response(e) for e in entries]

@app.get("/waitlist/my", response_model=List[WaitlistResponse], tags=["Waitlist"])
async def get_my_waitlist_entries(
    service: WaitlistService = Depends(get_waitlist_service),
    actor: Actor = Depends(get_current_actor)
):
    """Get the caller's waiting entries"""
    entries = await service.list_for_user(actor.user_id)
    return [_waitlist_to_response(e) for e in entries]

@app.get("/waitlist/facility/{facility_id}", response_model=List[WaitlistResponse], tags=["Waitlist"])
async def get_facility_waitlist(
    facility_id: str,
    service: WaitlistService = Depends(get_waitlist_service),
    actor: Actor = Depends(require_admin)
):
    """Get the waiting entries of a facility"""
    entries = await service.list_for_facility(facility_id)
    return [_waitlist_to_response(e) for e in entries]

@app.delete("/waitlist/{waitlist_id}", status_code=204, tags=["Waitlist"])
async def leave_waitlist(
    waitlist_id: UUID,
    service: WaitlistService = Depends(get_waitlist_service),
    actor: Actor = Depends(get_current_actor)
):
    """Leave the waitlist"""
    await service.leave(waitlist_id, actor)

# ============================================================================
# APPROVAL ENDPOINTS
# ============================================================================

@app.get("/approvals", response_model=List[ApprovalResponse], tags=["Approvals"])
async def get_all_approvals(
    service: ApprovalService = Depends(get_approval_service),
    actor: Actor = Depends(require_admin)
):
    """Get every approval decision"""
    approvals = await service.list_all()
    return [_approval_to_response(a) for a in approvals]

@app.get("/approvals/pending", response_model=List[BookingResponse], tags=["Approvals"])
async def get_pending_bookings(
    service: ApprovalService = Depends(get_approval_service),
    actor: Actor = Depends(require_admin)
):
    """Get bookings waiting for a decision"""
    bookings = await service.list_pending()
    return [_booking_to_response(b) for b in bookings]

@app.get("/approvals/booking/{booking_id}", response_model=List[ApprovalResponse], tags=["Approvals"])
async def get_booking_approval_history(
    booking_id: UUID,
    service: ApprovalService = Depends(get_approval_service),
    actor: Actor = Depends(require_admin)
):
    """Get the decisions recorded for a booking"""
    approvals = await service.history(booking_id)
    return [_approval_to_response(a) for a in approvals]

@app.post("/approvals/{booking_id}/approve", response_model=ApprovalResponse, tags=["Approvals"])
async def approve_booking(
    booking_id: UUID,
    request: Optional[ApprovalDecisionRequest] = None,
    service: ApprovalService = Depends(get_approval_service),
    actor: Actor = Depends(require_admin)
):
    """Approve a pending booking"""
    remarks = request.remarks if request else None
    approval = await service.approve(booking_id, actor, remarks)
    return _approval_to_response(approval)

@app.post("/approvals/{booking_id}/reject", response_model=ApprovalResponse, tags=["Approvals"])
async def reject_booking(
    booking_id: UUID,
    request: Optional[ApprovalDecisionRequest] = None,
    service: ApprovalService = Depends(get_approval_service),
    actor: Actor = Depends(require_admin)
):
    """Reject a pending booking"""
    remarks = request.remarks if request else None
    approval = await service.reject(booking_id, actor, remarks)
    return _approval_to_response(approval)

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _booking_to_response(booking) -> BookingResponse:
    """Convert Booking entity to BookingResponse"""
    return BookingResponse(
        booking_id=booking.booking_id,
        facility_id=booking.facility_id,
        user_id=booking.user_id,
        booking_date=booking.booking_date,
        start_time=booking.start_time,
        end_time=booking.end_time,
        status=booking.status,
        purpose=booking.purpose,
        attendees=booking.attendees,
        is_recurring=booking.is_recurring,
        recurrence_rule=booking.recurrence_rule,
        notes=booking.notes,
        check_in_time=booking.check_in_time,
        check_out_time=booking.check_out_time,
        extension_count=booking.extension_count,
        max_extensions=booking.max_extensions,
        original_end_time=booking.original_end_time,
        expired_at=booking.expired_at,
        reminder_sent=booking.reminder_sent,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
        version=booking.version
    )

def _waitlist_to_response(entry) -> WaitlistResponse:
    """Convert WaitlistEntry entity to WaitlistResponse"""
    return WaitlistResponse(
        waitlist_id=entry.waitlist_id,
        facility_id=entry.facility_id,
        user_id=entry.user_id,
        waitlist_date=entry.waitlist_date,
        start_time=entry.start_time,
        end_time=entry.end_time,
        purpose=entry.purpose,
        position=entry.position,
        status=entry.status,
        joined_at=entry.joined_at
    )

def _approval_to_response(approval) -> ApprovalResponse:
    """Convert BookingApproval record to ApprovalResponse"""
    return ApprovalResponse(
        approval_id=approval.approval_id,
        booking_id=approval.booking_id,
        reviewed_by=approval.reviewed_by,
        decision=approval.decision,
        remarks=approval.remarks,
        reviewed_at=approval.reviewed_at
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
