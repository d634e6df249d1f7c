"""Application Services - Business use cases"""
import logging
from uuid import UUID
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterable, List, Optional, Tuple

from domain.repositories import (
    BookingRepository, WaitlistRepository, ApprovalRepository,
    FacilityRepository, MaintenanceRepository, UnitOfWork, SlotLockProvider, Notifier,
)
from domain.entities import Booking, WaitlistEntry, BookingApproval, Facility
from domain.enums import (
    BookingStatus, ApprovalDecision, NotificationType, UserRole, OCCUPYING_STATUSES,
)
from domain.errors import (
    InvalidWindowError, AlreadyWaitlistedError, UnauthorizedError, ResourceNotFoundError,
)
from domain.availability import SlotGrid
from domain.validation import (
    validate_booking_window, ensure_within_hours, ensure_no_conflict, find_conflicts,
)
from domain.value_objects import Actor, TimeWindow, NotificationRequest, FacilityAvailability

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _fmt(value: time) -> str:
    return value.strftime("%H:%M")


async def dispatch_notifications(notifier: Notifier, requests: Iterable[NotificationRequest]) -> None:
    """Send after commit; a failed delivery never undoes the state change"""
    for request in requests:
        try:
            await notifier.send(request)
        except Exception:
            logger.warning(
                "Notification delivery failed",
                exc_info=True,
                extra={
                    "user_id": str(request.user_id),
                    "notification_type": request.notification_type.value,
                },
            )


async def _get_facility(facilities: FacilityRepository, facility_id: str) -> Facility:
    facility = await facilities.find_by_id(facility_id)
    if facility is None:
        raise ResourceNotFoundError("Facility", facility_id)
    return facility


async def _get_booking(bookings: BookingRepository, booking_id: UUID) -> Booking:
    booking = await bookings.find_by_id(booking_id)
    if booking is None:
        raise ResourceNotFoundError("Booking", booking_id)
    return booking


class WaitlistService:
    """Service for Waitlist business use cases"""

    def __init__(
        self,
        repository: WaitlistRepository,
        bookings: BookingRepository,
        facilities: FacilityRepository,
        uow: UnitOfWork,
        locks: SlotLockProvider,
        clock: Clock = datetime.now,
    ):
        self.repository = repository
        self.bookings = bookings
        self.facilities = facilities
        self.uow = uow
        self.locks = locks
        self.clock = clock

    async def join(
        self,
        actor: Actor,
        facility_id: str,
        waitlist_date: date,
        start_time: time,
        end_time: time,
        purpose: Optional[str] = None,
    ) -> WaitlistEntry:
        """Queue the actor for a slot at the back of its partition"""
        await _get_facility(self.facilities, facility_id)
        if not start_time < end_time:
            raise InvalidWindowError("End time must be after start time.")
        window = TimeWindow(booking_date=waitlist_date, start_time=start_time, end_time=end_time)

        async with self.locks.hold((facility_id, waitlist_date)):
            async with self.uow.transaction():
                if await self.repository.exists_waiting(facility_id, actor.user_id, waitlist_date, start_time):
                    raise AlreadyWaitlistedError("You are already on the waitlist for this slot.")
                queue = await self.repository.find_queue(facility_id, waitlist_date, start_time)
                entry = WaitlistEntry.join(
                    facility_id=facility_id,
                    user_id=actor.user_id,
                    window=window,
                    position=len(queue) + 1,
                    purpose=purpose,
                )
                await self.repository.save(entry)

        logger.info(
            f"User joined waitlist at position {entry.position}",
            extra={"waitlist_id": str(entry.waitlist_id), "facility_id": facility_id,
                   "user_id": str(actor.user_id)},
        )
        return entry

    async def leave(self, waitlist_id: UUID, actor: Actor) -> None:
        """Remove an entry; WAITING entries behind it move up one place"""
        entry = await self.get_entry(waitlist_id)
        if not actor.can_act_for(entry.user_id):
            raise UnauthorizedError("You are not authorised to remove this waitlist entry.")

        async with self.locks.hold((entry.facility_id, entry.waitlist_date)):
            async with self.uow.transaction():
                entry = await self.get_entry(waitlist_id)
                await self.repository.delete(entry.waitlist_id)
                if entry.is_waiting:
                    for other in await self.repository.find_queue(*entry.partition_key):
                        if other.position > entry.position:
                            other.move_up()
                            await self.repository.update(other)

        logger.info("User left waitlist", extra={"waitlist_id": str(waitlist_id)})

    async def promote_head(
        self, facility_id: str, on_date: date, start_time: time
    ) -> Optional[Tuple[WaitlistEntry, Booking]]:
        """Turn the head of a slot's queue into a confirmed booking.

        Runs inside the caller's slot lock and transaction (a cancellation).
        When the head's window still collides with an occupying booking the
        queue is left as it is.
        """
        async with self.uow.transaction():
            queue = await self.repository.find_queue(facility_id, on_date, start_time)
            if not queue:
                return None

            head = queue[0]
            window = TimeWindow(booking_date=on_date, start_time=head.start_time, end_time=head.end_time)
            occupying = await self.bookings.find_occupying(facility_id, on_date)
            if find_conflicts(window, occupying):
                logger.info(
                    "Waitlist head not promoted, slot still taken",
                    extra={"waitlist_id": str(head.waitlist_id), "facility_id": facility_id},
                )
                return None

            head.promote()
            await self.repository.update(head)
            booking = Booking.from_waitlist(head)
            await self.bookings.save(booking)

            for entry in queue[1:]:
                entry.move_up()
                await self.repository.update(entry)

        logger.info(
            "Waitlist entry promoted to booking",
            extra={"waitlist_id": str(head.waitlist_id), "booking_id": str(booking.booking_id),
                   "facility_id": facility_id},
        )
        return head, booking

    async def expire_stale_entries(self, now: Optional[datetime] = None) -> int:
        """Expire WAITING entries whose slot has already started"""
        now = now or self.clock()
        stale = {
            entry.partition_key
            for entry in await self.repository.find_all_waiting()
            if datetime.combine(entry.waitlist_date, entry.start_time) < now
        }

        expired = 0
        for facility_id, on_date, start_time in sorted(stale):
            async with self.locks.hold((facility_id, on_date)):
                async with self.uow.transaction():
                    for entry in await self.repository.find_queue(facility_id, on_date, start_time):
                        entry.expire()
                        await self.repository.update(entry)
                        expired += 1

        if expired:
            logger.info(f"Expired {expired} stale waitlist entries")
        return expired

    async def get_entry(self, waitlist_id: UUID) -> WaitlistEntry:
        entry = await self.repository.find_by_id(waitlist_id)
        if entry is None:
            raise ResourceNotFoundError("Waitlist entry", waitlist_id)
        return entry

    async def list_all(self) -> List[WaitlistEntry]:
        return await self.repository.find_all()

    async def list_for_user(self, user_id: UUID) -> List[WaitlistEntry]:
        return await self.repository.find_waiting_by_user(user_id)

    async def list_for_facility(self, facility_id: str) -> List[WaitlistEntry]:
        await _get_facility(self.facilities, facility_id)
        return await self.repository.find_waiting_by_facility(facility_id)


class BookingService:
    """Service for Booking business use cases"""

    def __init__(
        self,
        repository: BookingRepository,
        facilities: FacilityRepository,
        maintenance: MaintenanceRepository,
        approvals: ApprovalRepository,
        waitlist_service: WaitlistService,
        notifier: Notifier,
        uow: UnitOfWork,
        locks: SlotLockProvider,
        clock: Clock = datetime.now,
        reminder_lead: timedelta = timedelta(minutes=5),
    ):
        self.repository = repository
        self.facilities = facilities
        self.maintenance = maintenance
        self.approvals = approvals
        self.waitlist_service = waitlist_service
        self.notifier = notifier
        self.uow = uow
        self.locks = locks
        self.clock = clock
        self.reminder_lead = reminder_lead

    @staticmethod
    def requires_approval(facility: Facility, actor: Actor) -> bool:
        """Approval gate for new bookings"""
        return facility.requires_approval or actor.role == UserRole.VISITOR

    @staticmethod
    def _ensure_can_act(actor: Actor, booking: Booking) -> None:
        if not actor.can_act_for(booking.user_id):
            raise UnauthorizedError("You are not authorised to modify this booking.")

    async def _notify(self, *requests: NotificationRequest) -> None:
        await dispatch_notifications(self.notifier, requests)

    # ==================== CREATION ====================
    async def create_booking(
        self,
        actor: Actor,
        facility_id: str,
        booking_date: date,
        start_time: time,
        end_time: time,
        purpose: str,
        attendees: int,
        notes: Optional[str] = None,
        is_recurring: bool = False,
        recurrence_rule: Optional[str] = None,
    ) -> Booking:
        """Create new booking with full validation"""
        facility = await _get_facility(self.facilities, facility_id)
        window = TimeWindow(booking_date=booking_date, start_time=start_time, end_time=end_time)

        async with self.locks.hold((facility_id, booking_date)):
            async with self.uow.transaction():
                under_maintenance = await self.maintenance.is_blocked(facility_id, booking_date)
                existing = await self.repository.find_occupying(facility_id, booking_date)
                validate_booking_window(facility, window, attendees, under_maintenance, existing)

                booking = Booking.create(
                    facility_id=facility_id,
                    user_id=actor.user_id,
                    window=window,
                    purpose=purpose,
                    attendees=attendees,
                    requires_approval=self.requires_approval(facility, actor),
                    notes=notes,
                    is_recurring=is_recurring,
                    recurrence_rule=recurrence_rule,
                )
                await self.repository.save(booking)

        logger.info(
            f"Booking created with status {booking.status.value}",
            extra={"booking_id": str(booking.booking_id), "facility_id": facility_id,
                   "user_id": str(actor.user_id)},
        )

        slot = f"{facility.name} on {booking_date} from {_fmt(start_time)} to {_fmt(end_time)}"
        if booking.status == BookingStatus.PENDING:
            await self._notify(NotificationRequest(
                user_id=booking.user_id,
                booking_id=booking.booking_id,
                title="Booking Submitted",
                message=f"Your booking for {slot} is awaiting approval.",
                notification_type=NotificationType.BOOKING_PENDING,
            ))
        else:
            await self._notify(NotificationRequest(
                user_id=booking.user_id,
                booking_id=booking.booking_id,
                title="Booking Confirmed",
                message=f"Your booking for {slot} has been confirmed.",
                notification_type=NotificationType.BOOKING_CONFIRMED,
            ))
        return booking

    # ==================== QUERIES ====================
    async def get_booking(self, booking_id: UUID) -> Booking:
        """Get booking by ID"""
        return await _get_booking(self.repository, booking_id)

    async def list_all(self) -> List[Booking]:
        """Get all bookings"""
        return await self.repository.find_all()

    async def list_for_user(self, user_id: UUID) -> List[Booking]:
        """Get all bookings for a user"""
        return await self.repository.find_by_user_id(user_id)

    async def list_by_facility(self, facility_id: str, on_date: Optional[date] = None) -> List[Booking]:
        await _get_facility(self.facilities, facility_id)
        return await self.repository.find_by_facility(facility_id, on_date)

    async def list_by_status(self, status: BookingStatus) -> List[Booking]:
        return await self.repository.find_by_statuses([status])

    async def list_today(self) -> List[Booking]:
        """Occupying bookings for the current date, earliest first"""
        today = self.clock().date()
        bookings = [
            b for b in await self.repository.find_by_statuses(OCCUPYING_STATUSES)
            if b.booking_date == today
        ]
        return sorted(bookings, key=lambda b: (b.start_time, b.facility_id))

    async def check_availability(self, facility_id: str, on_date: date) -> FacilityAvailability:
        """Slot grid of a facility on a date"""
        facility = await _get_facility(self.facilities, facility_id)
        occupying = await self.repository.find_occupying(facility_id, on_date)
        grid = SlotGrid(facility.opening_time, facility.closing_time, occupying)
        return FacilityAvailability(
            facility_id=facility.facility_id,
            facility_name=facility.name,
            availability_date=on_date,
            slots=list(grid),
        )

    # ==================== MODIFICATION ====================
    async def update_booking(
        self,
        booking_id: UUID,
        actor: Actor,
        booking_date: date,
        start_time: time,
        end_time: time,
        purpose: str,
        attendees: int,
        notes: Optional[str] = None,
        is_recurring: bool = False,
        recurrence_rule: Optional[str] = None,
    ) -> Booking:
        """Re-validate and replace the window and details of a live booking"""
        current = await _get_booking(self.repository, booking_id)
        self._ensure_can_act(actor, current)
        facility = await _get_facility(self.facilities, current.facility_id)
        window = TimeWindow(booking_date=booking_date, start_time=start_time, end_time=end_time)

        async with self.locks.hold(current.slot_key, (current.facility_id, booking_date)):
            async with self.uow.transaction():
                booking = await _get_booking(self.repository, booking_id)
                booking.ensure_editable()
                under_maintenance = await self.maintenance.is_blocked(booking.facility_id, booking_date)
                existing = await self.repository.find_occupying(booking.facility_id, booking_date)
                validate_booking_window(
                    facility, window, attendees, under_maintenance, existing,
                    exclude_id=booking.booking_id,
                )
                booking.reschedule(
                    window=window,
                    purpose=purpose,
                    attendees=attendees,
                    notes=notes,
                    is_recurring=is_recurring,
                    recurrence_rule=recurrence_rule,
                )
                await self.repository.update(booking)

        logger.info("Booking updated", extra={"booking_id": str(booking_id)})
        return booking

    async def cancel_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        """Cancel a booking and hand its slot to the head of the waitlist"""
        current = await _get_booking(self.repository, booking_id)
        self._ensure_can_act(actor, current)

        async with self.locks.hold(current.slot_key):
            async with self.uow.transaction():
                booking = await _get_booking(self.repository, booking_id)
                booking.cancel()
                await self.repository.update(booking)
                promoted = await self.waitlist_service.promote_head(
                    booking.facility_id, booking.booking_date, booking.start_time
                )

        logger.info("Booking cancelled", extra={"booking_id": str(booking_id)})

        notifications = [NotificationRequest(
            user_id=booking.user_id,
            booking_id=booking.booking_id,
            title="Booking Cancelled",
            message=(
                f"Your booking on {booking.booking_date} from {_fmt(booking.start_time)} "
                f"to {_fmt(booking.end_time)} has been cancelled."
            ),
            notification_type=NotificationType.BOOKING_CANCELLED,
        )]
        if promoted is not None:
            entry, new_booking = promoted
            notifications.append(NotificationRequest(
                user_id=entry.user_id,
                booking_id=new_booking.booking_id,
                title="Waitlist Promotion!",
                message=(
                    f"A slot opened up on {new_booking.booking_date} from "
                    f"{_fmt(new_booking.start_time)} to {_fmt(new_booking.end_time)}. "
                    "Your booking is confirmed."
                ),
                notification_type=NotificationType.WAITLIST_PROMOTED,
            ))
        await self._notify(*notifications)
        return booking

    async def check_in(self, booking_id: UUID) -> Booking:
        """Record arrival at the facility"""
        current = await _get_booking(self.repository, booking_id)
        async with self.locks.hold(current.slot_key):
            async with self.uow.transaction():
                booking = await _get_booking(self.repository, booking_id)
                booking.check_in(self.clock())
                await self.repository.update(booking)
        logger.info("Booking checked in", extra={"booking_id": str(booking_id)})
        return booking

    async def check_out(self, booking_id: UUID) -> Booking:
        """Record departure; the booking is completed"""
        current = await _get_booking(self.repository, booking_id)
        async with self.locks.hold(current.slot_key):
            async with self.uow.transaction():
                booking = await _get_booking(self.repository, booking_id)
                booking.check_out(self.clock())
                await self.repository.update(booking)
        logger.info("Booking checked out", extra={"booking_id": str(booking_id)})
        return booking

    async def extend_booking(self, booking_id: UUID, actor: Actor) -> Booking:
        """Add one 30-minute slot when the facility is open and the slot is free"""
        current = await _get_booking(self.repository, booking_id)
        self._ensure_can_act(actor, current)
        facility = await _get_facility(self.facilities, current.facility_id)

        async with self.locks.hold(current.slot_key):
            async with self.uow.transaction():
                booking = await _get_booking(self.repository, booking_id)
                new_end = booking.extended_end_time()
                extension = TimeWindow(
                    booking_date=booking.booking_date,
                    start_time=booking.end_time,
                    end_time=new_end,
                )
                ensure_within_hours(facility, extension)
                occupying = await self.repository.find_occupying(booking.facility_id, booking.booking_date)
                ensure_no_conflict(extension, occupying, exclude_id=booking.booking_id)
                booking.extend(self.clock())
                await self.repository.update(booking)

        logger.info(
            f"Booking extended ({booking.extension_count}/{booking.max_extensions})",
            extra={"booking_id": str(booking_id)},
        )
        remaining = booking.max_extensions - booking.extension_count
        await self._notify(NotificationRequest(
            user_id=booking.user_id,
            booking_id=booking.booking_id,
            title="Booking Extended",
            message=(
                f"Your booking now ends at {_fmt(booking.end_time)}. "
                f"Extensions remaining: {remaining}."
            ),
            notification_type=NotificationType.BOOKING_EXTENDED,
        ))
        return booking

    async def purge_booking(self, booking_id: UUID, actor: Actor) -> None:
        """Hard-delete a booking together with its approval history"""
        if not actor.is_admin:
            raise UnauthorizedError("Only administrators can delete bookings.")
        await _get_booking(self.repository, booking_id)
        async with self.uow.transaction():
            await self.approvals.delete_by_booking_id(booking_id)
            await self.repository.delete(booking_id)
        logger.info("Booking purged", extra={"booking_id": str(booking_id)})

    # ==================== SCHEDULED ====================
    async def auto_expire_bookings(self, now: Optional[datetime] = None) -> int:
        """Expire every occupying booking whose end has passed"""
        now = now or self.clock()
        candidates = [
            b for b in await self.repository.find_by_statuses(OCCUPYING_STATUSES)
            if b.is_expirable(now)
        ]

        expired = 0
        for candidate in candidates:
            async with self.locks.hold(candidate.slot_key):
                async with self.uow.transaction():
                    booking = await self.repository.find_by_id(candidate.booking_id)
                    if booking is None or not booking.expire(now):
                        continue
                    await self.repository.update(booking)

            expired += 1
            logger.info("Booking auto-expired", extra={"booking_id": str(booking.booking_id)})
            await self._notify(NotificationRequest(
                user_id=booking.user_id,
                booking_id=booking.booking_id,
                title="Booking Expired",
                message=(
                    f"Your booking on {booking.booking_date} from {_fmt(booking.start_time)} "
                    f"to {_fmt(booking.end_time)} has ended and was marked as expired."
                ),
                notification_type=NotificationType.BOOKING_EXPIRED,
            ))
        return expired

    async def send_expiry_reminders(self, now: Optional[datetime] = None) -> int:
        """Remind owners of bookings that end within the reminder lead time"""
        now = now or self.clock()
        candidates = [
            b for b in await self.repository.find_by_statuses(OCCUPYING_STATUSES)
            if b.needs_reminder(now, self.reminder_lead)
        ]

        reminded = 0
        for candidate in candidates:
            async with self.locks.hold(candidate.slot_key):
                async with self.uow.transaction():
                    booking = await self.repository.find_by_id(candidate.booking_id)
                    if booking is None or not booking.needs_reminder(now, self.reminder_lead):
                        continue
                    booking.mark_reminded(now)
                    await self.repository.update(booking)

            reminded += 1
            minutes_left = max(1, int((booking.end_datetime - now).total_seconds() // 60))
            await self._notify(NotificationRequest(
                user_id=booking.user_id,
                booking_id=booking.booking_id,
                title="Booking Expiring Soon",
                message=(
                    f"Your booking ends at {_fmt(booking.end_time)} "
                    f"(about {minutes_left} min left). Extend it if you need more time."
                ),
                notification_type=NotificationType.BOOKING_REMINDER,
            ))
        return reminded


class ApprovalService:
    """Service for admin review of pending bookings"""

    def __init__(
        self,
        repository: ApprovalRepository,
        bookings: BookingRepository,
        notifier: Notifier,
        uow: UnitOfWork,
        locks: SlotLockProvider,
    ):
        self.repository = repository
        self.bookings = bookings
        self.notifier = notifier
        self.uow = uow
        self.locks = locks

    async def approve(self, booking_id: UUID, actor: Actor, remarks: Optional[str] = None) -> BookingApproval:
        """Confirm a pending booking if its slot is still free"""
        current = await _get_booking(self.bookings, booking_id)
        async with self.locks.hold(current.slot_key):
            async with self.uow.transaction():
                booking = await _get_booking(self.bookings, booking_id)
                booking.approve()
                occupying = await self.bookings.find_occupying(booking.facility_id, booking.booking_date)
                ensure_no_conflict(booking.window, occupying, exclude_id=booking.booking_id)
                await self.bookings.update(booking)
                approval = BookingApproval(
                    booking_id=booking.booking_id,
                    reviewed_by=actor.user_id,
                    decision=ApprovalDecision.APPROVED,
                    remarks=remarks,
                )
                await self.repository.save(approval)

        logger.info("Booking approved", extra={"booking_id": str(booking_id), "user_id": str(actor.user_id)})
        message = f"Your booking on {booking.booking_date} has been approved."
        if remarks:
            message += f" Remarks: {remarks}"
        await dispatch_notifications(self.notifier, [NotificationRequest(
            user_id=booking.user_id,
            booking_id=booking.booking_id,
            title="Booking Approved!",
            message=message,
            notification_type=NotificationType.BOOKING_CONFIRMED,
        )])
        return approval

    async def reject(self, booking_id: UUID, actor: Actor, remarks: Optional[str] = None) -> BookingApproval:
        """Turn down a pending booking"""
        current = await _get_booking(self.bookings, booking_id)
        async with self.locks.hold(current.slot_key):
            async with self.uow.transaction():
                booking = await _get_booking(self.bookings, booking_id)
                booking.reject()
                await self.bookings.update(booking)
                approval = BookingApproval(
                    booking_id=booking.booking_id,
                    reviewed_by=actor.user_id,
                    decision=ApprovalDecision.REJECTED,
                    remarks=remarks,
                )
                await self.repository.save(approval)

        logger.info("Booking rejected", extra={"booking_id": str(booking_id), "user_id": str(actor.user_id)})
        message = f"Your booking on {booking.booking_date} has been rejected."
        if remarks:
            message += f" Reason: {remarks}"
        await dispatch_notifications(self.notifier, [NotificationRequest(
            user_id=booking.user_id,
            booking_id=booking.booking_id,
            title="Booking Rejected",
            message=message,
            notification_type=NotificationType.BOOKING_REJECTED,
        )])
        return approval

    async def list_all(self) -> List[BookingApproval]:
        return await self.repository.find_all()

    async def list_pending(self) -> List[Booking]:
        """Bookings waiting for a decision, oldest request first"""
        pending = await self.bookings.find_by_statuses([BookingStatus.PENDING])
        return sorted(pending, key=lambda b: b.created_at)

    async def history(self, booking_id: UUID) -> List[BookingApproval]:
        await _get_booking(self.bookings, booking_id)
        return await self.repository.find_by_booking_id(booking_id)
