"""Background jobs - booking expiry, reminders and waitlist sweep"""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from application.services import BookingService, WaitlistService

logger = logging.getLogger(__name__)


class BookingExpiryScheduler:
    """Runs the periodic ticks as asyncio tasks on the application loop.

    Each loop waits a fixed delay after its tick finishes. A tick that
    raises is logged and the loop keeps going; the next tick picks up
    whatever the failed one left behind.
    """

    def __init__(
        self,
        booking_service: BookingService,
        waitlist_service: WaitlistService,
        expiry_interval: float = 60,
        reminder_interval: float = 30,
        waitlist_sweep_interval: float = 300,
    ):
        self.booking_service = booking_service
        self.waitlist_service = waitlist_service
        self.expiry_interval = expiry_interval
        self.reminder_interval = reminder_interval
        self.waitlist_sweep_interval = waitlist_sweep_interval
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    async def expire_tick(self) -> int:
        return await self.booking_service.auto_expire_bookings()

    async def reminder_tick(self) -> int:
        return await self.booking_service.send_expiry_reminders()

    async def waitlist_sweep_tick(self) -> int:
        return await self.waitlist_service.expire_stale_entries()

    async def run_tick(self, name: str, tick: Callable[[], Awaitable[int]]) -> Optional[int]:
        """Run one tick; failures are logged, never raised"""
        try:
            count = await tick()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Scheduled job {name} failed", extra={"tick": name})
            return None
        if count:
            logger.info(f"Scheduled job {name} processed {count} item(s)", extra={"tick": name})
        return count

    async def _run_periodic(self, name: str, tick: Callable[[], Awaitable[int]], interval: float) -> None:
        while True:
            await self.run_tick(name, tick)
            await asyncio.sleep(interval)

    def start(self) -> None:
        if self.running:
            return
        self._tasks = [
            asyncio.create_task(self._run_periodic("auto_expire", self.expire_tick, self.expiry_interval)),
            asyncio.create_task(self._run_periodic("expiry_reminder", self.reminder_tick, self.reminder_interval)),
            asyncio.create_task(
                self._run_periodic("waitlist_sweep", self.waitlist_sweep_tick, self.waitlist_sweep_interval)
            ),
        ]
        logger.info("Booking scheduler started")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Booking scheduler stopped")
