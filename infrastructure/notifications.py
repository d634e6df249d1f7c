"""Notification adapter - records and logs outbound notifications"""
import logging
from typing import List
from uuid import UUID

from domain.repositories import Notifier
from domain.value_objects import NotificationRequest

logger = logging.getLogger(__name__)


class LoggingNotifier(Notifier):
    """Keeps every request in an outbox and logs it.

    Delivery (email, push, in-app inbox) belongs to the notification
    service; this adapter is what the booking core talks to.
    """

    def __init__(self):
        self.sent: List[NotificationRequest] = []

    async def send(self, request: NotificationRequest) -> None:
        self.sent.append(request)
        logger.info(
            f"Notification queued: {request.title}",
            extra={
                "user_id": str(request.user_id),
                "booking_id": str(request.booking_id) if request.booking_id else None,
                "notification_type": request.notification_type.value,
            },
        )

    def sent_to(self, user_id: UUID) -> List[NotificationRequest]:
        return [n for n in self.sent if n.user_id == user_id]
