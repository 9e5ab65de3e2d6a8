"""
flowfit/services/notification.py

Boundary of the local notification substrate.

NotificationSubstrate is the interface the reminder scheduler depends on.
LocalNotificationSubstrate keeps trigger registrations in-process and logs
each firing schedule; it backs local runs and the test-suite, while the mobile
shell supplies a substrate bound to the platform's notification centre.
"""

from typing import Protocol

import structlog

from flowfit.errors import NotificationUnavailableError
from flowfit.schemas import AuthorizationStatus, TriggerNotification

logger = structlog.get_logger(__name__)


class NotificationSubstrate(Protocol):
    async def get_authorization_status(self) -> AuthorizationStatus:
        ...

    async def request_permission(self) -> AuthorizationStatus:
        ...

    async def create_channel(self, channel_id: str, name: str) -> str:
        ...

    async def create_trigger_notification(
        self, notification: TriggerNotification
    ) -> str:
        """Register a trigger, replacing any existing trigger with the same id."""
        ...

    async def get_trigger_notification_ids(self) -> list[str]:
        ...


class LocalNotificationSubstrate:
    """In-process trigger registry keyed by notification id."""

    def __init__(
        self,
        status: AuthorizationStatus = AuthorizationStatus.NOT_DETERMINED,
        grant_on_request: bool = True,
        available: bool = True,
    ) -> None:
        self.status = status
        self.grant_on_request = grant_on_request
        self.available = available
        self.channels: dict[str, str] = {}
        self.triggers: dict[str, TriggerNotification] = {}

    async def get_authorization_status(self) -> AuthorizationStatus:
        return self.status

    async def request_permission(self) -> AuthorizationStatus:
        if self.status == AuthorizationStatus.NOT_DETERMINED:
            self.status = (
                AuthorizationStatus.AUTHORIZED
                if self.grant_on_request
                else AuthorizationStatus.DENIED
            )
        logger.info("notification_permission_requested", status=self.status.value)
        return self.status

    async def create_channel(self, channel_id: str, name: str) -> str:
        self.channels[channel_id] = name
        logger.info("notification_channel_created", channel_id=channel_id)
        return channel_id

    async def create_trigger_notification(
        self, notification: TriggerNotification
    ) -> str:
        if not self.available:
            raise NotificationUnavailableError("notification substrate unavailable")
        if notification.channel_id not in self.channels:
            raise NotificationUnavailableError(
                f"channel {notification.channel_id!r} has not been created"
            )

        replaced = notification.id in self.triggers
        self.triggers[notification.id] = notification
        logger.info(
            "trigger_notification_registered",
            notification_id=notification.id,
            fire_at_ms=notification.fire_at_ms,
            repeat=notification.repeat.value,
            replaced=replaced,
        )
        return notification.id

    async def get_trigger_notification_ids(self) -> list[str]:
        return list(self.triggers)
