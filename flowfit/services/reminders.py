"""
flowfit/services/reminders.py

Recurring daily reminders, one per ReminderKind.

Each kind has a stable notification id (see REMINDER_SPECS); registering a new
trigger for a kind supersedes the previous one, so at most one live trigger
exists per kind. Calls for the same kind are serialised so the persisted time
and the registered trigger always come from the same (last) call.
"""

import asyncio
from datetime import datetime, time, timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

import structlog

from config import settings
from flowfit.constants import REMINDER_SPECS
from flowfit.errors import (
    NotificationPermissionError,
    NotificationUnavailableError,
    PersistenceError,
    SchedulingError,
)
from flowfit.schemas import (
    AuthorizationStatus,
    ReminderConfig,
    ReminderKind,
    TriggerNotification,
)
from flowfit.services.notification import NotificationSubstrate
from flowfit.services.persistence import KeyValueStore

logger = structlog.get_logger(__name__)

_PERMISSION_MESSAGE = "Notification permission has not been granted."


def next_trigger_instant(time_of_day: time, now: datetime) -> datetime:
    """
    First occurrence of time_of_day strictly after now, in now's timezone.

    A time equal to now counts as elapsed and rolls to tomorrow. Adding a day
    to an aware datetime keeps the wall-clock time across DST changes.
    """
    candidate = datetime.combine(
        now.date(), time_of_day.replace(tzinfo=None), tzinfo=now.tzinfo
    )
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class ReminderScheduler:
    """Persists reminder times and keeps one daily trigger per kind."""

    def __init__(
        self,
        store: KeyValueStore,
        substrate: NotificationSubstrate,
        tz: Optional[tzinfo] = None,
        channel_id: Optional[str] = None,
    ) -> None:
        self._store = store
        self._substrate = substrate
        self._tz = tz or ZoneInfo(settings.reminder_timezone)
        self._channel_id = channel_id or settings.notification_channel_id
        self._locks = {kind: asyncio.Lock() for kind in ReminderKind}

    async def initialize(self) -> bool:
        """Request notification permission and register the default channel."""
        status = await self._substrate.request_permission()
        await self._substrate.create_channel(
            self._channel_id, settings.notification_channel_name
        )
        granted = status == AuthorizationStatus.AUTHORIZED
        if not granted:
            logger.warning("notification_permission_not_granted", status=status.value)
        return granted

    async def set_reminder_time(
        self,
        kind: ReminderKind,
        time_of_day: time,
        now: Optional[datetime] = None,
    ) -> datetime:
        """
        Persist time_of_day for kind and (re)register its daily trigger.

        Returns the instant of the first firing. Raises
        NotificationPermissionError when permission is missing (nothing is
        persisted) and SchedulingError when the substrate rejects the trigger.
        """
        store_key, notification_id, title, body = REMINDER_SPECS[kind]

        async with self._locks[kind]:
            status = await self._substrate.get_authorization_status()
            if status != AuthorizationStatus.AUTHORIZED:
                logger.warning(
                    "reminder_permission_missing", kind=kind.value, status=status.value
                )
                raise NotificationPermissionError(_PERMISSION_MESSAGE)

            await self._store.set(store_key, time_of_day.isoformat())

            now = (now or datetime.now(self._tz)).astimezone(self._tz)
            fire_at = next_trigger_instant(time_of_day, now)
            notification = TriggerNotification(
                id=notification_id,
                title=title,
                body=body,
                channel_id=self._channel_id,
                fire_at_ms=int(fire_at.timestamp() * 1000),
            )

            try:
                await self._substrate.create_trigger_notification(notification)
            except PermissionError as exc:
                logger.error("reminder_register_denied", kind=kind.value, error=str(exc))
                raise NotificationPermissionError(_PERMISSION_MESSAGE) from exc
            except NotificationUnavailableError as exc:
                logger.error("reminder_register_failed", kind=kind.value, error=str(exc))
                raise SchedulingError(f"could not schedule {kind.value} reminder") from exc

        logger.info(
            "reminder_scheduled",
            kind=kind.value,
            notification_id=notification_id,
            time_of_day=time_of_day.isoformat(),
            fire_at=fire_at.isoformat(),
        )
        return fire_at

    async def load_reminder_time(self, kind: ReminderKind) -> Optional[time]:
        """Return the persisted time for kind, or None when unset or unreadable."""
        store_key = REMINDER_SPECS[kind][0]
        try:
            stored = await self._store.get(store_key)
        except PersistenceError as exc:
            logger.warning("reminder_read_failed", kind=kind.value, error=str(exc))
            return None
        if stored is None:
            return None
        return self._parse_stored_time(kind, stored)

    async def load_reminders(self) -> list[ReminderConfig]:
        reminders = []
        for kind in ReminderKind:
            time_of_day = await self.load_reminder_time(kind)
            if time_of_day is not None:
                reminders.append(ReminderConfig(kind=kind, time_of_day=time_of_day))
        return reminders

    def _parse_stored_time(self, kind: ReminderKind, stored: str) -> Optional[time]:
        try:
            if "T" not in stored:
                return time.fromisoformat(stored)
            # Older builds stored the full picker instant as an ISO timestamp.
            instant = datetime.fromisoformat(stored.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("reminder_value_malformed", kind=kind.value, value=stored)
            return None
        if instant.tzinfo is not None:
            instant = instant.astimezone(self._tz)
        return instant.time().replace(tzinfo=None)
