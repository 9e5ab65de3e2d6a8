"""
flowfit/services/activity.py

Reads step samples from the platform health bridge and evaluates them
against the user's daily step goal.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Protocol, Sequence

import structlog

from config import settings
from flowfit.constants import GOAL_HISTORY_DAYS, STEP_GOAL_KEY
from flowfit.errors import PermissionDeniedError, PersistenceError
from flowfit.schemas import (
    DailyGoalSummary,
    DailyStepRecord,
    GoalStatus,
    RawActivitySample,
)
from flowfit.services.aggregation import aggregate_steps_per_day
from flowfit.services.persistence import KeyValueStore

logger = structlog.get_logger(__name__)

_HEALTH_PERMISSION_MESSAGE = (
    "Health permissions were not granted. Please enable them in Settings."
)


class ActivityDataSource(Protocol):
    """Boundary of the platform health bridge."""

    async def get_step_samples(
        self, start: datetime
    ) -> Sequence[RawActivitySample | dict[str, Any]]:
        ...


async def load_daily_steps(
    source: ActivityDataSource,
    now: Optional[datetime] = None,
    lookback_days: Optional[int] = None,
) -> list[DailyStepRecord]:
    """
    Fetch samples for the look-back window and aggregate them per UTC day.

    A permission failure from the bridge is re-raised as PermissionDeniedError
    so the caller can offer the "open settings" remediation.
    """
    now = now or datetime.now(timezone.utc)
    days = lookback_days if lookback_days is not None else settings.activity_lookback_days
    start = now - timedelta(days=days)

    try:
        raw = await source.get_step_samples(start)
    except PermissionError as exc:
        logger.warning("health_permission_denied", error=str(exc))
        raise PermissionDeniedError(_HEALTH_PERMISSION_MESSAGE) from exc

    samples = [
        item if isinstance(item, RawActivitySample) else RawActivitySample.model_validate(item)
        for item in raw
    ]
    records = aggregate_steps_per_day(samples)

    logger.info(
        "daily_steps_loaded",
        start=start.isoformat(),
        sample_count=len(samples),
        day_count=len(records),
    )
    return records


async def load_step_goal(store: KeyValueStore) -> int:
    """Return the persisted daily step goal, or the configured default."""
    try:
        stored = await store.get(STEP_GOAL_KEY)
    except PersistenceError as exc:
        logger.warning("step_goal_read_failed", error=str(exc))
        return settings.default_step_goal

    if stored is None:
        return settings.default_step_goal
    try:
        goal = int(stored)
    except ValueError:
        logger.warning("step_goal_malformed", value=stored)
        return settings.default_step_goal
    return goal if goal > 0 else settings.default_step_goal


def summarize_goal_progress(
    records: Sequence[DailyStepRecord],
    goal_steps: int,
    limit: int = GOAL_HISTORY_DAYS,
) -> list[DailyGoalSummary]:
    """Judge the most recent `limit` days against the goal, oldest first."""
    recent = list(records)[-limit:] if limit > 0 else []
    return [
        DailyGoalSummary(
            record=record,
            goal_steps=goal_steps,
            achieved=record.total_steps >= goal_steps,
        )
        for record in recent
    ]


def evaluate_today(
    records: Sequence[DailyStepRecord],
    goal_steps: int,
    today: Optional[date] = None,
) -> GoalStatus:
    # Records are keyed by UTC date, so "today" is the UTC date too.
    today = today or datetime.now(timezone.utc).date()
    for record in records:
        if record.date_utc == today:
            return GoalStatus.ON_TRACK if record.total_steps >= goal_steps else GoalStatus.MISSED
    return GoalStatus.MISSED
