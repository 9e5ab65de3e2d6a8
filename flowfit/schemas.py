"""
flowfit/schemas.py

Pydantic data models shared by the FlowFit core.
- RawActivitySample / DailyStepRecord: health bridge input and per-day totals
- ReminderConfig / TriggerNotification: reminder selection and substrate payload
- SigningIdentity: the custodial signing key
- Commitment: one staked step-goal attempt and its lifecycle status
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, SecretBytes


class ReminderKind(str, Enum):
    DAILY_GOAL_REVIEW = "daily_goal_review"
    WALKING_REMINDER = "walking_reminder"


class CommitmentStatus(str, Enum):
    DRAFT = "draft"
    INITIATING = "initiating"
    ACTIVE = "active"
    FAILED = "failed"


class GoalStatus(str, Enum):
    ON_TRACK = "on_track"
    MISSED = "missed"


class AuthorizationStatus(str, Enum):
    NOT_DETERMINED = "not_determined"
    DENIED = "denied"
    AUTHORIZED = "authorized"


class RepeatFrequency(str, Enum):
    DAILY = "daily"


class RawActivitySample(BaseModel):
    """One step-count sample as produced by the platform health bridge."""

    model_config = ConfigDict(populate_by_name=True)

    start_instant: AwareDatetime = Field(alias="startDate")
    value: float


class DailyStepRecord(BaseModel):
    """Total steps for one UTC calendar date."""

    date_utc: date
    total_steps: float

    @property
    def day_start(self) -> datetime:
        """UTC midnight of date_utc, used for sorting and display."""
        return datetime.combine(self.date_utc, time.min, tzinfo=timezone.utc)

    @property
    def timestamp_ms(self) -> int:
        return int(self.day_start.timestamp() * 1000)


class DailyGoalSummary(BaseModel):
    """A day's total judged against the step goal."""

    record: DailyStepRecord
    goal_steps: int
    achieved: bool


class ReminderConfig(BaseModel):
    """User-chosen time of day for one reminder kind."""

    kind: ReminderKind
    time_of_day: time


class TriggerNotification(BaseModel):
    """Payload handed to the notification substrate."""

    id: str
    title: str
    body: str
    channel_id: str
    fire_at_ms: int  # epoch milliseconds of the first firing
    repeat: RepeatFrequency = RepeatFrequency.DAILY


class SigningIdentity(BaseModel):
    """The locally custodied signing key and its derived address."""

    private_key: SecretBytes
    address: str
    durable: bool  # False until the encrypted key has been persisted


class Commitment(BaseModel):
    """
    One staked step-goal attempt.

    challenge_id is only populated once the attempt is ACTIVE; the identifier
    returned by the simulate-call lives in the persisted intent record until then.
    durable is True once the ACTIVE record has been written to the store.
    """

    attempt_id: str = Field(default_factory=lambda: uuid4().hex)
    goal_steps: int = Field(gt=0)
    stake_amount: Decimal = Field(gt=0)
    committing_days: int = Field(gt=0)
    challenge_id: Optional[int] = None
    tx_hash: Optional[str] = None
    status: CommitmentStatus = CommitmentStatus.DRAFT
    durable: bool = False

    def fresh_attempt(self) -> "Commitment":
        """Return a new DRAFT with the same parameters and a new attempt id."""
        return Commitment(
            goal_steps=self.goal_steps,
            stake_amount=self.stake_amount,
            committing_days=self.committing_days,
        )
