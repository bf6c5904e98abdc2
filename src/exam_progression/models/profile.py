"""Profile state: the single persisted snapshot of a learner's progression."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from exam_progression.clock import month_key, week_start
from exam_progression.models.session import Session, StudyPhase, Subject

HISTORY_LIMIT = 100


class ProtectionKind(StrEnum):
    NONE = "none"
    PARTIAL = "partial"
    FULL = "full"


class Protection(BaseModel):
    """Time-boxed grant that suppresses daily decay. At most one at a time."""

    active: bool = False
    kind: ProtectionKind = ProtectionKind.NONE
    expires_at: datetime | None = None

    def is_effective(self, now: datetime) -> bool:
        return self.active and self.expires_at is not None and self.expires_at > now


class DailyQuest(BaseModel):
    date: str
    subject: Subject
    phase: StudyPhase
    xp: int
    completed: bool = False


class ClaimedReward(BaseModel):
    name: str
    cost: int
    claimed_at: datetime


class Awakening(BaseModel):
    completed: bool = False
    vision: str = ""
    anti_vision: str = ""


class Habits(BaseModel):
    """Informational per-day and per-week habit counters."""

    daily_study: int = Field(default=0, ge=0)
    daily_revision: int = Field(default=0, ge=0)
    formula_review: int = Field(default=0, ge=0)
    weekly_mock: int = Field(default=0, ge=0)
    day: str | None = None

    def roll_day(self, day: str) -> None:
        """Zero the daily counters when the calendar day changes."""
        if self.day != day:
            self.daily_study = self.daily_revision = self.formula_review = 0
            self.day = day


def _empty_skills() -> dict[Subject, int]:
    return {subject: 0 for subject in Subject}


class ProfileState(BaseModel):
    """Process-wide progression state, persisted after every mutation."""

    start_date: datetime | None = None
    awakening: Awakening = Field(default_factory=Awakening)

    # Progress
    level: int = Field(default=1, ge=1)
    xp: int = Field(default=0, ge=0)
    gold: int = Field(default=0, ge=0)

    # Weekly tracking
    weekly_xp: int = Field(default=0, ge=0)
    weekly_rollover: int = Field(default=0, ge=0)
    week_start: str | None = None

    # Streaks
    study_streak: int = Field(default=0, ge=0)
    failure_streak: int = Field(default=0, ge=0)
    last_study_date: str | None = None
    consecutive_failure_days: int = Field(default=0, ge=0)

    protection: Protection = Field(default_factory=Protection)

    # Grace days
    grace_days_used: int = Field(default=0, ge=0, le=1)
    grace_reset_month: str | None = None

    skills: dict[Subject, int] = Field(default_factory=_empty_skills)
    habits: Habits = Field(default_factory=Habits)

    # Sessions
    active_session: Session | None = None
    session_history: list[Session] = Field(default_factory=list)

    # Mocks
    last_mock_date: datetime | None = None
    total_mocks: int = Field(default=0, ge=0)

    daily_quest: DailyQuest | None = None

    # Affirmations
    weekly_affirmations: int = Field(default=0, ge=0)
    affirmation_week_start: str | None = None

    claimed_rewards: list[ClaimedReward] = Field(default_factory=list)

    # Stats
    total_study_minutes: int = Field(default=0, ge=0)
    total_sessions: int = Field(default=0, ge=0)

    @classmethod
    def new(cls, now: datetime) -> "ProfileState":
        """Fresh profile anchored to the current week and month."""
        return cls(
            start_date=now,
            week_start=week_start(now),
            affirmation_week_start=week_start(now),
            grace_reset_month=month_key(now),
        )

    def record_history(self, session: Session) -> None:
        """Prepend a finalized session, keeping the newest ``HISTORY_LIMIT``."""
        self.session_history.insert(0, session)
        del self.session_history[HISTORY_LIMIT:]
