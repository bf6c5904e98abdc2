"""Once-per-day maintenance: decay, grace days, protection expiry, weekly reset, quests.

Each calendar day gets exactly one decay/grace verdict. Days missed while
the app was closed are replayed on the next run, so the outcome does not
depend on when maintenance happens to be invoked.
"""

import random
from datetime import datetime, timedelta

import structlog
from pydantic import BaseModel, Field

from exam_progression.clock import (
    date_key,
    date_keys_after,
    day_start,
    month_key,
    week_start,
)
from exam_progression.engine.failure import clear_protection
from exam_progression.engine.ledger import daily_decay, rank_for, remove_xp
from exam_progression.engine.quests import generate_daily_quest
from exam_progression.engine.rules import GRACE_DAYS_PER_MONTH, GRACE_RANKS, MOCK_INACTIVITY_DAYS
from exam_progression.engine.sessions import roll_affirmation_week
from exam_progression.models.profile import DailyQuest, ProfileState
from exam_progression.models.session import SessionKind

logger = structlog.get_logger()

MAINTENANCE_KEY = "lastMaintenanceDate"
DEFAULT_REPLAY_DAYS = 31


class MaintenanceReport(BaseModel):
    """What a maintenance run changed."""

    date: str
    days_processed: list[str] = Field(default_factory=list)
    grace_days: list[str] = Field(default_factory=list)
    protected_days: list[str] = Field(default_factory=list)
    xp_decayed: int = 0
    protection_expired: bool = False
    week_rolled: bool = False
    quest: DailyQuest | None = None


def days_to_process(last_processed: str | None, today: str, max_days: int) -> list[str]:
    """Days still owed a verdict, oldest first, at most ``max_days`` of them."""
    if last_processed is None or last_processed > today:
        return [today]
    return date_keys_after(last_processed, today)[-max_days:]


def _studied_on(profile: ProfileState, day: str) -> bool:
    if profile.last_study_date == day:
        return True
    return any(
        s.kind == SessionKind.STUDY and s.completed_at is not None and date_key(s.completed_at) == day
        for s in profile.session_history
    )


def roll_grace_month(profile: ProfileState, month: str) -> None:
    if profile.grace_reset_month != month:
        profile.grace_days_used = 0
        profile.grace_reset_month = month


def grace_available(profile: ProfileState, month: str) -> bool:
    """Grace days are for ranks B, A and S, once per calendar month."""
    roll_grace_month(profile, month)
    if rank_for(profile.level) not in GRACE_RANKS:
        return False
    return profile.grace_days_used < GRACE_DAYS_PER_MONTH


def _settle_day(profile: ProfileState, day: str, at: datetime, report: MaintenanceReport) -> None:
    """Grace or decay for one calendar day without a qualifying study."""
    if _studied_on(profile, day):
        return

    if grace_available(profile, day[:7]):
        profile.grace_days_used += 1
        report.grace_days.append(day)
        logger.info("grace_day_used", day=day)
        return

    decay = daily_decay(profile.level)
    if decay <= 0:
        return
    if profile.protection.is_effective(at):
        report.protected_days.append(day)
        return
    report.xp_decayed += remove_xp(profile, decay)


def check_weekly_reset(profile: ProfileState, now: datetime) -> bool:
    """Seed a new week's XP with last week's rollover. Returns True on rollover."""
    current = week_start(now)
    if profile.week_start == current:
        return False
    profile.weekly_xp = profile.weekly_rollover
    profile.weekly_rollover = 0
    profile.week_start = current
    profile.habits.weekly_mock = 0
    logger.info("week_rolled", week_start=current, seeded=profile.weekly_xp)
    return True


def run_daily_maintenance(
    profile: ProfileState,
    last_processed: str | None,
    now: datetime,
    rng: random.Random,
    max_replay_days: int = DEFAULT_REPLAY_DAYS,
) -> MaintenanceReport | None:
    """Apply the day's maintenance unless ``last_processed`` is already today.

    The caller persists the profile and then stores ``report.date`` as the
    new ``last_processed`` marker.

    Returns:
        None when today was already processed, otherwise a report.
    """
    today = date_key(now)
    if last_processed == today:
        return None

    report = MaintenanceReport(date=today)

    # 1. Decay or grace for each day owed a verdict
    for day in days_to_process(last_processed, today, max_replay_days):
        at = now if day == today else day_start(day) + timedelta(days=1)
        _settle_day(profile, day, at, report)
        report.days_processed.append(day)
    roll_grace_month(profile, month_key(now))

    # 2. Mock inactivity ends protection regardless of its expiry
    if profile.last_mock_date is not None:
        if now - profile.last_mock_date >= timedelta(days=MOCK_INACTIVITY_DAYS):
            report.protection_expired = profile.protection.active
            clear_protection(profile)

    # 3. Weekly boundary
    report.week_rolled = check_weekly_reset(profile, now)
    roll_affirmation_week(profile, now)
    profile.habits.roll_day(today)

    # 4. Today's quest
    report.quest = generate_daily_quest(profile, now, rng)

    logger.info(
        "daily_maintenance_completed",
        date=today,
        days=len(report.days_processed),
        xp_decayed=report.xp_decayed,
        grace_days=len(report.grace_days),
    )
    return report
