"""Failure penalties, protection grants and the study streak."""

import math
from datetime import datetime, timedelta

import structlog
from pydantic import BaseModel

from exam_progression.clock import date_key, previous_date_key
from exam_progression.engine.ledger import level_down, remove_xp
from exam_progression.engine.rules import (
    FAILURE_PENALTIES,
    PROTECTION_HOURS,
    FailurePenalty,
)
from exam_progression.models.profile import ProfileState, Protection, ProtectionKind

logger = structlog.get_logger()


class AppliedPenalty(BaseModel):
    """What a single failure actually cost."""

    reason: str
    failure_streak: int
    xp_lost: int
    levels_lost: int
    protection_removed: bool


def penalty_for(streak: int) -> FailurePenalty:
    """Penalty tier for a failure streak; streaks past the table reuse the last tier."""
    index = min(max(streak, 1), len(FAILURE_PENALTIES)) - 1
    return FAILURE_PENALTIES[index]


def register_failure(profile: ProfileState, reason: str) -> AppliedPenalty:
    """Count a failed completion and apply its penalty tier.

    XP loss is always applied. Whole level losses apply immediately; the
    fractional tier costs one level on every even consecutive failure day.
    """
    profile.failure_streak += 1
    profile.consecutive_failure_days += 1
    penalty = penalty_for(profile.failure_streak)

    xp_lost = remove_xp(profile, penalty.xp_loss)

    protection_removed = False
    if penalty.remove_protection:
        protection_removed = profile.protection.active
        clear_protection(profile)

    levels_lost = 0
    if penalty.level_loss >= 1:
        levels_lost = level_down(profile, math.floor(penalty.level_loss))
    elif penalty.level_loss > 0 and profile.consecutive_failure_days % 2 == 0:
        levels_lost = level_down(profile, 1)

    logger.warning(
        "failure_registered",
        reason=reason,
        failure_streak=profile.failure_streak,
        xp_lost=xp_lost,
        levels_lost=levels_lost,
    )
    return AppliedPenalty(
        reason=reason,
        failure_streak=profile.failure_streak,
        xp_lost=xp_lost,
        levels_lost=levels_lost,
        protection_removed=protection_removed,
    )


def clear_failure_streak(profile: ProfileState) -> None:
    """Reset both failure counters after a successful study or mock."""
    profile.failure_streak = 0
    profile.consecutive_failure_days = 0


def grant_protection(profile: ProfileState, kind: ProtectionKind, now: datetime) -> Protection:
    """Replace any current grant with a fresh 24 hour window."""
    profile.protection = Protection(
        active=True,
        kind=kind,
        expires_at=now + timedelta(hours=PROTECTION_HOURS),
    )
    logger.info("protection_granted", kind=kind.value, expires_at=profile.protection.expires_at)
    return profile.protection


def clear_protection(profile: ProfileState) -> None:
    profile.protection = Protection()


def update_study_streak(profile: ProfileState, now: datetime) -> int:
    """Count a qualifying study day.

    Same day: unchanged. Day after the last study: +1. Anything else: 1.
    """
    today = date_key(now)
    last = profile.last_study_date
    if last == today:
        return profile.study_streak

    if last == previous_date_key(now):
        profile.study_streak += 1
    else:
        profile.study_streak = 1
    profile.last_study_date = today
    return profile.study_streak
