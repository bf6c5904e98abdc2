"""Daily quest generation and completion."""

import random
from datetime import datetime

import structlog

from exam_progression.clock import date_key
from exam_progression.engine.ledger import add_xp
from exam_progression.engine.rules import QUEST_XP, band_for
from exam_progression.models.profile import DailyQuest, ProfileState
from exam_progression.models.session import Session, SessionKind, StudyPhase, Subject

logger = structlog.get_logger()


def quest_xp(level: int) -> int:
    return int(band_for(QUEST_XP, level).value)


def generate_daily_quest(
    profile: ProfileState, now: datetime, rng: random.Random
) -> DailyQuest:
    """Create today's quest unless one already exists for today."""
    today = date_key(now)
    if profile.daily_quest is not None and profile.daily_quest.date == today:
        return profile.daily_quest

    profile.daily_quest = DailyQuest(
        date=today,
        subject=rng.choice(list(Subject)),
        phase=rng.choice(list(StudyPhase)),
        xp=quest_xp(profile.level),
    )
    logger.info(
        "daily_quest_generated",
        date=today,
        subject=profile.daily_quest.subject.value,
        phase=profile.daily_quest.phase.value,
        xp=profile.daily_quest.xp,
    )
    return profile.daily_quest


def quest_status(profile: ProfileState, now: datetime) -> str:
    """``none``, ``active``, ``completed`` or ``expired`` for display."""
    quest = profile.daily_quest
    if quest is None:
        return "none"
    if quest.completed:
        return "completed"
    if quest.date != date_key(now):
        return "expired"
    return "active"


def check_quest_completion(
    profile: ProfileState, session: Session, now: datetime
) -> int | None:
    """Complete today's quest if ``session`` matches its subject and phase.

    Quests from earlier days are expired, never completed retroactively.

    Returns:
        XP credited for the quest (subject to the weekly cap), or None if
        the session did not complete it.
    """
    quest = profile.daily_quest
    if quest is None or quest.completed:
        return None
    if session.kind != SessionKind.STUDY:
        return None
    if quest.date != date_key(now):
        return None
    if session.subject != quest.subject or session.phase != quest.phase:
        return None

    quest.completed = True
    credited = add_xp(profile, quest.xp)
    logger.info("daily_quest_completed", reward=quest.xp, credited=credited)
    return credited
