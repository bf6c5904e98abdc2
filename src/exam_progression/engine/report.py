"""Progress report for export, plus the export reminder cadence."""

from datetime import datetime, timedelta

from pydantic import BaseModel

from exam_progression.engine.ledger import rank_for, required_xp, weekly_cap
from exam_progression.engine.readiness import Readiness, calculate_readiness
from exam_progression.engine.rules import GRACE_DAYS_PER_MONTH
from exam_progression.models.profile import ProfileState, Protection
from exam_progression.models.session import Session, Subject

EXPORT_REMINDER_KEY = "lastExportReminder"
REPORT_HISTORY_LIMIT = 50


class ProgressReport(BaseModel):
    generated_at: datetime
    start_date: datetime | None
    days_since_start: int
    level: int
    rank: str
    xp: int
    xp_required: int
    gold: int
    weekly_xp: int
    weekly_cap: int
    weekly_rollover: int
    study_streak: int
    failure_streak: int
    protection: Protection
    grace_days_remaining: int
    total_study_minutes: int
    total_study_hours: float
    total_sessions: int
    total_mocks: int
    skills: dict[Subject, int]
    readiness: Readiness
    history: list[Session]


def generate_report(profile: ProfileState, now: datetime) -> ProgressReport:
    days_since_start = 0
    if profile.start_date is not None:
        days_since_start = max(0, (now - profile.start_date).days)

    return ProgressReport(
        generated_at=now,
        start_date=profile.start_date,
        days_since_start=days_since_start,
        level=profile.level,
        rank=rank_for(profile.level),
        xp=profile.xp,
        xp_required=required_xp(profile.level),
        gold=profile.gold,
        weekly_xp=profile.weekly_xp,
        weekly_cap=weekly_cap(profile.level),
        weekly_rollover=profile.weekly_rollover,
        study_streak=profile.study_streak,
        failure_streak=profile.failure_streak,
        protection=profile.protection,
        grace_days_remaining=max(0, GRACE_DAYS_PER_MONTH - profile.grace_days_used),
        total_study_minutes=profile.total_study_minutes,
        total_study_hours=round(profile.total_study_minutes / 60, 1),
        total_sessions=profile.total_sessions,
        total_mocks=profile.total_mocks,
        skills=dict(profile.skills),
        readiness=calculate_readiness(profile, now),
        history=profile.session_history[:REPORT_HISTORY_LIMIT],
    )


def export_reminder_due(last_export: datetime | None, now: datetime, interval_days: int = 14) -> bool:
    """True when no export was recorded in the last ``interval_days`` days."""
    if last_export is None:
        return True
    return now - last_export >= timedelta(days=interval_days)
