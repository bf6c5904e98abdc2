"""Exam readiness index derived from rank, streaks and recent sessions."""

from datetime import datetime, timedelta

from pydantic import BaseModel

from exam_progression.clock import date_key
from exam_progression.engine.ledger import rank_for
from exam_progression.engine.rules import READINESS_BASE, READINESS_MAX, READINESS_SPREAD
from exam_progression.models.profile import ProfileState
from exam_progression.models.session import EvidenceType, Session, SessionKind

HIDDEN_RANKS = frozenset({"E", "D"})
CONSISTENCY_WINDOW_DAYS = 28
CONSISTENCY_MIN_SESSIONS = 16
RECENT_WINDOW_DAYS = 14

# (threshold, points) pairs; every threshold reached adds its points
STREAK_BONUSES = [(7, 5), (14, 5), (30, 5)]
MOCK_BONUSES = [(10, 3), (25, 5), (50, 7)]
CONSISTENCY_BONUSES = [(0.8, 5), (0.9, 5)]
AFFIRMATION_PENALTIES = [(3, 5), (6, 10)]
WEAK_CONFIDENCE_PENALTIES = [(5, 5), (10, 10)]


class Readiness(BaseModel):
    show: bool
    reason: str | None = None
    percentage: int | None = None
    range_low: int | None = None
    range_high: int | None = None
    base: int | None = None
    modifiers: int | None = None

    @property
    def range_label(self) -> str | None:
        if not self.show:
            return None
        return f"{self.range_low}-{self.range_high}%"


def _tiered(value: float, tiers: list[tuple[float, int]]) -> int:
    return sum(points for threshold, points in tiers if value >= threshold)


def _since(history: list[Session], cutoff: datetime) -> list[Session]:
    return [s for s in history if s.completed_at is not None and s.completed_at >= cutoff]


def weekly_consistency(profile: ProfileState, now: datetime) -> float:
    """Share of the trailing 28 days with a study session.

    Zero until at least 16 study sessions fall inside the window.
    """
    cutoff = now - timedelta(days=CONSISTENCY_WINDOW_DAYS)
    recent = [s for s in _since(profile.session_history, cutoff) if s.kind == SessionKind.STUDY]
    if len(recent) < CONSISTENCY_MIN_SESSIONS:
        return 0.0
    study_days = {date_key(s.completed_at) for s in recent}
    return len(study_days) / CONSISTENCY_WINDOW_DAYS


def recent_affirmations(profile: ProfileState, now: datetime) -> int:
    cutoff = now - timedelta(days=RECENT_WINDOW_DAYS)
    return sum(
        1 for s in _since(profile.session_history, cutoff)
        if s.evidence_type == EvidenceType.AFFIRMATION
    )


def recent_weak_confidence(profile: ProfileState, now: datetime) -> int:
    cutoff = now - timedelta(days=RECENT_WINDOW_DAYS)
    return sum(
        1 for s in _since(profile.session_history, cutoff)
        if s.confidence is not None and s.confidence.is_weak
    )


def calculate_readiness(profile: ProfileState, now: datetime) -> Readiness:
    """Bounded readiness percentage with a +/-5 range.

    Hidden below rank C and while a failure streak is running.
    """
    rank = rank_for(profile.level)
    if rank in HIDDEN_RANKS:
        return Readiness(show=False, reason="too-early")
    if profile.failure_streak > 0:
        return Readiness(show=False, reason="failure-streak")

    base = READINESS_BASE.get(rank, READINESS_BASE["E"])
    modifiers = (
        _tiered(profile.study_streak, STREAK_BONUSES)
        + _tiered(profile.total_mocks, MOCK_BONUSES)
        + _tiered(weekly_consistency(profile, now), CONSISTENCY_BONUSES)
        - _tiered(recent_affirmations(profile, now), AFFIRMATION_PENALTIES)
        - _tiered(recent_weak_confidence(profile, now), WEAK_CONFIDENCE_PENALTIES)
    )

    percentage = max(0, min(READINESS_MAX, base + modifiers))
    return Readiness(
        show=True,
        percentage=percentage,
        range_low=max(0, percentage - READINESS_SPREAD),
        range_high=min(READINESS_MAX, percentage + READINESS_SPREAD),
        base=base,
        modifiers=modifiers,
    )
