"""Study and mock session data models."""

import math
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

# Timer limits (minutes)
MAX_SESSION_MINUTES = 120
MIN_STUDY_MINUTES = 20
MIN_SECTIONAL_MOCK_MINUTES = 18
MIN_FULL_MOCK_MINUTES = 60


class SessionKind(StrEnum):
    STUDY = "study"
    MOCK = "mock"


class Subject(StrEnum):
    """The four tracked exam subjects."""

    QUANT = "quant"
    REASONING = "reasoning"
    ENGLISH = "english"
    GK = "gk"

    @property
    def display_name(self) -> str:
        return {
            Subject.QUANT: "Quantitative Aptitude",
            Subject.REASONING: "Reasoning",
            Subject.ENGLISH: "English",
            Subject.GK: "General Knowledge",
        }[self]


class StudyPhase(StrEnum):
    LEARNING = "learning"
    REVISION = "revision"
    MOCK_ANALYSIS = "mock-analysis"

    @property
    def display_name(self) -> str:
        return {
            StudyPhase.LEARNING: "Learning (New Concept)",
            StudyPhase.REVISION: "Revision",
            StudyPhase.MOCK_ANALYSIS: "Mock Analysis",
        }[self]


class MockType(StrEnum):
    SECTIONAL = "sectional"
    FULL = "full"


class EvidenceType(StrEnum):
    PHOTO = "photo"
    AFFIRMATION = "affirmation"
    SCREENSHOT = "screenshot"


class Confidence(StrEnum):
    """Self-reported confidence after a study session."""

    VERY_WEAK = "very-weak"
    WEAK = "weak"
    MODERATE = "moderate"
    STRONG = "strong"
    VERY_STRONG = "very-strong"

    @property
    def is_weak(self) -> bool:
        return self in (Confidence.VERY_WEAK, Confidence.WEAK)


class SessionStatus(StrEnum):
    """Session lifecycle states."""

    ACTIVE = "active"
    EVIDENCE_PENDING = "evidence_pending"
    REFLECTION_PENDING = "reflection_pending"
    FINALIZED = "finalized"
    FAILED = "failed"


class Session(BaseModel):
    """A study or mock session, live while active and archived once finalized.

    ``id`` is the creation timestamp in milliseconds. Evidence fields are
    filled during the evidence step; reflection and score fields during
    finalize.
    """

    id: int
    kind: SessionKind
    subject: Subject | None = None
    topic: str | None = None
    phase: StudyPhase | None = None
    mock_type: MockType | None = None
    source: str | None = None
    start_time: datetime
    end_time: datetime | None = None
    duration: int = Field(default=0, ge=0)
    status: SessionStatus = SessionStatus.ACTIVE

    # Evidence
    evidence_type: EvidenceType | None = None
    evidence_ref: str | None = None
    photo_required: bool = False
    audit_drawn: bool = False

    # Study reflection
    notes: str | None = None
    difficulty: str | None = None
    mistakes: str | None = None
    revision_needed: bool | None = None
    confidence: Confidence | None = None

    # Mock score
    score: float | None = None
    total_questions: int | None = None
    correct: int | None = None
    analysis: str | None = None

    # Outcome
    xp_earned: int = 0
    gold_earned: int = 0
    completed_at: datetime | None = None

    @property
    def minimum_minutes(self) -> int:
        if self.kind == SessionKind.STUDY:
            return MIN_STUDY_MINUTES
        if self.mock_type == MockType.FULL:
            return MIN_FULL_MOCK_MINUTES
        return MIN_SECTIONAL_MOCK_MINUTES

    def elapsed_seconds(self, now: datetime) -> int:
        """Uncapped elapsed seconds for the live timer display."""
        return max(0, math.floor((now - self.start_time).total_seconds()))

    def max_time_reached(self, now: datetime) -> bool:
        return self.elapsed_seconds(now) >= MAX_SESSION_MINUTES * 60

    def compute_duration(self, now: datetime) -> int:
        """Whole elapsed minutes, capped at ``MAX_SESSION_MINUTES``."""
        return min(self.elapsed_seconds(now) // 60, MAX_SESSION_MINUTES)


def format_duration(seconds: int) -> str:
    """Format seconds as ``HH:MM:SS``."""
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
