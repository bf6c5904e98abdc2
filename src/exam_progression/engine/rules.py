"""Rule tables for levels, caps, decay, penalties, quests and readiness."""

from pydantic import BaseModel

from exam_progression.models.session import MockType, StudyPhase

# Base XP per hour of study by phase
XP_RATES: dict[StudyPhase, int] = {
    StudyPhase.LEARNING: 20,
    StudyPhase.REVISION: 15,
    StudyPhase.MOCK_ANALYSIS: 25,
}

MOCK_XP: dict[MockType, int] = {
    MockType.SECTIONAL: 30,
    MockType.FULL: 75,
}

# Evidence
RANDOM_EVIDENCE_CHANCE = 0.125
MAX_AFFIRMATIONS_PER_WEEK = 3
AFFIRMATION_GOLD_PENALTY = 0.5
MIN_NOTES_CHARS = 30
MIN_AFFIRMATION_CHARS = 50
MIN_VISION_CHARS = 100

PROTECTION_HOURS = 24
MOCK_INACTIVITY_DAYS = 7
GRACE_DAYS_PER_MONTH = 1
GRACE_RANKS = frozenset({"B", "A", "S"})


class LevelBand(BaseModel):
    """A disjoint, inclusive level range carrying one value."""

    min: int
    max: int
    value: float


class CapBand(BaseModel):
    min: int
    max: int
    cap: int
    rollover: int


class FailurePenalty(BaseModel):
    """Penalty tier. ``level_loss`` of 0.5 means one level every second failure day."""

    streak: int
    xp_loss: int
    level_loss: float = 0
    remove_protection: bool = False


LEVEL_MULTIPLIERS: list[LevelBand] = [
    LevelBand(min=1, max=3, value=1.0),
    LevelBand(min=4, max=5, value=1.1),
    LevelBand(min=6, max=7, value=1.25),
    LevelBand(min=8, max=9, value=1.4),
    LevelBand(min=10, max=11, value=1.6),
    LevelBand(min=12, max=999, value=1.8),
]

WEEKLY_CAPS: list[CapBand] = [
    CapBand(min=1, max=3, cap=800, rollover=50),
    CapBand(min=4, max=5, cap=1200, rollover=75),
    CapBand(min=6, max=7, cap=1500, rollover=100),
    CapBand(min=8, max=9, cap=1800, rollover=120),
    CapBand(min=10, max=11, cap=2100, rollover=150),
    CapBand(min=12, max=999, cap=2500, rollover=200),
]

DAILY_DECAY: list[LevelBand] = [
    LevelBand(min=1, max=3, value=0),
    LevelBand(min=4, max=5, value=15),
    LevelBand(min=6, max=7, value=30),
    LevelBand(min=8, max=9, value=50),
    LevelBand(min=10, max=11, value=80),
    LevelBand(min=12, max=999, value=120),
]

QUEST_XP: list[LevelBand] = [
    LevelBand(min=1, max=3, value=30),
    LevelBand(min=4, max=5, value=50),
    LevelBand(min=6, max=7, value=80),
    LevelBand(min=8, max=9, value=120),
    LevelBand(min=10, max=11, value=180),
    LevelBand(min=12, max=999, value=250),
]

FAILURE_PENALTIES: list[FailurePenalty] = [
    FailurePenalty(streak=1, xp_loss=40),
    FailurePenalty(streak=2, xp_loss=90, remove_protection=True),
    FailurePenalty(streak=3, xp_loss=180, level_loss=1, remove_protection=True),
    FailurePenalty(streak=4, xp_loss=250, level_loss=0.5, remove_protection=True),
]

# Ordered by minimum level
RANKS: list[tuple[int, str]] = [
    (1, "E"),
    (4, "D"),
    (6, "C"),
    (8, "B"),
    (10, "A"),
    (12, "S"),
]

READINESS_BASE: dict[str, int] = {
    "E": 5,
    "D": 15,
    "C": 30,
    "B": 55,
    "A": 75,
    "S": 90,
}

READINESS_MAX = 95
READINESS_SPREAD = 5


def band_for(table: list, level: int):
    """Return the band whose inclusive range contains ``level`` (first band as fallback)."""
    for band in table:
        if band.min <= level <= band.max:
            return band
    return table[0]
