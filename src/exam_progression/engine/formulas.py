"""XP and gold formulas."""

import math

from exam_progression.engine.ledger import level_multiplier
from exam_progression.engine.rules import AFFIRMATION_GOLD_PENALTY, MOCK_XP, XP_RATES
from exam_progression.models.session import EvidenceType, MockType, StudyPhase


def study_xp(duration_minutes: int, phase: StudyPhase, level: int) -> int:
    """``floor(hours * base_rate(phase) * level_multiplier(level))``."""
    base_rate = XP_RATES.get(phase, XP_RATES[StudyPhase.REVISION])
    return math.floor((duration_minutes / 60) * base_rate * level_multiplier(level))


def mock_xp(mock_type: MockType, level: int) -> int:
    base = MOCK_XP.get(mock_type, MOCK_XP[MockType.SECTIONAL])
    return math.floor(base * level_multiplier(level))


def gold_for(credited_xp: int, evidence_type: EvidenceType | None) -> int:
    """One gold per 10 credited XP, halved again for affirmation evidence."""
    gold = credited_xp // 10
    if evidence_type == EvidenceType.AFFIRMATION:
        gold = math.floor(gold * AFFIRMATION_GOLD_PENALTY)
    return gold
