"""One-time onboarding: the learner's vision and anti-vision."""

import structlog

from exam_progression.engine.rules import MIN_VISION_CHARS
from exam_progression.errors import ValidationError
from exam_progression.models.profile import Awakening, ProfileState

logger = structlog.get_logger()


def _clean(text: str | None, label: str) -> str:
    text = (text or "").strip()
    if len(text) < MIN_VISION_CHARS:
        raise ValidationError(f"Please write at least {MIN_VISION_CHARS} characters describing your {label}")
    return text


def complete_awakening(profile: ProfileState, vision: str, anti_vision: str) -> Awakening:
    profile.awakening = Awakening(
        completed=True,
        vision=_clean(vision, "vision"),
        anti_vision=_clean(anti_vision, "fears"),
    )
    logger.info("awakening_completed")
    return profile.awakening


def update_vision(profile: ProfileState, vision: str) -> Awakening:
    profile.awakening.vision = _clean(vision, "vision")
    return profile.awakening
