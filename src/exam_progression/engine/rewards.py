"""Gold-gated reward claims."""

from datetime import datetime

import structlog

from exam_progression.errors import InsufficientGold, ValidationError
from exam_progression.models.profile import ClaimedReward, ProfileState

logger = structlog.get_logger()

REWARD_NAMES: dict[str, str] = {
    "break": "Extra Study Break (15 min)",
    "movie": "Movie Night",
    "meal": "Cheat Meal",
    "dayoff": "Full Day Off",
    "social": "Social Outing",
    "gaming": "Gaming Session (2h)",
}


def reward_display_name(name: str) -> str:
    return REWARD_NAMES.get(name, name)


def claim_reward(profile: ProfileState, name: str, cost: int, now: datetime) -> ClaimedReward:
    """Spend gold on a reward and prepend it to the claim history.

    Raises:
        InsufficientGold: not enough gold; nothing changes.
    """
    if not name or cost < 0:
        raise ValidationError("Reward name and a non-negative cost are required")
    if profile.gold < cost:
        raise InsufficientGold(profile.gold, cost)

    profile.gold -= cost
    claim = ClaimedReward(name=name, cost=cost, claimed_at=now)
    profile.claimed_rewards.insert(0, claim)
    logger.info("reward_claimed", reward=name, cost=cost, gold=profile.gold)
    return claim
