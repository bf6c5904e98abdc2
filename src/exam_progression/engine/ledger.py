"""Progression ledger: XP, levels, ranks and weekly-cap-aware XP admission."""

import structlog

from exam_progression.engine.rules import (
    DAILY_DECAY,
    LEVEL_MULTIPLIERS,
    RANKS,
    WEEKLY_CAPS,
    CapBand,
    band_for,
)
from exam_progression.models.profile import ProfileState

logger = structlog.get_logger()


def required_xp(level: int) -> int:
    """XP needed to clear ``level``: ``floor(100 * 2^(level-2))``, with level 1 held at 100."""
    if level <= 1:
        return 100
    return 100 * 2 ** (level - 2)


def rank_for(level: int) -> str:
    """Highest rank whose threshold does not exceed ``level``."""
    rank = RANKS[0][1]
    for threshold, name in RANKS:
        if level >= threshold:
            rank = name
    return rank


def level_multiplier(level: int) -> float:
    return band_for(LEVEL_MULTIPLIERS, level).value


def cap_band(level: int) -> CapBand:
    return band_for(WEEKLY_CAPS, level)


def weekly_cap(level: int) -> int:
    return cap_band(level).cap


def rollover_cap(level: int) -> int:
    return cap_band(level).rollover


def daily_decay(level: int) -> int:
    return int(band_for(DAILY_DECAY, level).value)


def _bank_rollover(profile: ProfileState, amount: int, limit: int) -> int:
    """Bank up to the remaining rollover space; the excess is discarded."""
    banked = max(0, min(amount, limit - profile.weekly_rollover))
    profile.weekly_rollover += banked
    return banked


def add_xp(profile: ProfileState, amount: int) -> int:
    """Admit ``amount`` XP under the weekly cap.

    Once the cap is reached everything goes to rollover and nothing is
    credited. Otherwise the part that fits is credited to ``xp`` and
    ``weekly_xp`` and the remainder goes to rollover.

    Returns:
        XP actually credited to ``xp`` (rollover and discarded amounts excluded).
    """
    if amount <= 0:
        return 0
    band = cap_band(profile.level)

    if profile.weekly_xp >= band.cap:
        banked = _bank_rollover(profile, amount, band.rollover)
        logger.info("xp_diverted_to_rollover", amount=amount, banked=banked)
        return 0

    credited = min(amount, band.cap - profile.weekly_xp)
    profile.xp += credited
    profile.weekly_xp += credited

    overflow = amount - credited
    if overflow > 0:
        banked = _bank_rollover(profile, overflow, band.rollover)
        logger.info("xp_overflow", overflow=overflow, banked=banked)

    check_level_up(profile)
    return credited


def check_level_up(profile: ProfileState) -> int:
    """Convert surplus XP into levels. Returns the number of levels gained."""
    gained = 0
    while profile.xp >= required_xp(profile.level):
        profile.xp -= required_xp(profile.level)
        profile.level += 1
        gained += 1
    if gained:
        logger.info("level_up", level=profile.level, gained=gained)
    return gained


def remove_xp(profile: ProfileState, amount: int) -> int:
    """Subtract XP down to zero. Levels are never lost here. Returns XP removed."""
    removed = min(profile.xp, max(0, amount))
    profile.xp -= removed
    return removed


def level_down(profile: ProfileState, levels: int = 1) -> int:
    """Drop ``levels`` (floor at 1) and restart the level from zero XP."""
    previous = profile.level
    profile.level = max(1, profile.level - levels)
    profile.xp = 0
    logger.info("level_down", previous=previous, level=profile.level)
    return previous - profile.level
