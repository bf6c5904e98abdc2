"""Tests for failure penalties, protection and the study streak."""

from datetime import timedelta

from exam_progression.engine.failure import (
    clear_failure_streak,
    clear_protection,
    grant_protection,
    penalty_for,
    register_failure,
    update_study_streak,
)
from exam_progression.models.profile import ProtectionKind


class TestPenaltyTiers:
    def test_tiers(self):
        assert penalty_for(1).xp_loss == 40
        assert penalty_for(2).xp_loss == 90
        assert penalty_for(3).level_loss == 1
        assert penalty_for(4).xp_loss == 250
        assert penalty_for(9).xp_loss == 250

    def test_first_failure_only_costs_xp(self, profile, now):
        profile.level = 3
        profile.xp = 100
        grant_protection(profile, ProtectionKind.FULL, now)

        applied = register_failure(profile, "minimum-time")

        assert applied.xp_lost == 40
        assert profile.xp == 60
        assert profile.failure_streak == 1
        assert profile.protection.active

    def test_second_failure_removes_protection(self, profile, now):
        profile.failure_streak = 1
        profile.consecutive_failure_days = 1
        grant_protection(profile, ProtectionKind.PARTIAL, now)

        applied = register_failure(profile, "cancelled")

        assert applied.protection_removed
        assert not profile.protection.active
        assert profile.protection.kind == ProtectionKind.NONE

    def test_third_failure_costs_a_level(self, profile, now):
        profile.level = 5
        profile.xp = 300
        profile.failure_streak = 2
        profile.consecutive_failure_days = 2
        grant_protection(profile, ProtectionKind.FULL, now)

        applied = register_failure(profile, "minimum-time")

        assert profile.failure_streak == 3
        assert applied.xp_lost == 180
        assert applied.levels_lost == 1
        assert profile.level == 4
        assert profile.xp == 0
        assert not profile.protection.active

    def test_fourth_tier_loses_level_every_second_day(self, profile):
        profile.level = 8
        profile.failure_streak = 3
        profile.consecutive_failure_days = 3

        first = register_failure(profile, "minimum-time")
        assert profile.consecutive_failure_days == 4
        assert first.levels_lost == 1
        assert profile.level == 7

        second = register_failure(profile, "minimum-time")
        assert profile.consecutive_failure_days == 5
        assert second.levels_lost == 0
        assert profile.level == 7

        third = register_failure(profile, "minimum-time")
        assert third.levels_lost == 1
        assert profile.level == 6

    def test_clear_failure_streak(self, profile):
        profile.failure_streak = 4
        profile.consecutive_failure_days = 4
        clear_failure_streak(profile)
        assert profile.failure_streak == 0
        assert profile.consecutive_failure_days == 0


class TestProtection:
    def test_grant_lasts_24_hours(self, profile, now):
        protection = grant_protection(profile, ProtectionKind.FULL, now)
        assert protection.expires_at == now + timedelta(hours=24)
        assert protection.is_effective(now + timedelta(hours=23))
        assert not protection.is_effective(now + timedelta(hours=24))

    def test_clear(self, profile, now):
        grant_protection(profile, ProtectionKind.FULL, now)
        clear_protection(profile)
        assert not profile.protection.is_effective(now)
        assert profile.protection.expires_at is None


class TestStudyStreak:
    def test_first_study_starts_streak(self, profile, now):
        assert update_study_streak(profile, now) == 1
        assert profile.last_study_date == "2026-03-04"

    def test_same_day_counts_once(self, profile, now):
        update_study_streak(profile, now)
        assert update_study_streak(profile, now + timedelta(hours=5)) == 1

    def test_consecutive_days_extend(self, profile, now):
        update_study_streak(profile, now)
        assert update_study_streak(profile, now + timedelta(days=1)) == 2
        assert update_study_streak(profile, now + timedelta(days=2)) == 3

    def test_skipped_day_resets(self, profile, now):
        assert update_study_streak(profile, now) == 1
        assert update_study_streak(profile, now + timedelta(days=2)) == 1

    def test_late_night_then_early_morning_is_consecutive(self, profile, now):
        late = now.replace(hour=23, minute=50)
        update_study_streak(profile, late)
        assert update_study_streak(profile, late + timedelta(minutes=20)) == 2
