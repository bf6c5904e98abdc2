"""Tests for reward claims, onboarding and the progress report."""

from datetime import timedelta

import pytest

from exam_progression.engine.awakening import complete_awakening, update_vision
from exam_progression.engine.report import export_reminder_due, generate_report
from exam_progression.engine.rewards import claim_reward, reward_display_name
from exam_progression.errors import InsufficientGold, ValidationError
from exam_progression.models.session import Session, SessionKind

VISION = "I clear the exam this year, join a government post and support my family. " * 2
FEARS = "Another year of the same routine, watching others move on while I stay stuck. " * 2


class TestClaims:
    def test_claim_debits_gold(self, profile, now):
        profile.gold = 50
        claim = claim_reward(profile, "movie", 30, now)
        assert profile.gold == 20
        assert claim.claimed_at == now
        assert profile.claimed_rewards[0] is claim

    def test_newest_claim_first(self, profile, now):
        profile.gold = 50
        claim_reward(profile, "break", 5, now)
        claim_reward(profile, "meal", 10, now + timedelta(hours=1))
        assert [c.name for c in profile.claimed_rewards] == ["meal", "break"]

    def test_insufficient_gold(self, profile, now):
        profile.gold = 10
        with pytest.raises(InsufficientGold) as exc_info:
            claim_reward(profile, "dayoff", 60, now)
        assert exc_info.value.cost == 60
        assert profile.gold == 10
        assert profile.claimed_rewards == []

    def test_exact_balance(self, profile, now):
        profile.gold = 30
        claim_reward(profile, "movie", 30, now)
        assert profile.gold == 0

    def test_invalid_claim(self, profile, now):
        with pytest.raises(ValidationError):
            claim_reward(profile, "", 5, now)

    def test_display_name(self):
        assert reward_display_name("movie") == "Movie Night"
        assert reward_display_name("custom") == "custom"


class TestAwakening:
    def test_complete(self, profile):
        awakening = complete_awakening(profile, VISION, FEARS)
        assert awakening.completed
        assert profile.awakening.vision == VISION.strip()

    def test_short_vision_rejected(self, profile):
        with pytest.raises(ValidationError):
            complete_awakening(profile, "Pass the exam.", FEARS)
        assert not profile.awakening.completed

    def test_update_vision(self, profile):
        complete_awakening(profile, VISION, FEARS)
        new_vision = "x" * 100
        update_vision(profile, new_vision)
        assert profile.awakening.vision == new_vision
        assert profile.awakening.anti_vision == FEARS.strip()


class TestReport:
    def test_report_snapshot(self, profile, now):
        profile.level = 6
        profile.total_study_minutes = 135
        for i in range(60):
            profile.record_history(Session(id=i, kind=SessionKind.STUDY, start_time=now))

        report = generate_report(profile, now + timedelta(days=10))

        assert report.rank == "C"
        assert report.xp_required == 1600
        assert report.weekly_cap == 1500
        assert report.days_since_start == 10
        assert report.total_study_hours == 2.2
        assert report.grace_days_remaining == 1
        assert report.readiness.show
        assert len(report.history) == 50
        assert report.history[0].id == 59

    def test_export_reminder(self, now):
        assert export_reminder_due(None, now)
        assert not export_reminder_due(now - timedelta(days=13), now)
        assert export_reminder_due(now - timedelta(days=14), now)
