"""Smoke tests for Pydantic models."""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from exam_progression.models.profile import Habits, ProfileState, Protection, ProtectionKind
from exam_progression.models.session import (
    Confidence,
    MockType,
    Session,
    SessionKind,
    StudyPhase,
    Subject,
    format_duration,
)


class TestSession:
    def test_duration_is_whole_minutes(self, now):
        session = Session(id=1, kind=SessionKind.STUDY, start_time=now)
        assert session.compute_duration(now + timedelta(minutes=44, seconds=59)) == 44

    def test_duration_is_capped(self, now):
        session = Session(id=1, kind=SessionKind.STUDY, start_time=now)
        assert session.compute_duration(now + timedelta(hours=5)) == 120
        assert session.max_time_reached(now + timedelta(hours=2))

    def test_minimum_minutes(self, now):
        assert Session(id=1, kind=SessionKind.STUDY, start_time=now).minimum_minutes == 20
        sectional = Session(id=2, kind=SessionKind.MOCK, mock_type=MockType.SECTIONAL, start_time=now)
        assert sectional.minimum_minutes == 18
        full = Session(id=3, kind=SessionKind.MOCK, mock_type=MockType.FULL, start_time=now)
        assert full.minimum_minutes == 60

    def test_negative_duration_rejected(self, now):
        with pytest.raises(ValidationError):
            Session(id=1, kind=SessionKind.STUDY, start_time=now, duration=-1)

    def test_format_duration(self):
        assert format_duration(0) == "00:00:00"
        assert format_duration(3725) == "01:02:05"

    def test_display_names(self):
        assert Subject.QUANT.display_name == "Quantitative Aptitude"
        assert StudyPhase.MOCK_ANALYSIS.display_name == "Mock Analysis"
        assert Confidence.VERY_WEAK.is_weak
        assert not Confidence.MODERATE.is_weak


class TestProfileState:
    def test_new_profile(self, now):
        profile = ProfileState.new(now)
        assert profile.level == 1
        assert profile.xp == 0
        assert profile.week_start == "2026-03-02"
        assert profile.grace_reset_month == "2026-03"
        assert set(profile.skills) == set(Subject)
        assert not profile.protection.active

    def test_level_must_be_positive(self):
        with pytest.raises(ValidationError):
            ProfileState(level=0)

    def test_protection_expiry(self, now):
        protection = Protection(active=True, kind=ProtectionKind.FULL, expires_at=now)
        assert protection.is_effective(now - timedelta(seconds=1))
        assert not protection.is_effective(now)

    def test_habits_roll_day(self):
        habits = Habits(daily_study=2, daily_revision=1, weekly_mock=1, day="2026-03-03")
        habits.roll_day("2026-03-04")
        assert habits.daily_study == 0
        assert habits.weekly_mock == 1
        assert habits.day == "2026-03-04"
