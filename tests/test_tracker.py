"""Tests for ProgressTracker persistence, rollback and async evidence flows."""

import random
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from exam_progression.engine.maintenance import MAINTENANCE_KEY
from exam_progression.errors import (
    MinimumTimeNotMet,
    SessionStateError,
    StorageFailure,
    ValidationError,
)
from exam_progression.models.profile import DailyQuest
from exam_progression.models.session import (
    MockType,
    SessionStatus,
    StudyPhase,
    Subject,
)
from exam_progression.storage.kv_store import JsonFileStore
from exam_progression.storage.profile import PROFILE_KEY, load_profile
from exam_progression.tracker import ProgressTracker

NOTES = "Ratio and proportion, mixtures and alligation basics."


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(tmp_path / "state")


@pytest.fixture
def evidence():
    evidence = AsyncMock()
    evidence.put.return_value = "img-1"
    return evidence


@pytest.fixture
def tracker(store, evidence, clock):
    return ProgressTracker(store, evidence, clock=clock, rng=random.Random(3))


def test_first_run_saves_profile(tracker, store):
    assert tracker.created
    assert store.get(PROFILE_KEY)["level"] == 1


def test_active_session_survives_reload(tracker, store, evidence, clock):
    session = tracker.start_study(Subject.REASONING, "Syllogisms", StudyPhase.LEARNING)

    reloaded = ProgressTracker(store, evidence, clock=clock)

    assert not reloaded.created
    assert reloaded.profile.active_session.id == session.id
    assert reloaded.profile.active_session.status == SessionStatus.ACTIVE


def test_timer(tracker, clock):
    tracker.start_study(Subject.GK, "Rivers", StudyPhase.LEARNING)
    clock.advance(minutes=61, seconds=5)
    view = tracker.timer()
    assert view["elapsed_seconds"] == 3665
    assert view["display"] == "01:01:05"
    assert not view["max_time_reached"]


def test_minimum_time_failure_is_persisted(tracker, store, clock):
    tracker.start_study(Subject.GK, "Rivers", StudyPhase.LEARNING)
    clock.advance(minutes=10)

    with pytest.raises(MinimumTimeNotMet):
        tracker.stop_timer()

    saved = load_profile(store)
    assert saved.failure_streak == 1
    assert saved.active_session is None


def test_failed_save_rolls_back(tracker, monkeypatch):
    def broken_set(key, value):
        raise StorageFailure("disk full")

    monkeypatch.setattr(tracker.store, "set", broken_set)

    with pytest.raises(StorageFailure):
        tracker.start_study(Subject.GK, "Rivers", StudyPhase.LEARNING)

    assert tracker.profile.active_session is None


def test_validation_error_leaves_profile_untouched(tracker, store):
    with pytest.raises(ValidationError):
        tracker.claim_reward("", 5)
    assert load_profile(store).model_dump() == tracker.profile.model_dump()


async def test_photo_failure_keeps_session_pending(tracker, evidence, clock):
    evidence.put.side_effect = StorageFailure("quota exceeded")
    tracker.start_study(Subject.QUANT, "Ratios", StudyPhase.LEARNING)
    clock.advance(minutes=30)
    tracker.stop_timer()

    with pytest.raises(StorageFailure):
        await tracker.submit_photo(b"jpeg")

    assert tracker.profile.active_session.status == SessionStatus.EVIDENCE_PENDING


async def test_photo_then_finalize(tracker, evidence, clock):
    session = tracker.start_study(Subject.QUANT, "Ratios", StudyPhase.LEARNING)
    clock.advance(minutes=60)
    tracker.stop_timer()

    await tracker.submit_photo(b"jpeg")
    outcome = tracker.finalize_study(NOTES)

    evidence.put.assert_awaited_once_with(b"jpeg", session.id, "photo")
    assert outcome.xp == 20
    assert outcome.gold == 2
    assert tracker.profile.session_history[0].evidence_ref == "img-1"


async def test_finalize_completes_quest(tracker, clock):
    tracker.profile.daily_quest = DailyQuest(
        date="2026-03-04", subject=Subject.QUANT, phase=StudyPhase.LEARNING, xp=30
    )
    tracker.start_study(Subject.QUANT, "Ratios", StudyPhase.LEARNING)
    clock.advance(minutes=60)
    tracker.stop_timer()
    await tracker.submit_photo(b"jpeg")

    outcome = tracker.finalize_study(NOTES)

    assert outcome.xp == 20
    assert outcome.quest_xp == 30
    assert tracker.profile.xp == 50
    assert tracker.profile.daily_quest.completed


def test_finalize_requires_attached_evidence(tracker, store, clock):
    tracker.start_study(Subject.QUANT, "Ratios", StudyPhase.LEARNING)
    clock.advance(minutes=60)

    with pytest.raises(SessionStateError):
        tracker.finalize_study(NOTES)

    assert tracker.profile.xp == 0
    assert load_profile(store).active_session.status == SessionStatus.ACTIVE


async def test_cancel_during_photo_upload_stands(tracker, evidence, store, clock):
    async def cancel_while_saving(data, session_id, kind):
        tracker.cancel_session()
        return "img-1"

    evidence.put.side_effect = cancel_while_saving
    tracker.start_study(Subject.QUANT, "Ratios", StudyPhase.LEARNING)
    clock.advance(minutes=30)
    tracker.stop_timer()

    with pytest.raises(SessionStateError):
        await tracker.submit_photo(b"jpeg")

    assert tracker.profile.active_session is None
    assert tracker.profile.failure_streak == 1
    saved = load_profile(store)
    assert saved.active_session is None
    assert saved.failure_streak == 1


async def test_cancel_during_screenshot_upload_stands(tracker, evidence, store, clock):
    async def cancel_while_saving(data, session_id, kind):
        tracker.cancel_session()
        return "img-1"

    evidence.put.side_effect = cancel_while_saving
    tracker.start_mock(MockType.FULL, "Testbook")
    clock.advance(minutes=65)

    with pytest.raises(SessionStateError):
        await tracker.submit_mock(b"png", 140.0, 100, 78)

    saved = load_profile(store)
    assert saved.active_session is None
    assert saved.failure_streak == 1
    assert saved.total_mocks == 0
    assert not saved.protection.active


async def test_submit_mock(tracker, evidence, store, clock):
    session = tracker.start_mock(MockType.FULL, "Testbook")
    clock.advance(minutes=65)

    outcome = await tracker.submit_mock(b"png", 140.0, 100, 78, "Slow on puzzles")

    evidence.put.assert_awaited_once_with(b"png", session.id, "screenshot")
    assert outcome.xp == 75
    saved = load_profile(store)
    assert saved.protection.active
    assert saved.total_mocks == 1
    assert saved.session_history[0].evidence_ref == "img-1"


async def test_under_time_mock_stores_no_screenshot(tracker, evidence, store, clock):
    tracker.start_mock(MockType.FULL, "Testbook")
    clock.advance(minutes=30)

    with pytest.raises(MinimumTimeNotMet):
        await tracker.submit_mock(b"png", 60.0, 100, 40)

    evidence.put.assert_not_awaited()
    saved = load_profile(store)
    assert saved.failure_streak == 1
    assert saved.active_session is None


async def test_submit_mock_validates_before_storing(tracker, evidence, clock):
    tracker.start_mock(MockType.FULL, "Testbook")
    clock.advance(minutes=65)

    with pytest.raises(ValidationError):
        await tracker.submit_mock(b"png", None, 100, 78)

    evidence.put.assert_not_awaited()
    assert tracker.profile.active_session is not None


def test_maintenance_once_per_day(tracker, store, clock):
    assert tracker.run_maintenance() is not None
    assert store.get(MAINTENANCE_KEY) == "2026-03-04"
    assert tracker.run_maintenance() is None

    clock.advance(days=1)
    assert tracker.run_maintenance().date == "2026-03-05"


def test_export_reminder(tracker, clock):
    assert tracker.export_reminder_due()
    tracker.mark_exported()
    assert not tracker.export_reminder_due()
    clock.advance(days=14)
    assert tracker.export_reminder_due()


async def test_cleanup_uses_retention(tracker, evidence, clock):
    evidence.delete_older_than.return_value = 4
    assert await tracker.cleanup_evidence() == 4
    evidence.delete_older_than.assert_awaited_once_with(clock() - timedelta(days=90))
