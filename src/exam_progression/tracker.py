"""Progress tracker: the engine wired to its stores, clock and random source.

Every state-changing call persists the full profile snapshot before it
returns. If persisting fails, the in-memory profile is rolled back to the
last saved snapshot and ``StorageFailure`` propagates.
"""

import random
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta

import structlog

from exam_progression.config import Settings
from exam_progression.engine import awakening, maintenance, quests, readiness, report, rewards, sessions
from exam_progression.errors import MinimumTimeNotMet, ValidationError
from exam_progression.models.profile import ClaimedReward, ProfileState
from exam_progression.models.session import (
    Confidence,
    EvidenceType,
    MockType,
    Session,
    SessionKind,
    SessionStatus,
    StudyPhase,
    Subject,
    format_duration,
)
from exam_progression.storage.evidence import FileEvidenceStore, StorageUsage
from exam_progression.storage.kv_store import JsonFileStore
from exam_progression.storage.profile import load_or_create_profile, save_profile

logger = structlog.get_logger()


class ProgressTracker:
    """Single-user progression engine facade.

    Args:
        store: Key-value store with ``get(key, default)`` and ``set(key, value)``.
        evidence_store: Blob store for evidence images.
        clock: Returns the current local time.
        rng: Random source for evidence audits and quests.
        settings: Optional settings for retention and reminder intervals.
    """

    def __init__(
        self,
        store,
        evidence_store,
        clock: Callable[[], datetime] = datetime.now,
        rng: random.Random | None = None,
        settings: Settings | None = None,
    ):
        self.store = store
        self.evidence_store = evidence_store
        self._clock = clock
        self.rng = rng or random.Random()
        self.max_replay_days = settings.maintenance_replay_days if settings else 31
        self.export_reminder_days = settings.export_reminder_days if settings else 14
        self.evidence_retention_days = settings.evidence_retention_days if settings else 90
        self.profile, self.created = load_or_create_profile(store, self.now())
        if self.created:
            logger.info("profile_created")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProgressTracker":
        evidence_store = FileEvidenceStore(
            settings.evidence_dir,
            max_dimension=settings.evidence_max_dimension,
            quality=settings.evidence_jpeg_quality,
        )
        return cls(
            JsonFileStore(settings.state_dir),
            evidence_store,
            rng=random.Random(settings.random_seed),
            settings=settings,
        )

    def now(self) -> datetime:
        return self._clock()

    @contextmanager
    def _mutation(self) -> Iterator[ProfileState]:
        """Persist after the block.

        A minimum-time failure is persisted (its penalty is real); any other
        error rolls the profile back to the snapshot.
        """
        snapshot = self.profile.model_copy(deep=True)
        try:
            yield self.profile
        except MinimumTimeNotMet:
            self._persist(snapshot)
            raise
        except Exception:
            self.profile = snapshot
            raise
        self._persist(snapshot)

    def _persist(self, snapshot: ProfileState) -> None:
        try:
            save_profile(self.store, self.profile)
        except Exception:
            self.profile = snapshot
            raise

    # Maintenance

    def run_maintenance(self) -> maintenance.MaintenanceReport | None:
        """Daily maintenance, at most once per calendar day."""
        last = self.store.get(maintenance.MAINTENANCE_KEY)
        with self._mutation() as profile:
            result = maintenance.run_daily_maintenance(
                profile, last, self.now(), self.rng, self.max_replay_days
            )
        if result is not None:
            self.store.set(maintenance.MAINTENANCE_KEY, result.date)
        return result

    # Awakening

    def complete_awakening(self, vision: str, anti_vision: str):
        with self._mutation() as profile:
            return awakening.complete_awakening(profile, vision, anti_vision)

    def update_vision(self, vision: str):
        with self._mutation() as profile:
            return awakening.update_vision(profile, vision)

    # Sessions

    def start_study(self, subject: Subject, topic: str, phase: StudyPhase) -> Session:
        with self._mutation() as profile:
            return sessions.start_study(profile, subject, topic, phase, self.now())

    def start_mock(self, mock_type: MockType, source: str, subject: Subject | None = None) -> Session:
        with self._mutation() as profile:
            return sessions.start_mock(profile, mock_type, source, self.now(), subject)

    def timer(self) -> dict:
        """Live timer view of the active session."""
        session = sessions.require_active(self.profile)
        elapsed = session.elapsed_seconds(self.now())
        return {
            "session_id": session.id,
            "elapsed_seconds": elapsed,
            "display": format_duration(elapsed),
            "max_time_reached": session.max_time_reached(self.now()),
        }

    def stop_timer(self) -> Session:
        with self._mutation() as profile:
            return sessions.stop_timer(profile, self.now(), self.rng)

    def evidence_requirement(self) -> sessions.EvidenceRequirement:
        with self._mutation() as profile:
            return sessions.evidence_requirement(profile, self.rng, self.now())

    def submit_affirmation(self, text: str) -> Session:
        with self._mutation() as profile:
            return sessions.attach_affirmation(profile, text, self.now(), self.rng)

    async def submit_photo(self, image: bytes) -> Session:
        """Store the photo, then attach it if the session is still waiting for it.

        The profile is not held across the upload, so a cancel that lands
        while the store is busy stays in effect.
        """
        session = sessions.awaiting_evidence(self.profile, SessionKind.STUDY)
        if not image:
            raise ValidationError("Photo is empty")

        image_id = await self.evidence_store.put(image, session.id, EvidenceType.PHOTO.value)
        with self._mutation() as profile:
            return sessions.attach_photo(profile, session.id, image_id)

    def finalize_study(
        self,
        notes: str,
        difficulty: str | None = None,
        mistakes: str | None = None,
        revision_needed: bool | None = None,
        confidence: Confidence | None = None,
    ) -> sessions.SessionOutcome:
        """Finalize the study session and check it against today's quest."""
        now = self.now()
        with self._mutation() as profile:
            outcome = sessions.finalize_study(
                profile, notes, difficulty, mistakes, revision_needed, confidence, now
            )
            outcome.quest_xp = quests.check_quest_completion(profile, profile.session_history[0], now)
        return outcome

    async def submit_mock(
        self,
        screenshot: bytes,
        score: float | None,
        total_questions: int | None,
        correct: int | None,
        analysis: str | None = None,
    ) -> sessions.SessionOutcome:
        """Store the mandatory screenshot, then finalize the mock with its id.

        A running timer is stopped first, so an under-time mock fails before
        anything is stored.
        """
        session = sessions.require_active(self.profile, SessionKind.MOCK)
        if not screenshot:
            raise ValidationError("Screenshot is mandatory for mock tests")
        sessions.validate_mock_scores(score, total_questions, correct)
        if session.status == SessionStatus.ACTIVE:
            self.stop_timer()
        session = sessions.awaiting_evidence(self.profile, SessionKind.MOCK)

        image_id = await self.evidence_store.put(
            screenshot, session.id, EvidenceType.SCREENSHOT.value
        )
        with self._mutation() as profile:
            sessions.require_session(profile, session.id)
            return sessions.finalize_mock(
                profile, image_id, score, total_questions, correct, analysis, self.now()
            )

    def cancel_session(self):
        with self._mutation() as profile:
            return sessions.cancel_session(profile, self.now())

    # Rewards, readiness, reporting

    def claim_reward(self, name: str, cost: int) -> ClaimedReward:
        with self._mutation() as profile:
            return rewards.claim_reward(profile, name, cost, self.now())

    def readiness(self) -> readiness.Readiness:
        return readiness.calculate_readiness(self.profile, self.now())

    def quest_status(self) -> str:
        return quests.quest_status(self.profile, self.now())

    def report(self) -> report.ProgressReport:
        return report.generate_report(self.profile, self.now())

    def export_reminder_due(self) -> bool:
        raw = self.store.get(report.EXPORT_REMINDER_KEY)
        last = datetime.fromisoformat(raw) if raw else None
        return report.export_reminder_due(last, self.now(), self.export_reminder_days)

    def mark_exported(self) -> None:
        self.store.set(report.EXPORT_REMINDER_KEY, self.now().isoformat())

    # Evidence storage

    async def storage_usage(self) -> StorageUsage:
        return await self.evidence_store.usage()

    async def cleanup_evidence(self) -> int:
        cutoff = self.now() - timedelta(days=self.evidence_retention_days)
        return await self.evidence_store.delete_older_than(cutoff)
