"""Session state machine for study and mock sessions.

Study: ACTIVE -> EVIDENCE_PENDING -> REFLECTION_PENDING -> FINALIZED
Mock:  ACTIVE -> EVIDENCE_PENDING -> FINALIZED

Any state may end in FAILED, through an unmet minimum time or a cancel.
A failed or finalized session no longer occupies ``active_session``.
"""

import random
from datetime import datetime

import structlog
from pydantic import BaseModel

from exam_progression.clock import date_key, week_start
from exam_progression.engine.failure import (
    AppliedPenalty,
    clear_failure_streak,
    grant_protection,
    register_failure,
    update_study_streak,
)
from exam_progression.engine.formulas import gold_for, mock_xp, study_xp
from exam_progression.engine.ledger import add_xp
from exam_progression.engine.rules import (
    MAX_AFFIRMATIONS_PER_WEEK,
    MIN_AFFIRMATION_CHARS,
    MIN_NOTES_CHARS,
    RANDOM_EVIDENCE_CHANCE,
)
from exam_progression.errors import (
    MinimumTimeNotMet,
    SessionStateError,
    ValidationError,
)
from exam_progression.models.profile import ProfileState, ProtectionKind
from exam_progression.models.session import (
    Confidence,
    EvidenceType,
    MockType,
    Session,
    SessionKind,
    SessionStatus,
    StudyPhase,
    Subject,
)

logger = structlog.get_logger()


class EvidenceRequirement(BaseModel):
    """What the evidence step will accept for the current study session."""

    photo_required: bool
    affirmations_left: int

    @property
    def affirmation_allowed(self) -> bool:
        return not self.photo_required and self.affirmations_left > 0


class SessionOutcome(BaseModel):
    """Rewards from a finalized session."""

    session_id: int
    xp: int
    gold: int
    duration: int
    protection: ProtectionKind | None = None
    quest_xp: int | None = None


def _session_id(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def _ensure_idle(profile: ProfileState) -> None:
    if profile.active_session is not None:
        raise SessionStateError(
            f"A {profile.active_session.kind.value} session is already in progress"
        )


def require_active(profile: ProfileState, kind: SessionKind | None = None) -> Session:
    session = profile.active_session
    if session is None:
        raise SessionStateError("No active session")
    if kind is not None and session.kind != kind:
        raise SessionStateError(f"No active {kind.value} session")
    return session


def start_study(
    profile: ProfileState,
    subject: Subject,
    topic: str,
    phase: StudyPhase,
    now: datetime,
) -> Session:
    """Open a study session with the timer running from ``now``."""
    _ensure_idle(profile)
    if not topic or not topic.strip():
        raise ValidationError("Topic is required")

    profile.active_session = Session(
        id=_session_id(now),
        kind=SessionKind.STUDY,
        subject=subject,
        topic=topic.strip(),
        phase=phase,
        start_time=now,
    )
    logger.info("study_started", subject=subject.value, phase=phase.value)
    return profile.active_session


def start_mock(
    profile: ProfileState,
    mock_type: MockType,
    source: str,
    now: datetime,
    subject: Subject | None = None,
) -> Session:
    """Open a mock test session. Sectional mocks must name their subject."""
    _ensure_idle(profile)
    if not source or not source.strip():
        raise ValidationError("Mock source is required")
    if mock_type == MockType.SECTIONAL and subject is None:
        raise ValidationError("Subject is required for a sectional mock")

    profile.active_session = Session(
        id=_session_id(now),
        kind=SessionKind.MOCK,
        mock_type=mock_type,
        subject=subject if mock_type == MockType.SECTIONAL else None,
        source=source.strip(),
        start_time=now,
    )
    logger.info("mock_started", mock_type=mock_type.value)
    return profile.active_session


def require_session(profile: ProfileState, session_id: int) -> Session:
    """The active session, provided it is still the one with ``session_id``."""
    session = profile.active_session
    if session is None or session.id != session_id:
        raise SessionStateError("Session ended while the evidence was being saved")
    return session


def awaiting_evidence(profile: ProfileState, kind: SessionKind) -> Session:
    """The active session of ``kind``, which must have its timer stopped."""
    session = require_active(profile, kind)
    if session.status != SessionStatus.EVIDENCE_PENDING:
        raise SessionStateError("Session is not awaiting evidence")
    return session


def _fail_minimum_time(profile: ProfileState, session: Session) -> MinimumTimeNotMet:
    penalty = register_failure(profile, "minimum-time")
    session.status = SessionStatus.FAILED
    profile.active_session = None
    return MinimumTimeNotMet(session.minimum_minutes, session.duration, penalty)


def _settle_duration(session: Session, now: datetime) -> int:
    if session.end_time is None:
        session.end_time = now
        session.duration = session.compute_duration(now)
    return session.duration


def _check_minimum_time(profile: ProfileState, session: Session, now: datetime) -> None:
    duration = session.duration if session.end_time else session.compute_duration(now)
    if duration < session.minimum_minutes:
        _settle_duration(session, now)
        raise _fail_minimum_time(profile, session)


def _draw_audit(session: Session, rng: random.Random) -> None:
    if session.audit_drawn:
        return
    session.audit_drawn = True
    session.photo_required = rng.random() < RANDOM_EVIDENCE_CHANCE
    if session.photo_required:
        logger.info("random_evidence_audit", session_id=session.id)


def stop_timer(profile: ProfileState, now: datetime, rng: random.Random) -> Session:
    """Stop the clock and move to the evidence step.

    Study sessions draw their random photo audit here, once.

    Raises:
        MinimumTimeNotMet: the session was too short; the failure penalty
            is applied and the session discarded.
    """
    session = require_active(profile)
    if session.status != SessionStatus.ACTIVE:
        raise SessionStateError("Session timer already stopped")

    _settle_duration(session, now)
    if session.duration < session.minimum_minutes:
        raise _fail_minimum_time(profile, session)

    if session.kind == SessionKind.STUDY:
        _draw_audit(session, rng)
    session.status = SessionStatus.EVIDENCE_PENDING
    return session


def roll_affirmation_week(profile: ProfileState, now: datetime) -> None:
    current = week_start(now)
    if profile.affirmation_week_start != current:
        profile.weekly_affirmations = 0
        profile.affirmation_week_start = current


def affirmations_left(profile: ProfileState, now: datetime) -> int:
    roll_affirmation_week(profile, now)
    return max(0, MAX_AFFIRMATIONS_PER_WEEK - profile.weekly_affirmations)


def evidence_requirement(
    profile: ProfileState, rng: random.Random, now: datetime
) -> EvidenceRequirement:
    """What the evidence step accepts for the current study session."""
    session = awaiting_evidence(profile, SessionKind.STUDY)
    _draw_audit(session, rng)
    return EvidenceRequirement(
        photo_required=session.photo_required,
        affirmations_left=affirmations_left(profile, now),
    )


def attach_affirmation(
    profile: ProfileState, text: str, now: datetime, rng: random.Random
) -> Session:
    """Use a written affirmation as evidence (reduced gold)."""
    session = awaiting_evidence(profile, SessionKind.STUDY)
    _draw_audit(session, rng)
    if session.photo_required:
        raise ValidationError("Random verification: photo evidence required for this session")
    if affirmations_left(profile, now) == 0:
        raise ValidationError("Weekly affirmation limit reached. Photo required.")
    if text is None or len(text.strip()) < MIN_AFFIRMATION_CHARS:
        raise ValidationError(f"Affirmation must be at least {MIN_AFFIRMATION_CHARS} characters")

    session.evidence_type = EvidenceType.AFFIRMATION
    session.evidence_ref = text.strip()
    session.status = SessionStatus.REFLECTION_PENDING
    return session


def attach_photo(profile: ProfileState, session_id: int, image_id: str) -> Session:
    """Attach a photo the blob store has already confirmed as ``image_id``.

    Raises:
        SessionStateError: the session was cancelled or replaced while the
            photo was being saved.
    """
    session = require_session(profile, session_id)
    if session.kind != SessionKind.STUDY or session.status != SessionStatus.EVIDENCE_PENDING:
        raise SessionStateError("Session is not awaiting evidence")
    if not image_id:
        raise ValidationError("Photo was not stored")

    session.evidence_type = EvidenceType.PHOTO
    session.evidence_ref = image_id
    session.status = SessionStatus.REFLECTION_PENDING
    logger.info("evidence_attached", session_id=session.id, image_id=image_id)
    return session


def finalize_study(
    profile: ProfileState,
    notes: str,
    difficulty: str | None,
    mistakes: str | None,
    revision_needed: bool | None,
    confidence: Confidence | None,
    now: datetime,
) -> SessionOutcome:
    """Credit a completed study session using the evidence already attached.

    Raises:
        MinimumTimeNotMet: shorter than the study minimum (penalty applied,
            session discarded).
        SessionStateError: no evidence has been attached yet.
        ValidationError: notes missing; nothing changes.
    """
    session = require_active(profile, SessionKind.STUDY)
    _check_minimum_time(profile, session, now)
    if session.status != SessionStatus.REFLECTION_PENDING:
        raise SessionStateError("Attach a photo or affirmation before finishing the session")
    if notes is None or len(notes.strip()) < MIN_NOTES_CHARS:
        raise ValidationError(f"Notes must be at least {MIN_NOTES_CHARS} characters")

    if session.evidence_type == EvidenceType.AFFIRMATION:
        roll_affirmation_week(profile, now)
        profile.weekly_affirmations += 1

    xp = study_xp(session.duration, session.phase, profile.level)
    credited = add_xp(profile, xp)
    gold = gold_for(credited, session.evidence_type)
    profile.gold += gold

    profile.total_study_minutes += session.duration
    profile.total_sessions += 1
    if session.subject in profile.skills:
        profile.skills[session.subject] += credited
    _count_study_habits(profile, session, now)

    update_study_streak(profile, now)
    clear_failure_streak(profile)

    session.notes = notes.strip()
    session.difficulty = difficulty
    session.mistakes = mistakes
    session.revision_needed = revision_needed
    session.confidence = confidence
    session.xp_earned = credited
    session.gold_earned = gold
    session.completed_at = now
    session.status = SessionStatus.FINALIZED
    profile.record_history(session)
    profile.active_session = None

    logger.info(
        "study_finalized",
        session_id=session.id,
        duration=session.duration,
        xp=credited,
        gold=gold,
    )
    return SessionOutcome(session_id=session.id, xp=credited, gold=gold, duration=session.duration)


def validate_mock_scores(score: float | None, total_questions: int | None, correct: int | None) -> None:
    if score is None or total_questions is None or correct is None:
        raise ValidationError("Please fill all score fields")
    if total_questions < 0 or not 0 <= correct <= total_questions:
        raise ValidationError("Correct answers must be between 0 and the total questions")


def finalize_mock(
    profile: ProfileState,
    evidence_ref: str | None,
    score: float | None,
    total_questions: int | None,
    correct: int | None,
    analysis: str | None,
    now: datetime,
) -> SessionOutcome:
    """Credit a stopped mock test and grant decay protection.

    Raises:
        MinimumTimeNotMet: shorter than the mock minimum (penalty applied,
            session discarded).
        SessionStateError: the timer is still running.
        ValidationError: screenshot or score fields missing; nothing changes.
    """
    session = require_active(profile, SessionKind.MOCK)
    _check_minimum_time(profile, session, now)
    if session.status != SessionStatus.EVIDENCE_PENDING:
        raise SessionStateError("Stop the mock timer before submitting the score")
    if not evidence_ref:
        raise ValidationError("Screenshot is mandatory for mock tests")
    validate_mock_scores(score, total_questions, correct)

    xp = mock_xp(session.mock_type, profile.level)
    credited = add_xp(profile, xp)
    gold = gold_for(credited, EvidenceType.SCREENSHOT)
    profile.gold += gold

    kind = ProtectionKind.FULL if session.mock_type == MockType.FULL else ProtectionKind.PARTIAL
    grant_protection(profile, kind, now)

    profile.last_mock_date = now
    profile.total_mocks += 1
    profile.habits.weekly_mock += 1
    clear_failure_streak(profile)

    session.evidence_type = EvidenceType.SCREENSHOT
    session.evidence_ref = evidence_ref
    session.score = score
    session.total_questions = total_questions
    session.correct = correct
    session.analysis = analysis
    session.xp_earned = credited
    session.gold_earned = gold
    session.completed_at = now
    session.status = SessionStatus.FINALIZED
    profile.record_history(session)
    profile.active_session = None

    logger.info("mock_finalized", session_id=session.id, xp=credited, gold=gold, protection=kind.value)
    return SessionOutcome(
        session_id=session.id,
        xp=credited,
        gold=gold,
        duration=session.duration,
        protection=kind,
    )


def cancel_session(profile: ProfileState, now: datetime) -> AppliedPenalty:
    """Abandon the active session. Counts as a failure."""
    session = require_active(profile)
    _settle_duration(session, now)
    session.status = SessionStatus.FAILED
    profile.active_session = None
    return register_failure(profile, "cancelled")


def _count_study_habits(profile: ProfileState, session: Session, now: datetime) -> None:
    habits = profile.habits
    habits.roll_day(date_key(now))
    habits.daily_study += 1
    if session.phase == StudyPhase.REVISION:
        habits.daily_revision += 1
        if session.subject == Subject.QUANT:
            habits.formula_review += 1
