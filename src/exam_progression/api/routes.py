"""REST API routes for the local study tracker UI."""

import base64
import binascii
import functools
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from exam_progression.config import get_settings
from exam_progression.engine.rewards import reward_display_name
from exam_progression.errors import (
    InsufficientGold,
    MinimumTimeNotMet,
    ProgressionError,
    SessionStateError,
    StorageFailure,
    ValidationError,
)
from exam_progression.models.session import Confidence, MockType, StudyPhase, Subject
from exam_progression.tracker import ProgressTracker

logger = structlog.get_logger()
router = APIRouter(prefix="/api")


@functools.lru_cache
def get_tracker() -> ProgressTracker:
    """Process-wide tracker, with daily maintenance applied on first use."""
    tracker = ProgressTracker.from_settings(get_settings())
    tracker.run_maintenance()
    return tracker


@contextmanager
def _http_errors() -> Iterator[None]:
    """Translate engine errors into HTTP responses."""
    try:
        yield
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except MinimumTimeNotMet as e:
        raise HTTPException(status_code=409, detail={
            "error": "minimum-time-not-met",
            "message": str(e),
            "required_minutes": e.required_minutes,
            "actual_minutes": e.actual_minutes,
            "penalty": e.penalty.model_dump() if e.penalty else None,
        })
    except SessionStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InsufficientGold as e:
        raise HTTPException(status_code=402, detail=str(e))
    except StorageFailure as e:
        logger.error("storage_failure", error=str(e))
        raise HTTPException(status_code=503, detail=str(e))
    except ProgressionError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _decode_image(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=422, detail="Image must be base64 encoded")


class AwakeningRequest(BaseModel):
    vision: str
    anti_vision: str


class VisionRequest(BaseModel):
    vision: str


class StudyStartRequest(BaseModel):
    subject: Subject
    topic: str
    phase: StudyPhase


class MockStartRequest(BaseModel):
    mock_type: MockType
    source: str
    subject: Subject | None = None


class AffirmationRequest(BaseModel):
    text: str


class ImageRequest(BaseModel):
    image_base64: str


class ReflectionRequest(BaseModel):
    notes: str
    difficulty: str | None = None
    mistakes: str | None = None
    revision_needed: bool | None = None
    confidence: Confidence | None = None


class MockSubmitRequest(BaseModel):
    screenshot_base64: str
    score: float | None = None
    total_questions: int | None = None
    correct: int | None = None
    analysis: str | None = None


class RewardClaimRequest(BaseModel):
    name: str
    cost: int = Field(ge=0)


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/profile")
async def get_profile(tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    """Current profile snapshot plus the export reminder flag."""
    return {
        "profile": tracker.profile.model_dump(mode="json"),
        "quest_status": tracker.quest_status(),
        "export_reminder_due": tracker.export_reminder_due(),
    }


@router.post("/awakening")
async def complete_awakening(
    body: AwakeningRequest, tracker: ProgressTracker = Depends(get_tracker)
) -> dict:
    with _http_errors():
        return tracker.complete_awakening(body.vision, body.anti_vision).model_dump()


@router.put("/awakening/vision")
async def update_vision(body: VisionRequest, tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    with _http_errors():
        return tracker.update_vision(body.vision).model_dump()


@router.post("/study/start")
async def start_study(body: StudyStartRequest, tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    with _http_errors():
        session = tracker.start_study(body.subject, body.topic, body.phase)
    return session.model_dump(mode="json")


@router.post("/mock/start")
async def start_mock(body: MockStartRequest, tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    with _http_errors():
        session = tracker.start_mock(body.mock_type, body.source, body.subject)
    return session.model_dump(mode="json")


@router.get("/session/timer")
async def session_timer(tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    with _http_errors():
        return tracker.timer()


@router.post("/session/stop")
async def stop_session(tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    with _http_errors():
        session = tracker.stop_timer()
    return session.model_dump(mode="json")


@router.post("/session/cancel")
async def cancel_session(tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    with _http_errors():
        return tracker.cancel_session().model_dump()


@router.get("/study/evidence")
async def evidence_requirement(tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    with _http_errors():
        requirement = tracker.evidence_requirement()
    return {**requirement.model_dump(), "affirmation_allowed": requirement.affirmation_allowed}


@router.post("/study/evidence/affirmation")
async def submit_affirmation(
    body: AffirmationRequest, tracker: ProgressTracker = Depends(get_tracker)
) -> dict:
    with _http_errors():
        session = tracker.submit_affirmation(body.text)
    return session.model_dump(mode="json")


@router.post("/study/evidence/photo")
async def submit_photo(body: ImageRequest, tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    image = _decode_image(body.image_base64)
    with _http_errors():
        session = await tracker.submit_photo(image)
    return session.model_dump(mode="json")


@router.post("/study/finalize")
async def finalize_study(body: ReflectionRequest, tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    with _http_errors():
        outcome = tracker.finalize_study(
            body.notes,
            difficulty=body.difficulty,
            mistakes=body.mistakes,
            revision_needed=body.revision_needed,
            confidence=body.confidence,
        )
    return outcome.model_dump(mode="json")


@router.post("/mock/submit")
async def submit_mock(body: MockSubmitRequest, tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    screenshot = _decode_image(body.screenshot_base64)
    with _http_errors():
        outcome = await tracker.submit_mock(
            screenshot, body.score, body.total_questions, body.correct, body.analysis
        )
    return outcome.model_dump(mode="json")


@router.post("/rewards/claim")
async def claim_reward(body: RewardClaimRequest, tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    with _http_errors():
        claim = tracker.claim_reward(body.name, body.cost)
    return {
        **claim.model_dump(mode="json"),
        "display_name": reward_display_name(claim.name),
        "gold": tracker.profile.gold,
    }


@router.get("/readiness")
async def get_readiness(tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    result = tracker.readiness()
    return {**result.model_dump(), "range": result.range_label}


@router.get("/report")
async def get_report(tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    return tracker.report().model_dump(mode="json")


@router.post("/report/exported")
async def mark_exported(tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    with _http_errors():
        tracker.mark_exported()
    return {"export_reminder_due": False}


@router.get("/storage")
async def storage_usage(tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    usage = await tracker.storage_usage()
    return {**usage.model_dump(), "size_mb": usage.size_mb}


@router.post("/storage/cleanup")
async def cleanup_storage(tracker: ProgressTracker = Depends(get_tracker)) -> dict:
    with _http_errors():
        deleted = await tracker.cleanup_evidence()
    return {"deleted": deleted}
