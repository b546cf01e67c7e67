"""REST API routes for profile, placement, modules and the vocabulary vault."""

import structlog
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ielts_tutor.config import get_settings
from ielts_tutor.errors import GenerationError, ValidationError
from ielts_tutor.models.placement import PlacementQuestion
from ielts_tutor.models.profile import ExamTrack, Skill, UserProfile
from ielts_tutor.placement import apply_placement, assess, score_answers
from ielts_tutor.progress.vault import toggle_mastery
from ielts_tutor.progress.views import dashboard, filter_vault, vault_stats
from ielts_tutor.providers.openai_provider import get_provider
from ielts_tutor.storage.profile_store import ProfileStore

logger = structlog.get_logger()
router = APIRouter(prefix="/api")


class OnboardingRequest(BaseModel):
    name: str = Field(min_length=1)
    exam_track: ExamTrack = ExamTrack.ACADEMIC
    target_band: float = 7.0


class TrackRequest(BaseModel):
    exam_track: ExamTrack


class PlacementSubmission(BaseModel):
    questions: list[PlacementQuestion] = Field(min_length=1)
    answers: dict[str, str]


class MasteryRequest(BaseModel):
    word: str


def get_store() -> ProfileStore:
    return ProfileStore.from_settings(get_settings())


def require_profile(store: ProfileStore) -> UserProfile:
    profile = store.load()
    if profile is None:
        raise HTTPException(status_code=404, detail="No profile found")
    return profile


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/profile")
async def get_profile() -> dict:
    profile = require_profile(get_store())
    return profile.model_dump(mode="json")


@router.post("/profile", status_code=201)
async def create_profile(request: OnboardingRequest) -> dict:
    """Finish onboarding: create and store a fresh profile."""
    try:
        profile = UserProfile(
            name=request.name.strip(),
            exam_track=request.exam_track,
            target_band=request.target_band,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    get_store().save(profile)
    logger.info("profile_created", exam_track=profile.exam_track.value)
    return profile.model_dump(mode="json")


@router.delete("/profile")
async def delete_profile() -> dict:
    """Sign out: discard the stored profile."""
    get_store().clear()
    return {"status": "cleared"}


@router.put("/profile/track")
async def switch_track(request: TrackRequest) -> dict:
    store = get_store()
    require_profile(store)
    profile = store.update_profile(exam_track=request.exam_track)
    logger.info("exam_track_switched", exam_track=profile.exam_track.value)
    return profile.model_dump(mode="json")


@router.get("/dashboard")
async def get_dashboard() -> dict:
    return dashboard(require_profile(get_store()))


@router.get("/placement/test")
async def get_placement_test() -> list[dict]:
    """Generate a fresh placement test."""
    try:
        questions = await get_provider().generate_placement_test()
    except GenerationError as e:
        logger.error("placement_test_unavailable", error=str(e))
        raise HTTPException(status_code=502, detail="Could not generate the placement test") from e
    return [q.model_dump() for q in questions]


@router.post("/placement")
async def submit_placement(submission: PlacementSubmission) -> dict:
    """Score the test, assess the level and finish onboarding."""
    store = get_store()
    profile = require_profile(store)
    try:
        score = score_answers(submission.questions, submission.answers)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail={"message": str(e), "question_ids": e.question_ids},
        ) from e
    result = await assess(get_provider(), score, len(submission.questions))
    profile = apply_placement(profile, result)
    store.save(profile)
    return {
        "score": score,
        "total": len(submission.questions),
        "level": result.level,
        "band": result.band,
        "profile": profile.model_dump(mode="json"),
    }


@router.get("/modules/{skill}")
async def list_modules(skill: Skill) -> list[dict]:
    """Practice modules for a skill, pitched at the learner's band."""
    profile = require_profile(get_store())
    try:
        modules = await get_provider().generate_practice_modules(
            skill, profile.band_or_default, profile.exam_track
        )
    except GenerationError as e:
        logger.error("modules_unavailable", skill=skill.value, error=str(e))
        raise HTTPException(status_code=502, detail="Could not generate practice modules") from e
    return [m.model_dump(mode="json") for m in modules]


@router.get("/vault")
async def list_vault(search: str = "", skill: Skill | None = None) -> dict:
    profile = require_profile(get_store())
    items = filter_vault(profile, search=search, skill=skill)
    return {
        "items": [item.model_dump(mode="json") for item in items],
        "stats": vault_stats(profile),
    }


@router.post("/vault/mastery")
async def toggle_vault_mastery(request: MasteryRequest) -> dict:
    store = get_store()
    profile = toggle_mastery(require_profile(store), request.word)
    store.save(profile)
    entry = next((item for item in profile.vocab_vault if item.word == request.word), None)
    return {
        "word": request.word,
        "mastered": entry.mastered if entry else None,
        "stats": vault_stats(profile),
    }
