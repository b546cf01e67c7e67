"""Placement test scoring and level assignment."""

import structlog

from ielts_tutor.errors import GenerationError, ValidationError
from ielts_tutor.models.placement import (
    PlacementQuestion,
    PlacementResult,
    band_to_level,
    score_to_band,
)
from ielts_tutor.models.profile import UserProfile
from ielts_tutor.providers.base import ContentProvider

logger = structlog.get_logger()


def score_answers(questions: list[PlacementQuestion], answers: dict[str, str]) -> int:
    """Count answers matching the correct option.

    Raises:
        ValidationError: A question was left unanswered.
    """
    missing = [q.id for q in questions if not answers.get(q.id, "").strip()]
    if missing:
        raise ValidationError("Please answer every placement question", question_ids=missing)
    return sum(1 for q in questions if answers[q.id].strip() == q.correct_answer.strip())


def fallback_result(score: int, total: int) -> PlacementResult:
    """Band derived locally from the raw score."""
    percent = 100.0 * score / total if total else 0.0
    band = max(score_to_band(percent), 1.0)
    return PlacementResult(level=band_to_level(band), band=band)


async def assess(provider: ContentProvider, score: int, total: int) -> PlacementResult:
    """Ask the provider for a level, falling back to the local mapping."""
    try:
        result = await provider.assess_placement(score, total)
    except GenerationError as e:
        result = fallback_result(score, total)
        logger.warning(
            "placement_assessment_fallback",
            score=score,
            total=total,
            band=result.band,
            error=str(e),
        )
        return result
    logger.info("placement_assessed", score=score, total=total, level=result.level, band=result.band)
    return result


def apply_placement(profile: UserProfile, result: PlacementResult) -> UserProfile:
    """New profile with the assessed level and onboarding finished."""
    return profile.model_copy(
        update={
            "current_level": result.level,
            "estimated_band": result.band,
            "onboarding_complete": True,
        }
    )
