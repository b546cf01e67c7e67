"""Placement test models and band mapping."""

from pydantic import BaseModel, Field, field_validator

from ielts_tutor.models.profile import validate_band


class PlacementQuestion(BaseModel):
    """A multiple-choice placement question."""

    id: str
    text: str
    options: list[str] = Field(default_factory=list)
    correct_answer: str


class PlacementResult(BaseModel):
    level: str
    band: float

    @field_validator("band")
    @classmethod
    def _check_band(cls, value: float) -> float:
        return validate_band(value)


def score_to_band(score: float) -> float:
    """Convert a 0-100 score to an IELTS band (1.0-9.0) in half-band steps.

    Uses piecewise linear mapping to approximate the IELTS band distribution.
    """
    score = max(0.0, min(100.0, score))
    segments = [
        (0, 1.0),
        (20, 2.5),   # Low: 0-20% → 1.0-2.5
        (40, 4.0),   # Below average: 20-40% → 2.5-4.0
        (55, 5.5),   # Average: 40-55% → 4.0-5.5 (most learners here)
        (70, 6.5),   # Above average: 55-70% → 5.5-6.5
        (85, 7.5),   # Good: 70-85% → 6.5-7.5
        (95, 8.5),   # Very good: 85-95% → 7.5-8.5
        (100, 9.0),  # Expert: 95-100% → 8.5-9.0
    ]
    for i in range(len(segments) - 1):
        s0, t0 = segments[i]
        s1, t1 = segments[i + 1]
        if s0 <= score <= s1:
            ratio = (score - s0) / (s1 - s0)
            return round((t0 + ratio * (t1 - t0)) * 2) / 2
    return 9.0


def band_to_level(band: float) -> str:
    """Map a band to the proficiency label shown on the dashboard."""
    if band < 4.5:
        return "A1/A2"
    elif band < 7.0:
        return "B1/B2"
    else:
        return "C1/C2"
