"""User profile aggregate: per-skill progress, activity log and vocabulary vault."""

import uuid
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Skill(StrEnum):
    """IELTS skills."""

    READING = "reading"
    LISTENING = "listening"
    WRITING = "writing"
    SPEAKING = "speaking"

    @property
    def is_audio(self) -> bool:
        """Whether tutor turns for this skill are read aloud."""
        return self in (Skill.SPEAKING, Skill.LISTENING)


class ExamTrack(StrEnum):
    """IELTS test variants."""

    ACADEMIC = "academic"
    GENERAL = "general"


def validate_band(value: float | None) -> float | None:
    """Check an IELTS band: 1-9 in half-band steps."""
    if value is None:
        return None
    if not 1.0 <= value <= 9.0 or (value * 2) != int(value * 2):
        raise ValueError(f"band must be between 1 and 9 in 0.5 steps, got {value}")
    return float(value)


def new_activity_id() -> str:
    return uuid.uuid4().hex[:12]


class SkillProgress(BaseModel):
    """Accumulated results for one skill."""

    skill: Skill
    sessions_completed: int = Field(default=0, ge=0)
    last_feedback_summary: str = ""
    learned_vocab: list[str] = Field(default_factory=list)
    learned_grammar: list[str] = Field(default_factory=list)

    @property
    def completion_percent(self) -> int:
        """Dashboard progress: 20% per completed session, capped at 100."""
        return min(self.sessions_completed * 20, 100)


class ActivityRecord(BaseModel):
    """One completed session in the activity log."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_activity_id)
    timestamp: datetime = Field(default_factory=datetime.now)
    skill: Skill
    title: str
    score: float | None = None


class VocabularyItem(BaseModel):
    """An entry of the cross-skill vocabulary vault."""

    word: str
    source_skill: Skill
    date_added: datetime = Field(default_factory=datetime.now)
    mastered: bool = False
    context: str | None = None

    @property
    def key(self) -> str:
        return self.word.lower()


class UserProfile(BaseModel):
    name: str
    exam_track: ExamTrack = ExamTrack.ACADEMIC
    target_band: float = 7.0
    current_level: str | None = None
    estimated_band: float | None = None
    onboarding_complete: bool = False
    progress: list[SkillProgress] = Field(default_factory=list)
    activity_log: list[ActivityRecord] = Field(default_factory=list)
    vocab_vault: list[VocabularyItem] = Field(default_factory=list)

    @field_validator("target_band", "estimated_band")
    @classmethod
    def _check_band(cls, value: float | None) -> float | None:
        return validate_band(value)

    def progress_for(self, skill: Skill) -> SkillProgress | None:
        """Get the progress ledger of a skill, if it was ever completed."""
        for entry in self.progress:
            if entry.skill == skill:
                return entry
        return None

    def vault_entry(self, word: str) -> VocabularyItem | None:
        """Case-insensitive vault lookup."""
        key = word.lower()
        for item in self.vocab_vault:
            if item.key == key:
                return item
        return None

    @property
    def band_or_default(self) -> float:
        """Band used to pitch content before a placement test was taken."""
        return self.estimated_band if self.estimated_band is not None else 5.5
