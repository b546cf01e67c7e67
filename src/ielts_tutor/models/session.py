"""Tutoring session data models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from ielts_tutor.models.profile import ExamTrack, Skill


class SessionStatus(StrEnum):
    """Session lifecycle states."""

    INITIALIZING = "initializing"
    ACTIVE = "active"
    AWAITING_RESPONSE = "awaiting_response"
    COMPLETE = "complete"
    FAILED = "failed"


class Role(StrEnum):
    USER = "user"
    TUTOR = "tutor"


class ModuleKind(StrEnum):
    TUTORIAL = "tutorial"
    PRACTICE = "practice"
    MOCK = "mock"


class PracticeModule(BaseModel):
    """A practice unit offered for a skill."""

    id: str
    title: str
    description: str = ""
    kind: ModuleKind = ModuleKind.PRACTICE

    @property
    def is_task1(self) -> bool:
        """Whether this is a Writing Task 1 (chart description) module."""
        return "task 1" in self.title.lower() or "task 1" in self.description.lower()


class Turn(BaseModel):
    """A single transcript entry."""

    role: Role
    text: str
    timestamp: datetime = Field(default_factory=datetime.now)
    is_error: bool = False
    has_audio: bool = False


class UserTurn(BaseModel):
    """Input for the next request to the content provider.

    ``audio`` carries a recorded spoken answer (WAV bytes); ``text`` is then
    the instruction accompanying it.
    """

    text: str
    audio: bytes | None = None


class SessionContext(BaseModel):
    """Everything the provider needs to frame a session."""

    skill: Skill
    module: PracticeModule
    exam_track: ExamTrack = ExamTrack.ACADEMIC
    band: float = 5.5
    learner_name: str = ""


class SessionSummary(BaseModel):
    """Extraction exposed by a completed session."""

    vocabulary: list[str] = Field(default_factory=list)
    grammar: list[str] = Field(default_factory=list)
    feedback: str = "Session complete"


class SessionOutcome(BaseModel):
    """Input of the progress merge."""

    skill: Skill
    module_title: str
    vocabulary: list[str] = Field(default_factory=list)
    grammar: list[str] = Field(default_factory=list)
    feedback: str = ""
    score: float | None = None


class QuizQuestion(BaseModel):
    question: str
    options: list[str] = Field(default_factory=list)
    correct_answer: str = ""
