"""Content provider contract consulted by the tutoring core."""

from abc import ABC, abstractmethod

from ielts_tutor.models.placement import PlacementQuestion, PlacementResult
from ielts_tutor.models.profile import ExamTrack, Skill
from ielts_tutor.models.session import (
    PracticeModule,
    QuizQuestion,
    SessionContext,
    SessionSummary,
    Turn,
    UserTurn,
)


class ContentProvider(ABC):
    """Text, speech and image generation backend.

    Text methods raise ``GenerationError`` on any transport or provider
    failure. Media methods return ``None`` when the capability is
    unavailable; that is not an error.
    """

    @abstractmethod
    async def start_session(self, context: SessionContext, opening: str) -> str:
        """Return the tutor's opening turn."""

    @abstractmethod
    async def continue_session(
        self,
        context: SessionContext,
        transcript: list[Turn],
        user_turn: UserTurn,
    ) -> str:
        """Return the tutor's reply to ``user_turn`` given the prior transcript."""

    @abstractmethod
    async def synthesize_speech(self, text: str) -> bytes | None:
        """Return PCM16 mono audio for ``text``."""

    @abstractmethod
    async def synthesize_image(self, descriptor: str) -> bytes | None:
        """Return PNG bytes for an image described by ``descriptor``."""

    @abstractmethod
    async def assess_placement(self, score: int, total: int) -> PlacementResult:
        """Estimate level and band from a placement test score."""

    @abstractmethod
    async def generate_placement_test(self) -> list[PlacementQuestion]:
        """Return multiple-choice placement questions."""

    @abstractmethod
    async def generate_practice_modules(
        self, skill: Skill, band: float, track: ExamTrack
    ) -> list[PracticeModule]:
        """Return practice modules for a skill at a band."""

    @abstractmethod
    async def generate_end_quiz(self, topic: str, band: float) -> list[QuizQuestion]:
        """Return a short quiz closing a session."""

    @abstractmethod
    async def summarize_session(
        self, context: SessionContext, transcript: list[Turn]
    ) -> SessionSummary:
        """Extract vocabulary, grammar points and feedback from a transcript."""
