"""Shared fixtures: a scripted content provider and fake audio devices."""

import pytest

from ielts_tutor.errors import GenerationError
from ielts_tutor.models.placement import PlacementQuestion, PlacementResult
from ielts_tutor.models.profile import ExamTrack, Skill, UserProfile
from ielts_tutor.models.session import (
    PracticeModule,
    QuizQuestion,
    SessionContext,
    SessionSummary,
)
from ielts_tutor.providers.base import ContentProvider


class ScriptedProvider(ContentProvider):
    """Replies with queued tutor turns; an Exception in the queue is raised."""

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.calls: list[tuple] = []
        self.spoken: list[str] = []
        self.speech: bytes | None = b"\x01\x00" * 10
        self.image: bytes | None = b"\x89PNG fake"
        self.summary: SessionSummary | Exception = SessionSummary()
        self.placement: PlacementResult | Exception = PlacementResult(level="B1/B2", band=6.0)
        self.placement_questions: list[PlacementQuestion] = []
        self.modules: list[PracticeModule] = []
        self.quiz: list[QuizQuestion] = [
            QuizQuestion(question="Pick one", options=["a", "b"], correct_answer="a")
        ]

    def _next(self) -> str:
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def start_session(self, context, opening):
        self.calls.append(("start_session", opening))
        return self._next()

    async def continue_session(self, context, transcript, user_turn):
        self.calls.append(("continue_session", list(transcript), user_turn))
        return self._next()

    async def synthesize_speech(self, text):
        self.spoken.append(text)
        return self.speech

    async def synthesize_image(self, descriptor):
        self.calls.append(("synthesize_image", descriptor))
        return self.image

    async def assess_placement(self, score, total):
        self.calls.append(("assess_placement", score, total))
        if isinstance(self.placement, Exception):
            raise self.placement
        return self.placement

    async def generate_placement_test(self):
        return self.placement_questions

    async def generate_practice_modules(self, skill, band, track):
        self.calls.append(("generate_practice_modules", skill, band, track))
        return self.modules

    async def generate_end_quiz(self, topic, band):
        return self.quiz

    async def summarize_session(self, context, transcript):
        if isinstance(self.summary, Exception):
            raise self.summary
        return self.summary


class FakePlayback:
    def __init__(self):
        self.played: list[bytes] = []
        self.stops = 0
        self.closed = False

    def play_clip(self, pcm16):
        self.played.append(pcm16)

    def stop_clip(self):
        self.stops += 1

    def close(self):
        self.closed = True


class FakeRecorder:
    def __init__(self, audio=b"RIFF fake wav", error: Exception | None = None):
        self.audio = audio
        self.error = error
        self.started = False
        self.cancelled = False

    def start(self):
        if self.error is not None:
            raise self.error
        self.started = True

    def stop(self):
        self.started = False
        return self.audio

    def cancel(self):
        self.started = False
        self.cancelled = True


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def profile():
    return UserProfile(name="Aiko", exam_track=ExamTrack.ACADEMIC, estimated_band=6.0)


def make_context(skill=Skill.READING, title="The History of Tea", track=ExamTrack.ACADEMIC):
    return SessionContext(
        skill=skill,
        module=PracticeModule(id="m1", title=title, description="Practice"),
        exam_track=track,
        band=6.0,
        learner_name="Aiko",
    )


@pytest.fixture
def generation_error():
    return GenerationError("provider down")
