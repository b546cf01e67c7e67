"""Tutoring session state machine.

``INITIALIZING -> ACTIVE <-> AWAITING_RESPONSE -> COMPLETE``, with ``FAILED``
when the opening turn cannot be generated. Recording a spoken answer is a
sub-state of ``ACTIVE`` for speaking sessions.
"""

import asyncio
import random
from collections.abc import Awaitable
from typing import Protocol, TypeVar

import structlog

from ielts_tutor.errors import (
    GenerationError,
    SessionBusyError,
    SessionStateError,
    ValidationError,
)
from ielts_tutor.models.profile import Skill, UserProfile
from ielts_tutor.models.session import (
    PracticeModule,
    QuizQuestion,
    Role,
    SessionContext,
    SessionOutcome,
    SessionStatus,
    SessionSummary,
    Turn,
    UserTurn,
)
from ielts_tutor.protocol.directives import CorrectionCategory, ParsedTurn
from ielts_tutor.protocol.parser import parse_turn
from ielts_tutor.providers.base import ContentProvider
from ielts_tutor.session.collector import PendingQuestion, QuestionCollector
from ielts_tutor.session.prompts import (
    ERROR_TURN_TEXT,
    SPOKEN_ANSWER_PROMPT,
    TASK1_CHART_TYPES,
    build_chart_prompt,
    build_opening_prompt,
    uses_visual_aid,
)

logger = structlog.get_logger()

T = TypeVar("T")

SPOKEN_TURN_LABEL = "[Spoken response]"


class ClipPlayer(Protocol):
    def play_clip(self, pcm16: bytes) -> None: ...

    def stop_clip(self) -> None: ...

    def close(self) -> None: ...


class AnswerRecorder(Protocol):
    def start(self) -> None: ...

    def stop(self) -> bytes: ...

    def cancel(self) -> None: ...


def _union(first: list[str], second: list[str]) -> list[str]:
    """Order-preserving exact-string union, skipping blank entries."""
    return list(dict.fromkeys(item for item in [*first, *second] if item.strip()))


def build_context(profile: UserProfile, skill: Skill, module: PracticeModule) -> SessionContext:
    """Session framing for a learner."""
    return SessionContext(
        skill=skill,
        module=module,
        exam_track=profile.exam_track,
        band=profile.band_or_default,
        learner_name=profile.name,
    )


class TutorSession:
    """Conducts one tutoring session for a single skill and module.

    Only one user turn is processed at a time; a second submission while a
    request is outstanding raises ``SessionBusyError``. ``close`` cancels
    any outstanding request so a late response is never applied.

    Args:
        provider: Content provider.
        context: Skill, module, track and band of the session.
        playback: Optional speaker for synthesized tutor audio.
        recorder: Optional microphone for speaking answers.
    """

    def __init__(
        self,
        provider: ContentProvider,
        context: SessionContext,
        playback: ClipPlayer | None = None,
        recorder: AnswerRecorder | None = None,
    ):
        self.provider = provider
        self.context = context
        self.playback = playback
        self.recorder = recorder
        self.status = SessionStatus.INITIALIZING
        self.transcript: list[Turn] = []
        self.collector = QuestionCollector()
        self.last_parsed: ParsedTurn | None = None
        self.visual_aid: bytes | None = None
        self.audio_clip: bytes | None = None
        self.error: str | None = None
        self.recording = False
        self._lock = asyncio.Lock()
        self._inflight: asyncio.Future | None = None
        self._closed = False
        self._vocabulary: list[str] = []
        self._grammar: list[str] = []
        self._summary: SessionSummary | None = None

    @property
    def skill(self) -> Skill:
        return self.context.skill

    @property
    def module(self) -> PracticeModule:
        return self.context.module

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def complete(self) -> bool:
        return self.status == SessionStatus.COMPLETE

    @property
    def pending_questions(self) -> list[PendingQuestion]:
        return self.collector.pending

    async def start(self) -> None:
        """Request the opening turn.

        Raises:
            GenerationError: The opening could not be generated; the session
                is left in ``FAILED``.
        """
        self._require(SessionStatus.INITIALIZING)
        logger.info("session_starting", skill=self.skill.value, module=self.module.title)
        async with self._lock:
            try:
                text = await self._run(
                    self.provider.start_session(self.context, build_opening_prompt(self.context))
                )
            except GenerationError as e:
                self.status = SessionStatus.FAILED
                self.error = str(e)
                logger.error("session_start_failed", error=str(e))
                raise
            await self._accept_tutor_turn(text)
            if uses_visual_aid(self.context):
                chart_type = random.choice(TASK1_CHART_TYPES)
                self.visual_aid = await self._run(
                    self.provider.synthesize_image(build_chart_prompt(chart_type, self.context.band))
                )

    async def send_text(self, text: str) -> ParsedTurn | None:
        """Submit a typed message.

        Returns:
            The parsed tutor reply, or None if the request failed (an error
            turn is appended and the session stays active).
        """
        if not text.strip():
            raise ValidationError("Message is empty")
        self._ensure_can_send()
        return await self._exchange(UserTurn(text=text), text)

    def set_answer(self, index: int, value: str) -> None:
        self._require(SessionStatus.ACTIVE)
        self.collector.set_answer(index, value)

    async def submit_answers(self) -> ParsedTurn | None:
        """Submit the answers to the pending questions as the next user turn.

        Raises:
            ValidationError: Some question is unanswered; nothing is sent.
        """
        self._ensure_can_send()
        if not self.collector.has_pending:
            raise SessionStateError("There are no questions to submit")
        message = self.collector.build_submission()
        logger.info("answers_submitted", skill=self.skill.value)
        return await self._exchange(UserTurn(text=message), message)

    def start_recording(self) -> None:
        """Open the microphone for a spoken answer.

        Raises:
            MicrophoneDenied: The microphone could not be opened.
        """
        if self.skill != Skill.SPEAKING or self.recorder is None:
            raise SessionStateError("Recording is only available in speaking sessions")
        self._ensure_can_send()
        if self.recording:
            return
        if self.playback is not None:
            self.playback.stop_clip()
        self.recorder.start()
        self.recording = True
        logger.info("recording_started")

    async def stop_recording(self) -> ParsedTurn | None:
        """Finish the spoken answer and submit it."""
        if not self.recording or self.recorder is None:
            raise SessionStateError("Not recording")
        self._ensure_can_send()
        audio = self.recorder.stop()
        self.recording = False
        logger.info("recording_stopped", bytes=len(audio))
        return await self._exchange(UserTurn(text=SPOKEN_ANSWER_PROMPT, audio=audio), SPOKEN_TURN_LABEL)

    def replay_audio(self) -> bool:
        """Play the last tutor clip again."""
        if self.audio_clip is None or self.playback is None:
            return False
        self.playback.play_clip(self.audio_clip)
        return True

    async def result(self) -> SessionSummary:
        """Vocabulary, grammar and feedback of the completed session.

        Corrections collected during the session are combined with the
        provider's extraction; if that fails the collected items are kept
        with a generic feedback line.
        """
        self._require(SessionStatus.COMPLETE)
        if self._summary is not None:
            return self._summary
        try:
            extracted = await self._run(
                self.provider.summarize_session(self.context, self.transcript)
            )
        except GenerationError:
            logger.warning("session_summary_unavailable")
            extracted = SessionSummary()
        self._summary = SessionSummary(
            vocabulary=_union(self._vocabulary, extracted.vocabulary),
            grammar=_union(self._grammar, extracted.grammar),
            feedback=extracted.feedback,
        )
        return self._summary

    async def outcome(self) -> SessionOutcome:
        """Input for the progress merge of this session."""
        summary = await self.result()
        return SessionOutcome(
            skill=self.skill,
            module_title=self.module.title,
            vocabulary=summary.vocabulary,
            grammar=summary.grammar,
            feedback=summary.feedback,
        )

    async def end_quiz(self) -> list[QuizQuestion]:
        """Short review quiz offered after completion; empty if unavailable."""
        self._require(SessionStatus.COMPLETE)
        try:
            return await self._run(
                self.provider.generate_end_quiz(self.module.title, self.context.band)
            )
        except GenerationError:
            logger.warning("end_quiz_unavailable")
            return []

    def close(self) -> None:
        """Tear the session down: cancel requests, stop recording and playback."""
        if self._closed:
            return
        self._closed = True
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        if self.recording and self.recorder is not None:
            self.recorder.cancel()
            self.recording = False
        if self.playback is not None:
            self.playback.stop_clip()
            self.playback.close()
        logger.info("session_closed", status=self.status.value, turns=len(self.transcript))

    def _require(self, *statuses: SessionStatus) -> None:
        if self._closed:
            raise SessionStateError("Session is closed")
        if self.status not in statuses:
            raise SessionStateError(f"Not allowed while session is {self.status.value}")

    def _ensure_can_send(self) -> None:
        if self.busy or self.status == SessionStatus.AWAITING_RESPONSE:
            raise SessionBusyError("Still waiting for the tutor")
        self._require(SessionStatus.ACTIVE)

    async def _run(self, call: Awaitable[T]) -> T:
        """Await a provider call as a task ``close`` can cancel."""
        task = asyncio.ensure_future(call)
        self._inflight = task
        try:
            result = await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if not self._closed or (current is not None and current.cancelling()):
                raise
            raise SessionStateError("Session closed while waiting for the tutor") from None
        finally:
            self._inflight = None
        if self._closed:
            raise SessionStateError("Session closed while waiting for the tutor")
        return result

    async def _exchange(self, user_turn: UserTurn, display: str) -> ParsedTurn | None:
        async with self._lock:
            self.status = SessionStatus.AWAITING_RESPONSE
            prior = list(self.transcript)
            self.transcript.append(
                Turn(role=Role.USER, text=display, has_audio=user_turn.audio is not None)
            )
            if self.playback is not None:
                self.playback.stop_clip()
            self.audio_clip = None
            try:
                text = await self._run(
                    self.provider.continue_session(self.context, prior, user_turn)
                )
            except GenerationError as e:
                logger.warning("tutor_turn_failed", error=str(e))
                self.transcript.append(Turn(role=Role.TUTOR, text=ERROR_TURN_TEXT, is_error=True))
                self.status = SessionStatus.ACTIVE
                return None
            return await self._accept_tutor_turn(text)

    async def _accept_tutor_turn(self, text: str) -> ParsedTurn:
        parsed = parse_turn(text)
        self.transcript.append(Turn(role=Role.TUTOR, text=text))
        self.last_parsed = parsed
        self.collector.reset(parsed.directives)
        for correction in parsed.corrections:
            if correction.category == CorrectionCategory.VOCABULARY:
                self._vocabulary = _union(self._vocabulary, [correction.corrected])
            elif correction.category == CorrectionCategory.GRAMMAR:
                point = correction.explanation or correction.corrected
                self._grammar = _union(self._grammar, [point])

        if self.skill.is_audio and parsed.speech_text:
            clip = await self._run(self.provider.synthesize_speech(parsed.speech_text))
            if clip:
                self.audio_clip = clip
                if self.playback is not None:
                    self.playback.play_clip(clip)

        if parsed.complete:
            self.status = SessionStatus.COMPLETE
            if self.recording and self.recorder is not None:
                self.recorder.cancel()
                self.recording = False
            logger.info("session_complete", skill=self.skill.value, turns=len(self.transcript))
        else:
            self.status = SessionStatus.ACTIVE
        return parsed
