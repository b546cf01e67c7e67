"""OpenAI-backed content provider."""

import asyncio
import base64
import functools
import json
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError as PydanticValidationError

from ielts_tutor.config import Settings, get_settings
from ielts_tutor.errors import GenerationError
from ielts_tutor.models.placement import PlacementQuestion, PlacementResult
from ielts_tutor.models.profile import ExamTrack, Skill
from ielts_tutor.models.session import (
    PracticeModule,
    QuizQuestion,
    Role,
    SessionContext,
    SessionSummary,
    Turn,
    UserTurn,
)
from ielts_tutor.providers.base import ContentProvider
from ielts_tutor.session.prompts import build_system_prompt

logger = structlog.get_logger()

T = TypeVar("T")

MAX_TRANSCRIPT_TURNS = 40

PLACEMENT_TEST_PROMPT = """\
Generate 10 multiple-choice IELTS placement test questions of increasing difficulty.
Respond ONLY with a JSON object:
{"questions": [{"id": "<id>", "text": "<question>", "options": ["<a>", "<b>", "<c>", "<d>"],
"correct_answer": "<one of options>"}]}
"""

ASSESSMENT_PROMPT = """\
A learner scored {score}/{total} on an IELTS placement test.
Assess their IELTS band (1-9 in 0.5 steps) and CEFR-style level.
Respond ONLY with a JSON object: {{"level": "<level>", "band": <band>}}
"""

MODULES_PROMPT = """\
Generate 4 specific IELTS practice modules for {skill} ({track} track) at Band {band} level.
Respond ONLY with a JSON object:
{{"modules": [{{"id": "<id>", "title": "<title>", "description": "<description>",
"kind": "tutorial" | "practice" | "mock"}}]}}
"""

QUIZ_PROMPT = """\
Write a 3-question multiple-choice quiz reviewing "{topic}" at IELTS Band {band}.
Respond ONLY with a JSON object:
{{"questions": [{{"question": "<question>", "options": ["<a>", "<b>", "<c>"],
"correct_answer": "<one of options>"}}]}}
"""

SUMMARY_PROMPT = """\
You are an IELTS tutor closing a {skill} session on "{module}".
From the transcript, list the vocabulary items and grammar points the learner worked on,
and write a 1-2 sentence feedback summary addressed to the learner.
Respond ONLY with a JSON object:
{{"vocabulary": ["<word>"], "grammar": ["<grammar point>"], "feedback": "<summary>"}}
"""


def _format_transcript(transcript: list[Turn]) -> str:
    return "\n".join(
        f"{'Student' if t.role == Role.USER else 'Tutor'}: {t.text}"
        for t in transcript
        if not t.is_error
    )


class OpenAIContentProvider(ContentProvider):
    """Content provider using the OpenAI chat, speech and image APIs.

    Text calls are retried with exponential backoff up to
    ``settings.provider_max_attempts`` attempts; media calls are best-effort
    and return None on failure.

    Args:
        settings: Application settings.
        client: Optional preconfigured client (tests).
    """

    def __init__(self, settings: Settings, client: AsyncOpenAI | None = None):
        self.settings = settings
        self.client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            timeout=settings.provider_timeout_seconds,
        )
        self.max_attempts = settings.provider_max_attempts
        self.backoff_seconds = settings.provider_backoff_seconds

    async def _with_retry(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run ``call`` with bounded retries, raising GenerationError when exhausted."""
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await call()
            except (OpenAIError, json.JSONDecodeError, PydanticValidationError) as e:
                if attempt >= self.max_attempts:
                    logger.error(
                        "provider_call_failed",
                        operation=operation,
                        attempts=attempt,
                        error=str(e),
                    )
                    raise GenerationError(f"{operation} failed: {e}") from e
                delay = self.backoff_seconds * 2 ** (attempt - 1)
                logger.warning(
                    "provider_call_retry",
                    operation=operation,
                    attempt=attempt,
                    delay_seconds=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)
        raise GenerationError(f"{operation} failed")

    async def _chat(self, messages: list[dict[str, Any]], temperature: float = 0.7) -> str:
        response = await self.client.chat.completions.create(
            model=self.settings.chat_model,
            messages=messages,
            temperature=temperature,
        )
        content = response.choices[0].message.content
        if not content:
            raise GenerationError("Empty response from chat model")
        return content

    async def _json(self, system: str, user: str, model: str | None = None) -> dict:
        response = await self.client.chat.completions.create(
            model=model or self.settings.summary_model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            temperature=0.3,
            response_format={"type": "json_object"},
        )
        return json.loads(response.choices[0].message.content or "{}")

    def _history(self, context: SessionContext, transcript: list[Turn]) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": build_system_prompt(context)}
        ]
        turns = [t for t in transcript if not t.is_error][-MAX_TRANSCRIPT_TURNS:]
        for turn in turns:
            role = "assistant" if turn.role == Role.TUTOR else "user"
            messages.append({"role": role, "content": turn.text})
        return messages

    async def start_session(self, context: SessionContext, opening: str) -> str:
        messages = self._history(context, [])
        messages.append({"role": "user", "content": opening})
        text = await self._with_retry("start_session", lambda: self._chat(messages))
        logger.info("session_opened", skill=context.skill.value, module=context.module.title)
        return text

    async def continue_session(
        self,
        context: SessionContext,
        transcript: list[Turn],
        user_turn: UserTurn,
    ) -> str:
        content = user_turn.text
        if user_turn.audio is not None:
            spoken = await self.transcribe(user_turn.audio)
            content = f"{content}\n\nTranscript of my spoken response:\n{spoken}"
        messages = self._history(context, transcript)
        messages.append({"role": "user", "content": content})
        return await self._with_retry("continue_session", lambda: self._chat(messages))

    async def transcribe(self, audio: bytes) -> str:
        """Transcribe a recorded WAV answer."""

        async def call() -> str:
            result = await self.client.audio.transcriptions.create(
                model=self.settings.transcription_model,
                file=("answer.wav", audio, "audio/wav"),
            )
            return result.text

        return await self._with_retry("transcribe", call)

    async def synthesize_speech(self, text: str) -> bytes | None:
        if not text.strip():
            return None
        try:
            response = await self.client.audio.speech.create(
                model=self.settings.tts_model,
                voice=self.settings.tts_voice,
                input=text,
                response_format="pcm",
            )
            audio = response.content
            logger.info("speech_synthesized", chars=len(text), bytes=len(audio))
            return audio
        except OpenAIError:
            logger.exception("speech_synthesis_failed")
            return None

    async def synthesize_image(self, descriptor: str) -> bytes | None:
        try:
            result = await self.client.images.generate(
                model=self.settings.image_model,
                prompt=descriptor,
                size="1024x1024",
                response_format="b64_json",
            )
        except OpenAIError:
            logger.exception("image_generation_failed")
            return None
        image_data = result.data[0] if result.data else None
        if image_data is None or not image_data.b64_json:
            logger.warning("image_response_missing_data")
            return None
        return base64.b64decode(image_data.b64_json)

    async def assess_placement(self, score: int, total: int) -> PlacementResult:
        async def call() -> PlacementResult:
            data = await self._json(
                "You are an IELTS examiner.",
                ASSESSMENT_PROMPT.format(score=score, total=total),
            )
            return PlacementResult(**data)

        return await self._with_retry("assess_placement", call)

    async def generate_placement_test(self) -> list[PlacementQuestion]:
        async def call() -> list[PlacementQuestion]:
            data = await self._json("You are an IELTS examiner.", PLACEMENT_TEST_PROMPT)
            return [PlacementQuestion(**q) for q in data.get("questions", [])]

        return await self._with_retry("generate_placement_test", call)

    async def generate_practice_modules(
        self, skill: Skill, band: float, track: ExamTrack
    ) -> list[PracticeModule]:
        async def call() -> list[PracticeModule]:
            data = await self._json(
                "You are an IELTS curriculum designer.",
                MODULES_PROMPT.format(skill=skill.value, track=track.value, band=band),
            )
            return [PracticeModule(**m) for m in data.get("modules", [])]

        return await self._with_retry("generate_practice_modules", call)

    async def generate_end_quiz(self, topic: str, band: float) -> list[QuizQuestion]:
        async def call() -> list[QuizQuestion]:
            data = await self._json(
                "You are an IELTS tutor.",
                QUIZ_PROMPT.format(topic=topic, band=band),
            )
            return [QuizQuestion(**q) for q in data.get("questions", [])]

        return await self._with_retry("generate_end_quiz", call)

    async def summarize_session(
        self, context: SessionContext, transcript: list[Turn]
    ) -> SessionSummary:
        async def call() -> SessionSummary:
            data = await self._json(
                SUMMARY_PROMPT.format(skill=context.skill.value, module=context.module.title),
                f"Transcript:\n{_format_transcript(transcript)}",
            )
            return SessionSummary(**data)

        return await self._with_retry("summarize_session", call)


@functools.lru_cache
def get_provider() -> OpenAIContentProvider:
    """Get the configured content provider singleton."""
    return OpenAIContentProvider(get_settings())
