"""Browser WebSocket handler - connects the browser to one tutoring session at a time."""

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

import structlog
from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from ielts_tutor.audio.encoder import clip_to_base64
from ielts_tutor.config import Settings
from ielts_tutor.errors import (
    GenerationError,
    MicrophoneDenied,
    SessionBusyError,
    SessionStateError,
    ValidationError,
)
from ielts_tutor.models.profile import Skill
from ielts_tutor.models.session import PracticeModule, Role, Turn
from ielts_tutor.progress.vault import complete_session
from ielts_tutor.protocol.parser import parse_turn
from ielts_tutor.providers.base import ContentProvider
from ielts_tutor.providers.openai_provider import OpenAIContentProvider
from ielts_tutor.session.engine import AnswerRecorder, ClipPlayer, TutorSession, build_context
from ielts_tutor.storage.profile_store import ProfileStore

logger = structlog.get_logger()


def create_audio_devices(
    settings: Settings, skill: Skill
) -> tuple[ClipPlayer | None, AnswerRecorder | None]:
    """Speaker for audio skills, plus a microphone for speaking."""
    if not skill.is_audio:
        return None, None
    # sounddevice loads PortAudio on import
    from ielts_tutor.audio.capture import MicrophoneRecorder  # noqa: PLC0415
    from ielts_tutor.audio.playback import AudioPlayback  # noqa: PLC0415

    playback = AudioPlayback(
        sample_rate=settings.audio_sample_rate,
        channels=settings.audio_channels,
        chunk_size=settings.audio_chunk_size,
        device=settings.audio_output_device,
    )
    recorder = None
    if skill == Skill.SPEAKING:
        recorder = MicrophoneRecorder(
            sample_rate=settings.audio_sample_rate,
            channels=settings.audio_channels,
            chunk_size=settings.audio_chunk_size,
            device=settings.audio_input_device,
        )
    return playback, recorder


def turn_message(turn: Turn) -> dict:
    """Browser representation of a transcript turn."""
    if turn.role == Role.USER or turn.is_error:
        return {
            "type": "transcript",
            "role": turn.role.value,
            "text": turn.text,
            "is_error": turn.is_error,
        }
    parsed = parse_turn(turn.text)
    return {
        "type": "transcript",
        "role": turn.role.value,
        "text": parsed.display_text,
        "segments": [s.model_dump() for s in parsed.segments],
        "corrections": [c.model_dump(mode="json") for c in parsed.corrections],
        "is_error": False,
    }


class TutorHub:
    """Runs tutoring sessions for one browser connection.

    The opening request and turn requests run as background tasks so that
    ``exit_session`` can interrupt a request that is still outstanding.

    Args:
        settings: Application settings.
        browser_ws: WebSocket connection to the browser.
        provider: Content provider (defaults to the OpenAI provider).
        store: Profile store (defaults to the configured data directory).
    """

    def __init__(
        self,
        settings: Settings,
        browser_ws: WebSocket,
        provider: ContentProvider | None = None,
        store: ProfileStore | None = None,
    ):
        self.settings = settings
        self.browser_ws = browser_ws
        self.provider = provider or OpenAIContentProvider(settings)
        self.store = store or ProfileStore.from_settings(settings)
        self.session: TutorSession | None = None
        self._tasks: set[asyncio.Task] = set()
        self._sent_turns = 0
        self._finalized = False

    async def dispatch(self, data: dict) -> None:
        """Handle one browser message."""
        msg_type = data.get("type", "")

        if msg_type == "start_session":
            try:
                skill = Skill(data.get("skill", ""))
                module = PracticeModule.model_validate(data.get("module") or {})
            except (ValueError, PydanticValidationError):
                await self._send({"type": "error", "message": "Invalid session request"})
                return
            await self.start_session(skill, module)
            return

        if msg_type == "exit_session":
            await self.end_session()
            await self._send({"type": "session_state", "status": "closed"})
            return

        session = self.session
        if session is None:
            await self._send({"type": "error", "message": "No active session"})
            return

        if msg_type == "user_text":
            self._spawn(self._guarded(session, session.send_text, str(data.get("text", ""))))
        elif msg_type == "submit_answers":
            self._spawn(self._guarded(session, session.submit_answers))
        elif msg_type == "stop_recording":
            self._spawn(self._guarded(session, session.stop_recording))
        elif msg_type == "set_answer":
            try:
                index = int(data.get("index", -1))
            except (TypeError, ValueError):
                index = -1
            await self._guarded(session, session.set_answer, index, str(data.get("value", "")))
        elif msg_type == "start_recording":
            await self._guarded(session, session.start_recording)
        elif msg_type == "replay_audio":
            session.replay_audio()
        else:
            logger.warning("unknown_browser_message", msg_type=msg_type)

    async def start_session(self, skill: Skill, module: PracticeModule) -> None:
        """Replace any running session with a new one."""
        await self.end_session()
        profile = self.store.load()
        if profile is None:
            await self._send({"type": "error", "message": "No profile found"})
            return

        playback, recorder = create_audio_devices(self.settings, skill)
        session = TutorSession(
            self.provider,
            build_context(profile, skill, module),
            playback=playback,
            recorder=recorder,
        )
        self.session = session
        self._sent_turns = 0
        self._finalized = False
        await self._send_state(session)
        self._spawn(self._open(session))

    async def _open(self, session: TutorSession) -> None:
        """Request the opening turn in the background so exit can cancel it."""
        try:
            await session.start()
        except GenerationError:
            await self._send({
                "type": "error",
                "message": "Could not start the session. Please try again.",
            })
            await self._send_state(session)
            return
        except SessionStateError:
            if session.closed:
                logger.debug("discarded_closed_session_opening")
                return
            raise
        if session is not self.session or session.closed:
            return

        if session.visual_aid is not None:
            await self._send({
                "type": "visual_aid",
                "image": clip_to_base64(session.visual_aid),
                "mime": "image/png",
            })
        await self._sync(session)

    async def end_session(self) -> None:
        """Close the running session and wait for its tasks."""
        if self.session is not None:
            self.session.close()
            self.session = None
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guarded(self, session: TutorSession, fn: Callable[..., Any], *args: Any) -> None:
        """Run a session operation and report failures to the browser."""
        try:
            result = fn(*args)
            if inspect.isawaitable(result):
                await result
        except ValidationError as e:
            await self._send({
                "type": "validation_error",
                "message": str(e),
                "question_ids": e.question_ids,
            })
        except SessionBusyError as e:
            await self._send({"type": "busy", "message": str(e)})
        except MicrophoneDenied as e:
            await self._send({"type": "microphone_denied", "message": str(e)})
        except SessionStateError as e:
            if session.closed:
                logger.debug("discarded_closed_session_result")
                return
            await self._send({"type": "error", "message": str(e)})
        if session is self.session and not session.closed:
            await self._sync(session)

    async def _sync(self, session: TutorSession) -> None:
        """Push new turns, pending questions and state to the browser."""
        new_turns = session.transcript[self._sent_turns:]
        self._sent_turns += len(new_turns)
        for turn in new_turns:
            await self._send(turn_message(turn))
        await self._send({
            "type": "questions",
            "questions": [
                {
                    "index": i,
                    "id": q.id,
                    "kind": q.directive.kind,
                    "statement": getattr(q.directive, "statement", None),
                    "answer": q.answer,
                }
                for i, q in enumerate(session.pending_questions)
            ],
        })
        await self._send_state(session)
        if session.complete and not self._finalized:
            await self._finalize(session)

    async def _finalize(self, session: TutorSession) -> None:
        """Merge the completed session into the stored profile."""
        self._finalized = True
        summary = await session.result()
        outcome = await session.outcome()
        quiz = await session.end_quiz()
        profile = self.store.load()
        if profile is None:
            logger.warning("profile_missing_on_completion")
            await self._send({"type": "error", "message": "No profile found"})
            return
        profile = complete_session(profile, outcome)
        self.store.save(profile)
        progress = profile.progress_for(session.skill)
        await self._send({
            "type": "completed",
            "summary": summary.model_dump(),
            "quiz": [q.model_dump() for q in quiz],
            "progress": progress.model_dump(mode="json") if progress else None,
        })
        logger.info("session_saved", skill=session.skill.value)

    async def _send_state(self, session: TutorSession) -> None:
        await self._send({
            "type": "session_state",
            "status": session.status.value,
            "skill": session.skill.value,
            "module": session.module.title,
            "recording": session.recording,
            "audio_available": session.audio_clip is not None,
            "error": session.error,
        })

    async def _send(self, data: dict) -> None:
        """Send a message to the browser WebSocket."""
        try:
            await self.browser_ws.send_json(data)
        except (WebSocketDisconnect, RuntimeError):
            logger.warning("browser_send_failed", msg_type=data.get("type"))


async def handle_browser_websocket(websocket: WebSocket, settings: Settings) -> None:
    """Handle a browser WebSocket connection."""
    await websocket.accept()
    hub = TutorHub(settings, websocket)

    try:
        while True:
            data = await websocket.receive_json()
            await hub.dispatch(data)
    except WebSocketDisconnect:
        logger.info("browser_disconnected")
    except Exception:
        logger.exception("websocket_handler_error")
    finally:
        await hub.end_session()
