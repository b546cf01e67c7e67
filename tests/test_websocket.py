"""Tests for the browser WebSocket hub."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conftest import FakePlayback, FakeRecorder, ScriptedProvider
from fastapi import WebSocket, WebSocketDisconnect

from ielts_tutor.api.websocket import TutorHub, handle_browser_websocket, turn_message
from ielts_tutor.errors import MicrophoneDenied
from ielts_tutor.models.profile import Skill, UserProfile
from ielts_tutor.models.session import Role, SessionSummary, Turn
from ielts_tutor.storage.profile_store import ProfileStore

MODULE = {"id": "m1", "title": "The History of Tea", "description": "Reading practice"}

OPENING = "Read.[PASSAGE]Tea is old.[/PASSAGE][TFNG:1:Tea originated in Yunnan]"


@pytest.fixture
def store(tmp_path):
    s = ProfileStore(tmp_path)
    s.save(UserProfile(name="Mina", estimated_band=6.0))
    return s


@pytest.fixture
def ws():
    mock_ws = AsyncMock(spec=WebSocket)
    mock_ws.send_json = AsyncMock()
    return mock_ws


def make_hub(ws, store, replies):
    provider = ScriptedProvider(replies)
    hub = TutorHub(MagicMock(), ws, provider=provider, store=store)
    return hub, provider


def sent(ws, msg_type=None) -> list[dict]:
    messages = [c.args[0] for c in ws.send_json.await_args_list]
    if msg_type is None:
        return messages
    return [m for m in messages if m["type"] == msg_type]


async def drain(hub):
    await asyncio.gather(*list(hub._tasks))


class TestStartSession:
    async def test_start_sends_transcript_and_questions(self, ws, store):
        hub, _ = make_hub(ws, store, [OPENING])
        await hub.dispatch({"type": "start_session", "skill": "reading", "module": MODULE})
        await drain(hub)

        transcript = sent(ws, "transcript")
        assert len(transcript) == 1
        assert [s["kind"] for s in transcript[0]["segments"]] == ["prose", "passage", "prose"]
        questions = sent(ws, "questions")[-1]["questions"]
        assert questions[0]["id"] == "1"
        assert questions[0]["statement"] == "Tea originated in Yunnan"
        assert sent(ws, "session_state")[-1]["status"] == "active"

    async def test_start_without_profile(self, ws, tmp_path):
        hub, _ = make_hub(ws, ProfileStore(tmp_path / "empty"), ["Hi"])
        await hub.dispatch({"type": "start_session", "skill": "reading", "module": MODULE})
        await drain(hub)
        assert sent(ws, "error")[0]["message"] == "No profile found"
        assert hub.session is None

    async def test_invalid_request(self, ws, store):
        hub, _ = make_hub(ws, store, ["Hi"])
        await hub.dispatch({"type": "start_session", "skill": "cooking", "module": MODULE})
        await drain(hub)
        assert sent(ws, "error")

    async def test_start_failure_reported(self, ws, store, generation_error):
        hub, _ = make_hub(ws, store, [generation_error])
        await hub.dispatch({"type": "start_session", "skill": "reading", "module": MODULE})
        await drain(hub)
        assert sent(ws, "error")
        assert sent(ws, "session_state")[-1]["status"] == "failed"

    async def test_message_without_session(self, ws, store):
        hub, _ = make_hub(ws, store, [])
        await hub.dispatch({"type": "user_text", "text": "hi"})
        assert sent(ws, "error")[0]["message"] == "No active session"


class TestAnswers:
    async def test_invalid_answer(self, ws, store):
        hub, _ = make_hub(ws, store, [OPENING])
        await hub.dispatch({"type": "start_session", "skill": "reading", "module": MODULE})
        await drain(hub)
        await hub.dispatch({"type": "set_answer", "index": 0, "value": "Maybe"})
        assert sent(ws, "validation_error")[0]["question_ids"] == ["1"]

    async def test_submit_incomplete(self, ws, store):
        hub, provider = make_hub(ws, store, [OPENING])
        await hub.dispatch({"type": "start_session", "skill": "reading", "module": MODULE})
        await drain(hub)
        await hub.dispatch({"type": "submit_answers"})
        await drain(hub)
        assert sent(ws, "validation_error")
        assert len(provider.calls) == 1

    async def test_completion_saves_progress(self, ws, store):
        hub, provider = make_hub(ws, store, [OPENING, "Correct! SESSION_COMPLETE"])
        provider.summary = SessionSummary(
            vocabulary=["provenance"], grammar=["passive voice"], feedback="Well done."
        )
        await hub.dispatch({"type": "start_session", "skill": "reading", "module": MODULE})
        await drain(hub)
        await hub.dispatch({"type": "set_answer", "index": 0, "value": "True"})
        await hub.dispatch({"type": "submit_answers"})
        await drain(hub)

        completed = sent(ws, "completed")
        assert len(completed) == 1
        assert completed[0]["summary"]["vocabulary"] == ["provenance"]
        assert completed[0]["progress"]["sessions_completed"] == 1
        assert len(completed[0]["quiz"]) == 1

        profile = store.load()
        assert profile.progress_for(Skill.READING).learned_grammar == ["passive voice"]
        assert profile.vault_entry("provenance") is not None
        assert len(profile.activity_log) == 1


class TestSpeaking:
    async def test_microphone_denied(self, ws, store):
        hub, _ = make_hub(ws, store, ["First question."])
        devices = (FakePlayback(), FakeRecorder(error=MicrophoneDenied("Microphone access is required")))
        with patch("ielts_tutor.api.websocket.create_audio_devices", return_value=devices):
            await hub.dispatch({"type": "start_session", "skill": "speaking", "module": MODULE})
            await drain(hub)
        await hub.dispatch({"type": "start_recording"})
        assert sent(ws, "microphone_denied")[0]["message"] == "Microphone access is required"

    async def test_busy_while_waiting(self, ws, store):
        release = asyncio.Event()

        class SlowProvider(ScriptedProvider):
            async def continue_session(self, context, transcript, user_turn):
                await release.wait()
                return "Reply"

        provider = SlowProvider(["Hi"])
        hub = TutorHub(MagicMock(), ws, provider=provider, store=store)
        await hub.dispatch({"type": "start_session", "skill": "reading", "module": MODULE})
        await drain(hub)
        await hub.dispatch({"type": "user_text", "text": "one"})
        await asyncio.sleep(0)
        await hub.dispatch({"type": "user_text", "text": "two"})
        await asyncio.sleep(0)
        release.set()
        await drain(hub)
        assert sent(ws, "busy")
        assert [m["text"] for m in sent(ws, "transcript")] == ["Hi", "one", "Reply"]


class TestExit:
    async def test_exit_cancels_outstanding_turn(self, ws, store):
        class HangingProvider(ScriptedProvider):
            async def continue_session(self, context, transcript, user_turn):
                await asyncio.Event().wait()

        provider = HangingProvider(["Hi"])
        hub = TutorHub(MagicMock(), ws, provider=provider, store=store)
        await hub.dispatch({"type": "start_session", "skill": "reading", "module": MODULE})
        await drain(hub)
        session = hub.session
        await hub.dispatch({"type": "user_text", "text": "one"})
        await asyncio.sleep(0)
        await hub.dispatch({"type": "exit_session"})
        assert hub.session is None
        assert session.closed
        assert not hub._tasks
        assert sent(ws, "session_state")[-1]["status"] == "closed"
        assert store.load().activity_log == []


    async def test_exit_cancels_outstanding_opening(self, ws, store):
        class HangingProvider(ScriptedProvider):
            async def start_session(self, context, opening):
                await asyncio.Event().wait()

        hub = TutorHub(MagicMock(), ws, provider=HangingProvider(), store=store)
        await hub.dispatch({"type": "start_session", "skill": "reading", "module": MODULE})
        session = hub.session
        await asyncio.sleep(0)
        await hub.dispatch({"type": "exit_session"})
        assert session.closed
        assert not hub._tasks
        assert sent(ws, "transcript") == []
        assert sent(ws, "session_state")[-1]["status"] == "closed"


class TestSync:
    async def test_overlapping_syncs_send_each_turn_once(self, ws, store):
        async def slow_send(data):
            await asyncio.sleep(0)

        ws.send_json = AsyncMock(side_effect=slow_send)
        hub, _ = make_hub(ws, store, ["Hi"])
        await hub.dispatch({"type": "start_session", "skill": "reading", "module": MODULE})
        await drain(hub)
        ws.send_json.reset_mock()
        hub._sent_turns = 0
        await asyncio.gather(hub._sync(hub.session), hub._sync(hub.session))
        assert [m["text"] for m in sent(ws, "transcript")] == ["Hi"]


class TestTurnMessage:
    def test_tutor_turn_rendered(self):
        message = turn_message(Turn(role=Role.TUTOR, text="Fill [BLANK:1] SESSION_COMPLETE"))
        assert message["text"] == "Fill (blank 1) "

    def test_user_turn_verbatim(self):
        message = turn_message(Turn(role=Role.USER, text="[BLANK:1]"))
        assert message["text"] == "[BLANK:1]"


class TestHandleBrowserWebsocket:
    async def test_disconnect_ends_session(self, ws):
        ws.receive_json = AsyncMock(side_effect=WebSocketDisconnect())
        with patch("ielts_tutor.api.websocket.TutorHub") as mock_hub_cls:
            mock_hub = MagicMock()
            mock_hub.end_session = AsyncMock()
            mock_hub_cls.return_value = mock_hub
            await handle_browser_websocket(ws, MagicMock())
        ws.accept.assert_awaited_once()
        mock_hub.end_session.assert_awaited_once()

    async def test_exit_read_while_opening_outstanding(self, ws, store):
        class HangingProvider(ScriptedProvider):
            async def start_session(self, context, opening):
                await asyncio.Event().wait()

        ws.receive_json = AsyncMock(side_effect=[
            {"type": "start_session", "skill": "reading", "module": MODULE},
            {"type": "exit_session"},
            WebSocketDisconnect(),
        ])
        with (
            patch("ielts_tutor.api.websocket.OpenAIContentProvider", return_value=HangingProvider()),
            patch("ielts_tutor.api.websocket.ProfileStore.from_settings", return_value=store),
        ):
            await asyncio.wait_for(handle_browser_websocket(ws, MagicMock()), timeout=2)
        assert ws.receive_json.await_count == 3
        assert sent(ws, "session_state")[-1]["status"] == "closed"
