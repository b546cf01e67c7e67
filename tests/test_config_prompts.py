"""Tests for settings loading and prompt building."""

from conftest import make_context

from ielts_tutor.config import Settings, flatten_settings
from ielts_tutor.models.profile import ExamTrack, Skill
from ielts_tutor.session.prompts import (
    build_chart_prompt,
    build_opening_prompt,
    build_system_prompt,
    uses_visual_aid,
)


class TestFlattenSettings:
    def test_nested_sections(self):
        flat = flatten_settings({
            "server": {"host": "127.0.0.1", "port": 9000},
            "provider": {"max_attempts": 5, "backoff_seconds": 0.2},
            "storage": {"profile_key": "custom_key"},
        })
        assert flat == {
            "host": "127.0.0.1",
            "port": 9000,
            "provider_max_attempts": 5,
            "provider_backoff_seconds": 0.2,
            "profile_storage_key": "custom_key",
        }

    def test_empty(self):
        assert flatten_settings({}) == {}


class TestSettings:
    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("PROVIDER_MAX_ATTEMPTS", "2")
        monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
        settings = Settings()
        assert settings.openai_api_key == "sk-test"
        assert settings.provider_max_attempts == 2
        assert settings.profiles_dir == tmp_path / "data"
        assert settings.profiles_dir.exists()

    def test_audio_chunk_size(self):
        settings = Settings(openai_api_key="k", audio_sample_rate=24000, audio_chunk_duration_ms=100)
        assert settings.audio_chunk_size == 2400


class TestPrompts:
    def test_system_prompt_has_context_and_markup(self):
        prompt = build_system_prompt(make_context(skill=Skill.READING))
        assert "The History of Tea" in prompt
        assert "Band 6.0" in prompt
        assert "[TFNG:" in prompt
        assert "SESSION_COMPLETE" in prompt
        assert "READING" in prompt

    def test_speaking_opening(self):
        opening = build_opening_prompt(make_context(skill=Skill.SPEAKING))
        assert "Speaking session" in opening

    def test_default_opening(self):
        assert "The History of Tea" in build_opening_prompt(make_context())

    def test_visual_aid_only_for_academic_task1(self):
        assert uses_visual_aid(make_context(skill=Skill.WRITING, title="Task 1: Bar charts"))
        assert not uses_visual_aid(make_context(skill=Skill.WRITING, title="Task 2: Opinion"))
        assert not uses_visual_aid(
            make_context(skill=Skill.WRITING, title="Task 1: Letters", track=ExamTrack.GENERAL)
        )
        assert not uses_visual_aid(make_context(skill=Skill.READING, title="Task 1"))

    def test_chart_prompt(self):
        assert "pie chart" in build_chart_prompt("pie chart", 6.5)
