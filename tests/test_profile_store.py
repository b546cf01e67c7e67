"""Tests for profile persistence."""

import json
from datetime import datetime

import pytest

from ielts_tutor.errors import PersistenceCorrupt
from ielts_tutor.models.profile import ExamTrack, Skill, UserProfile, VocabularyItem
from ielts_tutor.storage.profile_store import BLOB_VERSION, ProfileStore, decode_blob


@pytest.fixture
def store(tmp_path):
    return ProfileStore(tmp_path, "ielts_mastery_v4")


class TestLoad:
    def test_missing_returns_none(self, store):
        assert store.load() is None

    def test_corrupt_json_returns_none(self, store):
        store.path.write_text("{not json")
        assert store.load() is None

    def test_invalid_utf8_returns_none(self, store):
        store.path.write_bytes(b'{"name": "\xff\xfe"}')
        assert store.load() is None

    def test_invalid_profile_returns_none(self, store):
        store.path.write_text(json.dumps({"version": 4, "profile": {"target_band": 7}}))
        assert store.load() is None

    def test_legacy_unwrapped_blob(self, store):
        store.path.write_text(json.dumps({"name": "Mina", "exam_track": "general"}))
        profile = store.load()
        assert profile.name == "Mina"
        assert profile.exam_track == ExamTrack.GENERAL
        assert profile.vocab_vault == []
        assert profile.progress == []


class TestSave:
    def test_roundtrip(self, store):
        profile = UserProfile(
            name="Mina",
            estimated_band=6.5,
            vocab_vault=[
                VocabularyItem(
                    word="provenance",
                    source_skill=Skill.READING,
                    date_added=datetime(2026, 1, 2, 3, 4),
                )
            ],
        )
        store.save(profile)
        assert store.load() == profile

    def test_blob_is_versioned(self, store):
        store.save(UserProfile(name="Mina"))
        data = json.loads(store.path.read_text())
        assert data["version"] == BLOB_VERSION
        assert data["profile"]["name"] == "Mina"

    def test_no_temp_files_left(self, store, tmp_path):
        store.save(UserProfile(name="Mina"))
        store.save(UserProfile(name="Mina"))
        assert sorted(p.name for p in tmp_path.glob("*.json")) == ["ielts_mastery_v4.json"]


class TestClearAndUpdate:
    def test_clear(self, store):
        store.save(UserProfile(name="Mina"))
        store.clear()
        assert store.load() is None
        store.clear()

    def test_update_profile(self, store):
        store.save(UserProfile(name="Mina"))
        updated = store.update_profile(exam_track=ExamTrack.GENERAL)
        assert updated.exam_track == ExamTrack.GENERAL
        assert store.load().exam_track == ExamTrack.GENERAL

    def test_update_without_profile(self, store):
        with pytest.raises(LookupError):
            store.update_profile(name="x")


class TestDecodeBlob:
    def test_rejects_non_object(self):
        with pytest.raises(PersistenceCorrupt):
            decode_blob([1, 2])

    def test_rejects_bad_band(self):
        with pytest.raises(PersistenceCorrupt):
            decode_blob({"version": 4, "profile": {"name": "A", "target_band": 7.3}})
