"""Smoke tests for API routes."""

from unittest.mock import MagicMock, patch

import pytest
from conftest import ScriptedProvider
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ielts_tutor.api.routes import router
from ielts_tutor.models.placement import PlacementQuestion
from ielts_tutor.models.profile import Skill, UserProfile
from ielts_tutor.models.session import PracticeModule
from ielts_tutor.progress.vault import merge_vocabulary
from ielts_tutor.storage.profile_store import ProfileStore


@pytest.fixture
def mock_settings(tmp_path):
    settings = MagicMock()
    settings.profiles_dir = tmp_path / "profiles"
    settings.profile_storage_key = "ielts_mastery_v4"
    settings.app_secret = None
    return settings


@pytest.fixture
def scripted():
    return ScriptedProvider()


@pytest.fixture
def store(mock_settings):
    return ProfileStore.from_settings(mock_settings)


@pytest.fixture
def client(mock_settings, scripted):
    app = FastAPI()
    app.include_router(router)
    with (
        patch("ielts_tutor.api.routes.get_settings", return_value=mock_settings),
        patch("ielts_tutor.api.routes.get_provider", return_value=scripted),
    ):
        with TestClient(app) as c:
            yield c


class TestHealthCheck:
    def test_health_returns_ok(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestProfile:
    def test_no_profile_is_404(self, client):
        assert client.get("/api/profile").status_code == 404
        assert client.get("/api/dashboard").status_code == 404

    def test_onboarding_creates_profile(self, client, store):
        response = client.post(
            "/api/profile", json={"name": "Mina", "exam_track": "general", "target_band": 7.5}
        )
        assert response.status_code == 201
        assert store.load().name == "Mina"
        assert client.get("/api/profile").json()["exam_track"] == "general"

    def test_onboarding_rejects_bad_band(self, client):
        response = client.post("/api/profile", json={"name": "Mina", "target_band": 7.3})
        assert response.status_code == 422

    def test_onboarding_requires_name(self, client):
        response = client.post("/api/profile", json={"name": ""})
        assert response.status_code == 422

    def test_switch_track(self, client, store):
        store.save(UserProfile(name="Mina"))
        response = client.put("/api/profile/track", json={"exam_track": "general"})
        assert response.status_code == 200
        assert store.load().exam_track == "general"

    def test_sign_out(self, client, store):
        store.save(UserProfile(name="Mina"))
        assert client.delete("/api/profile").status_code == 200
        assert store.load() is None


class TestPlacement:
    def test_placement_flow(self, client, store, scripted):
        store.save(UserProfile(name="Mina"))
        question = PlacementQuestion(id="q1", text="?", options=["a", "b"], correct_answer="a")
        scripted.placement_questions = [question]
        test = client.get("/api/placement/test").json()
        response = client.post(
            "/api/placement", json={"questions": test, "answers": {"q1": "a"}}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["score"] == 1
        assert data["band"] == 6.0
        profile = store.load()
        assert profile.onboarding_complete
        assert profile.estimated_band == 6.0

    def test_unanswered_placement_is_422(self, client, store):
        store.save(UserProfile(name="Mina"))
        question = {"id": "q1", "text": "?", "options": ["a"], "correct_answer": "a"}
        response = client.post("/api/placement", json={"questions": [question], "answers": {}})
        assert response.status_code == 422
        assert response.json()["detail"]["question_ids"] == ["q1"]


class TestModules:
    def test_modules_use_profile_band(self, client, store, scripted):
        store.save(UserProfile(name="Mina", estimated_band=6.5))
        scripted.modules = [PracticeModule(id="m1", title="Skimming")]
        response = client.get("/api/modules/reading")
        assert response.status_code == 200
        assert response.json()[0]["title"] == "Skimming"
        assert scripted.calls[-1][1:3] == (Skill.READING, 6.5)

    def test_unknown_skill_is_422(self, client, store):
        store.save(UserProfile(name="Mina"))
        assert client.get("/api/modules/cooking").status_code == 422


class TestVault:
    def test_list_and_toggle(self, client, store):
        profile = merge_vocabulary(UserProfile(name="Mina"), ["mitigate", "tea"], Skill.READING)
        store.save(profile)
        data = client.get("/api/vault", params={"search": "miti"}).json()
        assert [i["word"] for i in data["items"]] == ["mitigate"]
        assert data["stats"]["total"] == 2

        response = client.post("/api/vault/mastery", json={"word": "mitigate"})
        assert response.json()["mastered"] is True
        assert store.load().vault_entry("mitigate").mastered
