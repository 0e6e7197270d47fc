"""API smoke tests through the ASGI app with the database and the current user overridden."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy import select

from factories import make_user
from storyseed.database import get_db
from storyseed.errors import GenerationProviderError
from storyseed.main import app
from storyseed.models import DailyPromptPreference, Profile
from storyseed.services.tokens import new_magic_token
from storyseed.users import current_active_user

QUESTION = "What does Elena whisper to the compass?"


@pytest.fixture
async def writer(db):
    user = await make_user(db, "api@example.com")
    await db.commit()
    return user


@pytest.fixture
async def client(session_maker, writer):
    async def _db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[current_active_user] = lambda: writer
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def llm():
    with patch("storyseed.services.composer.chat_completion", AsyncMock(return_value=QUESTION)) as mock:
        yield mock


async def _book_with_element(client, title="The Salt Road", element_type="character", name="Elena"):
    book = (await client.post("/api/books", json={"title": title, "description": "Sand and secrets."})).json()
    element = (await client.post("/api/elements", json={
        "book_id": book["id"], "element_type": element_type, "name": name, "description": "A cartographer.",
    })).json()
    return book, element


async def test_health(client):
    r = await client.get("/api/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


async def test_requires_login(client):
    app.dependency_overrides.pop(current_active_user)
    r = await client.get("/api/books")
    assert r.status_code == 401


class TestBooksAndElements:
    async def test_create_and_list(self, client):
        book, element = await _book_with_element(client)

        assert [b["title"] for b in (await client.get("/api/books")).json()] == ["The Salt Road"]
        listed = (await client.get("/api/elements", params={"book_id": book["id"]})).json()
        assert [e["name"] for e in listed] == ["Elena"]
        assert element["element_type"] == "character"

    async def test_update_and_delete_element(self, client):
        _, element = await _book_with_element(client)

        r = await client.put(f"/api/elements/{element['id']}", json={"notes": "Left-handed"})
        assert r.json()["notes"] == "Left-handed"
        assert r.json()["name"] == "Elena"

        assert (await client.delete(f"/api/elements/{element['id']}")).status_code == 200
        assert (await client.get(f"/api/elements/{element['id']}")).status_code == 404

    async def test_element_needs_own_book(self, client):
        r = await client.post("/api/elements", json={"book_id": 999, "element_type": "item", "name": "Compass"})
        assert r.status_code == 404

    async def test_enhance_returns_consolidated_text(self, client):
        _, element = await _book_with_element(client)
        with patch("storyseed.routers.elements.enhance_element_description", AsyncMock(return_value="Elena is a cartographer.")):
            r = await client.post(f"/api/elements/{element['id']}/enhance")
        assert r.status_code == 200
        assert r.json() == {"element_id": element["id"], "description": "Elena is a cartographer."}


class TestPrompts:
    async def test_generate_with_pinned_element(self, client, llm):
        book, element = await _book_with_element(client)

        r = await client.post("/api/generate-prompt", json={"element_ids": [element["id"]], "prompt_type": "dialogue"})

        assert r.status_code == 200
        body = r.json()
        assert body["prompt"]["prompt_text"] == QUESTION
        assert body["prompt"]["prompt_type"] == "dialogue"
        assert body["prompt"]["element_references"] == [element["id"]]
        assert body["prompt"]["book_id"] == book["id"]
        assert [e["name"] for e in body["elements"]] == ["Elena"]
        system, user = llm.await_args.args
        assert 'CHARACTER: "Elena"' in user

    async def test_generate_lets_the_engine_choose(self, client, llm):
        _, element = await _book_with_element(client)
        r = await client.post("/api/generate-prompt", json={})
        assert r.status_code == 200
        assert r.json()["prompt"]["element_references"] == [element["id"]]

    async def test_generate_without_elements_is_400(self, client, llm):
        r = await client.post("/api/generate-prompt", json={})
        assert r.status_code == 400
        llm.assert_not_awaited()

    async def test_generate_provider_failure_is_502(self, client):
        await _book_with_element(client)
        failing = AsyncMock(side_effect=GenerationProviderError("down"))
        with patch("storyseed.services.composer.chat_completion", failing):
            r = await client.post("/api/generate-prompt", json={})
        assert r.status_code == 502
        assert (await client.get("/api/prompts")).json() == []

    async def test_prompt_elements_must_share_the_book(self, client):
        book, _ = await _book_with_element(client)
        _, other = await _book_with_element(client, title="Second", name="Marco")

        r = await client.post("/api/prompts", json={
            "book_id": book["id"], "prompt_text": "Q?", "element_references": [other["id"]],
        })

        assert r.status_code == 400

    async def test_available_modes(self, client):
        _, element = await _book_with_element(client, element_type="location", name="Oasis")
        r = await client.post("/api/available-modes", json={"element_ids": [element["id"]]})
        assert r.json()["modes"] == ["general", "worldbuilding"]

    async def test_response_updates_stats(self, client):
        book, element = await _book_with_element(client)
        prompt = (await client.post("/api/prompts", json={
            "book_id": book["id"], "prompt_text": "Q?", "element_references": [element["id"]],
        })).json()

        r = await client.post("/api/responses", json={"prompt_id": prompt["id"], "response_text": "Three small words"})
        assert r.status_code == 201
        assert r.json()["word_count"] == 3

        stats = (await client.get("/api/stats")).json()
        assert stats["total_words"] == 3
        assert stats["current_streak"] == 1
        assert (await client.get("/api/profile")).json()["current_streak"] == 1


class TestDailyPrompts:
    async def test_preferences_round_trip(self, client):
        assert (await client.get("/api/daily-prompts/preferences")).json()["enabled"] is False

        r = await client.put("/api/daily-prompts/preferences", json={
            "enabled": True, "delivery_time": "07:30:00", "timezone": "Europe/Paris", "email_format": "detailed",
        })

        assert r.status_code == 200
        body = r.json()
        assert body["enabled"] is True
        assert body["delivery_time"] == "07:30:00"
        assert body["email_format"] == "detailed"

    async def test_unknown_timezone_is_rejected(self, client):
        r = await client.put("/api/daily-prompts/preferences", json={"timezone": "Mars/Olympus"})
        assert r.status_code == 422

    @pytest.mark.parametrize("field", ["enabled", "timezone", "pause_after_skips", "delivery_time"])
    async def test_null_setting_is_422(self, client, field):
        r = await client.put("/api/daily-prompts/preferences", json={field: None})
        assert r.status_code == 422

        prefs = (await client.get("/api/daily-prompts/preferences")).json()
        assert prefs[field] is not None

    async def test_focus_story_can_be_cleared(self, client):
        book, _ = await _book_with_element(client)
        await client.put("/api/daily-prompts/preferences", json={"focus_story_id": book["id"]})

        r = await client.put("/api/daily-prompts/preferences", json={"focus_story_id": None})

        assert r.status_code == 200
        assert r.json()["focus_story_id"] is None

    async def test_send_test_email_without_elements_is_400(self, client, llm):
        r = await client.post("/api/daily-prompts/send-test-email")
        assert r.status_code == 400

    async def test_magic_link_flow(self, client, llm, writer):
        await _book_with_element(client)
        sent = (await client.post("/api/daily-prompts/send-test-email")).json()
        log_id = sent["log_id"]
        assert sent["prompt_text"] == QUESTION
        token = new_magic_token(log_id, writer.id)

        opened = await client.get(f"/api/daily-prompts/{log_id}", params={"token": token})
        assert opened.status_code == 200
        assert opened.json()["opened_at"] is not None
        assert opened.json()["element_name"] == "Elena"
        assert opened.json()["book_title"] == "The Salt Road"

        answered = await client.post(f"/api/daily-prompts/{log_id}/respond", json={
            "token": token, "response_text": "She whispers the names of rivers.",
        })
        assert answered.status_code == 200
        assert answered.json()["word_count"] == 6

        again = await client.post(f"/api/daily-prompts/{log_id}/respond", json={"token": token, "response_text": "x"})
        assert again.status_code == 409

        history = (await client.get("/api/daily-prompts/history")).json()
        assert history[0]["id"] == log_id
        assert history[0]["response_text"] == "She whispers the names of rivers."

    async def test_skip_with_bad_token_is_401(self, client, llm):
        await _book_with_element(client)
        log_id = (await client.post("/api/daily-prompts/send-test-email")).json()["log_id"]

        assert (await client.post(f"/api/daily-prompts/skip/{log_id}", params={"token": "bogus"})).status_code == 401
        assert (await client.post(f"/api/daily-prompts/skip/{log_id}")).status_code == 401

    async def test_token_for_other_log_is_401(self, client, llm, writer):
        await _book_with_element(client)
        log_id = (await client.post("/api/daily-prompts/send-test-email")).json()["log_id"]
        token = new_magic_token(log_id + 1, writer.id)
        assert (await client.get(f"/api/daily-prompts/{log_id}", params={"token": token})).status_code == 401

    async def test_skip_counts_towards_pause(self, client, llm, writer):
        await _book_with_element(client)
        await client.put("/api/daily-prompts/preferences", json={"enabled": True, "pause_after_skips": 1})
        log_id = (await client.post("/api/daily-prompts/send-test-email")).json()["log_id"]

        r = await client.post(f"/api/daily-prompts/skip/{log_id}", params={"token": new_magic_token(log_id, writer.id)})

        assert r.json() == {"skipped": True, "paused": True}
        assert (await client.get("/api/daily-prompts/preferences")).json()["enabled"] is False


class TestRegistration:
    async def test_register_sets_up_profile_and_preferences(self, client, session_maker):
        r = await client.post("/auth/register", json={"email": "new.writer@example.com", "password": "caravan-dunes-42"})
        assert r.status_code == 201
        user_id = r.json()["id"]

        async with session_maker() as s:
            profile = (await s.execute(select(Profile).where(Profile.user_id == user_id))).scalars().one()
            prefs = (await s.execute(
                select(DailyPromptPreference).where(DailyPromptPreference.user_id == user_id)
            )).scalars().one()
        assert profile.display_name == "new.writer"
        assert prefs.enabled is False

    async def test_short_password_is_rejected(self, client):
        r = await client.post("/auth/register", json={"email": "short@example.com", "password": "abc"})
        assert r.status_code == 400
        assert r.json()["detail"]["code"] == "REGISTER_INVALID_PASSWORD"
