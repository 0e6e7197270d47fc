"""Tests for PromptStore queries against SQLite."""

from __future__ import annotations

from datetime import datetime, timedelta

from factories import make_book, make_element, make_user
from storyseed.models import DailyPromptSent, Prompt, Response
from storyseed.services.store import PromptStore
from storyseed.vocabulary import ElementType, PromptType


async def _answered_prompt(db, user, book, element_ids, text, answer=None, at=None):
    prompt = Prompt(user_id=user.id, book_id=book.id, prompt_text=text, prompt_mode="general")
    prompt.element_references = element_ids
    db.add(prompt)
    await db.flush()
    if answer is not None:
        db.add(Response(prompt_id=prompt.id, user_id=user.id, response_text=answer,
                        word_count=len(answer.split()), created_at=at or datetime(2026, 10, 1)))
        await db.flush()
    return prompt


class TestElementCandidates:
    async def test_counts_responses_across_prompts(self, db):
        user = await make_user(db)
        book = await make_book(db, user)
        elena = await make_element(db, book, ElementType.character, "Elena")
        oasis = await make_element(db, book, ElementType.location, "Oasis")
        await _answered_prompt(db, user, book, [elena.id], "Q1", "A1", datetime(2026, 10, 1))
        await _answered_prompt(db, user, book, [elena.id, oasis.id], "Q2", "A2", datetime(2026, 10, 5))
        await _answered_prompt(db, user, book, [oasis.id], "Q3")

        rows = await PromptStore(db).list_element_candidates(user.id, [book.id])
        by_name = {c.element.name: c for c in rows}

        assert by_name["Elena"].response_count == 2
        assert by_name["Elena"].last_response_at == datetime(2026, 10, 5)
        assert by_name["Oasis"].response_count == 1

    async def test_never_answered_element_has_no_timestamp(self, db):
        user = await make_user(db)
        book = await make_book(db, user)
        await make_element(db, book)

        (row,) = await PromptStore(db).list_element_candidates(user.id, [book.id])

        assert row.response_count == 0
        assert row.last_response_at is None

    async def test_other_users_elements_are_invisible(self, db):
        user = await make_user(db)
        other = await make_user(db, "other@example.com")
        book = await make_book(db, other)
        await make_element(db, book)

        assert await PromptStore(db).list_element_candidates(user.id, [book.id]) == []


class TestBooks:
    async def test_focus_book_filter(self, db):
        user = await make_user(db)
        first = await make_book(db, user, "First")
        await make_book(db, user, "Second")
        store = PromptStore(db)

        assert [b.title for b in await store.list_books(user.id)] == ["First", "Second"]
        assert [b.id for b in await store.list_books(user.id, first.id)] == [first.id]


class TestHistoryAndDeliveries:
    async def test_element_history_newest_first_and_limited(self, db):
        user = await make_user(db)
        book = await make_book(db, user)
        elena = await make_element(db, book)
        for day in range(1, 6):
            await _answered_prompt(db, user, book, [elena.id], f"Q{day}", f"A{day}", datetime(2026, 10, day))

        history = await PromptStore(db).element_history(user.id, elena.id, limit=3)

        assert [h.prompt_text for h in history] == ["Q5", "Q4", "Q3"]
        assert history[0].response_text == "A5"

    async def test_recent_deliveries_respect_window(self, db):
        user = await make_user(db)
        book = await make_book(db, user)
        elena = await make_element(db, book)
        store = PromptStore(db)
        now = datetime(2026, 10, 18, 12, 0)
        for days_ago, ptype in ((2, PromptType.dialogue), (10, PromptType.worldbuilding)):
            prompt = await _answered_prompt(db, user, book, [elena.id], f"{ptype.value}?")
            prompt.prompt_type = ptype
            sent_at = now - timedelta(days=days_ago)
            db.add(DailyPromptSent(user_id=user.id, prompt_id=prompt.id, element_id=elena.id,
                                   sent_at=sent_at, sent_on=sent_at.date()))
        await db.flush()

        recent = await store.recent_deliveries(user.id, 7, now=now)

        assert [r.prompt_type for r in recent] == ["dialogue"]
        assert recent[0].element_ids == [elena.id]

    async def test_sent_today_ignores_test_sends(self, db):
        user = await make_user(db)
        book = await make_book(db, user)
        elena = await make_element(db, book)
        store = PromptStore(db)
        prompt = await store.add_prompt(user_id=user.id, book_id=book.id, prompt_text="Q",
                                        prompt_type=PromptType.general, prompt_mode="daily_prompt",
                                        element_ids=[elena.id])

        await store.add_delivery_log(user_id=user.id, prompt_id=prompt.id, element_id=elena.id,
                                     email_format="minimal", is_test=True)
        assert await store.sent_today(user.id) is False

        await store.add_delivery_log(user_id=user.id, prompt_id=prompt.id, element_id=elena.id,
                                     email_format="minimal")
        assert await store.sent_today(user.id) is True
