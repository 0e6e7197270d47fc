"""Tests for word counts, streaks and the stats summary."""

from __future__ import annotations

from datetime import date, datetime
from types import SimpleNamespace

from factories import make_book, make_user
from storyseed.models import Prompt, Response
from storyseed.services.stats import advance_streak, count_words, daily_activity, user_stats

TODAY = date(2026, 10, 18)


def _profile(last=None, current=0, longest=0):
    return SimpleNamespace(last_prompt_date=last, current_streak=current, longest_streak=longest)


def test_count_words():
    assert count_words("  one two\nthree\tfour ") == 4
    assert count_words("") == 0
    assert count_words(None) == 0


class TestAdvanceStreak:
    def test_first_answer_starts_streak(self):
        p = _profile()
        assert advance_streak(p, TODAY) is True
        assert (p.current_streak, p.longest_streak, p.last_prompt_date) == (1, 1, TODAY)

    def test_consecutive_day_extends(self):
        p = _profile(date(2026, 10, 17), current=4, longest=4)
        advance_streak(p, TODAY)
        assert (p.current_streak, p.longest_streak) == (5, 5)

    def test_same_day_counts_once(self):
        p = _profile(TODAY, current=2, longest=6)
        assert advance_streak(p, TODAY) is False
        assert p.current_streak == 2

    def test_gap_restarts_but_keeps_longest(self):
        p = _profile(date(2026, 10, 10), current=6, longest=6)
        advance_streak(p, TODAY)
        assert (p.current_streak, p.longest_streak) == (1, 6)


def test_daily_activity_buckets_last_days():
    responses = [
        SimpleNamespace(created_at=datetime(2026, 10, 18, 8), word_count=10),
        SimpleNamespace(created_at=datetime(2026, 10, 18, 20), word_count=5),
        SimpleNamespace(created_at=datetime(2026, 10, 16, 8), word_count=7),
        SimpleNamespace(created_at=datetime(2026, 8, 1, 8), word_count=100),
    ]
    days = daily_activity(responses, TODAY, days=3)
    assert days == [
        {"date": "2026-10-16", "word_count": 7, "prompt_count": 1},
        {"date": "2026-10-17", "word_count": 0, "prompt_count": 0},
        {"date": "2026-10-18", "word_count": 15, "prompt_count": 2},
    ]


async def test_user_stats_totals(db):
    user = await make_user(db)
    book = await make_book(db, user)
    for i, words in enumerate((10, 20)):
        prompt = Prompt(user_id=user.id, book_id=book.id, prompt_text=f"Q{i}", prompt_mode="general")
        db.add(prompt)
        await db.flush()
        db.add(Response(prompt_id=prompt.id, user_id=user.id, response_text="w " * words,
                        word_count=words, created_at=datetime(2026, 10, 17 + i, 9)))
    db.add(Prompt(user_id=user.id, book_id=book.id, prompt_text="unanswered", prompt_mode="general"))
    await db.flush()

    stats = await user_stats(db, user, today=TODAY)

    assert stats["total_words"] == 30
    assert stats["total_prompts"] == 3
    assert stats["total_responses"] == 2
    assert stats["average_words_per_day"] == 15
    assert len(stats["daily"]) == 30
    assert stats["current_streak"] == 0
