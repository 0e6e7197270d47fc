# storyseed/services/stats.py
from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storyseed.models import Profile, Prompt, Response, utcnow


def count_words(text: Optional[str]) -> int:
    return len((text or "").split())


async def get_or_create_profile(db: AsyncSession, user) -> Profile:
    profile = (await db.execute(select(Profile).where(Profile.user_id == user.id))).scalars().first()
    if profile:
        return profile
    profile = Profile(
        user_id=user.id,
        display_name=user.username or (user.email or "").split("@")[0],
        timezone="UTC",
        current_streak=0,
        longest_streak=0,
    )
    db.add(profile)
    await db.flush()
    return profile


def advance_streak(profile: Profile, today: Optional[date] = None) -> bool:
    """
    Count today's answer towards the daily streak.
    Answering on consecutive UTC days extends the streak; a gap restarts it at 1.
    Returns False when today was already counted.
    """
    today = today or utcnow().date()
    last = profile.last_prompt_date
    if last == today:
        return False
    if last == today - timedelta(days=1):
        profile.current_streak = (profile.current_streak or 0) + 1
    else:
        profile.current_streak = 1
    profile.longest_streak = max(profile.current_streak, profile.longest_streak or 0)
    profile.last_prompt_date = today
    return True


async def record_response_streak(db: AsyncSession, user, today: Optional[date] = None) -> Profile:
    profile = await get_or_create_profile(db, user)
    advance_streak(profile, today)
    await db.flush()
    return profile


def daily_activity(responses: Iterable, today: date, days: int = 30) -> list[dict]:
    """Words and answers per UTC day for the last ``days`` days, oldest first."""
    by_day: dict[date, dict] = {}
    for r in responses:
        if not r.created_at:
            continue
        d = r.created_at.date()
        slot = by_day.setdefault(d, {"words": 0, "prompts": 0})
        slot["words"] += r.word_count or 0
        slot["prompts"] += 1

    out = []
    for i in range(days - 1, -1, -1):
        d = today - timedelta(days=i)
        slot = by_day.get(d, {"words": 0, "prompts": 0})
        out.append({"date": d.isoformat(), "word_count": slot["words"], "prompt_count": slot["prompts"]})
    return out


async def user_stats(db: AsyncSession, user, today: Optional[date] = None) -> dict:
    today = today or utcnow().date()
    profile = await get_or_create_profile(db, user)
    responses = (await db.execute(select(Response).where(Response.user_id == user.id))).scalars().all()
    total_prompts = (await db.execute(
        select(func.count(Prompt.id)).where(Prompt.user_id == user.id)
    )).scalar_one()

    last30 = daily_activity(responses, today)
    active_days = [d for d in last30 if d["word_count"] > 0]
    average = round(sum(d["word_count"] for d in active_days) / len(active_days)) if active_days else 0

    return {
        "total_words": sum(r.word_count or 0 for r in responses),
        "total_prompts": int(total_prompts or 0),
        "total_responses": len(responses),
        "current_streak": profile.current_streak or 0,
        "longest_streak": profile.longest_streak or 0,
        "average_words_per_day": average,
        "daily": last30,
    }
