# storyseed/services/store.py
"""Database reads and writes used by the prompt pipeline.

The selection engine and the delivery service only talk to the database
through :class:`PromptStore`, so tests can hand them an in-memory fake with
the same coroutine methods.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storyseed.models import (
    Book, DailyPromptSent, Prompt, PromptElement, Response, StoryElement, utcnow,
)


@dataclass
class ElementCandidate:
    """A story element annotated with how much it has been written about."""
    element: StoryElement
    response_count: int = 0
    last_response_at: Optional[datetime] = None

    @property
    def id(self) -> int:
        return self.element.id

    @property
    def book_id(self) -> int:
        return self.element.book_id

    @property
    def element_type(self):
        return self.element.element_type


@dataclass
class RecentDelivery:
    prompt_type: str
    element_ids: list[int]


@dataclass
class Exchange:
    prompt_text: str
    response_text: Optional[str] = None


class PromptStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ---------- reads ----------

    async def list_books(self, user_id: int, book_id: Optional[int] = None) -> list[Book]:
        stmt = select(Book).where(Book.user_id == user_id)
        if book_id is not None:
            stmt = stmt.where(Book.id == book_id)
        return list((await self.db.execute(stmt.order_by(Book.id))).scalars().all())

    async def list_element_candidates(self, user_id: int, book_ids: Sequence[int]) -> list[ElementCandidate]:
        """Elements of ``book_ids`` with response_count and last_response_at.

        Counts every response to every prompt that references the element;
        last_response_at is the newest of those responses (None if never answered).
        """
        if not book_ids:
            return []
        response_count = func.count(distinct(Response.id))
        last_response_at = func.max(Response.created_at)
        stmt = (
            select(StoryElement, response_count, last_response_at)
            .outerjoin(PromptElement, PromptElement.element_id == StoryElement.id)
            .outerjoin(Response, Response.prompt_id == PromptElement.prompt_id)
            .where(StoryElement.book_id.in_(list(book_ids)), StoryElement.user_id == user_id)
            .group_by(StoryElement.id)
            .order_by(response_count.asc(), StoryElement.id.asc())
        )
        rows = (await self.db.execute(stmt)).all()
        return [
            ElementCandidate(element=el, response_count=int(count or 0), last_response_at=last)
            for el, count, last in rows
        ]

    async def recent_deliveries(self, user_id: int, days: int, now: Optional[datetime] = None) -> list[RecentDelivery]:
        since = (now or utcnow()) - timedelta(days=days)
        stmt = (
            select(Prompt)
            .join(DailyPromptSent, DailyPromptSent.prompt_id == Prompt.id)
            .where(DailyPromptSent.user_id == user_id, DailyPromptSent.sent_at > since)
        )
        prompts = (await self.db.execute(stmt)).unique().scalars().all()
        return [
            RecentDelivery(prompt_type=getattr(p.prompt_type, "value", p.prompt_type), element_ids=p.element_references)
            for p in prompts
        ]

    async def element_history(self, user_id: int, element_id: int, limit: int = 3) -> list[Exchange]:
        """Most recent answered prompts about one element, newest first."""
        stmt = (
            select(Prompt.prompt_text, Response.response_text)
            .join(Response, Response.prompt_id == Prompt.id)
            .join(PromptElement, PromptElement.prompt_id == Prompt.id)
            .where(PromptElement.element_id == element_id, Response.user_id == user_id)
            .order_by(Response.created_at.desc(), Response.id.desc())
            .limit(limit)
        )
        rows = (await self.db.execute(stmt)).all()
        return [Exchange(prompt_text=pt, response_text=rt) for pt, rt in rows]

    async def sent_today(self, user_id: int, now: Optional[datetime] = None) -> bool:
        today = (now or utcnow()).date()
        row = (await self.db.execute(
            select(DailyPromptSent.id).where(
                DailyPromptSent.user_id == user_id,
                DailyPromptSent.sent_on == today,
                DailyPromptSent.is_test.is_(False),
            ).limit(1)
        )).first()
        return row is not None

    # ---------- writes ----------

    async def add_prompt(self, *, user_id: int, book_id: Optional[int], prompt_text: str,
                         prompt_type, prompt_mode: str, element_ids: Sequence[int]) -> Prompt:
        prompt = Prompt(
            user_id=user_id,
            book_id=book_id,
            prompt_text=prompt_text,
            prompt_type=prompt_type,
            prompt_mode=prompt_mode,
            generated_at=utcnow(),
        )
        prompt.element_references = list(element_ids)
        self.db.add(prompt)
        await self.db.flush()
        return prompt

    async def add_delivery_log(self, *, user_id: int, prompt_id: int, element_id: Optional[int],
                               email_format, is_test: bool = False) -> DailyPromptSent:
        now = utcnow()
        log = DailyPromptSent(
            user_id=user_id,
            prompt_id=prompt_id,
            element_id=element_id,
            email_format=email_format,
            is_test=is_test,
            sent_at=now,
            sent_on=now.date(),
        )
        self.db.add(log)
        await self.db.flush()
        return log
