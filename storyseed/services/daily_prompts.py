# storyseed/services/daily_prompts.py
"""Daily prompt preferences, the delivery pipeline and open/respond/skip tracking."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storyseed.errors import DuplicateDeliveryConflict, NoEligibleTarget, PersistenceError
from storyseed.models import (
    Book, DailyPromptPreference, DailyPromptSent, Prompt, Response, StoryElement, utcnow,
)
from storyseed.services.composer import BookContext, ElementHistory, FocusElement, compose_prompt
from storyseed.services.mailer import send_daily_prompt_email
from storyseed.services.selection import select_prompt_target
from storyseed.services.stats import count_words, record_response_streak
from storyseed.services.store import PromptStore
from storyseed.vocabulary import DAILY_PROMPT_MODE

logger = logging.getLogger(__name__)

PREFERENCE_FIELDS = (
    "enabled", "delivery_time", "timezone", "focus_story_id", "email_format",
    "include_character", "include_plot", "include_worldbuilding", "include_dialogue",
    "include_conflict", "include_general", "focus_underdeveloped", "avoid_repetition_days",
    "include_context", "include_previous_answers", "send_streak_warning", "pause_after_skips",
)


# ---------------------------------------------
# Preferences
# ---------------------------------------------
async def get_preferences(db: AsyncSession, user_id: int) -> DailyPromptPreference:
    prefs = (await db.execute(
        select(DailyPromptPreference).where(DailyPromptPreference.user_id == user_id)
    )).scalars().first()
    if prefs:
        return prefs
    prefs = DailyPromptPreference(user_id=user_id, enabled=False)
    db.add(prefs)
    await db.flush()
    await db.commit()
    return prefs


def _enforce_auto_pause(prefs: DailyPromptPreference) -> bool:
    if prefs.enabled and (prefs.consecutive_skips or 0) >= (prefs.pause_after_skips or 0):
        prefs.enabled = False
        return True
    return False


async def update_preferences(db: AsyncSession, user_id: int, updates: dict) -> DailyPromptPreference:
    prefs = await get_preferences(db, user_id)
    was_enabled = bool(prefs.enabled)
    for key, value in updates.items():
        if key not in PREFERENCE_FIELDS:
            continue
        if value is None and key != "focus_story_id":
            continue
        setattr(prefs, key, value)

    if prefs.focus_story_id is not None:
        owned = (await db.execute(
            select(Book.id).where(Book.id == prefs.focus_story_id, Book.user_id == user_id)
        )).first()
        if not owned:
            raise ValueError("focus_story_id does not belong to this user")

    # turning delivery back on starts a fresh skip streak
    if prefs.enabled and not was_enabled:
        prefs.consecutive_skips = 0
    _enforce_auto_pause(prefs)
    await db.commit()
    return prefs


# ---------------------------------------------
# Delivery pipeline
# ---------------------------------------------
@dataclass
class Delivery:
    log: DailyPromptSent
    prompt: Prompt
    element: StoryElement
    book: Book


async def deliver_daily_prompt(db: AsyncSession, user, prefs, *, is_test: bool = False,
                               rng=None, generate=None) -> Delivery:
    """
    select -> compose -> persist Prompt -> persist DeliveryLog -> email -> commit.

    Everything runs in one transaction; any failure rolls it back so no row refers to a
    prompt that was never delivered. A second non-test delivery on the same UTC day
    raises DuplicateDeliveryConflict.
    """
    user_id, email = user.id, user.email
    store = PromptStore(db)
    try:
        target = await select_prompt_target(store, user_id, prefs, rng)
        if target is None:
            raise NoEligibleTarget(f"user {user_id} has no book or story element to prompt about")

        element, book = target.element.element, target.book
        with_context = bool(prefs.include_context)
        history = []
        if prefs.include_previous_answers:
            exchanges = await store.element_history(user_id, element.id, limit=3)
            if exchanges:
                history.append(ElementHistory(element=element, exchanges=exchanges))

        text = await compose_prompt(
            BookContext(title=book.title, description=book.description if with_context else None),
            target.prompt_type,
            [FocusElement.from_model(element, with_context)],
            history,
            generate=generate,
            rng=rng,
        )

        prompt = await store.add_prompt(
            user_id=user_id,
            book_id=book.id,
            prompt_text=text,
            prompt_type=target.prompt_type,
            prompt_mode=DAILY_PROMPT_MODE,
            element_ids=[element.id],
        )
        try:
            log = await store.add_delivery_log(
                user_id=user_id,
                prompt_id=prompt.id,
                element_id=element.id,
                email_format=prefs.email_format,
                is_test=is_test,
            )
        except IntegrityError as e:
            # only the one-per-day index means "already sent"; anything else is a storage fault
            await db.rollback()
            if not is_test and await store.sent_today(user_id):
                raise DuplicateDeliveryConflict(f"user {user_id} already received today's prompt") from e
            raise PersistenceError(f"delivery log for user {user_id} could not be stored: {e}") from e

        log.provider_message_id = await send_daily_prompt_email(
            email,
            log_id=log.id,
            user_id=user_id,
            prompt_text=text,
            element=element,
            book=book,
            email_format=prefs.email_format,
        )
        if not is_test:
            prefs.last_prompt_sent_at = log.sent_at
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError(f"daily prompt delivery for user {user_id} failed: {e}") from e
    except Exception:
        await db.rollback()
        raise

    logger.info("Delivered daily prompt %s (log %s, test=%s) to user %s", prompt.id, log.id, is_test, user_id)
    return Delivery(log=log, prompt=prompt, element=element, book=book)


# ---------------------------------------------
# Tracking
# ---------------------------------------------
async def get_delivery_log(db: AsyncSession, log_id: int) -> Optional[DailyPromptSent]:
    return (await db.execute(
        select(DailyPromptSent).where(DailyPromptSent.id == log_id)
    )).unique().scalars().first()


async def delivery_history(db: AsyncSession, user_id: int, limit: int = 30) -> list[DailyPromptSent]:
    rows = await db.execute(
        select(DailyPromptSent)
        .where(DailyPromptSent.user_id == user_id)
        .order_by(DailyPromptSent.sent_at.desc(), DailyPromptSent.id.desc())
        .limit(limit)
    )
    return list(rows.unique().scalars().all())


async def mark_opened(db: AsyncSession, log: DailyPromptSent) -> None:
    if log.opened_at is None:
        log.opened_at = utcnow()
        await db.commit()


async def mark_responded(db: AsyncSession, log: DailyPromptSent, user, response_text: str) -> Response:
    """Store the answer, close the delivery and reset the user's skip streak."""
    text = (response_text or "").strip()
    if not text:
        raise ValueError("response_text is empty")
    response = Response(
        prompt_id=log.prompt_id,
        user_id=log.user_id,
        response_text=text,
        word_count=count_words(text),
        created_at=utcnow(),
    )
    db.add(response)
    await db.flush()

    log.responded_at = utcnow()
    log.response_id = response.id
    prefs = await get_preferences(db, log.user_id)
    prefs.consecutive_skips = 0
    await record_response_streak(db, user)
    await db.commit()
    return response


async def mark_skipped(db: AsyncSession, log: DailyPromptSent, reason: Optional[str] = None) -> bool:
    """
    Record a skip and bump the consecutive-skip counter; pauses delivery when the
    counter reaches pause_after_skips. Returns True when delivery is now paused.
    """
    prefs = await get_preferences(db, log.user_id)
    if log.skipped or log.responded_at is not None:
        return not prefs.enabled

    log.skipped = True
    log.skip_reason = (reason or "User skipped")[:256]
    prefs.consecutive_skips = (prefs.consecutive_skips or 0) + 1
    paused = _enforce_auto_pause(prefs)
    await db.commit()
    if paused:
        logger.info("Paused daily prompts for user %s after %s skips", log.user_id, prefs.consecutive_skips)
    return paused or not prefs.enabled
