# storyseed/services/selection.py
"""Pick which book, story element and prompt category a user is asked about next.

Selection is read-only: it never writes a prompt or touches preferences.
Randomness comes from ``rng`` (anything with ``choice``), so callers and
tests can pass a seeded ``random.Random``.
"""
from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from storyseed.models import Book
from storyseed.services.store import ElementCandidate
from storyseed.vocabulary import (
    PromptType, element_type_included, enabled_prompt_types, coerce_prompt_type,
)

logger = logging.getLogger(__name__)

UNDERDEVELOPED_FRACTION = 0.3
DEFAULT_AVOID_REPETITION_DAYS = 7


@dataclass
class PromptPreferences:
    """In-memory stand-in for DailyPromptPreference (interactive generation)."""
    focus_story_id: Optional[int] = None
    include_character: bool = True
    include_plot: bool = True
    include_worldbuilding: bool = True
    include_dialogue: bool = True
    include_conflict: bool = True
    include_general: bool = True
    focus_underdeveloped: bool = True
    avoid_repetition_days: int = DEFAULT_AVOID_REPETITION_DAYS
    include_context: bool = True
    include_previous_answers: bool = True


@dataclass
class SelectionTarget:
    element: ElementCandidate
    book: Book
    prompt_type: PromptType


def filter_by_type(candidates: list[ElementCandidate], preferences) -> list[ElementCandidate]:
    eligible = [c for c in candidates if element_type_included(c.element_type, preferences)]
    # too-restrictive filters never starve a user who has elements
    return eligible or list(candidates)


def _development_key(c: ElementCandidate):
    last = c.last_response_at
    return (c.response_count, last is not None, last or datetime.min)


def underdeveloped(candidates: list[ElementCandidate]) -> list[ElementCandidate]:
    """Lowest 30% by response count (rounded up, at least one)."""
    ordered = sorted(candidates, key=_development_key)
    cutoff = max(1, math.ceil(len(ordered) * UNDERDEVELOPED_FRACTION))
    return ordered[:cutoff]


def pick_element(candidates: list[ElementCandidate], preferences, rng=None) -> ElementCandidate:
    rng = rng or random
    pool = filter_by_type(candidates, preferences)
    if getattr(preferences, "focus_underdeveloped", False):
        pool = underdeveloped(pool)
    return rng.choice(pool)


def pick_prompt_type(preferences, recent_types, rng=None) -> PromptType:
    rng = rng or random
    enabled = enabled_prompt_types(preferences)
    if not enabled:
        # every category switched off: ask a general question rather than none
        logger.info("No prompt categories enabled; falling back to general")
        return PromptType.general
    recent = {coerce_prompt_type(t) for t in recent_types}
    fresh = [pt for pt in enabled if pt not in recent]
    return rng.choice(fresh or enabled)


async def select_prompt_target(store, user_id: int, preferences, rng=None) -> Optional[SelectionTarget]:
    """Choose (element, book, prompt_type) for ``user_id`` or None if there is nothing to ask about."""
    books = await store.list_books(user_id, getattr(preferences, "focus_story_id", None))
    if not books:
        return None

    candidates = await store.list_element_candidates(user_id, [b.id for b in books])
    if not candidates:
        return None

    element = pick_element(candidates, preferences, rng)

    days = getattr(preferences, "avoid_repetition_days", None)
    if days is None:
        days = DEFAULT_AVOID_REPETITION_DAYS
    recent = await store.recent_deliveries(user_id, days)
    prompt_type = pick_prompt_type(preferences, [r.prompt_type for r in recent], rng)

    book = next(b for b in books if b.id == element.book_id)
    logger.debug(
        "Selected element %s (%s responses) in book %s as %s for user %s",
        element.id, element.response_count, book.id, prompt_type.value, user_id,
    )
    return SelectionTarget(element=element, book=book, prompt_type=prompt_type)
