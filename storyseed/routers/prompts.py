import logging
from typing import Optional, Sequence

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..errors import GenerationProviderError
from ..models import Book, Prompt, StoryElement
from ..schemas import (
    AvailableModesRequest, AvailableModesResult, ElementRead, GeneratePromptRequest,
    GeneratePromptResult, PromptCreate, PromptRead,
)
from ..services.composer import BookContext, ElementHistory, compose_prompt, resolve_focus_elements
from ..services.selection import PromptPreferences, select_prompt_target
from ..services.store import PromptStore
from ..utils import get_owned_or_404, require_authenticated_user
from ..vocabulary import PromptType, available_modes

router = APIRouter(prefix="/api", tags=["prompts"])
logger = logging.getLogger(__name__)


async def load_user_elements(db: AsyncSession, user, element_ids: Sequence[int]) -> list[StoryElement]:
    """Elements in the requested order; 400 if any is missing or they span several books."""
    ids = list(dict.fromkeys(element_ids))
    if not ids:
        return []
    rows = (await db.execute(
        select(StoryElement).where(StoryElement.id.in_(ids), StoryElement.user_id == user.id)
    )).scalars().all()
    by_id = {el.id: el for el in rows}
    missing = [i for i in ids if i not in by_id]
    if missing:
        raise HTTPException(status_code=400, detail=f"Unknown story elements: {missing}")
    if len({el.book_id for el in rows}) > 1:
        raise HTTPException(status_code=400, detail="Story elements must belong to the same book")
    return [by_id[i] for i in ids]


# ---------- prompts ----------

@router.get("/prompts", response_model=list[PromptRead])
async def list_prompts(
    book_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    stmt = select(Prompt).where(Prompt.user_id == user.id)
    if book_id is not None:
        stmt = stmt.where(Prompt.book_id == book_id)
    rows = await db.execute(stmt.order_by(Prompt.generated_at.desc(), Prompt.id.desc()).limit(limit))
    return rows.unique().scalars().all()


@router.get("/prompts/{prompt_id}", response_model=PromptRead)
async def get_prompt(
    prompt_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    return get_owned_or_404(await db.get(Prompt, prompt_id), user, "Prompt")


@router.post("/prompts", response_model=PromptRead, status_code=201)
async def create_prompt(
    payload: PromptCreate,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    elements = await load_user_elements(db, user, payload.element_references)
    book_id = payload.book_id
    if book_id is not None:
        get_owned_or_404(await db.get(Book, book_id), user, "Book")
    elif elements:
        book_id = elements[0].book_id
    if any(el.book_id != book_id for el in elements):
        raise HTTPException(status_code=400, detail="Story elements must belong to the prompt's book")

    prompt = await PromptStore(db).add_prompt(
        user_id=user.id,
        book_id=book_id,
        prompt_text=payload.prompt_text,
        prompt_type=payload.prompt_type,
        prompt_mode=payload.prompt_mode,
        element_ids=[el.id for el in elements],
    )
    await db.commit()
    return prompt


# ---------- interactive generation ----------

@router.post("/generate-prompt", response_model=GeneratePromptResult)
async def generate_prompt(
    payload: GeneratePromptRequest,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    """
    Generate one question. Pinned ``element_ids`` are used as-is; otherwise the
    selection engine picks the element (and the category unless ``prompt_type`` is set).
    """
    store = PromptStore(db)
    elements = await load_user_elements(db, user, payload.element_ids)
    if elements:
        book = await db.get(Book, elements[0].book_id)
        category = payload.prompt_type or PromptType.general
    else:
        prefs = PromptPreferences(focus_story_id=payload.book_id)
        target = await select_prompt_target(store, user.id, prefs)
        if target is None:
            raise HTTPException(status_code=400, detail="Add a book and at least one story element first")
        book = target.book
        if payload.prompt_type:
            category = payload.prompt_type
            candidates = await store.list_element_candidates(user.id, [book.id])
            elements = resolve_focus_elements(category, [], [c.element for c in candidates])
        else:
            category = target.prompt_type
            elements = [target.element.element]

    history = []
    if payload.include_previous_answers:
        for el in elements:
            exchanges = await store.element_history(user.id, el.id)
            if exchanges:
                history.append(ElementHistory(element=el, exchanges=exchanges))

    try:
        text = await compose_prompt(BookContext(book.title, book.description), category, elements, history)
    except GenerationProviderError as e:
        logger.warning("Prompt generation failed for user %s: %s", user.id, e)
        raise HTTPException(status_code=502, detail="Prompt service unavailable, please retry")

    prompt = await store.add_prompt(
        user_id=user.id,
        book_id=book.id,
        prompt_text=text,
        prompt_type=category,
        prompt_mode=category.value,
        element_ids=[el.id for el in elements],
    )
    await db.commit()
    return GeneratePromptResult(
        prompt=PromptRead.model_validate(prompt),
        elements=[ElementRead.model_validate(el) for el in elements],
    )


@router.post("/available-modes", response_model=AvailableModesResult)
async def get_available_modes(
    payload: AvailableModesRequest,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    if payload.element_ids:
        elements = await load_user_elements(db, user, payload.element_ids)
    else:
        elements = (await db.execute(
            select(StoryElement).where(StoryElement.user_id == user.id)
        )).scalars().all()
    return AvailableModesResult(modes=available_modes([el.element_type for el in elements]))
