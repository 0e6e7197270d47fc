import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..errors import GenerationProviderError
from ..llm_client import enhance_element_description
from ..models import Book, Prompt, PromptElement, Response, StoryElement
from ..schemas import ElementCreate, ElementRead, ElementUpdate, EnhanceResult
from ..utils import get_owned_or_404, require_authenticated_user

router = APIRouter(prefix="/api/elements", tags=["elements"])
logger = logging.getLogger(__name__)


@router.get("", response_model=list[ElementRead])
async def list_elements(
    book_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    stmt = select(StoryElement).where(StoryElement.user_id == user.id)
    if book_id is not None:
        stmt = stmt.where(StoryElement.book_id == book_id)
    rows = await db.execute(stmt.order_by(StoryElement.element_type, StoryElement.name))
    return rows.scalars().all()


@router.post("", response_model=ElementRead, status_code=201)
async def create_element(
    payload: ElementCreate,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    get_owned_or_404(await db.get(Book, payload.book_id), user, "Book")
    element = StoryElement(
        book_id=payload.book_id,
        user_id=user.id,
        element_type=payload.element_type,
        name=payload.name.strip(),
        description=payload.description or "",
        notes=payload.notes or "",
    )
    db.add(element)
    await db.commit()
    await db.refresh(element)
    return element


@router.get("/{element_id}", response_model=ElementRead)
async def get_element(
    element_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    return get_owned_or_404(await db.get(StoryElement, element_id), user, "Element")


@router.put("/{element_id}", response_model=ElementRead)
async def update_element(
    element_id: int,
    payload: ElementUpdate,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    element = get_owned_or_404(await db.get(StoryElement, element_id), user, "Element")
    for key, value in payload.model_dump(exclude_unset=True).items():
        if key == "name" and value is None:
            continue
        if key == "element_type" and value is None:
            continue
        setattr(element, key, value)
    await db.commit()
    await db.refresh(element)
    return element


@router.delete("/{element_id}")
async def delete_element(
    element_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    element = get_owned_or_404(await db.get(StoryElement, element_id), user, "Element")
    await db.delete(element)
    await db.commit()
    return {"success": True}


@router.post("/{element_id}/enhance", response_model=EnhanceResult)
async def enhance_element(
    element_id: int,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    """Consolidate description, notes and every answered prompt about the element (not saved)."""
    element = get_owned_or_404(await db.get(StoryElement, element_id), user, "Element")
    rows = await db.execute(
        select(Prompt.prompt_text, Prompt.prompt_type, Response.response_text)
        .join(PromptElement, PromptElement.prompt_id == Prompt.id)
        .outerjoin(Response, Response.prompt_id == Prompt.id)
        .where(PromptElement.element_id == element.id, Prompt.user_id == user.id)
        .order_by(Prompt.generated_at.desc(), Prompt.id.desc())
    )
    exchanges = [
        {"prompt_text": pt, "prompt_type": ptype, "response_text": rt}
        for pt, ptype, rt in rows.all()
    ]
    try:
        text = await enhance_element_description(element, exchanges)
    except GenerationProviderError as e:
        logger.warning("Enhance failed for element %s: %s", element.id, e)
        raise HTTPException(status_code=502, detail="Description service unavailable, please retry")
    return EnhanceResult(element_id=element.id, description=text or (element.description or ""))
