from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Prompt, Response, utcnow
from ..schemas import ResponseCreate, ResponseRead, ResponseUpdate
from ..services.stats import count_words, record_response_streak
from ..utils import get_owned_or_404, require_authenticated_user

router = APIRouter(prefix="/api/responses", tags=["responses"])


@router.get("", response_model=list[ResponseRead])
async def list_responses(
    prompt_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    stmt = select(Response).where(Response.user_id == user.id)
    if prompt_id is not None:
        stmt = stmt.where(Response.prompt_id == prompt_id)
    rows = await db.execute(stmt.order_by(Response.created_at.desc(), Response.id.desc()))
    return rows.scalars().all()


@router.post("", response_model=ResponseRead, status_code=201)
async def create_response(
    payload: ResponseCreate,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    get_owned_or_404(await db.get(Prompt, payload.prompt_id), user, "Prompt")
    text = payload.response_text.strip()
    response = Response(
        prompt_id=payload.prompt_id,
        user_id=user.id,
        response_text=text,
        word_count=count_words(text),
        created_at=utcnow(),
    )
    db.add(response)
    await record_response_streak(db, user)
    await db.commit()
    await db.refresh(response)
    return response


@router.put("/{response_id}", response_model=ResponseRead)
async def update_response(
    response_id: int,
    payload: ResponseUpdate,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    response = get_owned_or_404(await db.get(Response, response_id), user, "Response")
    response.response_text = payload.response_text.strip()
    response.word_count = count_words(response.response_text)
    response.updated_at = utcnow()
    await db.commit()
    await db.refresh(response)
    return response
