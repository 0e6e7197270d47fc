import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..errors import DeliveryProviderError, GenerationProviderError, NoEligibleTarget, PersistenceError
from ..models import User
from ..schemas import (
    DailyPromptPreferenceRead, DailyPromptPreferenceUpdate, DailyRespondRequest, DeliveryLogRead,
    ResponseRead, SendTestEmailResult, SkipResult,
)
from ..services import daily_prompts as svc
from ..services.tokens import parse_magic_token
from ..utils import require_authenticated_user

router = APIRouter(prefix="/api/daily-prompts", tags=["daily-prompts"])
logger = logging.getLogger(__name__)


async def _log_from_token(db: AsyncSession, log_id: int, token: Optional[str]):
    """Resolve a magic-link token to its delivery log (401 bad token, 404 unknown log, 403 wrong user)."""
    if not token:
        raise HTTPException(status_code=401, detail="Token required")
    parsed = parse_magic_token(token)
    if not parsed or parsed[0] != log_id:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    log = await svc.get_delivery_log(db, log_id)
    if not log:
        raise HTTPException(status_code=404, detail="Prompt not found")
    if log.user_id != parsed[1]:
        raise HTTPException(status_code=403, detail="Unauthorized")
    return log


# ---------- preferences (session auth) ----------

@router.get("/preferences", response_model=DailyPromptPreferenceRead)
async def read_preferences(
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    return await svc.get_preferences(db, user.id)


@router.put("/preferences", response_model=DailyPromptPreferenceRead)
async def write_preferences(
    payload: DailyPromptPreferenceUpdate,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    try:
        return await svc.update_preferences(db, user.id, payload.model_dump(exclude_unset=True))
    except ValueError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/send-test-email", response_model=SendTestEmailResult)
async def send_test_email(
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    """Deliver a prompt right now; test sends never count against today's delivery."""
    prefs = await svc.get_preferences(db, user.id)
    try:
        delivery = await svc.deliver_daily_prompt(db, user, prefs, is_test=True)
    except NoEligibleTarget:
        raise HTTPException(status_code=400, detail="Add a book and at least one story element first")
    except GenerationProviderError as e:
        logger.warning("Test prompt generation failed for user %s: %s", user.id, e)
        raise HTTPException(status_code=502, detail="Prompt service unavailable, please retry")
    except DeliveryProviderError as e:
        logger.warning("Test email failed for user %s: %s", user.id, e)
        raise HTTPException(status_code=502, detail="Email could not be sent, please retry")
    except PersistenceError:
        logger.exception("Test delivery for user %s could not be saved", user.id)
        raise HTTPException(status_code=500, detail="Failed to send test email")
    return SendTestEmailResult(
        log_id=delivery.log.id,
        prompt_text=delivery.prompt.prompt_text,
        element_name=delivery.element.name,
        book_title=delivery.book.title,
        provider_message_id=delivery.log.provider_message_id,
    )


@router.get("/history", response_model=list[DeliveryLogRead])
async def read_history(
    limit: int = Query(30, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    logs = await svc.delivery_history(db, user.id, limit=limit)
    return [DeliveryLogRead.from_log(log) for log in logs]


# ---------- magic-link endpoints (token auth) ----------

@router.get("/{log_id}", response_model=DeliveryLogRead)
async def open_daily_prompt(
    log_id: int,
    token: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    log = await _log_from_token(db, log_id, token)
    await svc.mark_opened(db, log)
    return DeliveryLogRead.from_log(log)


@router.post("/{log_id}/respond", response_model=ResponseRead)
async def respond_daily_prompt(
    log_id: int,
    payload: DailyRespondRequest,
    db: AsyncSession = Depends(get_db),
):
    log = await _log_from_token(db, log_id, payload.token)
    if log.responded_at is not None:
        raise HTTPException(status_code=409, detail="This prompt was already answered")
    user = await db.get(User, log.user_id)
    try:
        return await svc.mark_responded(db, log, user, payload.response_text)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/skip/{log_id}", response_model=SkipResult)
async def skip_daily_prompt(
    log_id: int,
    token: Optional[str] = Query(None),
    reason: Optional[str] = Body(None, embed=True),
    db: AsyncSession = Depends(get_db),
):
    log = await _log_from_token(db, log_id, token)
    paused = await svc.mark_skipped(db, log, reason)
    return SkipResult(paused=paused)
