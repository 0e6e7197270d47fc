from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..schemas import ProfileRead, ProfileUpdate, StatsRead
from ..services.stats import get_or_create_profile, user_stats
from ..utils import require_authenticated_user

router = APIRouter(prefix="/api", tags=["profile"])


@router.get("/profile", response_model=ProfileRead)
async def read_profile(
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    profile = await get_or_create_profile(db, user)
    await db.commit()
    return profile


@router.put("/profile", response_model=ProfileRead)
async def update_profile(
    payload: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    profile = await get_or_create_profile(db, user)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(profile, key, value)
    await db.commit()
    await db.refresh(profile)
    return profile


@router.get("/stats", response_model=StatsRead)
async def read_stats(
    db: AsyncSession = Depends(get_db),
    user=Depends(require_authenticated_user),
):
    stats = await user_stats(db, user)
    await db.commit()
    return stats
