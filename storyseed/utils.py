from fastapi import Depends, HTTPException, status
from fastapi_users import models

from .users import current_active_user


# Dependency to enforce authentication
async def require_authenticated_user(
    user: models.UP = Depends(current_active_user),
):
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


def get_owned_or_404(obj, user, what: str = "Item"):
    """404 unless ``obj`` exists and belongs to ``user`` (never leak other users' rows)."""
    if obj is None or getattr(obj, "user_id", None) != user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")
    return obj
