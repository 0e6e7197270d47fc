import os
import logging
from typing import Optional, Union

from fastapi import Depends, Request
from fastapi_users import FastAPIUsers, InvalidPasswordException
from fastapi_users.manager import BaseUserManager, IntegerIDMixin
from fastapi_users.authentication import CookieTransport, AuthenticationBackend, JWTStrategy
from fastapi_users.db import SQLAlchemyUserDatabase

from .database import get_db
from .models import User
from .schemas import UserCreate
from .services.daily_prompts import get_preferences
from .services.stats import get_or_create_profile

logger = logging.getLogger(__name__)

SECRET = (os.getenv("SECRET") or "").strip()
if not SECRET or SECRET == "CHANGE_ME_SECRET":
    raise RuntimeError("SECRET must be set to a strong value before starting StorySeed.")

SESSION_LIFETIME = 3600 * 24 * 7
MIN_PASSWORD_LENGTH = 8


async def get_user_db(session=Depends(get_db)):
    yield SQLAlchemyUserDatabase(session, User)


class UserManager(IntegerIDMixin, BaseUserManager[User, int]):
    reset_password_token_secret = SECRET
    verification_token_secret = SECRET

    async def validate_password(self, password: str, user: Union[UserCreate, User]) -> None:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidPasswordException(reason=f"Password should be at least {MIN_PASSWORD_LENGTH} characters")
        if user.email and user.email.split("@")[0].lower() in password.lower():
            raise InvalidPasswordException(reason="Password should not contain your email name")

    async def on_after_register(self, user: User, request: Optional[Request] = None):
        # every writer starts with a profile (streaks) and daily prompts switched off
        session = self.user_db.session
        await get_or_create_profile(session, user)
        await get_preferences(session, user.id)
        logger.info("Writer %s registered", user.id)

    async def on_after_forgot_password(self, user: User, token: str, request: Optional[Request] = None):
        logger.info("Password reset requested for writer %s", user.id)


async def get_user_manager(user_db=Depends(get_user_db)):
    yield UserManager(user_db)


cookie_transport = CookieTransport(
    cookie_name="storyseed_session",
    cookie_max_age=SESSION_LIFETIME,
    cookie_secure=os.getenv("COOKIE_SECURE", "").strip().lower() in {"1", "true", "yes", "on"},
    cookie_httponly=True,
)


def get_jwt_strategy() -> JWTStrategy:
    return JWTStrategy(secret=SECRET, lifetime_seconds=SESSION_LIFETIME)


auth_backend = AuthenticationBackend(name="jwt", transport=cookie_transport, get_strategy=get_jwt_strategy)

fastapi_users = FastAPIUsers[User, int](get_user_manager, [auth_backend])

current_active_user = fastapi_users.current_user(active=True)
