import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .database import init_db
from .routers import books, daily_prompts, elements, profile, prompts, responses
from .schemas import UserCreate, UserRead, UserUpdate
from .services.scheduler import start_scheduler, stop_scheduler
from .settings.config import settings
from .users import auth_backend, fastapi_users

logging.basicConfig(
    level=logging.DEBUG if settings.APP_ENV == "development" else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", settings.BASE_URL).split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ----------------------
# Route Includes
# ----------------------
app.include_router(books.router)
app.include_router(elements.router)
app.include_router(prompts.router)
app.include_router(responses.router)
app.include_router(profile.router)
app.include_router(daily_prompts.router)

# Authentication Routes
app.include_router(
    fastapi_users.get_auth_router(auth_backend),
    prefix="/auth/jwt",
    tags=["auth"]
)
app.include_router(
    fastapi_users.get_register_router(UserRead, UserCreate),
    prefix="/auth",
    tags=["auth"]
)
app.include_router(
    fastapi_users.get_users_router(UserRead, UserUpdate),
    prefix="/users",
    tags=["users"]
)


@app.get("/api/health")
async def health():
    return {"status": "ok", "app": settings.APP_NAME}


@app.on_event("startup")
async def on_startup():
    from . import models  # Required for SQLAlchemy model detection
    await init_db()
    if settings.DAILY_PROMPTS_ENABLED and settings.APP_ENV != "test":
        start_scheduler()
    else:
        logger.info("Daily prompts scheduler disabled")


@app.on_event("shutdown")
async def on_shutdown():
    stop_scheduler()
