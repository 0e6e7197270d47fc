# storyseed/services/scheduler.py
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from sqlalchemy import select

from storyseed.database import async_session_maker
from storyseed.errors import DuplicateDeliveryConflict, NoEligibleTarget, StorySeedError
from storyseed.models import DailyPromptPreference, User
from storyseed.services.daily_prompts import deliver_daily_prompt
from storyseed.services.mailer import send_streak_warning_email
from storyseed.services.store import PromptStore
from storyseed.settings.config import settings

scheduler: Optional[AsyncIOScheduler] = None
_stop_requested = False
logger = logging.getLogger(__name__)

JOB_ID = "daily_prompts"


def _pick_tz(name: Optional[str]):
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def is_delivery_hour(prefs, now: datetime) -> bool:
    """True when ``now`` falls in the same local hour as the user's delivery_time."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(_pick_tz(prefs.timezone))
    delivery = prefs.delivery_time
    return delivery is not None and local.hour == delivery.hour


@dataclass
class CycleResult:
    checked: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0


# ---------------------------------------------
# Per-user processing
# ---------------------------------------------
async def process_user(db, user_id: int, now: datetime, rng=None, generate=None) -> bool:
    """Deliver today's prompt for one user if it is due. Returns True when an email went out."""
    prefs = (await db.execute(
        select(DailyPromptPreference).where(DailyPromptPreference.user_id == user_id)
    )).scalars().first()
    user = await db.get(User, user_id)
    if not prefs or not prefs.enabled or not user or not user.is_active:
        return False

    if await PromptStore(db).sent_today(user_id, now):
        logger.debug("User %s already received today's prompt", user_id)
        return False
    if not is_delivery_hour(prefs, now):
        return False

    email = user.email
    warn = bool(prefs.send_streak_warning) and (prefs.consecutive_skips or 0) >= settings.STREAK_WARNING_AFTER_SKIPS
    skips, threshold = prefs.consecutive_skips or 0, prefs.pause_after_skips

    try:
        await deliver_daily_prompt(db, user, prefs, rng=rng, generate=generate)
    except NoEligibleTarget:
        logger.info("No prompt could be generated for user %s", user_id)
        return False
    except DuplicateDeliveryConflict:
        logger.info("Daily prompt for user %s was already delivered by another run", user_id)
        return False

    if warn:
        try:
            await send_streak_warning_email(email, consecutive_skips=skips, pause_threshold=threshold)
            logger.info("Sent streak warning to user %s", user_id)
        except StorySeedError as e:
            logger.warning("Streak warning for user %s failed: %s", user_id, e)
    return True


async def run_delivery_cycle(now: Optional[datetime] = None, session_maker=None,
                             rng=None, generate=None) -> CycleResult:
    """
    Check every enabled user once. A failure for one user is logged and does not stop
    the others; each user gets a fresh session so a rollback cannot leak across users.
    """
    now = now or datetime.now(timezone.utc)
    session_maker = session_maker or async_session_maker
    result = CycleResult()

    async with session_maker() as db:
        user_ids = (await db.execute(
            select(DailyPromptPreference.user_id)
            .join(User, User.id == DailyPromptPreference.user_id)
            .where(DailyPromptPreference.enabled.is_(True), User.is_active.is_(True))
            .order_by(DailyPromptPreference.user_id)
        )).scalars().all()

    logger.info("Daily prompts check: %s enabled users", len(user_ids))
    for uid in user_ids:
        if _stop_requested:
            logger.info("Scheduler stopping; leaving %s users for the next run", len(user_ids) - result.checked)
            break
        result.checked += 1
        try:
            async with session_maker() as db:
                if await process_user(db, uid, now, rng=rng, generate=generate):
                    result.sent += 1
                else:
                    result.skipped += 1
        except Exception:
            result.failed += 1
            logger.exception("Daily prompt delivery failed for user %s", uid)

    logger.info("Daily prompts check completed: %s", result)
    return result


async def job_daily_prompts():
    await run_delivery_cycle()


async def job_dev_dry_run():
    async with async_session_maker() as db:
        row = (await db.execute(
            select(User.email)
            .join(DailyPromptPreference, DailyPromptPreference.user_id == User.id)
            .where(DailyPromptPreference.enabled.is_(True))
            .limit(1)
        )).first()
    if row:
        logger.info("Dry run: first enabled user is %s", row[0])
    else:
        logger.info("Dry run: no enabled users found")


# ---------------------------------------------
# Lifecycle
# ---------------------------------------------
def start_scheduler():
    global scheduler, _stop_requested
    if scheduler:
        return
    _stop_requested = False
    scheduler = AsyncIOScheduler(timezone=timezone.utc)

    cron_expr = (settings.DAILY_PROMPTS_CRON or "").strip()
    try:
        trigger = CronTrigger.from_crontab(cron_expr, timezone=timezone.utc)
        logger.info("Daily prompts scheduler using DAILY_PROMPTS_CRON='%s'", cron_expr)
    except ValueError:
        trigger = CronTrigger(minute=0, timezone=timezone.utc)
        logger.warning("Invalid DAILY_PROMPTS_CRON; falling back to hourly")

    scheduler.add_job(job_daily_prompts, trigger, id=JOB_ID, max_instances=1, coalesce=True, replace_existing=True)
    if settings.APP_ENV == "development":
        scheduler.add_job(job_dev_dry_run, DateTrigger(datetime.now(timezone.utc) + timedelta(seconds=5)))
        logger.info("Development mode: dry run in 5 seconds")
    scheduler.start()
    logger.info("Daily prompts scheduler started")


def stop_scheduler():
    global scheduler, _stop_requested
    _stop_requested = True
    if not scheduler:
        return
    scheduler.shutdown(wait=False)
    scheduler = None
    logger.info("Daily prompts scheduler stopped")
