# storyseed/services/tokens.py
# Signed links that let a user open, answer or skip a delivered prompt straight from the email.
import base64, hmac, hashlib
from datetime import datetime, timedelta
from storyseed.models import utcnow
from storyseed.settings.config import settings


def _key() -> bytes:
    return settings.MAGIC_LINK_SECRET.encode()

def new_magic_token(log_id: int, user_id: int, ttl_hours: int | None = None, now: datetime | None = None) -> str:
    # raw is ASCII "log:user:expiry"; sig is the HMAC truncated to 16 bytes to keep URLs short
    ttl = ttl_hours if ttl_hours is not None else settings.MAGIC_LINK_TTL_HOURS
    expires = int(((now or utcnow()) + timedelta(hours=ttl)).timestamp())
    raw = f"{log_id}:{user_id}:{expires}".encode()
    sig = hmac.new(_key(), raw, hashlib.sha256).digest()[:16]
    return base64.urlsafe_b64encode(raw + b"." + sig).decode().rstrip("=")

def parse_magic_token(token: str, now: datetime | None = None) -> tuple[int, int] | None:
    """Return (log_id, user_id) for a valid, unexpired token, else None."""
    try:
        buf = token + "=" * (-len(token) % 4)
        data = base64.urlsafe_b64decode(buf.encode())
        raw, sig = data.rsplit(b".", 1)
        expected = hmac.new(_key(), raw, hashlib.sha256).digest()
        if len(sig) < 16 or not hmac.compare_digest(expected[: len(sig)], sig):
            return None
        log_id, user_id, expires = raw.decode().split(":", 2)
        if int(expires) < int((now or utcnow()).timestamp()):
            return None
        return int(log_id), int(user_id)
    except (ValueError, UnicodeDecodeError):
        return None

def write_url(log_id: int, token: str) -> str:
    return f"{settings.BASE_URL.rstrip('/')}/write/{log_id}?token={token}"

def skip_url(log_id: int, token: str) -> str:
    return f"{settings.BASE_URL.rstrip('/')}/api/daily-prompts/skip/{log_id}?token={token}"
