# storyseed/services/mailer.py
import logging
import os
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid, parseaddr
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from storyseed.background import run_sync
from storyseed.errors import DeliveryProviderError
from storyseed.settings.config import settings
from storyseed.services.tokens import new_magic_token, skip_url, write_url
from storyseed.vocabulary import EmailFormat

logger = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")
templates = Environment(
    loader=FileSystemLoader(TEMPLATES_DIR),
    autoescape=select_autoescape(["html"]),
)

SUBJECTS = {
    EmailFormat.minimal: "✍️ Your daily writing prompt",
    EmailFormat.detailed: "✍️ Daily prompt: {element_name} ({book_title})",
    EmailFormat.inspirational: "🌱 Time to grow your story: {element_name}",
}


def send_email(
    to_email: str,
    subject: str,
    text_body: str,
    html_body: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> Optional[str]:
    """
    Sends an email using SMTP or 'dummy' transport (logs only).
    Uses STARTTLS/SSL based on settings; logs in if SMTP_USERNAME is provided.
    Returns the Message-ID on success (used to track the delivery), None on SMTP failure.
    """
    transport = (settings.EMAIL_TRANSPORT or "smtp").lower()
    from_addr = (settings.SMTP_FROM or settings.SMTP_USERNAME or "").strip()
    domain = (parseaddr(from_addr)[1].partition("@")[2] or "storyseed.local")
    message_id = make_msgid(domain=domain)

    if transport == "dummy":
        logger.info("DUMMY EMAIL (not sent) to=%s subject=%s id=%s\n%s", to_email, subject, message_id, text_body)
        return message_id

    # Gmail enforces From to match the authenticated account; push branded address into Reply-To
    if settings.SMTP_USERNAME and from_addr and parseaddr(from_addr)[1].lower() != settings.SMTP_USERNAME.lower():
        if not reply_to:
            reply_to = from_addr
        from_addr = settings.SMTP_USERNAME
    if not from_addr:
        logger.error("SMTP_FROM/SMTP_USERNAME not configured; cannot send to %s", to_email)
        return None

    msg = MIMEMultipart("alternative")
    msg["From"] = from_addr
    msg["To"] = to_email
    msg["Subject"] = subject
    msg["Message-ID"] = message_id
    if reply_to:
        msg["Reply-To"] = reply_to

    msg.attach(MIMEText(text_body or "", "plain", "utf-8"))
    if html_body:
        msg.attach(MIMEText(html_body, "html", "utf-8"))

    host = settings.SMTP_HOST
    port = int(settings.SMTP_PORT or 587)

    try:
        if settings.SMTP_USE_SSL:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(host, port, context=context, timeout=30) as s:
                if settings.SMTP_USERNAME:
                    s.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD or "")
                s.sendmail(from_addr, [to_email], msg.as_string())
        else:
            with smtplib.SMTP(host, port, timeout=30) as s:
                s.ehlo()
                if settings.SMTP_USE_TLS:
                    s.starttls(context=ssl.create_default_context())
                    s.ehlo()
                if settings.SMTP_USERNAME:
                    s.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD or "")
                s.sendmail(from_addr, [to_email], msg.as_string())
        return message_id
    except (smtplib.SMTPException, OSError) as e:
        logger.error("SMTP error sending to %s: %s", to_email, e)
        return None


def render_daily_prompt(email_format, ctx: dict) -> tuple[str, str, str]:
    """Return (subject, html, text) for one daily prompt email."""
    try:
        fmt = EmailFormat(getattr(email_format, "value", email_format))
    except ValueError:
        fmt = EmailFormat.minimal
    subject = SUBJECTS[fmt].format(**ctx)
    html = templates.get_template(f"email/{fmt.value}.html").render(ctx)
    text = templates.get_template(f"email/{fmt.value}.txt").render(ctx)
    return subject, html, text


async def send_daily_prompt_email(to_email: str, *, log_id: int, user_id: int, prompt_text: str,
                                  element, book, email_format) -> str:
    token = new_magic_token(log_id, user_id)
    base_url = settings.BASE_URL.rstrip("/")
    ctx = {
        "prompt_text": prompt_text,
        "element_name": element.name,
        "element_type": str(getattr(element.element_type, "value", element.element_type)).replace("_", " "),
        "book_title": book.title,
        "write_url": write_url(log_id, token),
        "skip_url": skip_url(log_id, token),
        "settings_url": f"{base_url}/settings/daily-prompts",
        "unsubscribe_url": f"{base_url}/settings/daily-prompts?unsubscribe=true",
    }
    subject, html, text = render_daily_prompt(email_format, ctx)
    provider_id = await run_sync(send_email, to_email, subject, text, html)
    if not provider_id:
        raise DeliveryProviderError(f"Daily prompt email to {to_email} was not accepted")
    return provider_id


async def send_streak_warning_email(to_email: str, *, consecutive_skips: int, pause_threshold: int) -> str:
    ctx = {
        "consecutive_skips": consecutive_skips,
        "pause_threshold": pause_threshold,
        "write_url": f"{settings.BASE_URL.rstrip('/')}/prompt",
    }
    html = templates.get_template("email/streak_warning.html").render(ctx)
    text = templates.get_template("email/streak_warning.txt").render(ctx)
    subject = f"⚠️ Don't lose your {settings.APP_NAME} streak!"
    provider_id = await run_sync(send_email, to_email, subject, text, html)
    if not provider_id:
        raise DeliveryProviderError(f"Streak warning email to {to_email} was not accepted")
    return provider_id
