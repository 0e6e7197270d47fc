"""Tests for email rendering and the dummy / SMTP transports."""

from __future__ import annotations

import smtplib
from types import SimpleNamespace
from unittest.mock import patch

import pytest

from storyseed.errors import DeliveryProviderError
from storyseed.services import mailer
from storyseed.services.tokens import parse_magic_token
from storyseed.vocabulary import ElementType, EmailFormat

CTX = {
    "prompt_text": "What does <Elena> fear?",
    "element_name": "Elena",
    "element_type": "character",
    "book_title": "The Salt Road",
    "write_url": "http://localhost/write/1?token=t",
    "skip_url": "http://localhost/api/daily-prompts/skip/1?token=t",
    "settings_url": "http://localhost/settings/daily-prompts",
    "unsubscribe_url": "http://localhost/settings/daily-prompts?unsubscribe=true",
}


class TestRender:
    @pytest.mark.parametrize("fmt", list(EmailFormat))
    def test_every_format_renders_links(self, fmt):
        subject, html, text = mailer.render_daily_prompt(fmt, CTX)
        assert subject
        assert CTX["write_url"] in text and CTX["skip_url"] in text
        assert "What does <Elena> fear?" in text
        assert "&lt;Elena&gt;" in html

    def test_detailed_subject_names_element_and_book(self):
        subject, _, _ = mailer.render_daily_prompt("detailed", CTX)
        assert "Elena" in subject and "The Salt Road" in subject

    def test_unknown_format_uses_minimal(self):
        assert mailer.render_daily_prompt("fancy", CTX)[0] == mailer.render_daily_prompt("minimal", CTX)[0]


class TestTransport:
    def test_dummy_transport_returns_message_id(self):
        message_id = mailer.send_email("writer@example.com", "Hi", "body")
        assert message_id.startswith("<") and message_id.endswith(">")

    def test_smtp_failure_returns_none(self, monkeypatch):
        monkeypatch.setattr(mailer.settings, "EMAIL_TRANSPORT", "smtp")
        with patch("storyseed.services.mailer.smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, b"busy")):
            assert mailer.send_email("writer@example.com", "Hi", "body") is None

    async def test_daily_prompt_email_embeds_valid_token(self):
        sent = {}

        def capture(to_email, subject, text_body, html_body=None, reply_to=None):
            sent.update(to=to_email, subject=subject, text=text_body)
            return "<id@storyseed.local>"

        element = SimpleNamespace(name="Elena", element_type=ElementType.character)
        book = SimpleNamespace(title="The Salt Road")
        with patch("storyseed.services.mailer.send_email", capture):
            provider_id = await mailer.send_daily_prompt_email(
                "writer@example.com", log_id=9, user_id=3, prompt_text="Q?",
                element=element, book=book, email_format=EmailFormat.minimal,
            )

        assert provider_id == "<id@storyseed.local>"
        token = sent["text"].split("/write/9?token=")[1].split()[0]
        assert parse_magic_token(token) == (9, 3)

    async def test_rejected_email_raises(self):
        element = SimpleNamespace(name="Elena", element_type="character")
        book = SimpleNamespace(title="The Salt Road")
        with patch("storyseed.services.mailer.send_email", return_value=None):
            with pytest.raises(DeliveryProviderError):
                await mailer.send_daily_prompt_email(
                    "writer@example.com", log_id=1, user_id=1, prompt_text="Q?",
                    element=element, book=book, email_format="minimal",
                )

    async def test_streak_warning_mentions_threshold(self):
        with patch("storyseed.services.mailer.send_email", return_value="<w@x>") as send:
            await mailer.send_streak_warning_email("writer@example.com", consecutive_skips=2, pause_threshold=3)
        _, subject, text, html = send.call_args.args
        assert "streak" in subject
        assert "2" in text and "3" in text
