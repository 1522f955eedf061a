"""Code delivery tests."""

import logging

import pytest

from otpflow.services.delivery import ConsoleCodeSender, render_message
from otpflow.services.identifiers import IdentifierType


class TestConsoleCodeSender:
    """Tests for console code sender."""

    @pytest.mark.asyncio
    async def test_send_logs_message(self, caplog):
        sender = ConsoleCodeSender()

        with caplog.at_level(logging.INFO):
            result = await sender.send(
                to="test@example.com",
                identifier_type=IdentifierType.EMAIL,
                code="4821",
                expires_minutes=10,
            )

        assert result is True
        assert "test@example.com" in caplog.text
        assert "Your verification code is 4821" in caplog.text
        assert "EMAIL (console sender - not sent)" in caplog.text

    @pytest.mark.asyncio
    async def test_send_phone(self, caplog):
        sender = ConsoleCodeSender()

        with caplog.at_level(logging.INFO):
            result = await sender.send(
                to="+15551234567",
                identifier_type=IdentifierType.PHONE,
                code="4821",
                expires_minutes=5,
            )

        assert result is True
        assert "PHONE" in caplog.text
        assert "+15551234567" in caplog.text


def test_render_message():
    subject, text = render_message("123456", 10)
    assert subject == "Your verification code is 123456"
    assert "123456" in text
    assert "expire in 10 minutes" in text
