"""Out-of-band delivery of verification codes."""

import logging
from abc import ABC, abstractmethod

from otpflow.services.identifiers import IdentifierType

logger = logging.getLogger(__name__)


class CodeSender(ABC):
    """Abstract base class for verification code senders."""

    @abstractmethod
    async def send(
        self,
        to: str,
        identifier_type: IdentifierType,
        code: str,
        expires_minutes: int,
    ) -> bool:
        """Send a verification code.

        Args:
            to: Email address or phone number
            identifier_type: Channel to deliver on
            code: The one-time code
            expires_minutes: Lifetime to mention in the message

        Returns:
            True if sent successfully
        """
        pass


def render_message(code: str, expires_minutes: int) -> tuple[str, str]:
    """Build the subject and plain text body for a code message."""
    subject = f"Your verification code is {code}"
    text = f"""
Your verification code is {code}

This code will expire in {expires_minutes} minutes.

If you didn't request this code, you can safely ignore this message.
"""
    return subject, text


class ConsoleCodeSender(CodeSender):
    """Sender that logs to console (for development)."""

    async def send(
        self,
        to: str,
        identifier_type: IdentifierType,
        code: str,
        expires_minutes: int,
    ) -> bool:
        """Log the message instead of sending."""
        subject, text = render_message(code, expires_minutes)
        logger.info(
            f"\n{'='*60}\n"
            f"{identifier_type.value.upper()} (console sender - not sent)\n"
            f"{'='*60}\n"
            f"To: {to}\n"
            f"Subject: {subject}\n"
            f"{'='*60}\n"
            f"{text}\n"
            f"{'='*60}\n"
        )
        return True
