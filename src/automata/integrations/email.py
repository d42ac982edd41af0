"""Email delivery for send_email actions, using the Resend API."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

import resend

from src.automata.core.config import Settings
from src.automata.core.exceptions import ProviderError
from src.automata.core.logging import get_logger

logger = get_logger(__name__)

# resend's client is synchronous; sends run here so the event loop never blocks
_email_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="email_sender")


class EmailSender(Protocol):
    async def send(self, *, to: str, subject: str, html: str) -> None:
        """Deliver one message or raise ProviderError."""
        ...


class ResendEmailSender:
    """EmailSender backed by Resend.

    Without an API key every send fails with ProviderError, so a LIVE pass
    records the action as failed instead of pretending it was delivered.
    """

    def __init__(self, api_key: str | None, sender: str, timeout_seconds: float):
        self._api_key = api_key
        self._sender = sender
        self._timeout = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResendEmailSender":
        return cls(
            api_key=settings.resend_api_key,
            sender=settings.email_from,
            timeout_seconds=settings.outbound_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def send(self, *, to: str, subject: str, html: str) -> None:
        if not self._api_key:
            raise ProviderError("Email provider not configured: RESEND_API_KEY is not set")

        resend.api_key = self._api_key
        params: resend.Emails.SendParams = {
            "from": self._sender,
            "to": [to],
            "subject": subject,
            "html": html,
        }

        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(_email_executor, resend.Emails.send, params),
                timeout=self._timeout,
            )
        except TimeoutError as e:
            logger.error("Email send timed out", to=to, timeout=self._timeout)
            raise ProviderError(f"Email send timed out after {self._timeout:g}s") from e
        except Exception as e:
            logger.error("Failed to send automation email", to=to, error=str(e))
            raise ProviderError(f"Email send failed: {e}") from e

        logger.info("Automation email sent", to=to)
