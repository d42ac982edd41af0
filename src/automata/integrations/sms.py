"""SMS delivery for send_sms actions."""

from typing import Protocol

from src.automata.core.exceptions import ProviderError


class SmsSender(Protocol):
    async def send(self, *, to: str, body: str) -> None:
        """Deliver one text message or raise ProviderError."""
        ...


class UnconfiguredSmsSender:
    """Placeholder used until an SMS provider is wired in. Every send fails."""

    async def send(self, *, to: str, body: str) -> None:
        raise ProviderError(
            "SMS provider not configured. Wire an SmsSender into the action dispatcher "
            "to deliver send_sms actions."
        )
