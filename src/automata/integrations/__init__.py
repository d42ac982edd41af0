"""Side-effect collaborators used by LIVE action dispatch."""

from src.automata.integrations.email import EmailSender, ResendEmailSender
from src.automata.integrations.sms import SmsSender, UnconfiguredSmsSender
from src.automata.integrations.stores import (
    JobStore,
    NotificationStore,
    SqlJobStore,
    SqlNotificationStore,
)

__all__ = [
    "EmailSender",
    "JobStore",
    "NotificationStore",
    "ResendEmailSender",
    "SmsSender",
    "SqlJobStore",
    "SqlNotificationStore",
    "UnconfiguredSmsSender",
]
