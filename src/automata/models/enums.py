"""Shared enums for models."""

from enum import Enum


class FlowStatus(str, Enum):
    """Automation flow lifecycle status."""

    ACTIVE = "active"
    PAUSED = "paused"
    DRAFT = "draft"
    ARCHIVED = "archived"


class QueueStatus(str, Enum):
    """Work item status in the automation queue."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    DEAD_LETTER = "dead_letter"


class RunStatus(str, Enum):
    """Idempotency ledger row status."""

    CLAIMED = "claimed"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class MembershipRole(str, Enum):
    """User role within a tenant."""

    ADMIN = "admin"
    MEMBER = "member"
