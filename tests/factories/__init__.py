"""Test factories for generating test data.

Re-exports all factories for convenient imports:
    from tests.factories import AutomationFlowFactory, AutomationQueueItemFactory, ...
"""

from tests.factories.automation import (
    AutomationFlowFactory,
    AutomationQueueItemFactory,
    AutomationRunFactory,
    UserTenantMembershipFactory,
    condition_block,
    delay_block,
    email_block,
)
from tests.factories.base import BaseFactory, generate_uuid, utc_now

__all__ = [
    # Base
    "BaseFactory",
    "generate_uuid",
    "utc_now",
    # Models
    "AutomationFlowFactory",
    "AutomationQueueItemFactory",
    "AutomationRunFactory",
    "UserTenantMembershipFactory",
    # Block builders
    "condition_block",
    "delay_block",
    "email_block",
]
