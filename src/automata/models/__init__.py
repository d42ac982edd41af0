"""Model exports.

Import from here: `from src.automata.models import AutomationFlow, AutomationQueueItem`
"""

from src.automata.models.enums import FlowStatus, MembershipRole, QueueStatus, RunStatus
from src.automata.models.flow import AutomationFlow
from src.automata.models.log import AutomationLog
from src.automata.models.membership import UserTenantMembership
from src.automata.models.queue import AutomationQueueItem
from src.automata.models.run import AutomationRun

__all__ = [
    # Enums
    "FlowStatus",
    "MembershipRole",
    "QueueStatus",
    "RunStatus",
    # Models
    "AutomationFlow",
    "AutomationLog",
    "AutomationQueueItem",
    "AutomationRun",
    "UserTenantMembership",
]
