from enum import Enum
from typing import Dict, FrozenSet, Mapping, Optional
import logging

from reception.core.exceptions import PolicyViolation
from reception.models.reception import WorkflowRole


logger = logging.getLogger(__name__)


class Capability(str, Enum):
    """Actions guarded by the role access policy."""
    PERFORM_QUALITY_CHECK = "perform_quality_check"
    VALIDATE = "validate"
    FILL_VERIFICATION_FORM = "fill_verification_form"
    FILL_REJECTION_FORM = "fill_rejection_form"
    OVERRIDE = "override"
    UNBLOCK_FRONT_DESK = "unblock_front_desk"


# Front desk can never unblock itself; only technical staff or a manager can.
DEFAULT_CAPABILITIES: Dict[WorkflowRole, FrozenSet[Capability]] = {
    WorkflowRole.TECHNICAL_RESPONSIBILITY: frozenset({
        Capability.PERFORM_QUALITY_CHECK,
        Capability.UNBLOCK_FRONT_DESK,
    }),
    WorkflowRole.FRONT_DESK: frozenset({
        Capability.VALIDATE,
        Capability.FILL_VERIFICATION_FORM,
        Capability.FILL_REJECTION_FORM,
    }),
    WorkflowRole.MANAGER: frozenset(Capability),
}

# Role that owns each capability in day-to-day operation
OWNER_ROLE: Dict[Capability, WorkflowRole] = {
    Capability.PERFORM_QUALITY_CHECK: WorkflowRole.TECHNICAL_RESPONSIBILITY,
    Capability.UNBLOCK_FRONT_DESK: WorkflowRole.TECHNICAL_RESPONSIBILITY,
    Capability.VALIDATE: WorkflowRole.FRONT_DESK,
    Capability.FILL_VERIFICATION_FORM: WorkflowRole.FRONT_DESK,
    Capability.FILL_REJECTION_FORM: WorkflowRole.FRONT_DESK,
    Capability.OVERRIDE: WorkflowRole.MANAGER,
}


class RoleAccessPolicy:
    """
    Static capability table per workflow role.

    Injected into the validation gate so alternate org structures can be
    substituted without touching the state machine.
    """

    def __init__(self, table: Optional[Mapping[WorkflowRole, FrozenSet[Capability]]] = None):
        """
        Initialize the policy.

        Args:
            table: role -> capabilities mapping; defaults to DEFAULT_CAPABILITIES
        """
        self.table = dict(table if table is not None else DEFAULT_CAPABILITIES)

    def capabilities(self, role: WorkflowRole) -> FrozenSet[Capability]:
        """Get all capabilities of a role (empty for unknown roles)."""
        return self.table.get(WorkflowRole(role), frozenset())

    def can_perform(self, role: WorkflowRole, action: Capability) -> bool:
        """
        Check if a role may perform an action.

        Args:
            role: The acting role
            action: The capability to check

        Returns:
            True if the role has the capability
        """
        return Capability(action) in self.capabilities(role)

    def is_override(self, role: WorkflowRole, action: Capability) -> bool:
        """True when the action is performed through override rather than ownership."""
        owner = OWNER_ROLE.get(Capability(action))
        return (
            owner is not None
            and WorkflowRole(role) != owner
            and Capability.OVERRIDE in self.capabilities(role)
        )

    def require(self, role: WorkflowRole, action: Capability, actor: Optional[str] = None) -> bool:
        """
        Enforce a capability.

        Raises:
            PolicyViolation: if the role lacks the capability

        Returns:
            True if the action is an override by a higher role
        """
        if not self.can_perform(role, action):
            logger.error(
                "Policy violation: %s (%s) attempted %s",
                actor or "unknown actor", WorkflowRole(role).value, Capability(action).value
            )
            raise PolicyViolation(WorkflowRole(role).value, Capability(action).value, actor)
        return self.is_override(role, action)
