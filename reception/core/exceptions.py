"""
Reception workflow exceptions.

Local form problems (missing reason, no photo, bad quantity) are NOT
exceptions: they come back as FormValidationError values so the caller can
keep the action disabled. Everything here signals a broken caller or a
failing collaborator.
"""
from typing import Optional


class ReceptionError(Exception):
    """Base class for reception workflow errors."""

    def __init__(self, message: str, order_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.order_id = order_id


class PolicyViolation(ReceptionError):
    """An actor attempted an action their role does not grant."""

    def __init__(self, role: str, action: str, actor: Optional[str] = None):
        who = f"{actor} ({role})" if actor else role
        super().__init__(f"Role {who} is not allowed to {action}")
        self.role = role
        self.action = action
        self.actor = actor


class WorkflowError(ReceptionError):
    """Base class for illegal workflow operations."""


class WorkflowStateError(WorkflowError):
    """Operation is not legal in the workflow's current state or step."""


class ValidationBlockedError(WorkflowError):
    """Commercial validation attempted while the gate does not permit it."""


class WorkflowTerminalError(WorkflowError):
    """Mutation attempted on a VALIDATED or REJECTED workflow."""


class WorkflowNotFound(ReceptionError):
    """No open workflow or persisted record exists for the order."""


class UnknownActor(ReceptionError):
    """The identity provider does not know the acting user."""


class PersistenceFailure(ReceptionError):
    """The persistence collaborator failed to commit a terminal outcome."""
