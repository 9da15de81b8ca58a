"""Approval outcome models."""

from typing import Literal

from pydantic import BaseModel

from .decision import ToolDecision

ApprovalAction = Literal["allow", "allow-persist", "deny", "custom-rule"]
RuleConflictAction = Literal["edit-rule", "save-anyway", "cancel"]


class ApprovalChoice(BaseModel):
    """What the user picked in the approval dialog."""

    action: ApprovalAction
    rule: str | None = None


class ApprovalResult(BaseModel):
    """Outcome of the approval loop for one tool call."""

    allow: bool
    reason: str | None = None


class ToolCallVerdict(BaseModel):
    """Answer handed back to the host for one tool call."""

    tool_call_id: str
    allow: bool
    reason: str | None = None
    decision: ToolDecision | None = None
