"""Classifier output models."""

from typing import Literal

from pydantic import BaseModel

PolicyVerdict = Literal["allow", "ask", "deny", "none"]


class ToolPreflightMetadata(BaseModel):
    """Intrinsic description of a tool call produced by the classifier."""

    summary: str
    destructive: bool
    scope: list[str] | None = None


class ToolPolicyDecision(BaseModel):
    """Classifier verdict against the policy rules that apply to a call."""

    decision: PolicyVerdict
    reason: str
