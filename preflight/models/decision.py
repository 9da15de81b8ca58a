"""ToolDecision models."""

from typing import Literal

from pydantic import BaseModel, Field

from .metadata import PolicyVerdict

Decision = Literal["allow", "ask", "deny"]
DecisionSource = Literal["deterministic", "policy", "fallback"]


class PolicyEvaluation(BaseModel):
    """Policy context attached to a decision."""

    decision: PolicyVerdict
    reason: str
    rules: list[str] = Field(default_factory=list)


class ToolDecision(BaseModel):
    """Final resolver answer for one tool call."""

    decision: Decision
    source: DecisionSource
    reason: str | None = None
    rule: str | None = None
    policy: PolicyEvaluation | None = None

    @property
    def policy_denied(self) -> bool:
        return self.policy is not None and self.policy.decision == "deny"
