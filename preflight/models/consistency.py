"""RuleConsistencyResult model."""

from pydantic import BaseModel, Field


class RuleConsistencyResult(BaseModel):
    conflict: bool
    reason: str
    conflicts_with: list[str] = Field(default_factory=list)
