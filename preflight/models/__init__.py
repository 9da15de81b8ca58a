"""
Domain models for the preflight gate.

These are the data structures passed between the matcher, the resolver,
the oracles and the approval controller.
"""

from .approval import (
    ApprovalAction,
    ApprovalChoice,
    ApprovalResult,
    RuleConflictAction,
    ToolCallVerdict,
)
from .consistency import RuleConsistencyResult
from .decision import Decision, DecisionSource, PolicyEvaluation, ToolDecision
from .message import ContextMessage
from .metadata import PolicyVerdict, ToolPolicyDecision, ToolPreflightMetadata
from .tool_call import ToolCall
from .utils import gen_id

__all__ = [
    # Utils
    "gen_id",
    # Inputs
    "ToolCall",
    "ContextMessage",
    # Classifier output
    "PolicyVerdict",
    "ToolPreflightMetadata",
    "ToolPolicyDecision",
    # Decisions
    "Decision",
    "DecisionSource",
    "PolicyEvaluation",
    "ToolDecision",
    # Approvals
    "ApprovalAction",
    "ApprovalChoice",
    "ApprovalResult",
    "RuleConflictAction",
    "RuleConsistencyResult",
    "ToolCallVerdict",
]
