"""
Preflight gate for agent tool calls.

Transport-agnostic core: deterministic rule matching, policy rule storage,
decision resolution, LLM oracles and the interactive approval flow. The
server package wraps it in an HTTP API.
"""

from .approvals import EventBusApprovalUI, NullApprovalUI
from .context import PreflightContext
from .exceptions import CoreError, NotFoundError, OracleError, PersistenceError, PreflightError
from .gate import PreflightGate
from .models import ApprovalResult, ContextMessage, ToolCall, ToolCallVerdict, ToolDecision
from .oracles import PydanticAIClient

__all__ = [
    "PreflightGate",
    "PreflightContext",
    # UI implementations
    "NullApprovalUI",
    "EventBusApprovalUI",
    # LLM client
    "PydanticAIClient",
    # Models
    "ToolCall",
    "ContextMessage",
    "ToolDecision",
    "ApprovalResult",
    "ToolCallVerdict",
    # Exceptions
    "CoreError",
    "NotFoundError",
    "PreflightError",
    "OracleError",
    "PersistenceError",
]
