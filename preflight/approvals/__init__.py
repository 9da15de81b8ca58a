"""
Interactive approvals: the dialog state machine, the approval loop, the
conflict prompt, classifier failure handling and the UI implementations.
"""

from .controller import (
    BLOCKED_BY_USER,
    NO_UI_REASON,
    apply_custom_rule_to_current_call,
    approve_tool_call,
    collect_approvals,
    request_rule_conflict_action,
)
from .dialog import DialogState, open_dialog, render_dialog, request_approval, transition
from .failure import PreflightFailureDecision, handle_preflight_failure
from .remote import EventBusApprovalUI
from .ui import (
    AcceptSuggestion,
    ApprovalUI,
    CancelDialog,
    ChooseOption,
    DialogEvent,
    DialogOption,
    DialogView,
    EditInput,
    NullApprovalUI,
    RequestExplanation,
    SubmitRule,
)

__all__ = [
    # UI protocol
    "ApprovalUI",
    "NullApprovalUI",
    "EventBusApprovalUI",
    "DialogView",
    "DialogOption",
    # Dialog events
    "DialogEvent",
    "ChooseOption",
    "EditInput",
    "AcceptSuggestion",
    "SubmitRule",
    "CancelDialog",
    "RequestExplanation",
    # Dialog state machine
    "DialogState",
    "open_dialog",
    "transition",
    "render_dialog",
    "request_approval",
    # Controller
    "BLOCKED_BY_USER",
    "NO_UI_REASON",
    "collect_approvals",
    "approve_tool_call",
    "apply_custom_rule_to_current_call",
    "request_rule_conflict_action",
    # Failure handling
    "PreflightFailureDecision",
    "handle_preflight_failure",
]
