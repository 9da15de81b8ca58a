"""
Approval dialog state machine.

The dialog is modelled as a pure function ``transition(state, event)`` that
returns the next state plus a list of effects (start or cancel a background
fetch). ``render_dialog`` turns a state into a DialogView. The async driver
at the bottom of this module is the only part that touches the UI and the
oracles.

Phases:

- ``open``: accepting user and fetch events
- ``closed``: an outcome was chosen; every further event is ignored

Each background sub-flow (rule suggestions, explanation) is ``idle``,
``loading`` or ``error``. Every fetch carries a token; a result whose token
no longer matches the loading sub-flow is dropped.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Callable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from ..context import PreflightContext
from ..exceptions import OracleError
from ..models import ApprovalChoice, ToolCall, ToolDecision, ToolPreflightMetadata, gen_id
from ..oracles.explain import explain_tool_call
from ..oracles.suggestions import suggest_rules
from ..permissions.patterns import resolve_target_path
from ..permissions.snapshot import RuleContextSnapshot
from .ui import (
    AcceptSuggestion,
    CancelDialog,
    ChooseOption,
    DialogOption,
    DialogView,
    EditInput,
    RequestExplanation,
    SubflowStatus,
    SubmitRule,
)

logger = logging.getLogger(__name__)

TITLE = "Agent wants to:"
DEFAULT_SUMMARY = "Review requested action"
CUSTOM_RULE_PLACEHOLDER = "Type custom rule"
FETCHING_SUGGESTION = "Fetching suggestion..."
FETCHING_EXPLANATION = "Fetching explanation..."

DialogPhase = Literal["open", "closed"]


# =============================================================================
# Internal events
# =============================================================================


class SuggestionsLoaded(BaseModel):
    token: int
    suggestions: list[str]


class SuggestionsFailed(BaseModel):
    token: int
    reason: str


class ExplanationLoaded(BaseModel):
    token: int
    text: str


class ExplanationFailed(BaseModel):
    token: int
    reason: str


DialogInput = Union[
    ChooseOption,
    EditInput,
    AcceptSuggestion,
    SubmitRule,
    CancelDialog,
    RequestExplanation,
    SuggestionsLoaded,
    SuggestionsFailed,
    ExplanationLoaded,
    ExplanationFailed,
]


# =============================================================================
# Effects
# =============================================================================


class FetchSuggestions(BaseModel):
    token: int
    previous: list[str] = Field(default_factory=list)


class CancelSuggestions(BaseModel):
    pass


class FetchExplanation(BaseModel):
    token: int


class CancelExplanation(BaseModel):
    pass


Effect = Union[FetchSuggestions, CancelSuggestions, FetchExplanation, CancelExplanation]


# =============================================================================
# State
# =============================================================================


class DialogState(BaseModel):
    """Immutable snapshot of one approval dialog."""

    model_config = ConfigDict(frozen=True)

    dialog_id: str
    tool_call_id: str
    summary: str
    destructive: bool
    policy_denied: bool = False
    context_lines: list[str] = Field(default_factory=list)
    explain_keys: list[str] = Field(default_factory=list)

    phase: DialogPhase = "open"
    outcome: ApprovalChoice | None = None

    input: str = ""
    input_from_suggestion: bool = False

    suggestions: list[str] = Field(default_factory=list)
    suggestion_index: int = 0
    shown_suggestions: list[str] = Field(default_factory=list)
    suggestion_status: SubflowStatus = "idle"
    suggestion_error: str | None = None
    suggestion_token: int = 0

    explanation: str | None = None
    explanation_status: SubflowStatus = "idle"
    explanation_error: str | None = None
    explanation_token: int = 0

    last_token: int = 0

    @property
    def has_input(self) -> bool:
        return bool(self.input.strip())

    @property
    def typed_input(self) -> bool:
        """Input the user typed by hand (not copied from a suggestion)."""
        return self.has_input and not self.input_from_suggestion

    @property
    def current_suggestion(self) -> str | None:
        if not self.suggestions:
            return None
        return self.suggestions[min(self.suggestion_index, len(self.suggestions) - 1)]

    @property
    def can_cycle_suggestion(self) -> bool:
        if self.suggestion_status == "loading" or not self.suggestions:
            return False
        return not self.typed_input


Transition = tuple[DialogState, list[Effect]]


# =============================================================================
# Transitions
# =============================================================================


def _close(state: DialogState, choice: ApprovalChoice) -> Transition:
    closed = state.model_copy(update={"phase": "closed", "outcome": choice})
    return closed, [CancelSuggestions(), CancelExplanation()]


def _start_suggestions(state: DialogState) -> Transition:
    if state.suggestion_status == "loading" or state.typed_input:
        return state, []
    token = state.last_token + 1
    loading = state.model_copy(
        update={
            "suggestion_status": "loading",
            "suggestion_error": None,
            "suggestion_token": token,
            "last_token": token,
        }
    )
    return loading, [FetchSuggestions(token=token, previous=list(state.shown_suggestions))]


def _on_choose(state: DialogState, event: ChooseOption) -> Transition:
    return _close(state, ApprovalChoice(action=event.action))


def _on_cancel(state: DialogState, event: CancelDialog) -> Transition:
    return _close(state, ApprovalChoice(action="deny"))


def _on_edit(state: DialogState, event: EditInput) -> Transition:
    update = {"input": event.text, "input_from_suggestion": False}
    effects: list[Effect] = []
    # Typed text wins over a suggestion that has not arrived yet
    if state.suggestion_status == "loading" and event.text.strip():
        update["suggestion_status"] = "idle"
        effects.append(CancelSuggestions())
    return state.model_copy(update=update), effects


def _on_accept_suggestion(state: DialogState, event: AcceptSuggestion) -> Transition:
    if state.suggestion_status == "loading" or state.typed_input:
        return state, []

    if not state.has_input:
        suggestion = state.current_suggestion
        if suggestion is None:
            return _start_suggestions(state)
        return state.model_copy(update={"input": suggestion, "input_from_suggestion": True}), []

    if state.suggestion_index < len(state.suggestions) - 1:
        index = state.suggestion_index + 1
        return state.model_copy(update={"suggestion_index": index, "input": state.suggestions[index]}), []

    return _start_suggestions(state)


def _on_submit(state: DialogState, event: SubmitRule) -> Transition:
    rule = state.input.strip()
    if not rule:
        if state.suggestion_status == "loading":
            return state, []
        return state.model_copy(update={"suggestion_status": "error"}), []
    return _close(state, ApprovalChoice(action="custom-rule", rule=rule))


def _on_request_explanation(state: DialogState, event: RequestExplanation) -> Transition:
    if not state.explain_keys or state.explanation_status == "loading":
        return state, []
    token = state.last_token + 1
    loading = state.model_copy(
        update={
            "explanation": None,
            "explanation_status": "loading",
            "explanation_error": None,
            "explanation_token": token,
            "last_token": token,
        }
    )
    return loading, [CancelExplanation(), FetchExplanation(token=token)]


def _suggestions_pending(state: DialogState, token: int) -> bool:
    if state.suggestion_status != "loading" or state.suggestion_token != token:
        logger.debug("Dropping stale rule suggestion result (token %d)", token)
        return False
    return True


def _on_suggestions_loaded(state: DialogState, event: SuggestionsLoaded) -> Transition:
    if not _suggestions_pending(state, event.token):
        return state, []
    shown = list(state.shown_suggestions)
    shown.extend(item for item in event.suggestions if item not in shown)
    update = {
        "suggestions": list(event.suggestions),
        "suggestion_index": 0,
        "shown_suggestions": shown,
        "suggestion_status": "idle",
        "suggestion_error": None,
    }
    if state.input_from_suggestion and event.suggestions:
        update["input"] = event.suggestions[0]
    return state.model_copy(update=update), []


def _on_suggestions_failed(state: DialogState, event: SuggestionsFailed) -> Transition:
    if not _suggestions_pending(state, event.token):
        return state, []
    return state.model_copy(update={"suggestion_status": "error", "suggestion_error": event.reason}), []


def _explanation_pending(state: DialogState, token: int) -> bool:
    if state.explanation_status != "loading" or state.explanation_token != token:
        logger.debug("Dropping stale explanation result (token %d)", token)
        return False
    return True


def _on_explanation_loaded(state: DialogState, event: ExplanationLoaded) -> Transition:
    if not _explanation_pending(state, event.token):
        return state, []
    return state.model_copy(update={"explanation": event.text, "explanation_status": "idle"}), []


def _on_explanation_failed(state: DialogState, event: ExplanationFailed) -> Transition:
    if not _explanation_pending(state, event.token):
        return state, []
    return state.model_copy(update={"explanation_status": "error", "explanation_error": event.reason}), []


TRANSITIONS: dict[tuple[DialogPhase, type], Callable[[DialogState, DialogInput], Transition]] = {
    ("open", ChooseOption): _on_choose,
    ("open", CancelDialog): _on_cancel,
    ("open", EditInput): _on_edit,
    ("open", AcceptSuggestion): _on_accept_suggestion,
    ("open", SubmitRule): _on_submit,
    ("open", RequestExplanation): _on_request_explanation,
    ("open", SuggestionsLoaded): _on_suggestions_loaded,
    ("open", SuggestionsFailed): _on_suggestions_failed,
    ("open", ExplanationLoaded): _on_explanation_loaded,
    ("open", ExplanationFailed): _on_explanation_failed,
}


def transition(state: DialogState, event: DialogInput) -> Transition:
    """
    Apply one event to the dialog.

    Events with no entry for the current phase leave the state unchanged.
    """
    handler = TRANSITIONS.get((state.phase, type(event)))
    if handler is None:
        return state, []
    return handler(state, event)


def open_dialog(
    tool_call: ToolCall,
    metadata: ToolPreflightMetadata | None,
    decision: ToolDecision | None,
    cwd: str,
    explain_keys: list[str],
    *,
    initial_input: str = "",
) -> Transition:
    """
    Initial dialog state and the suggestion fetch it starts with.

    ``initial_input`` reopens the dialog with a rule the user is still
    editing; in that case no suggestion fetch is started.
    """
    policy_denied = decision is not None and decision.policy_denied
    state = DialogState(
        dialog_id=gen_id("dlg_"),
        tool_call_id=tool_call.id,
        summary=metadata.summary if metadata else DEFAULT_SUMMARY,
        destructive=metadata.destructive if metadata else True,
        policy_denied=policy_denied,
        context_lines=build_context_lines(metadata, decision, cwd),
        explain_keys=list(explain_keys),
        input=initial_input,
    )
    return _start_suggestions(state)


def build_context_lines(
    metadata: ToolPreflightMetadata | None,
    decision: ToolDecision | None,
    cwd: str,
) -> list[str]:
    lines: list[str] = []
    if decision is not None and decision.policy_denied:
        reason = f": {decision.policy.reason}" if decision.policy.reason else ""
        lines.append(f"Policy blocked by custom rules{reason}")
    if metadata and metadata.scope:
        line = f"Scope: {', '.join(metadata.scope)}"
        if is_scope_outside_workspace(metadata.scope, cwd):
            line += " (outside workspace)"
        lines.append(line)
    return lines


def is_scope_outside_workspace(scopes: list[str], cwd: str) -> bool:
    base = os.path.abspath(cwd)
    for scope in scopes:
        if not scope:
            continue
        resolved = resolve_target_path(scope, cwd)
        if resolved != base and not resolved.startswith(base.rstrip(os.sep) + os.sep):
            return True
    return False


# =============================================================================
# Rendering
# =============================================================================


def custom_rule_label(state: DialogState) -> str:
    if state.has_input:
        return state.input
    if state.suggestion_status == "loading":
        return FETCHING_SUGGESTION
    return state.current_suggestion or CUSTOM_RULE_PLACEHOLDER


def render_dialog(state: DialogState) -> DialogView:
    """Pure projection of the dialog state for a front end."""
    if state.explanation_status == "loading":
        detail_lines = [FETCHING_EXPLANATION]
    elif state.explanation_status == "error" and state.explanation_error:
        detail_lines = [state.explanation_error]
    elif state.explanation:
        detail_lines = state.explanation.splitlines()
    else:
        detail_lines = list(state.context_lines)

    options = [
        DialogOption(label="Allow once" if state.policy_denied else "Yes", action="allow"),
        DialogOption(label="Always (this workspace)", action="allow-persist"),
        DialogOption(label="Keep blocked" if state.policy_denied else "No", action="deny"),
        DialogOption(label=custom_rule_label(state), action="custom-rule"),
    ]

    return DialogView(
        dialog_id=state.dialog_id,
        tool_call_id=state.tool_call_id,
        title=TITLE,
        summary=state.summary,
        destructive=state.destructive,
        detail_lines=detail_lines,
        options=options,
        custom_rule_input=state.input,
        custom_rule_placeholder=None if state.has_input else custom_rule_label(state),
        can_cycle_suggestion=state.can_cycle_suggestion,
        suggestion_status=state.suggestion_status,
        explanation_status=state.explanation_status,
        explain_keys=list(state.explain_keys),
    )


# =============================================================================
# Driver
# =============================================================================


@dataclass
class _UIFailure:
    error: Exception


class DialogRunner:
    """Runs one dialog to completion against a PreflightContext's UI."""

    def __init__(
        self,
        tool_call: ToolCall,
        metadata: ToolPreflightMetadata | None,
        snapshot: RuleContextSnapshot,
        ctx: PreflightContext,
    ):
        self.tool_call = tool_call
        self.metadata = metadata
        self.snapshot = snapshot
        self.ctx = ctx
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._suggestion_task: asyncio.Task | None = None
        self._explanation_task: asyncio.Task | None = None

    async def run(self, state: DialogState, effects: list[Effect]) -> ApprovalChoice:
        reader = asyncio.create_task(self._read_user_events(state.dialog_id))
        try:
            await self.ctx.ui.show_dialog(render_dialog(state))
            self._apply(effects)
            while state.outcome is None:
                event = await self._inbox.get()
                if isinstance(event, _UIFailure):
                    raise event.error
                state, effects = transition(state, event)
                self._apply(effects)
                if state.outcome is None:
                    await self.ctx.ui.show_dialog(render_dialog(state))
            return state.outcome
        finally:
            reader.cancel()
            self._cancel(self._suggestion_task)
            self._cancel(self._explanation_task)
            await self.ctx.ui.close_dialog(state.dialog_id)

    async def _read_user_events(self, dialog_id: str) -> None:
        try:
            while True:
                event = await self.ctx.ui.next_dialog_event(dialog_id)
                if event is None:
                    await self._inbox.put(CancelDialog())
                    return
                await self._inbox.put(event)
        except Exception as e:
            logger.error("Approval dialog %s failed: %s", dialog_id, e)
            await self._inbox.put(_UIFailure(e))

    def _apply(self, effects: list[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, FetchSuggestions):
                self._cancel(self._suggestion_task)
                self._suggestion_task = asyncio.create_task(self._fetch_suggestions(effect))
            elif isinstance(effect, CancelSuggestions):
                self._cancel(self._suggestion_task)
                self._suggestion_task = None
            elif isinstance(effect, FetchExplanation):
                self._cancel(self._explanation_task)
                self._explanation_task = asyncio.create_task(self._fetch_explanation(effect))
            elif isinstance(effect, CancelExplanation):
                self._cancel(self._explanation_task)
                self._explanation_task = None

    @staticmethod
    def _cancel(task: asyncio.Task | None) -> None:
        if task is not None and not task.done():
            task.cancel()

    async def _fetch_suggestions(self, effect: FetchSuggestions) -> None:
        try:
            suggestions = await suggest_rules(
                self.tool_call, self.metadata, self.snapshot, effect.previous, self.ctx
            )
        except OracleError as e:
            await self._inbox.put(SuggestionsFailed(token=effect.token, reason=e.reason))
            return
        await self._inbox.put(SuggestionsLoaded(token=effect.token, suggestions=suggestions))

    async def _fetch_explanation(self, effect: FetchExplanation) -> None:
        try:
            text = await explain_tool_call(self.tool_call, self.metadata, self.ctx)
        except OracleError as e:
            await self._inbox.put(ExplanationFailed(token=effect.token, reason=e.reason))
            return
        await self._inbox.put(ExplanationLoaded(token=effect.token, text=text))


async def request_approval(
    tool_call: ToolCall,
    metadata: ToolPreflightMetadata | None,
    decision: ToolDecision | None,
    snapshot: RuleContextSnapshot,
    ctx: PreflightContext,
    *,
    initial_input: str = "",
) -> ApprovalChoice:
    """
    Show the approval dialog for one tool call and wait for the user.

    Args:
        tool_call: Call awaiting approval
        metadata: Classifier metadata for the call
        decision: Current resolver decision (drives the policy line and labels)
        snapshot: Rules currently in force for the tool
        ctx: Preflight context
        initial_input: Custom rule text to prefill

    Returns:
        The user's ApprovalChoice; a dismissed dialog is ``deny``
    """
    if not ctx.has_ui:
        return ApprovalChoice(action="deny")
    state, effects = open_dialog(
        tool_call,
        metadata,
        decision,
        ctx.cwd,
        ctx.config.explain_key,
        initial_input=initial_input,
    )
    return await DialogRunner(tool_call, metadata, snapshot, ctx).run(state, effects)
