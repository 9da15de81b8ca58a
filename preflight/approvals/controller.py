"""
Approval controller.

Walks the ``ask`` decisions of a batch one call at a time, shows the
approval dialog and acts on the answer. A custom rule typed in the dialog is
checked for conflicts, saved, and immediately applied to the call that
prompted it by re-classifying just that call against the updated store.
"""

import logging
from typing import Any, Callable

from ..context import PreflightContext
from ..exceptions import PersistenceError, PreflightError
from ..models import (
    ApprovalResult,
    RuleConflictAction,
    RuleConsistencyResult,
    ToolCall,
    ToolDecision,
    ToolPolicyDecision,
    ToolPreflightMetadata,
)
from ..oracles.classifier import classify_tool_calls
from ..oracles.consistency import evaluate_rule_consistency
from ..permissions.decisions import resolve_tool_decision
from ..permissions.patterns import get_policy_rules_for_tool
from ..permissions.snapshot import build_rule_context_snapshot
from ..permissions.store import (
    SaveResult,
    load_permissions_state,
    save_permission_rule,
    save_policy_override,
    save_policy_rule,
)
from .dialog import request_approval

logger = logging.getLogger(__name__)

BLOCKED_BY_USER = "Blocked by user"
BLOCKED_BY_POLICY = "Blocked by policy"
BLOCKED_BY_CUSTOM_RULE = "Blocked by custom rule"
NO_UI_REASON = "Approval required but no UI available."
CONFLICT_REASON_MAX_LENGTH = 120


async def collect_approvals(
    tool_calls: list[ToolCall],
    metadata: dict[str, ToolPreflightMetadata],
    policy_decisions: dict[str, ToolPolicyDecision],
    decisions: dict[str, ToolDecision],
    ctx: PreflightContext,
) -> dict[str, ApprovalResult]:
    """
    Turn resolver decisions into approval results.

    Deny decisions are recorded as blocked, allow decisions need nothing, and
    each ask decision is put to the user in order. Calls after the first are
    re-resolved against a fresh store load first, so a rule saved while
    approving an earlier call already applies to them.

    Args:
        tool_calls: The batch, in order
        metadata: Classifier metadata keyed by tool call id
        policy_decisions: Classifier policy verdicts keyed by tool call id
        decisions: Resolver decisions keyed by tool call id
        ctx: Preflight context

    Returns:
        ApprovalResult per tool call id that was denied or asked about
    """
    approvals: dict[str, ApprovalResult] = {}
    pending: list[ToolCall] = []

    for tool_call in tool_calls:
        decision = decisions.get(tool_call.id)
        if decision is None or decision.decision == "allow":
            continue
        if decision.decision == "deny":
            approvals[tool_call.id] = ApprovalResult(allow=False, reason=decision.reason or BLOCKED_BY_POLICY)
            continue
        if not ctx.has_ui:
            approvals[tool_call.id] = ApprovalResult(allow=False, reason=NO_UI_REASON)
            continue
        pending.append(tool_call)

    if not pending:
        if not approvals:
            logger.debug("No tool calls require approval")
        return approvals

    logger.debug("Requesting approvals for %d tool call(s)", len(pending))
    for index, tool_call in enumerate(pending):
        decision = decisions[tool_call.id]
        if index > 0:
            decision = resolve_tool_decision(
                tool_call,
                metadata.get(tool_call.id),
                policy_decisions.get(tool_call.id),
                load_permissions_state(ctx.cwd),
                ctx.config.approval_mode,
                cwd=ctx.cwd,
            )
            if decision.decision == "allow":
                approvals[tool_call.id] = ApprovalResult(allow=True)
                continue
            if decision.decision == "deny":
                approvals[tool_call.id] = ApprovalResult(allow=False, reason=decision.reason or BLOCKED_BY_POLICY)
                continue

        approvals[tool_call.id] = await approve_tool_call(tool_call, metadata.get(tool_call.id), decision, ctx)

    return approvals


async def approve_tool_call(
    tool_call: ToolCall,
    metadata: ToolPreflightMetadata | None,
    decision: ToolDecision,
    ctx: PreflightContext,
) -> ApprovalResult:
    """Run the approval loop for one ``ask`` call until it is allowed or denied."""
    draft_rule = ""

    while True:
        snapshot = build_rule_context_snapshot(tool_call.name, load_permissions_state(ctx.cwd))
        choice = await request_approval(tool_call, metadata, decision, snapshot, ctx, initial_input=draft_rule)
        draft_rule = ""
        detail = f" ({choice.rule})" if choice.action == "custom-rule" else ""
        logger.debug("Approval decision for %s: %s%s", tool_call.name, choice.action, detail)

        if choice.action == "allow":
            return ApprovalResult(allow=True)

        if choice.action == "allow-persist":
            await _persist(ctx, save_permission_rule, tool_call, "allow", ctx.cwd)
            if decision.policy_denied:
                await _persist(ctx, save_policy_override, tool_call, ctx.cwd)
            return ApprovalResult(allow=True)

        if choice.action == "deny":
            return ApprovalResult(allow=False, reason=BLOCKED_BY_USER)

        rule = choice.rule or ""
        consistency = await evaluate_rule_consistency(tool_call, rule, snapshot, ctx)
        logger.debug(
            "Rule consistency for %s: conflict=%s, reason=%s",
            tool_call.name,
            consistency.conflict,
            consistency.reason,
        )
        if consistency.conflict:
            action = await request_rule_conflict_action(tool_call, rule, consistency, ctx)
            logger.debug("Rule conflict action for %s: %s", tool_call.name, action)
            if action == "edit-rule":
                draft_rule = rule
                continue
            if action == "cancel":
                return ApprovalResult(allow=False, reason=BLOCKED_BY_USER)

        await _persist(ctx, save_policy_rule, tool_call, rule, ctx.cwd)
        try:
            metadata, decision = await apply_custom_rule_to_current_call(tool_call, ctx)
        except PreflightError as e:
            return ApprovalResult(allow=False, reason=f"Failed to validate custom rule: {e.reason}")

        logger.debug(
            "Custom rule applied for %s. Immediate decision: %s (%s)",
            tool_call.name,
            decision.decision,
            decision.source,
        )
        if decision.decision == "allow":
            return ApprovalResult(allow=True)
        if decision.decision == "deny":
            return ApprovalResult(allow=False, reason=decision.reason or BLOCKED_BY_CUSTOM_RULE)
        # Still ask: show the dialog again with the new policy verdict


async def apply_custom_rule_to_current_call(
    tool_call: ToolCall,
    ctx: PreflightContext,
) -> tuple[ToolPreflightMetadata, ToolDecision]:
    """
    Re-classify and re-resolve one call against the current store.

    Raises:
        PreflightError: If the classifier fails for the call
    """
    permissions = load_permissions_state(ctx.cwd)
    policy_rules = {tool_call.id: get_policy_rules_for_tool(tool_call.name, permissions.policy_rules)}
    classification = await classify_tool_calls([tool_call], policy_rules, ctx)
    metadata = classification.metadata[tool_call.id]
    decision = resolve_tool_decision(
        tool_call,
        metadata,
        classification.policy_decisions.get(tool_call.id),
        permissions,
        ctx.config.approval_mode,
        cwd=ctx.cwd,
    )
    return metadata, decision


async def request_rule_conflict_action(
    tool_call: ToolCall,
    candidate: str,
    consistency: RuleConsistencyResult,
    ctx: PreflightContext,
) -> RuleConflictAction:
    """
    Ask what to do with a conflicting rule.

    Without a UI the rule is saved anyway; a dismissed prompt means the user
    wants to keep editing.
    """
    if not ctx.has_ui:
        return "save-anyway"

    selection = await ctx.ui.select(
        build_conflict_title(candidate, consistency),
        ["Edit rule", "Save anyway", "Cancel"],
    )
    if not selection or selection.startswith("Edit"):
        return "edit-rule"
    if selection.startswith("Save"):
        return "save-anyway"
    return "cancel"


def build_conflict_title(candidate: str, consistency: RuleConsistencyResult) -> str:
    lines = ["Rule conflict", "", f"New rule:  {candidate}"]
    if consistency.conflicts_with:
        lines.append(f"Conflicts: {', '.join(consistency.conflicts_with)}")
    if consistency.reason.strip():
        lines.append(f"Reason:    {truncate_reason(consistency.reason, CONFLICT_REASON_MAX_LENGTH)}")
    return "\n".join(lines)


def truncate_reason(reason: str, max_length: int) -> str:
    one_line = " ".join(reason.split())
    if len(one_line) <= max_length:
        return one_line
    return one_line[: max_length - 1] + "…"


async def _persist(ctx: PreflightContext, save: Callable[..., SaveResult], *args: Any) -> SaveResult | None:
    try:
        result = save(*args)
    except PersistenceError as e:
        logger.error("%s", e)
        await ctx.ui.notify(str(e), "error")
        return None
    await ctx.ui.notify(result.message, "info" if result.saved else "warning")
    return result
