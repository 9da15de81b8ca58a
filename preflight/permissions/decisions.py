"""
Decision resolver.

Turns compiled rules plus the classifier output for a call into one final
ToolDecision. Precedence, first match wins:

1. deterministic rules: deny, then ask, then allow
2. policy overrides: a match skips step 3
3. policy verdict, when policy rules apply and the classifier gave one
4. fallback from the approval mode

A deterministic ask is hardened to deny when step 3 would deny; deterministic
allow and deny are final.
"""

import logging

from config.preflight_config import ApprovalMode

from ..models import PolicyEvaluation, ToolCall, ToolDecision, ToolPolicyDecision, ToolPreflightMetadata
from .models import PermissionRule, PermissionsState, PolicyOverrideRule
from .patterns import format_rule_label, get_policy_rules_for_tool, matches_rule

logger = logging.getLogger(__name__)


def find_matching_rule(
    tool_call: ToolCall,
    rules: list[PermissionRule],
    cwd: str,
) -> PermissionRule | None:
    for rule in rules:
        if matches_rule(rule, tool_call, cwd):
            return rule
    return None


def find_matching_policy_override(
    tool_call: ToolCall,
    overrides: list[PolicyOverrideRule],
    cwd: str,
) -> PolicyOverrideRule | None:
    for override in overrides:
        if matches_rule(override, tool_call, cwd):
            return override
    return None


def build_permission_deny_reason(rule: PermissionRule) -> str:
    if rule.reason:
        return f"Blocked by rule {rule.raw}: {rule.reason}"
    return f"Blocked by rule {rule.raw}"


def build_policy_deny_reason(reason: str) -> str:
    return f"Blocked by custom rules: {reason}"


def build_fallback_decision(
    metadata: ToolPreflightMetadata | None,
    approval_mode: ApprovalMode,
) -> str:
    """Decision from the approval mode alone. Missing metadata counts as destructive."""
    if approval_mode == "off":
        return "allow"
    if approval_mode == "destructive":
        destructive = metadata.destructive if metadata is not None else True
        return "ask" if destructive else "allow"
    return "ask"


def _evaluate_policy(
    tool_call: ToolCall,
    policy_decision: ToolPolicyDecision | None,
    permissions: PermissionsState,
    cwd: str,
) -> PolicyEvaluation | None:
    """Policy verdict that applies to the call, or None if policy is skipped."""
    override = find_matching_policy_override(tool_call, permissions.policy_overrides, cwd)
    if override is not None:
        logger.debug("Policy override matched: %s", format_rule_label(override))
        return None

    rules = get_policy_rules_for_tool(tool_call.name, permissions.policy_rules)
    if not rules or policy_decision is None or policy_decision.decision == "none":
        return None
    return PolicyEvaluation(
        decision=policy_decision.decision,
        reason=policy_decision.reason,
        rules=rules,
    )


def resolve_tool_decision(
    tool_call: ToolCall,
    metadata: ToolPreflightMetadata | None,
    policy_decision: ToolPolicyDecision | None,
    permissions: PermissionsState,
    approval_mode: ApprovalMode,
    *,
    cwd: str,
) -> ToolDecision:
    """
    Resolve the final decision for one tool call.

    Pure given its inputs: the classifier has already run and the rules have
    already been loaded.

    Args:
        tool_call: The call being decided
        metadata: Classifier intrinsic metadata, if any
        policy_decision: Classifier policy verdict, if any
        permissions: Freshly loaded rules
        approval_mode: Configured fallback mode
        cwd: Workspace root for path rules

    Returns:
        The ToolDecision for the call
    """
    deny_rule = find_matching_rule(tool_call, permissions.rules.deny, cwd)
    if deny_rule is not None:
        logger.debug("Permission rule matched (deny): %s", format_rule_label(deny_rule))
        return _log_decision(
            tool_call,
            ToolDecision(
                decision="deny",
                source="deterministic",
                reason=build_permission_deny_reason(deny_rule),
                rule=deny_rule.raw,
            ),
        )

    ask_rule = find_matching_rule(tool_call, permissions.rules.ask, cwd)
    if ask_rule is not None:
        logger.debug("Permission rule matched (ask): %s", format_rule_label(ask_rule))
        policy = _evaluate_policy(tool_call, policy_decision, permissions, cwd)
        if policy is not None and policy.decision == "deny":
            return _log_decision(
                tool_call,
                ToolDecision(
                    decision="deny",
                    source="policy",
                    reason=build_policy_deny_reason(policy.reason),
                    rule=ask_rule.raw,
                    policy=policy,
                ),
            )
        return _log_decision(
            tool_call,
            ToolDecision(decision="ask", source="deterministic", rule=ask_rule.raw, policy=policy),
        )

    allow_rule = find_matching_rule(tool_call, permissions.rules.allow, cwd)
    if allow_rule is not None:
        logger.debug("Permission rule matched (allow): %s", format_rule_label(allow_rule))
        return _log_decision(
            tool_call,
            ToolDecision(decision="allow", source="deterministic", rule=allow_rule.raw),
        )

    policy = _evaluate_policy(tool_call, policy_decision, permissions, cwd)
    if policy is not None:
        return _log_decision(
            tool_call,
            ToolDecision(
                decision=policy.decision,
                source="policy",
                reason=build_policy_deny_reason(policy.reason) if policy.decision == "deny" else None,
                policy=policy,
            ),
        )

    return _log_decision(
        tool_call,
        ToolDecision(decision=build_fallback_decision(metadata, approval_mode), source="fallback"),
    )


def resolve_tool_decisions(
    tool_calls: list[ToolCall],
    metadata: dict[str, ToolPreflightMetadata],
    policy_decisions: dict[str, ToolPolicyDecision],
    permissions: PermissionsState,
    approval_mode: ApprovalMode,
    *,
    cwd: str,
) -> dict[str, ToolDecision]:
    """Resolve every call in a batch. Keyed by tool call id."""
    return {
        tool_call.id: resolve_tool_decision(
            tool_call,
            metadata.get(tool_call.id),
            policy_decisions.get(tool_call.id),
            permissions,
            approval_mode,
            cwd=cwd,
        )
        for tool_call in tool_calls
    }


def _log_decision(tool_call: ToolCall, decision: ToolDecision) -> ToolDecision:
    reason = f", reason: {decision.reason}" if decision.reason else ""
    logger.debug(
        "Final decision for %s (%s): %s (source: %s%s)",
        tool_call.id,
        tool_call.name,
        decision.decision,
        decision.source,
        reason,
    )
    return decision
