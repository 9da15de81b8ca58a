"""
Rule consistency check.

Asks the policy model whether a candidate custom rule duplicates or
contradicts the rules already in force for the tool. Failures never block
the user: they come back as "no conflict" with the reason attached.
"""

import logging
from typing import Any

from ..context import PreflightContext
from ..models import RuleConsistencyResult, ToolCall
from ..permissions.snapshot import RuleContextSnapshot
from .llm import parse_json_response, run_prompt, tool_call_payload

logger = logging.getLogger(__name__)


async def evaluate_rule_consistency(
    tool_call: ToolCall,
    candidate: str,
    snapshot: RuleContextSnapshot,
    ctx: PreflightContext,
) -> RuleConsistencyResult:
    """
    Check ``candidate`` against the rules in ``snapshot``.

    Args:
        tool_call: The call that prompted the new rule
        candidate: Rule text the user wants to save
        snapshot: Existing rules scoped to the call's tool
        ctx: Preflight context (uses ``config.policy_model``)

    Returns:
        RuleConsistencyResult; never raises for model or parse failures
    """
    prompt = build_rule_consistency_prompt(tool_call, candidate, snapshot)
    try:
        text = await run_prompt(ctx, prompt, setting=ctx.config.policy_model, purpose="Rule consistency")
    except Exception as e:
        reason = f"Rule consistency request failed: {e}" if str(e) else "Rule consistency request failed."
        return unavailable_result(reason)

    parsed = parse_rule_consistency_response(text)
    if parsed is None:
        return unavailable_result("Rule consistency response was not valid JSON.")
    logger.debug("Rule consistency for %r: conflict=%s (%s)", candidate, parsed.conflict, parsed.reason)
    return parsed


def build_rule_consistency_prompt(tool_call: ToolCall, candidate: str, snapshot: RuleContextSnapshot) -> str:
    lines = [
        "You are validating whether a new custom policy rule conflicts with existing rules.",
        "Return JSON only with this exact shape:",
        '{ "conflict": boolean, "reason": string, "conflictsWith": string[] }',
        "Set conflict=true when the candidate rule duplicates or contradicts existing policy/deterministic rules.",
        "If uncertain, set conflict=false and explain uncertainty in reason.",
        "No markdown. No extra keys.",
        f"Candidate rule: {candidate}",
    ]
    sections = (
        ("Existing policy rules (global)", snapshot.policy.global_),
        ("Existing policy rules (tool-specific)", snapshot.policy.tool),
        ("Deterministic permissions (allow)", snapshot.permissions.allow),
        ("Deterministic permissions (ask)", snapshot.permissions.ask),
        ("Deterministic permissions (deny)", snapshot.permissions.deny),
        ("Policy overrides", snapshot.policy_overrides),
    )
    for title, rules in sections:
        lines.extend(_rules_section(title, rules))
    lines += ["Tool call:", tool_call_payload(tool_call)]
    return "\n".join(lines)


def _rules_section(title: str, rules: list[str]) -> list[str]:
    if not rules:
        return [f"{title}: (none)"]
    return [f"{title}:", *(f"- {rule}" for rule in rules)]


def parse_rule_consistency_response(text: str | None) -> RuleConsistencyResult | None:
    """Decode ``{conflict, reason, conflictsWith}``. None unless ``conflict`` is a bool."""
    record: Any = parse_json_response(text)
    if not isinstance(record, dict) or not isinstance(record.get("conflict"), bool):
        return None

    conflict = record["conflict"]
    reason = record.get("reason")
    if isinstance(reason, str) and reason.strip():
        reason = reason.strip()
    else:
        reason = "Potential conflict detected." if conflict else "No conflict detected."

    conflicts_with: list[str] = []
    raw = record.get("conflictsWith")
    if isinstance(raw, list):
        for item in raw:
            if isinstance(item, str) and item.strip() and item.strip() not in conflicts_with:
                conflicts_with.append(item.strip())

    return RuleConsistencyResult(conflict=conflict, reason=reason, conflicts_with=conflicts_with)


def unavailable_result(reason: str) -> RuleConsistencyResult:
    logger.debug("Rule consistency fallback: %s", reason)
    return RuleConsistencyResult(
        conflict=False,
        reason=f"Consistency check unavailable: {reason}",
        conflicts_with=[],
    )
