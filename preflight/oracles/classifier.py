"""
Preflight classifier.

One request per batch: for every tool call the model returns an intrinsic
description (summary, destructive flag, optional scope) and a verdict
against the policy rules that apply to the call. Any call missing from the
response fails the whole batch.
"""

import json
import logging
import re
from typing import Any

from pydantic import BaseModel, Field

from ..context import PreflightContext
from ..exceptions import PreflightError
from ..models import ToolCall, ToolPolicyDecision, ToolPreflightMetadata
from .llm import capitalize_first, parse_json_response, run_prompt

logger = logging.getLogger(__name__)

POLICY_DECISIONS = ("allow", "ask", "deny", "none")
NO_POLICY_RULES_REASON = "No applicable policy rules."
INVALID_POLICY_REASON = "Policy response missing or invalid; fallback applied."


class ClassificationResult(BaseModel):
    """Classifier output keyed by tool call id."""

    metadata: dict[str, ToolPreflightMetadata] = Field(default_factory=dict)
    policy_decisions: dict[str, ToolPolicyDecision] = Field(default_factory=dict)


async def classify_tool_calls(
    tool_calls: list[ToolCall],
    policy_rules_by_call: dict[str, list[str]],
    ctx: PreflightContext,
) -> ClassificationResult:
    """
    Classify a batch of tool calls.

    Args:
        tool_calls: Calls to classify
        policy_rules_by_call: Applicable policy texts per tool call id
        ctx: Preflight context (uses ``config.model``)

    Returns:
        ClassificationResult with an entry for every call

    Raises:
        PreflightError: If the model is unreachable or the response is unusable
    """
    prompt = build_preflight_prompt(tool_calls, policy_rules_by_call)
    try:
        text = await run_prompt(ctx, prompt, setting=ctx.config.model, purpose="Preflight")
    except Exception as e:
        reason = f"Preflight request failed: {e}" if str(e) else "Preflight request failed."
        logger.warning("Preflight failed: %s", reason)
        raise PreflightError(reason) from e

    if not text:
        raise _failure("Preflight response was empty.")
    parsed = parse_preflight_response(text)
    if parsed is None:
        raise _failure("Preflight response was not valid JSON.")
    result = normalize_preflight(parsed, tool_calls, policy_rules_by_call)
    if result is None:
        raise _failure("Preflight response did not include valid intrinsic metadata for all tool calls.")

    logger.debug("Preflight parsed %d tool call(s)", len(result.metadata))
    return result


def _failure(reason: str) -> PreflightError:
    logger.warning("Preflight failed: %s", reason)
    return PreflightError(reason)


def build_preflight_prompt(
    tool_calls: list[ToolCall],
    policy_rules_by_call: dict[str, list[str]],
) -> str:
    payload = [
        {
            "toolCallId": tool_call.id,
            "name": tool_call.name,
            "args": tool_call.args,
            "policyRules": policy_rules_by_call.get(tool_call.id, []),
        }
        for tool_call in tool_calls
    ]
    return "\n".join(
        [
            "You are a tool preflight assistant.",
            "Return JSON only.",
            "Return an object mapping toolCallId to this exact shape:",
            '{ intrinsic: { summary: string, destructive: boolean, scope?: string[] }, '
            'policy: { decision: "allow"|"ask"|"deny"|"none", reason: string } }',
            "Rules:",
            "- intrinsic is always required for every tool call.",
            "- policy.decision must be allow|ask|deny when policy rules apply.",
            "- policy.decision must be none when policyRules are empty or no rule is applicable.",
            "- Summaries should be short, human-friendly action phrases.",
            "- Do not mention tool names or raw arguments in the summary.",
            "- destructive = true only if the call changes data or system state.",
            "- No markdown, no extra text.",
            "Tool calls:",
            json.dumps(payload, indent=2),
        ]
    )


def parse_preflight_response(text: str) -> dict[str, Any] | None:
    """
    Decode the classifier response.

    Accepts the documented id-keyed object, or an array of objects carrying
    ``toolCallId``/``id``.
    """
    parsed = parse_json_response(text)
    if isinstance(parsed, list):
        return _array_to_preflight(parsed)
    if isinstance(parsed, dict):
        return parsed
    return None


def _array_to_preflight(items: list[Any]) -> dict[str, Any] | None:
    result: dict[str, Any] = {}
    for item in items:
        if not isinstance(item, dict):
            continue
        call_id = item.get("toolCallId") or item.get("id")
        if not isinstance(call_id, str) or not call_id:
            continue
        if item.get("intrinsic") and item.get("policy"):
            result[call_id] = {"intrinsic": item["intrinsic"], "policy": item["policy"]}
        elif isinstance(item.get("summary"), str) and isinstance(item.get("destructive"), bool):
            result[call_id] = {
                "intrinsic": {
                    "summary": item["summary"],
                    "destructive": item["destructive"],
                    "scope": item.get("scope"),
                },
                "policy": {"decision": item.get("decision", "none"), "reason": item.get("reason")},
            }
    return result or None


def normalize_preflight(
    parsed: dict[str, Any],
    tool_calls: list[ToolCall],
    policy_rules_by_call: dict[str, list[str]],
) -> ClassificationResult | None:
    """Validate the decoded response. None if any call lacks valid intrinsic metadata."""
    result = ClassificationResult()
    for tool_call in tool_calls:
        entry = parsed.get(tool_call.id)
        if not isinstance(entry, dict):
            return None
        intrinsic_source = entry.get("intrinsic") if isinstance(entry.get("intrinsic"), dict) else entry
        intrinsic = _normalize_intrinsic(intrinsic_source, tool_call)
        if intrinsic is None:
            return None
        result.metadata[tool_call.id] = intrinsic

        has_rules = bool(policy_rules_by_call.get(tool_call.id))
        result.policy_decisions[tool_call.id] = _normalize_policy(entry.get("policy"), has_rules)
    return result


def _normalize_intrinsic(value: dict[str, Any], tool_call: ToolCall) -> ToolPreflightMetadata | None:
    summary = value.get("summary")
    destructive = value.get("destructive")
    if not isinstance(summary, str) or not isinstance(destructive, bool):
        return None
    cleaned = sanitize_summary(summary, tool_call.name)
    if not cleaned:
        return None
    scope = value.get("scope")
    return ToolPreflightMetadata(
        summary=cleaned,
        destructive=destructive,
        scope=[item for item in scope if isinstance(item, str)] if isinstance(scope, list) else None,
    )


def _normalize_policy(value: Any, has_policy_rules: bool) -> ToolPolicyDecision:
    if isinstance(value, dict):
        normalized = normalize_policy_result(value.get("decision"), value.get("reason"))
        if normalized is not None:
            return normalized
    if has_policy_rules:
        return ToolPolicyDecision(decision="none", reason=INVALID_POLICY_REASON)
    return ToolPolicyDecision(decision="none", reason=NO_POLICY_RULES_REASON)


def normalize_policy_result(decision: Any, reason: Any) -> ToolPolicyDecision | None:
    """Validate a policy verdict. The decision is case-insensitive."""
    if not isinstance(decision, str):
        return None
    lowered = decision.strip().lower()
    if lowered not in POLICY_DECISIONS:
        return None
    if isinstance(reason, str) and reason.strip():
        text = reason.strip()
    elif lowered == "none":
        text = NO_POLICY_RULES_REASON
    else:
        text = f"Policy decision: {lowered}."
    return ToolPolicyDecision(decision=lowered, reason=text)


def sanitize_summary(summary: str, tool_name: str) -> str:
    """
    Tidy a classifier summary.

    Drops a leading "run/use/execute <tool> to" and capitalises the result:
    ``"run bash to list files"`` becomes ``"List files"``.
    """
    cleaned = summary.strip()
    if not cleaned:
        return ""
    pattern = re.compile(rf"^(run|use|execute)\s+{re.escape(tool_name)}\b\s+to\s+", re.IGNORECASE)
    stripped = pattern.sub("", cleaned, count=1).strip()
    if stripped:
        cleaned = stripped
    return capitalize_first(cleaned)
