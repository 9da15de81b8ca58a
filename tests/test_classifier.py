"""
Tests for the preflight classifier.
"""
import json

import pytest

from conftest import classification
from preflight.exceptions import PreflightError
from preflight.models import ToolCall
from preflight.oracles.classifier import (
    INVALID_POLICY_REASON,
    NO_POLICY_RULES_REASON,
    build_preflight_prompt,
    classify_tool_calls,
    normalize_policy_result,
    parse_preflight_response,
    sanitize_summary,
)

CALLS = [
    ToolCall(id="call-1", name="bash", args={"command": "ls"}),
    ToolCall(id="call-2", name="write", args={"path": "notes.md", "content": "hi"}),
]


class TestClassifyToolCalls:
    """Test classifying a batch."""

    @pytest.mark.asyncio
    async def test_success(self, ctx, llm):
        """Every call gets metadata and a policy verdict."""
        llm.classify.append(
            classification(
                **{
                    "call-1": ("run bash to list files", False),
                    "call-2": ("Write notes", True, "DENY", "notes are read-only"),
                }
            )
        )
        result = await classify_tool_calls(CALLS, {"call-2": ["Notes are read-only"]}, ctx)

        assert result.metadata["call-1"].summary == "List files"
        assert result.metadata["call-1"].destructive is False
        assert result.metadata["call-2"].destructive is True
        assert result.policy_decisions["call-1"].decision == "none"
        assert result.policy_decisions["call-1"].reason == NO_POLICY_RULES_REASON
        assert result.policy_decisions["call-2"].decision == "deny"
        assert result.policy_decisions["call-2"].reason == "notes are read-only"
        assert llm.models("classify") == ["anthropic:classifier-model"]

    @pytest.mark.asyncio
    async def test_fenced_array_response(self, ctx, llm):
        """A fenced array of per-call objects is accepted."""
        payload = [
            {"toolCallId": "call-1", "summary": "List files", "destructive": False},
            {"id": "call-2", "intrinsic": {"summary": "Write notes", "destructive": True, "scope": ["notes.md"]},
             "policy": {"decision": "ask", "reason": "check first"}},
        ]
        llm.classify.append(f"```json\n{json.dumps(payload)}\n```")
        result = await classify_tool_calls(CALLS, {"call-2": ["Ask first"]}, ctx)

        assert result.metadata["call-2"].scope == ["notes.md"]
        assert result.policy_decisions["call-2"].decision == "ask"

    @pytest.mark.asyncio
    async def test_invalid_policy_with_rules(self, ctx, llm):
        """A bad policy verdict for a call with rules falls back to ``none``."""
        llm.classify.append(
            json.dumps(
                {
                    "call-1": {"intrinsic": {"summary": "List", "destructive": False}, "policy": {"decision": "maybe"}},
                    "call-2": {"intrinsic": {"summary": "Write", "destructive": True}},
                }
            )
        )
        result = await classify_tool_calls(CALLS, {"call-1": ["No ls"]}, ctx)
        assert result.policy_decisions["call-1"].decision == "none"
        assert result.policy_decisions["call-1"].reason == INVALID_POLICY_REASON
        assert result.policy_decisions["call-2"].reason == NO_POLICY_RULES_REASON

    @pytest.mark.asyncio
    async def test_missing_call_fails_batch(self, ctx, llm):
        """A call without intrinsic metadata fails the whole batch."""
        llm.classify.append(classification(**{"call-1": ("List files", False)}))
        with pytest.raises(PreflightError) as exc_info:
            await classify_tool_calls(CALLS, {}, ctx)
        assert exc_info.value.reason == (
            "Preflight response did not include valid intrinsic metadata for all tool calls."
        )

    @pytest.mark.asyncio
    async def test_non_boolean_destructive_fails(self, ctx, llm):
        """``destructive`` must be a boolean."""
        llm.classify.append(
            json.dumps({call.id: {"intrinsic": {"summary": "x", "destructive": "yes"}} for call in CALLS})
        )
        with pytest.raises(PreflightError):
            await classify_tool_calls(CALLS, {}, ctx)

    @pytest.mark.asyncio
    async def test_empty_response(self, ctx, llm):
        """An empty response is a failure."""
        llm.classify.append("   ")
        with pytest.raises(PreflightError) as exc_info:
            await classify_tool_calls(CALLS, {}, ctx)
        assert exc_info.value.reason == "Preflight response was empty."

    @pytest.mark.asyncio
    async def test_not_json(self, ctx, llm):
        """Prose without JSON is a failure."""
        llm.classify.append("I think these calls look fine.")
        with pytest.raises(PreflightError) as exc_info:
            await classify_tool_calls(CALLS, {}, ctx)
        assert exc_info.value.reason == "Preflight response was not valid JSON."

    @pytest.mark.asyncio
    async def test_request_error(self, ctx, llm):
        """Transport errors become PreflightError with the cause in the reason."""
        llm.classify.append(ConnectionError("connection refused"))
        with pytest.raises(PreflightError) as exc_info:
            await classify_tool_calls(CALLS, {}, ctx)
        assert exc_info.value.reason == "Preflight request failed: connection refused"


class TestPreflightPrompt:
    """Test the classifier prompt."""

    def test_payload_includes_policy_rules(self):
        """Each call is listed with the policy rules that apply to it."""
        prompt = build_preflight_prompt(CALLS, {"call-1": ["No network"]})
        payload = json.loads(prompt[prompt.index("Tool calls:\n") + len("Tool calls:\n"):])
        assert payload[0] == {
            "toolCallId": "call-1",
            "name": "bash",
            "args": {"command": "ls"},
            "policyRules": ["No network"],
        }
        assert payload[1]["policyRules"] == []


class TestResponseParsing:
    """Test response parsing helpers."""

    def test_json_embedded_in_text(self):
        """JSON surrounded by prose is recovered."""
        parsed = parse_preflight_response('Here you go: {"call-1": {"summary": "x", "destructive": false}} done')
        assert parsed == {"call-1": {"summary": "x", "destructive": False}}

    def test_policy_result_normalised(self):
        """Decisions are case-insensitive and get default reasons."""
        assert normalize_policy_result(" Allow ", "").reason == "Policy decision: allow."
        assert normalize_policy_result("NONE", None).reason == NO_POLICY_RULES_REASON
        assert normalize_policy_result("block", "x") is None
        assert normalize_policy_result(None, "x") is None

    def test_sanitize_summary(self):
        """A leading "run/use/execute <tool> to" is dropped."""
        assert sanitize_summary("Use bash to remove the build dir", "bash") == "Remove the build dir"
        assert sanitize_summary("execute BASH to check status", "bash") == "Check status"
        assert sanitize_summary("run bashful to go", "bash") == "Run bashful to go"
        assert sanitize_summary("  ", "bash") == ""
