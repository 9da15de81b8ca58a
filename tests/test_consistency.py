"""
Tests for the rule consistency check.
"""
import json

import pytest

from preflight.oracles.consistency import (
    build_rule_consistency_prompt,
    evaluate_rule_consistency,
    parse_rule_consistency_response,
)
from preflight.permissions.snapshot import PermissionBuckets, PolicyBuckets, RuleContextSnapshot


@pytest.fixture
def snapshot() -> RuleContextSnapshot:
    return RuleContextSnapshot(
        tool="bash",
        policy=PolicyBuckets(tool=["Never delete files"]),
        permissions=PermissionBuckets(deny=["Bash(sudo *)"]),
    )


class TestParseConsistency:
    """Test decoding consistency responses."""

    def test_conflict(self):
        """Conflicts are trimmed and deduplicated."""
        result = parse_rule_consistency_response(
            json.dumps({"conflict": True, "reason": " contradicts ", "conflictsWith": ["A", " A ", "", 3, "B"]})
        )
        assert result.conflict is True
        assert result.reason == "contradicts"
        assert result.conflicts_with == ["A", "B"]

    def test_default_reasons(self):
        """A missing reason gets a default matching the verdict."""
        assert parse_rule_consistency_response('{"conflict": true}').reason == "Potential conflict detected."
        assert parse_rule_consistency_response('{"conflict": false}').reason == "No conflict detected."

    def test_conflict_must_be_boolean(self):
        """Anything but a boolean verdict is rejected."""
        assert parse_rule_consistency_response('{"conflict": "yes"}') is None
        assert parse_rule_consistency_response("no json here") is None
        assert parse_rule_consistency_response(None) is None


class TestConsistencyPrompt:
    """Test the consistency prompt."""

    def test_sections(self, snapshot, bash_call):
        """Every rule bucket is listed, empty ones as (none)."""
        prompt = build_rule_consistency_prompt(bash_call, "Allow deleting build", snapshot)
        assert "Candidate rule: Allow deleting build" in prompt
        assert "Existing policy rules (global): (none)" in prompt
        assert "Existing policy rules (tool-specific):\n- Never delete files" in prompt
        assert "Deterministic permissions (deny):\n- Bash(sudo *)" in prompt
        assert "Policy overrides: (none)" in prompt


class TestEvaluateConsistency:
    """Test the consistency oracle."""

    @pytest.mark.asyncio
    async def test_conflict_reported(self, ctx, llm, snapshot, bash_call):
        """A conflict verdict is returned as parsed."""
        llm.consistency.append(
            json.dumps({"conflict": True, "reason": "Contradicts", "conflictsWith": ["Never delete files"]})
        )
        result = await evaluate_rule_consistency(bash_call, "Allow deleting build", snapshot, ctx)
        assert result.conflict
        assert result.conflicts_with == ["Never delete files"]
        assert llm.models("consistency") == ["anthropic:policy-model"]

    @pytest.mark.asyncio
    async def test_failure_is_not_a_conflict(self, ctx, llm, snapshot, bash_call):
        """Request failures never block saving."""
        llm.consistency.append(RuntimeError("boom"))
        result = await evaluate_rule_consistency(bash_call, "Allow x", snapshot, ctx)
        assert result.conflict is False
        assert result.reason == "Consistency check unavailable: Rule consistency request failed: boom"
        assert result.conflicts_with == []

    @pytest.mark.asyncio
    async def test_unparseable_is_not_a_conflict(self, ctx, llm, snapshot, bash_call):
        """Unparseable responses never block saving."""
        llm.consistency.append("Looks fine to me")
        result = await evaluate_rule_consistency(bash_call, "Allow x", snapshot, ctx)
        assert result.conflict is False
        assert result.reason.startswith("Consistency check unavailable:")
