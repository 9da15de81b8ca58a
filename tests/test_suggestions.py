"""
Tests for rule suggestions and explanations.
"""
import pytest

from preflight.exceptions import OracleError
from preflight.models import ContextMessage, ToolPreflightMetadata
from preflight.oracles.explain import explain_tool_call
from preflight.oracles.suggestions import (
    normalize_rule_suggestion_line,
    normalize_rule_suggestions,
    suggest_rules,
)
from preflight.permissions.snapshot import PolicyBuckets, RuleContextSnapshot

METADATA = ToolPreflightMetadata(summary="Delete build output", destructive=True, scope=["build"])


@pytest.fixture
def snapshot() -> RuleContextSnapshot:
    return RuleContextSnapshot(tool="bash", policy=PolicyBuckets(global_=["Be careful"], tool=["No network"]))


class TestNormalizeSuggestions:
    """Test cleaning raw suggestion text."""

    def test_line_cleanup(self):
        """Bullets, numbering and quotes are stripped; the prefix is canonical."""
        assert normalize_rule_suggestion_line("1. allow listing files") == "Allow listing files"
        assert normalize_rule_suggestion_line('- "ASK before pushing"') == "Ask before pushing"
        assert normalize_rule_suggestion_line("* deny rm -rf") == "Deny rm -rf"
        assert normalize_rule_suggestion_line("block sudo") == "Block sudo"

    def test_headings_dropped(self):
        """Intro and heading lines are not suggestions."""
        assert normalize_rule_suggestion_line("Here are three policy rule suggestions:") is None
        assert normalize_rule_suggestion_line("Suggestions:") is None
        assert normalize_rule_suggestion_line("   ") is None

    def test_deduplicated(self):
        """Duplicates within the response and against previous ones are dropped."""
        text = "```\nAllow ls\nallow LS\nAsk git push\nDeny rm\n```"
        assert normalize_rule_suggestions(text, ["deny RM"]) == ["Allow ls", "Ask git push"]

    def test_empty(self):
        """Nothing in, nothing out."""
        assert normalize_rule_suggestions(None, []) == []
        assert normalize_rule_suggestions("", ["x"]) == []


class TestSuggestRules:
    """Test the suggestion oracle."""

    @pytest.mark.asyncio
    async def test_uses_policy_model_and_context(self, ctx, llm, snapshot, bash_call):
        """The policy model gets the rules, previous suggestions and last message."""
        ctx.messages = [
            ContextMessage(role="user", content="first message"),
            ContextMessage(role="user", content="clean the build"),
        ]
        llm.suggest.append("Allow cleaning build\nAsk before rm\nDeny rm outside build")

        suggestions = await suggest_rules(bash_call, METADATA, snapshot, ["Allow rm in build"], ctx)

        assert suggestions == ["Allow cleaning build", "Ask before rm", "Deny rm outside build"]
        assert llm.models("suggest") == ["anthropic:policy-model"]
        prompt = llm.prompts("suggest")[0]
        assert "Existing policy rules: Be careful | No network" in prompt
        assert "Avoid repeating these suggestions: Allow rm in build" in prompt
        assert "Scope: build" in prompt
        assert "[user] clean the build" in prompt
        assert "first message" not in prompt

    @pytest.mark.asyncio
    async def test_full_context(self, ctx, llm, snapshot, bash_call):
        """A negative context limit forwards the whole conversation."""
        ctx.config = ctx.config.model_copy(update={"context_messages": -1})
        ctx.messages = [ContextMessage(role="user", content="first"), ContextMessage(role="assistant", content="ok")]
        await suggest_rules(bash_call, METADATA, snapshot, [], ctx)
        prompt = llm.prompts("suggest")[0]
        assert "[user] first" in prompt
        assert "[assistant] ok" in prompt

    @pytest.mark.asyncio
    async def test_only_repeats(self, ctx, llm, snapshot, bash_call):
        """A response that only repeats previous suggestions is an error."""
        llm.suggest.append("Allow ls")
        with pytest.raises(OracleError) as exc_info:
            await suggest_rules(bash_call, METADATA, snapshot, ["allow ls"], ctx)
        assert exc_info.value.reason == "Rule suggestion response was empty."

    @pytest.mark.asyncio
    async def test_request_failure(self, ctx, llm, snapshot, bash_call):
        """Transport errors become OracleError."""
        llm.suggest.append(TimeoutError("slow"))
        with pytest.raises(OracleError) as exc_info:
            await suggest_rules(bash_call, METADATA, snapshot, [], ctx)
        assert exc_info.value.reason == "Rule suggestion request failed: slow"


class TestExplainToolCall:
    """Test the explanation oracle."""

    @pytest.mark.asyncio
    async def test_explanation(self, ctx, llm, bash_call):
        """The classifier model explains the call."""
        llm.explain.append("It deletes build.\n\nYou asked for a clean build.\nLow risk: build output only")
        text = await explain_tool_call(bash_call, METADATA, ctx)
        assert text.endswith("Low risk: build output only")
        assert llm.models("explain") == ["anthropic:classifier-model"]

    @pytest.mark.asyncio
    async def test_empty_explanation(self, ctx, llm, bash_call):
        """An empty explanation is an error."""
        llm.explain.append("```\n```")
        with pytest.raises(OracleError) as exc_info:
            await explain_tool_call(bash_call, METADATA, ctx)
        assert exc_info.value.reason == "Explanation response was empty."
