"""
LLM-backed oracles: classification, rule suggestions, consistency checks and
explanations.
"""

from .classifier import (
    ClassificationResult,
    classify_tool_calls,
    normalize_policy_result,
    normalize_preflight,
    parse_preflight_response,
    sanitize_summary,
)
from .consistency import evaluate_rule_consistency, parse_rule_consistency_response
from .explain import explain_tool_call
from .llm import LLMClient, PydanticAIClient, limit_context_messages, resolve_model
from .suggestions import normalize_rule_suggestion_line, normalize_rule_suggestions, suggest_rules

__all__ = [
    # LLM access
    "LLMClient",
    "PydanticAIClient",
    "resolve_model",
    "limit_context_messages",
    # Classifier
    "ClassificationResult",
    "classify_tool_calls",
    "parse_preflight_response",
    "normalize_preflight",
    "normalize_policy_result",
    "sanitize_summary",
    # Suggestions
    "suggest_rules",
    "normalize_rule_suggestions",
    "normalize_rule_suggestion_line",
    # Consistency
    "evaluate_rule_consistency",
    "parse_rule_consistency_response",
    # Explanation
    "explain_tool_call",
]
