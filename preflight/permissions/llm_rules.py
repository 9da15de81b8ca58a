"""
Decoder for the ``preflight.llmRules`` settings value.

Three historical layouts exist on disk:

- canonical tool-scoped map: ``{"bash": ["policy", ...], "*": [...]}``
- legacy flat list of strings, each one a wildcard (``*``) policy
- legacy list of ``{"pattern": "Bash(*)", "policy": "..."}`` objects
  (``{"tool": "bash", "policy": "..."}`` is accepted too)

Every layout decodes into the same list of ``(tool, policy)`` pairs. Readers
keep accepting the legacy layouts; writers migrate them to the canonical map.
Decoding is total: invalid entries are logged and skipped.
"""

import logging
from enum import Enum
from typing import Any, NamedTuple

from .patterns import WILDCARD_TOOL, normalize_tool_name, parse_tool_pattern

logger = logging.getLogger(__name__)


class LlmRulesShape(str, Enum):
    """Detected layout of an ``llmRules`` value."""

    EMPTY = "empty"
    TOOL_SCOPED = "tool-scoped"
    LEGACY_STRINGS = "legacy-strings"
    LEGACY_OBJECTS = "legacy-objects"
    MIXED_LEGACY = "mixed-legacy"
    INVALID = "invalid"


class PolicyEntry(NamedTuple):
    tool: str
    policy: str


LEGACY_SHAPES = frozenset(
    {LlmRulesShape.LEGACY_STRINGS, LlmRulesShape.LEGACY_OBJECTS, LlmRulesShape.MIXED_LEGACY}
)


def detect_shape(value: Any) -> LlmRulesShape:
    if value is None or value == [] or value == {}:
        return LlmRulesShape.EMPTY
    if isinstance(value, dict):
        return LlmRulesShape.TOOL_SCOPED
    if not isinstance(value, list):
        return LlmRulesShape.INVALID
    has_strings = any(isinstance(item, str) for item in value)
    has_objects = any(isinstance(item, dict) for item in value)
    if has_strings and has_objects:
        return LlmRulesShape.MIXED_LEGACY
    if has_objects:
        return LlmRulesShape.LEGACY_OBJECTS
    if has_strings:
        return LlmRulesShape.LEGACY_STRINGS
    return LlmRulesShape.INVALID


def decode_llm_rules(value: Any) -> list[PolicyEntry]:
    """
    Decode any supported ``llmRules`` layout.

    Args:
        value: The raw JSON value

    Returns:
        (tool, policy) pairs in file order. Tool names are normalised.
    """
    shape = detect_shape(value)
    if shape == LlmRulesShape.EMPTY:
        return []
    if shape == LlmRulesShape.INVALID:
        logger.debug("Ignored invalid llmRules: expected object or array.")
        return []
    if shape == LlmRulesShape.TOOL_SCOPED:
        return _decode_tool_scoped(value)
    return _decode_legacy(value)


def _decode_tool_scoped(value: dict[str, Any]) -> list[PolicyEntry]:
    entries: list[PolicyEntry] = []
    for tool_name, policies in value.items():
        tool = normalize_tool_name(str(tool_name))
        if not tool:
            logger.debug("Ignored llmRules entry with empty tool name.")
            continue
        for policy in _extract_policy_values(policies):
            entries.append(PolicyEntry(tool, policy))
    return entries


def _extract_policy_values(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, list):
        if value is not None:
            logger.debug("Ignored invalid llmRules tool entry: expected array or string.")
        return []

    policies: list[str] = []
    for item in value:
        if isinstance(item, dict):
            item = item.get("policy")
        if isinstance(item, str) and item.strip():
            policies.append(item.strip())
            continue
        logger.debug("Ignored invalid llmRules policy entry.")
    return policies


def _decode_legacy(value: list[Any]) -> list[PolicyEntry]:
    entries: list[PolicyEntry] = []
    for item in value:
        if isinstance(item, str):
            if item.strip():
                entries.append(PolicyEntry(WILDCARD_TOOL, item.strip()))
            continue

        if not isinstance(item, dict):
            logger.debug("Ignored invalid legacy llmRules entry.")
            continue

        policy = item.get("policy")
        if not isinstance(policy, str) or not policy.strip():
            logger.debug("Ignored legacy llmRules entry without policy text.")
            continue
        policy = policy.strip()

        tool = item.get("tool")
        if isinstance(tool, str) and tool.strip():
            entries.append(PolicyEntry(normalize_tool_name(tool), policy))
            continue

        pattern = item.get("pattern")
        if isinstance(pattern, str) and pattern.strip():
            parsed = parse_tool_pattern(pattern)
            if parsed is None:
                logger.debug("Ignored legacy llmRules entry with invalid pattern: %s", pattern)
                continue
            entries.append(PolicyEntry(normalize_tool_name(parsed.tool), policy))
            continue

        entries.append(PolicyEntry(WILDCARD_TOOL, policy))
    return entries


def migrate_llm_rules(value: Any) -> dict[str, list[str]]:
    """
    Convert any supported layout to the canonical tool-scoped map.

    Duplicate policies under one tool are collapsed; order is preserved.
    """
    shape = detect_shape(value)
    if shape in LEGACY_SHAPES:
        logger.info("Migrating legacy llmRules (%s) to tool-scoped map", shape.value)

    canonical: dict[str, list[str]] = {}
    for entry in decode_llm_rules(value):
        policies = canonical.setdefault(entry.tool, [])
        if entry.policy not in policies:
            policies.append(entry.policy)
    return canonical
