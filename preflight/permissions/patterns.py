"""
Rule pattern compiler and matcher.

Rules are written as ``Tool`` or ``Tool(specifier)``. How the specifier is
read depends on the tool:

- ``bash``: wildcard over the command string, ``*`` matches any run of characters
- ``read``/``edit``/``write``: gitignore-style glob over the ``path`` argument
- any other tool: ``args:<json>`` compared for equality with the call arguments
"""

import json
import logging
import os
import re
from functools import lru_cache
from pathlib import Path, PurePosixPath
from typing import Any, NamedTuple

import pathspec

from ..models import ToolCall
from .models import PermissionKind, PermissionRule, PolicyOverrideRule, PolicyRule, RuleSource

logger = logging.getLogger(__name__)

BASH_TOOL = "bash"
PATH_TOOLS = frozenset({"read", "edit", "write"})
WILDCARD_TOOL = "*"
ARGS_PREFIX = "args:"


class ParsedPattern(NamedTuple):
    tool: str
    specifier: str | None = None


class CompiledTarget(NamedTuple):
    tool: str
    specifier: str | None
    args_match: Any


# =============================================================================
# Parsing
# =============================================================================


def parse_tool_pattern(value: str) -> ParsedPattern | None:
    """
    Split rule text into tool name and specifier.

    Text without a parenthesised suffix is taken whole as the tool name. The
    specifier runs from the first ``(`` to the closing ``)`` at the very end,
    so specifiers may themselves contain parentheses.

    Args:
        value: Raw rule text, e.g. ``Bash(git status)``

    Returns:
        ParsedPattern, or None when the text or the tool name is empty
    """
    trimmed = value.strip()
    if not trimmed:
        return None
    open_index = trimmed.find("(")
    if open_index == -1 or not trimmed.endswith(")"):
        return ParsedPattern(tool=trimmed)
    tool = trimmed[:open_index].strip()
    if not tool:
        return None
    return ParsedPattern(tool=tool, specifier=trimmed[open_index + 1 : -1])


def normalize_tool_name(name: str) -> str:
    return name.strip().lower()


def normalize_specifier(specifier: str | None) -> str | None:
    """Empty and ``*`` specifiers both mean "every call to this tool"."""
    if specifier is None:
        return None
    trimmed = specifier.strip()
    if not trimmed or trimmed == "*":
        return None
    return trimmed


def is_known_tool(tool: str) -> bool:
    return tool == BASH_TOOL or tool in PATH_TOOLS


def parse_args_match(tool: str, specifier: str | None) -> Any:
    """
    Parse an ``args:<json>`` specifier for tools without a dedicated matcher.

    Returns:
        The decoded JSON object or array, or None when the specifier is not
        an args matcher
    """
    if specifier is None or is_known_tool(tool):
        return None
    candidate = specifier.strip()
    if candidate.startswith(ARGS_PREFIX):
        candidate = candidate[len(ARGS_PREFIX) :].strip()
    if not candidate or candidate[0] not in "{[":
        return None
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        logger.debug("Failed to parse args matcher for %s: %s", tool, candidate)
        return None


def _compile_target(raw: str, label: str) -> CompiledTarget | None:
    parsed = parse_tool_pattern(raw)
    if parsed is None:
        logger.debug("Ignored invalid %s: %s", label, raw)
        return None
    tool = normalize_tool_name(parsed.tool)
    specifier = normalize_specifier(parsed.specifier)
    if tool == WILDCARD_TOOL and specifier is not None:
        logger.debug("Ignored %s with a specifier on the * tool: %s", label, raw)
        return None
    args_match = parse_args_match(tool, specifier)
    if specifier is not None and not is_known_tool(tool) and args_match is None:
        logger.debug("Ignored %s with unsupported args: %s", label, raw)
        return None
    return CompiledTarget(tool=tool, specifier=specifier, args_match=args_match)


def compile_permission_rule(
    raw: str,
    kind: PermissionKind,
    source: RuleSource,
    settings_path: str,
    reason: str | None = None,
) -> PermissionRule | None:
    """
    Compile one permission entry.

    Invalid rules are logged at debug level and dropped; compiling never raises.

    Args:
        raw: Rule text as stored in the settings file
        kind: Bucket the rule was listed under
        source: Which settings file the rule came from
        settings_path: Path of that settings file
        reason: Optional reason stored next to the rule

    Returns:
        The compiled rule, or None if the text is not a valid rule
    """
    target = _compile_target(raw, "rule")
    if target is None:
        return None
    return PermissionRule(
        kind=kind,
        raw=raw,
        tool=target.tool,
        specifier=target.specifier,
        args_match=target.args_match,
        source=source,
        settings_path=settings_path,
        settings_dir=os.path.dirname(settings_path),
        reason=reason,
    )


def compile_policy_override(
    raw: str,
    source: RuleSource,
    settings_path: str,
) -> PolicyOverrideRule | None:
    """Compile one ``policyOverrides`` entry. Same grammar as permission rules."""
    target = _compile_target(raw, "policy override")
    if target is None:
        return None
    return PolicyOverrideRule(
        raw=raw,
        tool=target.tool,
        specifier=target.specifier,
        args_match=target.args_match,
        source=source,
        settings_path=settings_path,
        settings_dir=os.path.dirname(settings_path),
    )


# =============================================================================
# Matching
# =============================================================================


def get_string_arg(args: dict[str, Any], key: str) -> str | None:
    value = args.get(key)
    return value if isinstance(value, str) else None


def get_bash_command(args: dict[str, Any]) -> str | None:
    command = get_string_arg(args, "command")
    if command is None:
        command = get_string_arg(args, "cmd")
    return command


def get_tool_path(args: dict[str, Any]) -> str | None:
    return get_string_arg(args, "path")


def matches_rule(
    rule: PermissionRule | PolicyOverrideRule,
    tool_call: ToolCall,
    cwd: str,
) -> bool:
    """
    Check whether a compiled rule matches a tool call.

    Pure: reads nothing from disk and never raises for malformed arguments.

    Args:
        rule: Compiled permission rule or policy override
        tool_call: The call to check
        cwd: Workspace root used to resolve relative paths

    Returns:
        True if the rule applies to the call
    """
    tool_name = normalize_tool_name(tool_call.name)
    if rule.tool != WILDCARD_TOOL and rule.tool != tool_name:
        return False
    if rule.specifier is None:
        return True

    if rule.tool == BASH_TOOL:
        command = get_bash_command(tool_call.args)
        return command is not None and match_bash_pattern(rule.specifier, command)

    if rule.tool in PATH_TOOLS:
        path_value = get_tool_path(tool_call.args)
        if not path_value:
            return False
        return match_path_pattern(rule.specifier, path_value, rule.settings_dir, cwd)

    if rule.args_match is None:
        return False
    return deep_equal(rule.args_match, tool_call.args)


def normalize_bash_pattern(pattern: str) -> str:
    """Rewrite a trailing ``:*`` to `` *`` so ``ls:*`` reads as ``ls *``."""
    trimmed = pattern.strip()
    if trimmed.endswith(":*"):
        return f"{trimmed[:-2]} *"
    return trimmed


def match_bash_pattern(pattern: str, command: str) -> bool:
    normalized = normalize_bash_pattern(pattern)
    regex = ".*".join(re.escape(part) for part in normalized.split("*"))
    return re.fullmatch(regex, command.strip(), flags=re.DOTALL) is not None


def to_posix_path(value: str) -> str:
    return Path(value).as_posix() if os.sep != "/" else value


def expand_home(value: str) -> str:
    if value == "~" or value.startswith("~/"):
        return os.path.expanduser(value)
    return value


def resolve_target_path(path_value: str, cwd: str) -> str:
    """Absolute, normalised form of a tool ``path`` argument."""
    expanded = expand_home(path_value.strip())
    return os.path.normpath(os.path.join(os.path.abspath(cwd), expanded))


def normalize_path_pattern(
    pattern: str,
    settings_dir: str,
    cwd: str,
) -> tuple[str, str] | None:
    """
    Resolve a path rule prefix into a glob and the directory it is relative to.

    - ``//x``: absolute from the filesystem root
    - ``~/x``: relative to the home directory
    - ``/x``: relative to the directory of the settings file
    - ``./x``: anchored at the workspace root
    - ``x``: gitignore semantics below the workspace root

    Returns:
        (glob, base_dir) tuple, or None for an empty pattern
    """
    trimmed = pattern.strip()
    if not trimmed:
        return None
    if trimmed.startswith("//"):
        return f"/{trimmed[2:]}", os.sep
    if trimmed.startswith("~/"):
        home = to_posix_path(os.path.expanduser("~")).rstrip("/")
        return f"{home}/{trimmed[2:]}", os.sep
    if trimmed.startswith("/"):
        return trimmed, settings_dir
    if trimmed.startswith("./"):
        return f"/{trimmed[2:]}", os.path.abspath(cwd)
    return trimmed, os.path.abspath(cwd)


@lru_cache(maxsize=256)
def _compile_glob(glob: str) -> pathspec.GitIgnoreSpec:
    return pathspec.GitIgnoreSpec.from_lines([glob])


def match_path_pattern(pattern: str, path_value: str, settings_dir: str, cwd: str) -> bool:
    """
    Match a path argument against a gitignore-style rule.

    A target outside the rule's base directory never matches.
    """
    normalized = normalize_path_pattern(pattern, settings_dir, cwd)
    if normalized is None:
        return False
    glob, base_dir = normalized
    target = resolve_target_path(path_value, cwd)
    try:
        relative = os.path.relpath(target, base_dir)
    except ValueError:
        # Different drive on Windows
        return False
    relative = to_posix_path(relative)
    if not glob.strip("/"):
        # The pattern names its base directory itself, e.g. "//" for the root
        return relative == "."
    if relative in (".", "..") or relative.startswith("../"):
        return False
    return _compile_glob(glob).match_file(str(PurePosixPath(relative)))


def deep_equal(expected: Any, actual: Any) -> bool:
    """JSON value equality. Booleans never equal numbers."""
    if isinstance(expected, bool) or isinstance(actual, bool):
        return type(expected) is type(actual) and expected == actual
    if isinstance(expected, dict) and isinstance(actual, dict):
        if expected.keys() != actual.keys():
            return False
        return all(deep_equal(value, actual[key]) for key, value in expected.items())
    if isinstance(expected, (list, tuple)) and isinstance(actual, (list, tuple)):
        if len(expected) != len(actual):
            return False
        return all(deep_equal(a, b) for a, b in zip(expected, actual))
    if isinstance(expected, (dict, list, tuple)) or isinstance(actual, (dict, list, tuple)):
        return False
    return expected == actual


# =============================================================================
# Tool scoping
# =============================================================================


def applies_to_tool(rule_tool: str, tool: str) -> bool:
    return rule_tool == WILDCARD_TOOL or rule_tool == tool


def get_policy_rules_for_tool(tool_name: str, policy_rules: list[PolicyRule]) -> list[str]:
    """Policy texts scoped to a tool or to ``*``, deduplicated in load order."""
    tool = normalize_tool_name(tool_name)
    policies: list[str] = []
    for rule in policy_rules:
        if not applies_to_tool(rule.tool, tool):
            continue
        if rule.policy not in policies:
            policies.append(rule.policy)
    return policies


def get_patterns_for_tool(
    tool_name: str,
    rules: list[PermissionRule] | list[PolicyOverrideRule],
) -> list[str]:
    """Raw pattern text of the rules that can apply to a tool."""
    tool = normalize_tool_name(tool_name)
    patterns: list[str] = []
    for rule in rules:
        if applies_to_tool(rule.tool, tool) and rule.raw not in patterns:
            patterns.append(rule.raw)
    return patterns


def format_rule_label(rule: PermissionRule | PolicyOverrideRule) -> str:
    return f"{rule.raw} ({rule.source})"
