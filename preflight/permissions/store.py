"""
Permission and policy rule storage.

Rules live in two JSON settings documents:

- workspace: ``<cwd>/.pi/preflight/settings.local.json``
- global: ``~/.pi/preflight/settings.json``

Loading merges both (workspace first) and never raises. Saving always does a
read-modify-write of the workspace document only. There is no cross-process
locking: two writers racing on the same workspace file lose one update.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from ..exceptions import PersistenceError
from ..models import ToolCall
from .llm_rules import decode_llm_rules, migrate_llm_rules
from .models import (
    PermissionEntry,
    PermissionKind,
    PermissionRule,
    PermissionRules,
    PermissionsState,
    PolicyOverrideRule,
    PolicyRule,
    RuleSource,
)
from .patterns import (
    BASH_TOOL,
    PATH_TOOLS,
    compile_permission_rule,
    compile_policy_override,
    get_bash_command,
    get_tool_path,
    normalize_tool_name,
    to_posix_path,
)

logger = logging.getLogger(__name__)

SETTINGS_DIR = Path(".pi") / "preflight"
WORKSPACE_SETTINGS_FILE = "settings.local.json"
GLOBAL_SETTINGS_FILE = "settings.json"
SETTINGS_VERSION = 1

PERMISSION_KINDS: tuple[PermissionKind, ...] = ("allow", "ask", "deny")

# Display names used when writing rules for the built-in tools
RULE_TOOL_NAMES = {"bash": "Bash", "read": "Read", "edit": "Edit", "write": "Write"}

GLOB_SPECIAL_CHARS = "\\*?[]"


class SaveResult(BaseModel):
    """Outcome of a persistence call."""

    saved: bool
    message: str
    rule: str | None = None
    path: str | None = None


# =============================================================================
# Paths
# =============================================================================


def get_workspace_settings_path(cwd: str) -> Path:
    return Path(cwd) / SETTINGS_DIR / WORKSPACE_SETTINGS_FILE


def get_global_settings_path() -> Path:
    return Path.home() / SETTINGS_DIR / GLOBAL_SETTINGS_FILE


# =============================================================================
# Loading
# =============================================================================


def read_settings_file(path: Path) -> dict[str, Any] | None:
    """
    Read a settings document.

    Args:
        path: Path to the settings file

    Returns:
        Parsed document, or None if the file is missing, unreadable or not
        a JSON object
    """
    if not path.exists():
        return None
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to read settings file %s: %s", path, e)
        return None
    if not isinstance(parsed, dict):
        logger.warning("Ignored settings file %s: expected a JSON object", path)
        return None
    return parsed


def extract_permission_entries(value: Any) -> list[PermissionEntry]:
    """Accept bare strings and ``{rule, reason}`` objects; skip anything else."""
    if not isinstance(value, list):
        return []
    entries: list[PermissionEntry] = []
    for item in value:
        if isinstance(item, str):
            if item.strip():
                entries.append(PermissionEntry(rule=item.strip()))
            continue
        if isinstance(item, dict) and isinstance(item.get("rule"), str) and item["rule"].strip():
            reason = item.get("reason")
            entries.append(
                PermissionEntry(
                    rule=item["rule"].strip(),
                    reason=reason.strip() if isinstance(reason, str) and reason.strip() else None,
                )
            )
            continue
        logger.debug("Ignored invalid permission entry: %r", item)
    return entries


def _section(settings: dict[str, Any] | None, key: str) -> dict[str, Any]:
    value = (settings or {}).get(key)
    return value if isinstance(value, dict) else {}


def build_permission_rules(
    settings: dict[str, Any] | None,
    source: RuleSource,
    settings_path: str,
) -> PermissionRules:
    permissions = _section(settings, "permissions")
    buckets: dict[str, list[PermissionRule]] = {}
    for kind in PERMISSION_KINDS:
        compiled = []
        for entry in extract_permission_entries(permissions.get(kind)):
            rule = compile_permission_rule(entry.rule, kind, source, settings_path, entry.reason)
            if rule is not None:
                compiled.append(rule)
        buckets[kind] = compiled
    return PermissionRules(**buckets)


def build_policy_rules(
    settings: dict[str, Any] | None,
    source: RuleSource,
    settings_path: str,
) -> list[PolicyRule]:
    preflight = _section(settings, "preflight")
    return [
        PolicyRule(
            tool=entry.tool,
            policy=entry.policy,
            source=source,
            settings_path=settings_path,
            settings_dir=os.path.dirname(settings_path),
        )
        for entry in decode_llm_rules(preflight.get("llmRules"))
    ]


def build_policy_overrides(
    settings: dict[str, Any] | None,
    source: RuleSource,
    settings_path: str,
) -> list[PolicyOverrideRule]:
    preflight = _section(settings, "preflight")
    overrides = []
    for entry in extract_permission_entries(preflight.get("policyOverrides")):
        override = compile_policy_override(entry.rule, source, settings_path)
        if override is not None:
            overrides.append(override)
    return overrides


def load_permissions_state(cwd: str) -> PermissionsState:
    """
    Load and compile every rule visible from a workspace.

    Workspace entries come before global entries in every collection.
    Missing or corrupt files contribute nothing.

    Args:
        cwd: Workspace root

    Returns:
        Fresh PermissionsState
    """
    workspace_path = get_workspace_settings_path(cwd)
    global_path = get_global_settings_path()
    workspace = read_settings_file(workspace_path)
    global_settings = read_settings_file(global_path)

    workspace_rules = build_permission_rules(workspace, "workspace", str(workspace_path))
    global_rules = build_permission_rules(global_settings, "global", str(global_path))

    return PermissionsState(
        rules=PermissionRules(
            allow=workspace_rules.allow + global_rules.allow,
            ask=workspace_rules.ask + global_rules.ask,
            deny=workspace_rules.deny + global_rules.deny,
        ),
        policy_rules=(
            build_policy_rules(workspace, "workspace", str(workspace_path))
            + build_policy_rules(global_settings, "global", str(global_path))
        ),
        policy_overrides=(
            build_policy_overrides(workspace, "workspace", str(workspace_path))
            + build_policy_overrides(global_settings, "global", str(global_path))
        ),
    )


# =============================================================================
# Rule building
# =============================================================================


def format_rule_tool_name(name: str) -> str:
    return RULE_TOOL_NAMES.get(normalize_tool_name(name), name.strip())


def escape_glob(value: str) -> str:
    return "".join(f"\\{char}" if char in GLOB_SPECIAL_CHARS else char for char in value)


def format_path_rule(path_value: str, cwd: str) -> str | None:
    """
    Express a path argument as a rule specifier that matches exactly that path.

    Home-relative paths keep their ``~/`` prefix. Absolute paths, ``~`` alone
    and relative paths leaving the workspace become ``//`` paths. Everything
    else is anchored at the workspace root with ``./``.
    """
    trimmed = path_value.strip()
    if not trimmed:
        return None
    if trimmed == "~":
        trimmed = os.path.expanduser(trimmed)
    if trimmed.startswith("~/"):
        relative = to_posix_path(os.path.normpath(trimmed[2:]))
        return f"~/{escape_glob(relative)}"

    workspace = os.path.abspath(cwd)
    absolute = os.path.normpath(os.path.join(workspace, trimmed))
    if not os.path.isabs(trimmed):
        relative = to_posix_path(os.path.relpath(absolute, workspace))
        if relative != "." and relative != ".." and not relative.startswith("../"):
            return f"./{escape_glob(relative)}"
    return f"//{escape_glob(to_posix_path(absolute).lstrip('/'))}"


def build_rule_for_tool_call(tool_call: ToolCall, cwd: str) -> str | None:
    """
    Build the permission rule text that matches a tool call.

    Examples: ``Bash(rm -rf /tmp/x)``, ``Read(./src/index.ts)``,
    ``MyTool(args:{"a":1})``.

    Args:
        tool_call: The call to describe
        cwd: Workspace root

    Returns:
        Rule text, or None when the call lacks the argument the rule needs
    """
    tool_name = format_rule_tool_name(tool_call.name)
    tool = normalize_tool_name(tool_call.name)

    if tool == BASH_TOOL:
        command = get_bash_command(tool_call.args)
        if command is None or not command.strip():
            return None
        command = command.strip()
        # A trailing ":*" would be read as " *"; "**" keeps the literal colon
        if command.endswith(":*"):
            command += "*"
        return f"{tool_name}({command})"

    if tool in PATH_TOOLS:
        path_value = get_tool_path(tool_call.args)
        specifier = format_path_rule(path_value, cwd) if path_value else None
        return f"{tool_name}({specifier})" if specifier else None

    try:
        args_text = json.dumps(tool_call.args, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError):
        logger.debug("Could not serialise args for %s", tool_call.name)
        return None
    return f"{tool_name}(args:{args_text})"


# =============================================================================
# Saving
# =============================================================================


def _load_for_update(path: Path) -> dict[str, Any]:
    """Like read_settings_file, but refuses to clobber a corrupt document."""
    if not path.exists():
        return {}
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PersistenceError(str(path), f"existing file is not valid JSON ({e})") from e
    except OSError as e:
        raise PersistenceError(str(path), str(e)) from e
    if not isinstance(parsed, dict):
        raise PersistenceError(str(path), "existing file is not a JSON object")
    return parsed


def _write_settings_file(path: Path, document: dict[str, Any]) -> None:
    """Replace the settings file atomically."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(json.dumps(document, indent=2, ensure_ascii=False) + "\n")
            os.replace(temp_name, path)
        except BaseException:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise
    except OSError as e:
        raise PersistenceError(str(path), str(e)) from e


def _with_version(document: dict[str, Any]) -> dict[str, Any]:
    version = document.get("version")
    is_number = isinstance(version, int) and not isinstance(version, bool)
    return {**document, "version": version if is_number else SETTINGS_VERSION}


def _entry_rule(item: Any) -> str | None:
    if isinstance(item, str):
        return item.strip()
    if isinstance(item, dict) and isinstance(item.get("rule"), str):
        return item["rule"].strip()
    return None


def _clean_list(value: Any) -> list[Any]:
    """Keep valid entries (strings and rule objects) as they were written."""
    if not isinstance(value, list):
        return []
    return [item for item in value if _entry_rule(item)]


def _preflight_section(document: dict[str, Any]) -> dict[str, Any]:
    """Copy of the ``preflight`` section with legacy ``llmRules`` migrated."""
    preflight = dict(_section(document, "preflight"))
    llm_rules = preflight.get("llmRules")
    if "llmRules" in preflight:
        preflight["llmRules"] = migrate_llm_rules(llm_rules)
    preflight["policyOverrides"] = _clean_list(preflight.get("policyOverrides"))
    return preflight


def save_permission_rule(tool_call: ToolCall, kind: PermissionKind, cwd: str) -> SaveResult:
    """
    Add a permission rule for a tool call to the workspace settings.

    Args:
        tool_call: The call the rule should match
        kind: Bucket to add the rule to
        cwd: Workspace root

    Returns:
        SaveResult; ``saved`` is False for duplicates and unbuildable rules

    Raises:
        PersistenceError: If the workspace file cannot be read or written
    """
    rule = build_rule_for_tool_call(tool_call, cwd)
    if rule is None:
        logger.debug("Failed to build rule for %s", tool_call.name)
        return SaveResult(saved=False, message="Could not save rule for this tool call.")

    path = get_workspace_settings_path(cwd)
    document = _load_for_update(path)
    permissions = dict(_section(document, "permissions"))
    for bucket in PERMISSION_KINDS:
        permissions[bucket] = _clean_list(permissions.get(bucket))

    if any(_entry_rule(item) == rule for item in permissions[kind]):
        return SaveResult(saved=False, message=f"Rule already exists: {rule}", rule=rule, path=str(path))

    permissions[kind] = [rule, *permissions[kind]]
    _write_settings_file(path, _with_version({**document, "permissions": permissions}))
    logger.info("Saved %s rule to %s: %s", kind, path, rule)
    return SaveResult(saved=True, message=f"Saved {kind} rule: {rule}", rule=rule, path=str(path))


def save_policy_override(tool_call: ToolCall, cwd: str) -> SaveResult:
    """
    Record that the user accepted a policy-denied call, so matching calls
    skip policy evaluation from now on.

    Raises:
        PersistenceError: If the workspace file cannot be read or written
    """
    rule = build_rule_for_tool_call(tool_call, cwd)
    if rule is None:
        logger.debug("Failed to build policy override for %s", tool_call.name)
        return SaveResult(saved=False, message="Could not save policy override for this tool call.")

    path = get_workspace_settings_path(cwd)
    document = _load_for_update(path)
    preflight = _preflight_section(document)
    overrides = preflight["policyOverrides"]

    if any(_entry_rule(item) == rule for item in overrides):
        return SaveResult(
            saved=False, message=f"Policy override already exists: {rule}", rule=rule, path=str(path)
        )

    preflight["policyOverrides"] = [rule, *overrides]
    _write_settings_file(path, _with_version({**document, "preflight": preflight}))
    logger.info("Saved policy override to %s: %s", path, rule)
    return SaveResult(saved=True, message=f"Saved policy override: {rule}", rule=rule, path=str(path))


def save_policy_rule(tool_call: ToolCall, policy: str, cwd: str) -> SaveResult:
    """
    Add a natural-language policy rule scoped to the call's tool.

    Duplicate detection is an exact, case-sensitive comparison within the
    tool's bucket. Legacy ``llmRules`` layouts are migrated by this write.

    Raises:
        PersistenceError: If the workspace file cannot be read or written
    """
    text = policy.strip()
    if not text:
        return SaveResult(saved=False, message="Custom rule was empty.")
    tool = normalize_tool_name(tool_call.name)
    if not tool:
        return SaveResult(saved=False, message="Could not save custom rule for this tool.")

    path = get_workspace_settings_path(cwd)
    document = _load_for_update(path)
    preflight = _preflight_section(document)
    llm_rules: dict[str, list[str]] = preflight.get("llmRules") or {}
    tool_rules = llm_rules.get(tool, [])

    if text in tool_rules:
        return SaveResult(saved=False, message=f"Policy rule already exists: {text}", rule=text, path=str(path))

    preflight["llmRules"] = {**llm_rules, tool: [text, *tool_rules]}
    _write_settings_file(path, _with_version({**document, "preflight": preflight}))
    logger.info("Saved policy rule for %s to %s: %s", tool, path, text)
    return SaveResult(saved=True, message=f"Saved custom rule for {tool}: {text}", rule=text, path=str(path))
