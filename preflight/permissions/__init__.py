"""
Permission and policy rule engine.

Compiles deterministic ``Tool(specifier)`` rules, decodes natural-language
policy rules, persists new rules and resolves the final decision per call.
"""

from .decisions import (
    build_fallback_decision,
    resolve_tool_decision,
    resolve_tool_decisions,
)
from .llm_rules import LlmRulesShape, PolicyEntry, decode_llm_rules, detect_shape, migrate_llm_rules
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
    compile_permission_rule,
    compile_policy_override,
    format_rule_label,
    get_policy_rules_for_tool,
    matches_rule,
    normalize_specifier,
    normalize_tool_name,
    parse_tool_pattern,
)
from .snapshot import RuleContextSnapshot, build_rule_context_snapshot, get_policy_rule_candidates
from .store import (
    SaveResult,
    build_rule_for_tool_call,
    get_global_settings_path,
    get_workspace_settings_path,
    load_permissions_state,
    read_settings_file,
    save_permission_rule,
    save_policy_override,
    save_policy_rule,
)

__all__ = [
    # Models
    "PermissionEntry",
    "PermissionKind",
    "PermissionRule",
    "PermissionRules",
    "PermissionsState",
    "PolicyOverrideRule",
    "PolicyRule",
    "RuleSource",
    "RuleContextSnapshot",
    # Patterns
    "parse_tool_pattern",
    "normalize_tool_name",
    "normalize_specifier",
    "compile_permission_rule",
    "compile_policy_override",
    "matches_rule",
    "format_rule_label",
    "get_policy_rules_for_tool",
    # Policy rule decoding
    "LlmRulesShape",
    "PolicyEntry",
    "detect_shape",
    "decode_llm_rules",
    "migrate_llm_rules",
    # Store
    "SaveResult",
    "get_workspace_settings_path",
    "get_global_settings_path",
    "read_settings_file",
    "load_permissions_state",
    "build_rule_for_tool_call",
    "save_permission_rule",
    "save_policy_override",
    "save_policy_rule",
    # Resolver
    "build_fallback_decision",
    "resolve_tool_decision",
    "resolve_tool_decisions",
    # Snapshots
    "build_rule_context_snapshot",
    "get_policy_rule_candidates",
]
