"""Rule context snapshots: the rules one tool is subject to, as raw text."""

from pydantic import BaseModel, Field

from .models import PermissionsState
from .patterns import WILDCARD_TOOL, get_patterns_for_tool, normalize_tool_name


class PolicyBuckets(BaseModel):
    global_: list[str] = Field(default_factory=list, alias="global")
    tool: list[str] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class PermissionBuckets(BaseModel):
    allow: list[str] = Field(default_factory=list)
    ask: list[str] = Field(default_factory=list)
    deny: list[str] = Field(default_factory=list)


class RuleContextSnapshot(BaseModel):
    """
    Read-only view of the rules that apply to one tool.

    Used to prompt the suggestion and consistency oracles and to render the
    approval dialog. Always build it from a fresh load; never cache it.
    """

    tool: str
    policy: PolicyBuckets = Field(default_factory=PolicyBuckets)
    permissions: PermissionBuckets = Field(default_factory=PermissionBuckets)
    policy_overrides: list[str] = Field(default_factory=list)


def build_rule_context_snapshot(tool_name: str, permissions: PermissionsState) -> RuleContextSnapshot:
    tool = normalize_tool_name(tool_name)
    global_policies: list[str] = []
    tool_policies: list[str] = []
    for rule in permissions.policy_rules:
        if rule.tool == WILDCARD_TOOL:
            bucket = global_policies
        elif rule.tool == tool:
            bucket = tool_policies
        else:
            continue
        if rule.policy not in bucket:
            bucket.append(rule.policy)

    return RuleContextSnapshot(
        tool=tool,
        policy=PolicyBuckets(global_=global_policies, tool=tool_policies),
        permissions=PermissionBuckets(
            allow=get_patterns_for_tool(tool, permissions.rules.allow),
            ask=get_patterns_for_tool(tool, permissions.rules.ask),
            deny=get_patterns_for_tool(tool, permissions.rules.deny),
        ),
        policy_overrides=get_patterns_for_tool(tool, permissions.policy_overrides),
    )


def get_policy_rule_candidates(snapshot: RuleContextSnapshot) -> list[str]:
    """Global then tool-specific policy texts, deduplicated."""
    candidates: list[str] = []
    for policy in [*snapshot.policy.global_, *snapshot.policy.tool]:
        if policy not in candidates:
            candidates.append(policy)
    return candidates
