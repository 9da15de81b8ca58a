"""Permission and policy rule models."""

from typing import Any, Literal

from pydantic import BaseModel, Field

PermissionKind = Literal["allow", "ask", "deny"]
RuleSource = Literal["workspace", "global"]


class PermissionEntry(BaseModel):
    """Raw permission list entry as written in a settings file."""

    rule: str
    reason: str | None = None


class PermissionRule(BaseModel):
    """Compiled deterministic rule. Rebuilt from raw text on every load."""

    kind: PermissionKind
    raw: str
    tool: str
    specifier: str | None = None
    args_match: Any = None
    source: RuleSource
    settings_path: str
    settings_dir: str
    reason: str | None = None


class PolicyRule(BaseModel):
    """Natural-language rule scoped to one tool (``*`` for every tool)."""

    tool: str
    policy: str
    source: RuleSource
    settings_path: str
    settings_dir: str


class PolicyOverrideRule(BaseModel):
    """Pattern that skips policy evaluation for matching calls."""

    raw: str
    tool: str
    specifier: str | None = None
    args_match: Any = None
    source: RuleSource
    settings_path: str
    settings_dir: str


class PermissionRules(BaseModel):
    allow: list[PermissionRule] = Field(default_factory=list)
    ask: list[PermissionRule] = Field(default_factory=list)
    deny: list[PermissionRule] = Field(default_factory=list)

    def bucket(self, kind: PermissionKind) -> list[PermissionRule]:
        return getattr(self, kind)


class PermissionsState(BaseModel):
    """
    Every rule visible from a workspace.

    Workspace entries are always ordered before global entries.
    """

    rules: PermissionRules = Field(default_factory=PermissionRules)
    policy_rules: list[PolicyRule] = Field(default_factory=list)
    policy_overrides: list[PolicyOverrideRule] = Field(default_factory=list)

    @property
    def has_rules(self) -> bool:
        """True when any permission bucket or policy rule is configured."""
        return bool(
            self.rules.allow
            or self.rules.ask
            or self.rules.deny
            or self.policy_rules
        )
