"""PreflightConfig model."""

from typing import Any, Literal

from pydantic import BaseModel, Field

from .defaults import DEFAULT_APPROVAL_MODE, DEFAULT_CONTEXT_MESSAGES, DEFAULT_EXPLAIN_KEY

ApprovalMode = Literal["all", "destructive", "off"]
ConfigScope = Literal["session", "persistent"]


class ModelRef(BaseModel):
    """Explicit model selection."""

    provider: str
    id: str

    def __str__(self) -> str:
        return f"{self.provider}/{self.id}"


ModelSetting = Literal["current"] | ModelRef


class PreflightConfig(BaseModel):
    """Active preflight configuration."""

    approval_mode: ApprovalMode = Field(
        default=DEFAULT_APPROVAL_MODE,
        description="Which calls need approval when no rule decides: all, destructive or off",
    )
    context_messages: int = Field(
        default=DEFAULT_CONTEXT_MESSAGES,
        description="Conversation messages forwarded to suggestions and explanations (-1 = all)",
    )
    explain_key: list[str] = Field(
        default_factory=lambda: [DEFAULT_EXPLAIN_KEY],
        description="Keys that request an explanation in the approval dialog",
    )
    model: ModelSetting = Field(
        default="current",
        description="Model for classification and explanations",
    )
    policy_model: ModelSetting = Field(
        default="current",
        description="Model for rule suggestions and consistency checks",
    )
    debug: bool = Field(
        default=False,
        description="Write a debug log under the workspace",
    )

    def to_file_dict(self) -> dict[str, Any]:
        """Serialise with the camelCase keys used in preflight.json."""
        return {
            "approvalMode": self.approval_mode,
            "contextMessages": self.context_messages,
            "explainKey": self.explain_key[0] if len(self.explain_key) == 1 else list(self.explain_key),
            "model": _dump_model(self.model),
            "policyModel": _dump_model(self.policy_model),
            "debug": self.debug,
        }


def _dump_model(setting: ModelSetting) -> Any:
    return setting if isinstance(setting, str) else setting.model_dump()
