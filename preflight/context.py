"""Per-batch context threaded through the oracles and the approval controller."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from config.preflight_config import PreflightConfig

from .models import ContextMessage

if TYPE_CHECKING:
    from .approvals.ui import ApprovalUI
    from .oracles.llm import LLMClient


@dataclass
class PreflightContext:
    """
    Everything one preflight pass needs besides the tool calls.

    Attributes:
        cwd: Workspace root
        config: Active configuration (persistent config with session overrides applied)
        ui: Approval UI; ``ui.has_ui`` is False for headless hosts
        llm: Client used by every oracle
        messages: Conversation so far, oldest first
        system_prompt: Host system prompt forwarded to the oracles
        current_model: Host model, used when a model setting is ``current``
    """

    cwd: str
    config: PreflightConfig
    ui: "ApprovalUI"
    llm: "LLMClient"
    messages: list[ContextMessage] = field(default_factory=list)
    system_prompt: str | None = None
    current_model: str | None = None

    @property
    def has_ui(self) -> bool:
        return self.ui.has_ui
