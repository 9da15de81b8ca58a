"""
Approval UI protocol.

The controller never draws anything itself. It talks to an ApprovalUI that
can show notifications, ask the user to pick one of several options, and
host the interactive approval dialog. The dialog is event driven: the
controller pushes a rendered DialogView and pulls user events back.
"""

import logging
from typing import Annotated, Literal, Protocol, Union

from pydantic import BaseModel, Field

from ..models import ApprovalAction

logger = logging.getLogger(__name__)

NotifyLevel = Literal["info", "warning", "error"]
SubflowStatus = Literal["idle", "loading", "error"]


# =============================================================================
# Dialog events sent by the user
# =============================================================================


class ChooseOption(BaseModel):
    """Pick one of the fixed options (Yes / Always / No)."""

    type: Literal["choose"] = "choose"
    action: Literal["allow", "allow-persist", "deny"]


class EditInput(BaseModel):
    """Replace the custom rule input with ``text``."""

    type: Literal["edit"] = "edit"
    text: str


class AcceptSuggestion(BaseModel):
    """Tab: accept the shown suggestion, cycle, or fetch more."""

    type: Literal["accept-suggestion"] = "accept-suggestion"


class SubmitRule(BaseModel):
    """Enter on the custom rule option."""

    type: Literal["submit"] = "submit"


class CancelDialog(BaseModel):
    type: Literal["cancel"] = "cancel"


class RequestExplanation(BaseModel):
    type: Literal["explain"] = "explain"


DialogEvent = Annotated[
    Union[ChooseOption, EditInput, AcceptSuggestion, SubmitRule, CancelDialog, RequestExplanation],
    Field(discriminator="type"),
]


# =============================================================================
# Rendered dialog
# =============================================================================


class DialogOption(BaseModel):
    label: str
    action: ApprovalAction


class DialogView(BaseModel):
    """Everything a front end needs to draw the approval dialog."""

    dialog_id: str
    tool_call_id: str
    title: str
    summary: str
    destructive: bool
    detail_lines: list[str] = Field(default_factory=list)
    options: list[DialogOption] = Field(default_factory=list)
    custom_rule_input: str = ""
    custom_rule_placeholder: str | None = None
    can_cycle_suggestion: bool = False
    suggestion_status: SubflowStatus = "idle"
    explanation_status: SubflowStatus = "idle"
    explain_keys: list[str] = Field(default_factory=list)


# =============================================================================
# Protocol
# =============================================================================


class ApprovalUI(Protocol):
    """What the approval controller needs from a front end."""

    @property
    def has_ui(self) -> bool:
        """False for headless hosts; every prompt is then skipped."""
        ...

    async def notify(self, message: str, level: NotifyLevel = "info") -> None:
        ...

    async def select(self, title: str, options: list[str]) -> str | None:
        """
        Ask the user to pick one option.

        Returns:
            The chosen option text, or None if dismissed
        """
        ...

    async def show_dialog(self, view: DialogView) -> None:
        """Open the dialog, or redraw it if already open."""
        ...

    async def next_dialog_event(self, dialog_id: str) -> DialogEvent | None:
        """
        Wait for the next user event on an open dialog.

        Returns:
            The event, or None when the dialog was dismissed
        """
        ...

    async def close_dialog(self, dialog_id: str) -> None:
        ...


class NullApprovalUI:
    """Headless ApprovalUI. Nothing is shown and every prompt is dismissed."""

    @property
    def has_ui(self) -> bool:
        return False

    async def notify(self, message: str, level: NotifyLevel = "info") -> None:
        logger.info("Preflight notice (%s): %s", level, message)

    async def select(self, title: str, options: list[str]) -> str | None:
        return None

    async def show_dialog(self, view: DialogView) -> None:
        pass

    async def next_dialog_event(self, dialog_id: str) -> DialogEvent | None:
        return None

    async def close_dialog(self, dialog_id: str) -> None:
        pass
