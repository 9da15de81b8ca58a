"""
Approval response endpoints.

A remote front end answers the dialogs and prompts it received on the event
stream through these endpoints.
"""

import logging

from fastapi import APIRouter, HTTPException

from preflight import EventBusApprovalUI, NotFoundError

from ..requests import DialogEventRequest, SelectionRequest
from ..state import get_remote_ui

logger = logging.getLogger(__name__)

router = APIRouter()


def require_remote_ui() -> EventBusApprovalUI:
    ui = get_remote_ui()
    if ui is None:
        raise HTTPException(status_code=409, detail="Preflight gate has no remote approval UI")
    return ui


@router.get("/preflight/pending")
async def list_pending() -> dict:
    """List open dialogs and unanswered select prompts."""
    ui = require_remote_ui()
    return {"dialogs": ui.open_dialogs, "selections": ui.pending_selections}


@router.post("/preflight/dialogs/{dialogID}/events")
async def post_dialog_event(dialogID: str, request: DialogEventRequest) -> dict:
    """
    Deliver a user event (option chosen, input edited, Tab, Enter, cancel,
    explain) to an open approval dialog.

    Args:
        dialogID: The dialog ID
        request: The user event

    Returns:
        Success confirmation
    """
    ui = require_remote_ui()
    event = request.root
    try:
        ui.push_dialog_event(dialogID, event)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    logger.debug("Dialog event for %s: %s", dialogID, event.type)
    return {"success": True}


@router.post("/preflight/selections/{requestID}")
async def answer_selection(requestID: str, request: SelectionRequest) -> dict:
    """
    Answer a select prompt (conflict dialog, classifier failure).

    Args:
        requestID: The select request ID
        request: The chosen option, or null to dismiss

    Returns:
        Success confirmation
    """
    ui = require_remote_ui()
    try:
        ui.respond_to_selection(requestID, request.selection)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    logger.info("Selection for %s: %s", requestID, request.selection)
    return {"success": True}
