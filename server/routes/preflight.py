"""
Preflight check endpoints.

A host posts each batch of tool calls before running them and receives a
verdict per call. For refused calls it can later fetch the block reason to
use as the tool result.
"""

import logging

from fastapi import APIRouter, HTTPException

from preflight import PreflightGate

from ..logging_config import attach_debug_log, log_timing
from ..requests import CheckRequest
from ..state import get_gate

logger = logging.getLogger(__name__)

router = APIRouter()


def require_gate() -> PreflightGate:
    gate = get_gate()
    if gate is None:
        raise HTTPException(status_code=500, detail="Preflight gate not initialized")
    return gate


@router.post("/preflight/check")
async def check_tool_calls(request: CheckRequest) -> dict:
    """
    Run a batch of tool calls through the gate.

    May wait for the user when a call needs approval.

    Args:
        request: Tool calls plus optional conversation context

    Returns:
        Verdict per tool call id
    """
    gate = require_gate()
    if gate.active_config.debug:
        attach_debug_log(gate.cwd)

    with log_timing(logger, f"Preflight check of {len(request.toolCalls)} tool call(s)", logging.INFO):
        verdicts = await gate.check(
            request.toolCalls,
            messages=request.messages,
            system_prompt=request.systemPrompt,
        )

    return {
        "verdicts": {
            tool_call_id: verdict.model_dump(exclude_none=True)
            for tool_call_id, verdict in verdicts.items()
        }
    }


@router.get("/preflight/blocked/{toolCallID}")
async def consume_block_reason(toolCallID: str) -> dict:
    """
    Fetch (and forget) the reason a tool call was blocked.

    Args:
        toolCallID: The tool call ID

    Returns:
        The recorded reason
    """
    gate = require_gate()
    reason = gate.consume_block_reason(toolCallID)
    if reason is None:
        raise HTTPException(status_code=404, detail=f"No block recorded for tool call: {toolCallID}")
    return {"toolCallId": toolCallID, "reason": reason}
