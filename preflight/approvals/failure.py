"""What to do with a batch when the classifier fails."""

import logging
from typing import Literal

from pydantic import BaseModel

from ..context import PreflightContext
from ..models import ToolCall

logger = logging.getLogger(__name__)

RETRY_OPTION = "Retry preflight"
ALLOW_OPTION = "Allow tool call(s) without preflight"
BLOCK_OPTION = "Block tool call(s)"


class PreflightFailureDecision(BaseModel):
    action: Literal["retry", "allow", "block"]
    reason: str | None = None


async def handle_preflight_failure(
    tool_calls: list[ToolCall],
    reason: str,
    ctx: PreflightContext,
) -> PreflightFailureDecision:
    """
    Let the user retry, allow or block a batch whose classification failed.

    Headless hosts always block.
    """
    summary = f"Preflight failed: {reason}"
    tool_list = ", ".join(tool_call.name for tool_call in tool_calls)
    message = f"{summary}\nTool calls: {tool_list}" if tool_list else summary

    if not ctx.has_ui:
        logger.warning("%s", message)
        return PreflightFailureDecision(action="block", reason=summary)

    await ctx.ui.notify(message, "warning")
    selection = await ctx.ui.select("Preflight failed", [RETRY_OPTION, ALLOW_OPTION, BLOCK_OPTION])

    if not selection:
        return PreflightFailureDecision(action="block", reason=f"{summary} (no response from user).")
    if selection.startswith("Retry"):
        return PreflightFailureDecision(action="retry")
    if selection.startswith("Allow"):
        return PreflightFailureDecision(action="allow")
    return PreflightFailureDecision(action="block", reason=f"{summary} (blocked by user).")
