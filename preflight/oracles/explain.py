"""On-demand explanation of a pending tool call."""

import logging

from ..context import PreflightContext
from ..exceptions import OracleError
from ..models import ToolCall, ToolPreflightMetadata
from .llm import limit_context_messages, render_context_messages, run_prompt, strip_code_fence, tool_call_payload

logger = logging.getLogger(__name__)


async def explain_tool_call(
    tool_call: ToolCall,
    metadata: ToolPreflightMetadata | None,
    ctx: PreflightContext,
) -> str:
    """
    Explain what a tool call will do and why it is needed.

    Raises:
        OracleError: If the request fails or the response is empty
    """
    prompt = build_explain_prompt(tool_call, metadata, ctx)
    try:
        text = await run_prompt(ctx, prompt, setting=ctx.config.model, purpose="Explanation")
    except Exception as e:
        reason = f"Explanation request failed: {e}" if str(e) else "Explanation request failed."
        logger.debug("Explanation failed: %s", reason)
        raise OracleError(reason) from e

    explanation = strip_code_fence(text).strip()
    if not explanation:
        logger.debug("Explanation failed: empty response")
        raise OracleError("Explanation response was empty.")
    logger.debug("Explanation generated for %s", tool_call.name)
    return explanation


def build_explain_prompt(
    tool_call: ToolCall,
    metadata: ToolPreflightMetadata | None,
    ctx: PreflightContext,
) -> str:
    summary = metadata.summary if metadata else "Review requested action"
    destructive = metadata.destructive if metadata else False

    lines = render_context_messages(limit_context_messages(ctx.messages, ctx.config.context_messages))
    lines += [
        "You are explaining a tool call before execution.",
        "Write two short paragraphs without headings, labels, or bullet points.",
        "First paragraph: what will happen (include concrete details from the tool call).",
        "Second paragraph: why this is needed for the user's request, citing relevant context details.",
        "End with a single risk line formatted exactly: '<Level> risk: <reason>'.",
        "Use Level = Low, Med, or High.",
        "You may mention tool names and key arguments like file paths or commands.",
        "Avoid markdown and do not include JSON.",
        "If context details are missing, say so explicitly in the second paragraph.",
        f"Summary: {summary}",
        f"Destructive: {'yes' if destructive else 'no'}.",
    ]
    if metadata and metadata.scope:
        lines.append(f"Scope: {', '.join(metadata.scope)}")
    lines += ["Tool call:", tool_call_payload(tool_call)]
    return "\n".join(lines)
