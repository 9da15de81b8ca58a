"""
LLM access shared by the oracles.

Oracles talk to models through the small LLMClient protocol so hosts and
tests can swap the transport. The default client runs a one-shot
pydantic-ai Agent per request.
"""

import json
import logging
from typing import Any, Protocol

from pydantic_ai import Agent

from config.defaults import DEFAULT_MODEL
from config.preflight_config import ModelSetting

from ..context import PreflightContext
from ..models import ContextMessage, ToolCall

logger = logging.getLogger(__name__)


class LLMClient(Protocol):
    """Single-turn text completion."""

    async def complete(self, prompt: str, *, model: str, system_prompt: str | None = None) -> str:
        """Return the model's text response to ``prompt``."""
        ...


class PydanticAIClient:
    """LLMClient backed by pydantic-ai. No tools, one request per call."""

    async def complete(self, prompt: str, *, model: str, system_prompt: str | None = None) -> str:
        agent = Agent(model=model, system_prompt=system_prompt or ())
        result = await agent.run(prompt)
        return str(result.output)


def resolve_model(setting: ModelSetting, current_model: str | None = None) -> str:
    """
    Turn a model setting into a pydantic-ai model string.

    Args:
        setting: ``current`` or an explicit provider/id pair
        current_model: The host's current model, if it reported one

    Returns:
        Model string such as ``anthropic:claude-sonnet-4-20250514``
    """
    if setting == "current":
        return current_model or DEFAULT_MODEL
    return f"{setting.provider}:{setting.id}"


def limit_context_messages(messages: list[ContextMessage], limit: int) -> list[ContextMessage]:
    """Last ``limit`` messages; a negative limit keeps them all."""
    if limit < 0:
        return list(messages)
    if limit == 0:
        return []
    return list(messages[-limit:])


def render_context_messages(messages: list[ContextMessage]) -> list[str]:
    if not messages:
        return []
    lines = ["Conversation context (most recent last):"]
    for message in messages:
        lines.append(f"[{message.role}] {message.content}")
    return lines


def tool_call_payload(tool_call: ToolCall) -> str:
    return json.dumps({"id": tool_call.id, "name": tool_call.name, "args": tool_call.args}, indent=2)


def strip_code_fence(text: str) -> str:
    """Remove a surrounding Markdown code fence, if present."""
    if not text.startswith("```"):
        return text
    first_newline = text.find("\n")
    if first_newline == -1:
        return text
    body = text[first_newline + 1 :]
    closing = body.rfind("```")
    if closing == -1:
        return body.strip()
    return body[:closing].strip()


def extract_json_payload(text: str) -> str | None:
    """Best-effort slice of the JSON object or array embedded in ``text``."""
    trimmed = text.strip()
    if trimmed.startswith(("{", "[")):
        return trimmed
    for opener, closer in (("{", "}"), ("[", "]")):
        start = trimmed.find(opener)
        end = trimmed.rfind(closer)
        if start != -1 and end > start:
            return trimmed[start : end + 1]
    return None


def parse_json_response(text: str | None) -> Any:
    """
    Decode a model response that should contain JSON.

    Returns:
        The decoded value, or None when no JSON could be recovered
    """
    if not text:
        return None
    payload = extract_json_payload(strip_code_fence(text.strip()))
    if payload is None:
        return None
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        return None


async def run_prompt(
    ctx: PreflightContext,
    prompt: str,
    *,
    setting: ModelSetting,
    purpose: str,
) -> str:
    """
    Send a prompt through the context's LLM client.

    Args:
        ctx: Preflight context
        prompt: Full prompt text
        setting: Which configured model to use
        purpose: Label for log lines

    Returns:
        The stripped response text (may be empty)
    """
    model = resolve_model(setting, ctx.current_model)
    logger.debug("%s model: %s", purpose, model)
    logger.debug("%s prompt:\n%s", purpose, prompt)
    text = await ctx.llm.complete(prompt, model=model, system_prompt=ctx.system_prompt)
    text = (text or "").strip()
    logger.debug("%s raw response:\n%s", purpose, text)
    return text


def capitalize_first(value: str) -> str:
    return value[:1].upper() + value[1:]
