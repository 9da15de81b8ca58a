"""CheckRequest model."""

from pydantic import BaseModel, Field

from preflight.models import ContextMessage, ToolCall


class CheckRequest(BaseModel):
    toolCalls: list[ToolCall] = Field(min_length=1)
    messages: list[ContextMessage] = Field(default_factory=list)
    systemPrompt: str | None = None
