"""ContextMessage model."""

from typing import Literal

from pydantic import BaseModel


class ContextMessage(BaseModel):
    """A conversation message forwarded to the oracles as context."""

    role: Literal["user", "assistant", "system", "tool"]
    content: str
