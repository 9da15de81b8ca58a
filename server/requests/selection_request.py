"""SelectionRequest model."""

from pydantic import BaseModel


class SelectionRequest(BaseModel):
    # None dismisses the prompt
    selection: str | None = None
