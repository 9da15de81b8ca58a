"""ConfigUpdateRequest model."""

from typing import Any

from pydantic import BaseModel, Field

from config.preflight_config import ConfigScope


class ConfigUpdateRequest(BaseModel):
    scope: ConfigScope = "session"
    # camelCase keys as stored in preflight.json; unknown or invalid keys are ignored
    config: dict[str, Any] = Field(default_factory=dict)
