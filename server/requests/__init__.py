"""
HTTP request models for the API.

These are Pydantic models for validating and parsing API requests.
"""

from .check_request import CheckRequest
from .config_update_request import ConfigUpdateRequest
from .dialog_event_request import DialogEventRequest
from .selection_request import SelectionRequest

__all__ = [
    # Preflight requests
    "CheckRequest",
    # Approval responses
    "DialogEventRequest",
    "SelectionRequest",
    # Config requests
    "ConfigUpdateRequest",
]
