"""
Preflight gate HTTP API.

Exposes the gate to hosts and remote approval front ends: tool call checks,
approval dialog and prompt responses, rule inspection and settings.
"""

from .app import app
from .routes import register_routes
from .state import get_gate, get_remote_ui, set_gate

# Register all routes with the app
register_routes(app)

__all__ = ["app", "set_gate", "get_gate", "get_remote_ui"]
