"""
Server-side state management.

Holds the preflight gate the routes operate on. The gate is created by the
application lifespan in main.py (or by tests).
"""

from preflight import EventBusApprovalUI, PreflightGate


# =============================================================================
# Gate Management
# =============================================================================

_gate: PreflightGate | None = None


def set_gate(gate: PreflightGate | None) -> None:
    """Set the gate instance."""
    global _gate
    _gate = gate


def get_gate() -> PreflightGate | None:
    """Get the current gate instance."""
    return _gate


def get_remote_ui() -> EventBusApprovalUI | None:
    """The gate's UI when it is the event-bus UI, else None."""
    if _gate is None or not isinstance(_gate.ui, EventBusApprovalUI):
        return None
    return _gate.ui
