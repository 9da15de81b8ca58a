"""
Rule inspection endpoint.
"""

from fastapi import APIRouter, Query

from preflight.permissions import build_rule_context_snapshot, load_permissions_state

from .preflight import require_gate

router = APIRouter()


@router.get("/preflight/rules")
async def get_rules(tool: str = Query(..., min_length=1)) -> dict:
    """
    Rules currently in force for one tool.

    Args:
        tool: Tool name (case-insensitive)

    Returns:
        Policy rules (global and tool-specific), deterministic permissions
        and policy overrides that apply to the tool
    """
    gate = require_gate()
    snapshot = build_rule_context_snapshot(tool, load_permissions_state(gate.cwd))
    return snapshot.model_dump(by_alias=True)
