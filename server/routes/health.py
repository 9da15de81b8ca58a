"""
Health check endpoint.
"""

from fastapi import APIRouter

from ..state import get_gate


router = APIRouter()


@router.get("/health")
async def health() -> dict:
    """Health check endpoint."""
    gate = get_gate()
    return {
        "status": "ok",
        "gate_configured": gate is not None,
        "interactive": gate is not None and gate.ui.has_ui,
    }
