"""
Preflight settings endpoints.

Settings have two scopes: ``persistent`` (written to preflight.json) and
``session`` (in-memory overrides on top of it, until cleared or restart).
"""

import logging

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError

from config.loader import parse_config
from config.preflight_config import ConfigScope, PreflightConfig

from ..requests import ConfigUpdateRequest
from .preflight import require_gate

logger = logging.getLogger(__name__)

router = APIRouter()


def _config_response(config: PreflightConfig, scope: str, status: list[str], session_overrides: bool) -> dict:
    return {
        "scope": scope,
        "config": config.to_file_dict(),
        "sessionOverrides": session_overrides,
        "status": status,
    }


@router.get("/preflight/config")
async def get_preflight_config(scope: ConfigScope = Query("session")) -> dict:
    """
    Get preflight settings.

    Args:
        scope: ``session`` for the active settings, ``persistent`` for the file

    Returns:
        Settings with camelCase keys plus human-readable status lines
    """
    gate = require_gate()
    return _config_response(
        gate.config_for_scope(scope),
        scope,
        gate.status_lines(),
        gate.has_session_overrides,
    )


@router.patch("/preflight/config")
async def update_preflight_config(request: ConfigUpdateRequest) -> dict:
    """
    Update preflight settings.

    Accepts the same keys as preflight.json (including the legacy
    ``enabled`` and ``approveDestructiveOnly`` flags). Invalid values are
    ignored; a request with nothing usable is rejected.
    """
    gate = require_gate()
    update = parse_config(request.config)
    if not update:
        raise HTTPException(status_code=400, detail="No valid settings in request")

    try:
        gate.apply_config(update, request.scope)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        logger.error("Failed to save preflight settings: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    return _config_response(
        gate.config_for_scope(request.scope),
        request.scope,
        gate.status_lines(),
        gate.has_session_overrides,
    )


@router.delete("/preflight/config/session")
async def clear_session_config() -> dict:
    """Drop all session overrides."""
    gate = require_gate()
    config = gate.clear_session_overrides()
    return _config_response(config, "session", gate.status_lines(), gate.has_session_overrides)
