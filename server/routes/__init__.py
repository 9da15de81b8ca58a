"""
Route registration for the preflight API.
"""

from fastapi import FastAPI

from . import approvals, config, events, health, preflight, rules


def register_routes(app: FastAPI) -> None:
    """Register all routes with the FastAPI application."""
    app.include_router(approvals.router)
    app.include_router(config.router)
    app.include_router(events.router)
    app.include_router(health.router)
    app.include_router(preflight.router)
    app.include_router(rules.router)
