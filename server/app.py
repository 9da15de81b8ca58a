"""
FastAPI application setup and configuration.
"""

import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from server.middleware import RequestLoggingMiddleware


# =============================================================================
# Constants
# =============================================================================

API_TITLE = "Preflight Gate API"
API_VERSION = "1.0.0"
ALLOWED_METHODS = ["GET", "POST", "PATCH", "DELETE"]


def parse_cors_origins(value: str | None) -> list[str]:
    """
    Origins allowed to call the API.

    ``CORS_ORIGINS`` is a comma-separated list; unset or ``*`` allows any
    origin. Approval front ends usually run on another port.
    """
    if not value or value.strip() == "*":
        return ["*"]
    return [origin.strip() for origin in value.split(",") if origin.strip()]


# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(title=API_TITLE, version=API_VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=parse_cors_origins(os.environ.get("CORS_ORIGINS")),
    allow_credentials=True,
    allow_methods=ALLOWED_METHODS,
    allow_headers=["*"],
)

# Request logging middleware (added after CORS so it runs first)
app.add_middleware(RequestLoggingMiddleware)
