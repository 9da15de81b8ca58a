"""
Preflight gate server entry point.
"""
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from config import get_working_directory
from preflight import EventBusApprovalUI, NullApprovalUI, PreflightGate, PydanticAIClient
from server import app, set_gate
from server.event_bus import get_event_bus
from server.logging_config import attach_debug_log, detach_debug_logs, setup_logging

# Initialize logging before anything else
setup_logging()
logger = logging.getLogger(__name__)

# Constants
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000
DEFAULT_INTERACTIVE = True


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the preflight gate for the server's lifetime."""
    working_dir = get_working_directory()
    current_model = os.environ.get("PREFLIGHT_CURRENT_MODEL") or None
    interactive = os.environ.get("PREFLIGHT_INTERACTIVE", str(DEFAULT_INTERACTIVE).lower()).lower() == "true"

    logger.info("Starting preflight gate server")
    logger.info("Working directory: %s", working_dir)
    logger.info("Current model: %s", current_model or "(default)")
    logger.info("Interactive approvals: %s", interactive)

    ui = EventBusApprovalUI(get_event_bus()) if interactive else NullApprovalUI()
    gate = PreflightGate(working_dir, ui, PydanticAIClient(), current_model=current_model)
    if gate.active_config.debug:
        logger.info("Debug log: %s", attach_debug_log(working_dir))
    for line in gate.status_lines():
        logger.info(line)
    set_gate(gate)

    yield

    set_gate(None)
    detach_debug_logs()
    logger.info("Preflight gate stopped")


app.router.lifespan_context = lifespan


def main() -> None:
    """Start the preflight gate server."""
    host = os.environ.get("HOST", DEFAULT_HOST)
    port = int(os.environ.get("PORT", str(DEFAULT_PORT)))

    logger.info("Server listening on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
