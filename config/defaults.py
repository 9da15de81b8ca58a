"""Default configuration values."""

# Model used when the host does not report its current model.
# pydantic-ai model string: "<provider>:<model id>"
DEFAULT_MODEL = "anthropic:claude-sonnet-4-20250514"

DEFAULT_APPROVAL_MODE = "all"
DEFAULT_CONTEXT_MESSAGES = 1  # -1 forwards the full conversation
DEFAULT_EXPLAIN_KEY = "ctrl+e"

# Persistent config location: <agent dir>/extensions/preflight/preflight.json
AGENT_DIR_ENV = "PREFLIGHT_AGENT_DIR"
DEFAULT_AGENT_DIR = "~/.pi/agent"
CONFIG_FILE_NAME = "preflight.json"

# Debug log, relative to the workspace root
DEBUG_LOG_PATH = ".pi/preflight/logs/preflight-debug.log"

# Timeout for remote approval dialogs and prompts (5 minutes)
APPROVAL_TIMEOUT_SECONDS = 300
