"""Configuration loading utilities."""

import json
import logging
import math
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .defaults import AGENT_DIR_ENV, CONFIG_FILE_NAME, DEFAULT_AGENT_DIR
from .preflight_config import ApprovalMode, ModelRef, ModelSetting, PreflightConfig

logger = logging.getLogger(__name__)


def get_agent_dir() -> Path:
    """
    Get the agent data directory.

    Uses the PREFLIGHT_AGENT_DIR environment variable when set, otherwise
    ``~/.pi/agent``.
    """
    return Path(os.path.expanduser(os.environ.get(AGENT_DIR_ENV) or DEFAULT_AGENT_DIR))


def get_config_file_path() -> Path:
    return get_agent_dir() / "extensions" / "preflight" / CONFIG_FILE_NAME


def load_config_file(path: Path) -> dict[str, Any] | None:
    """
    Load a config file from the given path.

    Args:
        path: Path to the config file

    Returns:
        Parsed config dictionary or None if the file doesn't exist or is invalid
    """
    if not path.exists():
        return None

    try:
        content = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to load config from %s: %s", path, e)
        return None
    return content if isinstance(content, dict) else None


def parse_config(value: Any) -> dict[str, Any]:
    """
    Leniently parse a stored config document into PreflightConfig fields.

    Unknown keys and invalid values are ignored. Two legacy flags are
    understood: ``enabled: false`` means approval mode ``off`` and
    ``approveDestructiveOnly`` picks between ``destructive`` and ``all``.

    Args:
        value: Raw JSON value (camelCase keys)

    Returns:
        Partial config keyed by PreflightConfig field names
    """
    if not isinstance(value, dict):
        return {}

    config: dict[str, Any] = {}

    if value.get("enabled") is False:
        config["approval_mode"] = "off"

    context = value.get("contextMessages")
    if isinstance(context, (int, float)) and not isinstance(context, bool) and math.isfinite(context):
        normalized = math.floor(context)
        if normalized < 0:
            config["context_messages"] = -1
        elif normalized == 0:
            config["context_messages"] = 1
        else:
            config["context_messages"] = normalized

    explain_key = parse_explain_key(value.get("explainKey"))
    if explain_key:
        config["explain_key"] = explain_key

    for key, field in (("model", "model"), ("policyModel", "policy_model")):
        setting = _parse_model_setting(value.get(key))
        if setting is not None:
            config[field] = setting

    approval_mode = value.get("approvalMode")
    if isinstance(approval_mode, str):
        parsed = parse_approval_mode(approval_mode)
        if parsed:
            config["approval_mode"] = parsed
    elif isinstance(value.get("approveDestructiveOnly"), bool):
        config["approval_mode"] = "destructive" if value["approveDestructiveOnly"] else "all"

    if isinstance(value.get("debug"), bool):
        config["debug"] = value["debug"]

    return config


def _parse_model_setting(value: Any) -> ModelSetting | None:
    if value == "current":
        return "current"
    if isinstance(value, dict):
        try:
            return ModelRef.model_validate(value)
        except ValidationError:
            return None
    return None


def parse_explain_key(value: Any) -> list[str] | None:
    if isinstance(value, str) and value.strip():
        return [value.strip()]
    if isinstance(value, list):
        keys = [item.strip() for item in value if isinstance(item, str) and item.strip()]
        return keys or None
    return None


def parse_model_ref(text: str) -> ModelSetting | None:
    """Parse ``current`` or ``provider/id``."""
    joined = text.strip()
    if not joined:
        return None
    if joined == "current":
        return "current"
    provider, _, model_id = joined.partition("/")
    if not provider or not model_id:
        return None
    return ModelRef(provider=provider, id=model_id)


def parse_approval_mode(text: str) -> ApprovalMode | None:
    joined = " ".join(text.split()).lower()
    if joined in ("all", "all tools", "all-tools"):
        return "all"
    if joined in ("destructive", "destructive only", "destructive-only"):
        return "destructive"
    if joined == "off":
        return "off"
    return None


def parse_context_value(text: str) -> int | None:
    """Parse ``full`` or a positive message count."""
    trimmed = text.strip().lower()
    if not trimmed:
        return None
    if trimmed == "full":
        return -1
    try:
        number = float(trimmed)
    except ValueError:
        return None
    if not math.isfinite(number) or number < 1:
        return None
    return math.floor(number)


def format_approval_mode(mode: ApprovalMode) -> str:
    if mode == "off":
        return "off"
    if mode == "destructive":
        return "destructive only"
    return "all tools"


def format_context_messages(limit: int) -> str:
    if limit < 0:
        return "full"
    return str(max(limit, 1))


def format_context_label(limit: int) -> str:
    if limit < 0:
        return "full"
    return f"last {max(limit, 1)}"


def format_model_setting(setting: ModelSetting, current_model: str | None = None) -> str:
    if setting == "current":
        return f"current ({current_model})" if current_model else "current"
    return str(setting)


def merge_configs(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two configuration dictionaries.

    Args:
        base: Base configuration
        override: Override configuration (takes precedence)

    Returns:
        Merged configuration dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def load_persistent_config(path: Path | None = None) -> PreflightConfig:
    """
    Load the persistent config, falling back to defaults for anything missing.

    Args:
        path: Config file path (defaults to the agent dir location)

    Returns:
        PreflightConfig
    """
    data = load_config_file(path or get_config_file_path())
    return PreflightConfig(**parse_config(data))


def save_persistent_config(config: PreflightConfig, path: Path | None = None) -> Path:
    target = path or get_config_file_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(config.to_file_dict(), indent=2) + "\n", encoding="utf-8")
    logger.info("Saved preflight config to %s", target)
    return target


def resolve_active_config(
    persistent: PreflightConfig,
    session_overrides: dict[str, Any] | None = None,
) -> PreflightConfig:
    """
    Apply session overrides on top of the persistent config.

    Args:
        persistent: Config loaded from disk
        session_overrides: Partial config keyed by field name

    Returns:
        The active PreflightConfig
    """
    if not session_overrides:
        return persistent
    return persistent.model_copy(update=session_overrides)


def get_working_directory() -> str:
    """
    Get the working directory from environment or default to cwd.

    Returns:
        The working directory path as a string
    """
    return os.environ.get("WORKING_DIR", os.getcwd())
