"""
Configuration module for the preflight gate.

Exports the configuration model and the persistent config loader.
"""

from .defaults import APPROVAL_TIMEOUT_SECONDS, DEBUG_LOG_PATH, DEFAULT_MODEL
from .loader import (
    format_approval_mode,
    format_context_label,
    format_context_messages,
    format_model_setting,
    get_config_file_path,
    get_working_directory,
    load_config_file,
    load_persistent_config,
    merge_configs,
    parse_approval_mode,
    parse_config,
    parse_context_value,
    parse_explain_key,
    parse_model_ref,
    resolve_active_config,
    save_persistent_config,
)
from .preflight_config import ApprovalMode, ConfigScope, ModelRef, ModelSetting, PreflightConfig

__all__ = [
    # Constants
    "DEFAULT_MODEL",
    "APPROVAL_TIMEOUT_SECONDS",
    "DEBUG_LOG_PATH",
    # Config models
    "ApprovalMode",
    "ConfigScope",
    "ModelRef",
    "ModelSetting",
    "PreflightConfig",
    # Loader functions
    "get_config_file_path",
    "get_working_directory",
    "load_config_file",
    "load_persistent_config",
    "save_persistent_config",
    "merge_configs",
    "resolve_active_config",
    # Parsing and formatting
    "parse_config",
    "parse_approval_mode",
    "parse_context_value",
    "parse_explain_key",
    "parse_model_ref",
    "format_approval_mode",
    "format_context_label",
    "format_context_messages",
    "format_model_setting",
]
