"""
Tests for configuration loading.
"""
import json

from config.loader import (
    format_model_setting,
    get_config_file_path,
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
from config.preflight_config import ModelRef, PreflightConfig


class TestParseConfig:
    """Test lenient parsing of stored settings."""

    def test_full_document(self):
        """Every known key is read."""
        config = parse_config(
            {
                "approvalMode": "destructive",
                "contextMessages": 3,
                "explainKey": ["ctrl+e", " f1 "],
                "model": {"provider": "openai", "id": "gpt-4o"},
                "policyModel": "current",
                "debug": True,
            }
        )
        assert config == {
            "approval_mode": "destructive",
            "context_messages": 3,
            "explain_key": ["ctrl+e", "f1"],
            "model": ModelRef(provider="openai", id="gpt-4o"),
            "policy_model": "current",
            "debug": True,
        }

    def test_legacy_flags(self):
        """``enabled`` and ``approveDestructiveOnly`` map to approval modes."""
        assert parse_config({"enabled": False}) == {"approval_mode": "off"}
        assert parse_config({"approveDestructiveOnly": True}) == {"approval_mode": "destructive"}
        assert parse_config({"approveDestructiveOnly": False}) == {"approval_mode": "all"}
        assert parse_config({"enabled": False, "approvalMode": "all"}) == {"approval_mode": "all"}

    def test_context_messages_normalised(self):
        """Negative means full, zero means one, fractions round down."""
        assert parse_config({"contextMessages": -5})["context_messages"] == -1
        assert parse_config({"contextMessages": 0})["context_messages"] == 1
        assert parse_config({"contextMessages": 2.7})["context_messages"] == 2
        assert "context_messages" not in parse_config({"contextMessages": True})
        assert "context_messages" not in parse_config({"contextMessages": "3"})

    def test_invalid_values_ignored(self):
        """Bad values are dropped instead of failing the whole document."""
        config = parse_config({"approvalMode": "sometimes", "model": {"provider": "x"}, "debug": "yes", "extra": 1})
        assert config == {}
        assert parse_config([1, 2]) == {}


class TestParseHelpers:
    """Test parsing of individual setting values."""

    def test_approval_mode(self):
        """Mode names accept the long forms."""
        assert parse_approval_mode("All Tools") == "all"
        assert parse_approval_mode("destructive  only") == "destructive"
        assert parse_approval_mode("OFF") == "off"
        assert parse_approval_mode("never") is None

    def test_context_value(self):
        """Context accepts ``full`` or a positive count."""
        assert parse_context_value("full") == -1
        assert parse_context_value("4") == 4
        assert parse_context_value("0") is None
        assert parse_context_value("lots") is None

    def test_model_ref(self):
        """Models are ``current`` or ``provider/id``."""
        assert parse_model_ref("current") == "current"
        assert parse_model_ref("anthropic/claude-sonnet-4") == ModelRef(provider="anthropic", id="claude-sonnet-4")
        assert parse_model_ref("no-slash") is None
        assert format_model_setting(ModelRef(provider="a", id="b")) == "a/b"
        assert format_model_setting("current") == "current"

    def test_explain_key(self):
        """A single key or a list of keys."""
        assert parse_explain_key("ctrl+x") == ["ctrl+x"]
        assert parse_explain_key(["", 3]) is None


class TestPersistentConfig:
    """Test the persistent config file."""

    def test_defaults_without_file(self):
        """A missing file yields the defaults."""
        config = load_persistent_config()
        assert config == PreflightConfig()
        assert config.explain_key == ["ctrl+e"]

    def test_path_follows_agent_dir(self, isolated_home):
        """The file lives under the agent directory."""
        expected = isolated_home / ".pi" / "agent" / "extensions" / "preflight" / "preflight.json"
        assert get_config_file_path() == expected

    def test_save_and_load(self):
        """Saved settings are written with camelCase keys and load back."""
        config = PreflightConfig(approval_mode="off", policy_model=ModelRef(provider="openai", id="gpt-4o"))
        path = save_persistent_config(config)
        stored = json.loads(path.read_text(encoding="utf-8"))
        assert stored["approvalMode"] == "off"
        assert stored["policyModel"] == {"provider": "openai", "id": "gpt-4o"}
        assert stored["explainKey"] == "ctrl+e"
        assert load_persistent_config() == config

    def test_corrupt_file(self, tmp_path):
        """A corrupt file is treated as missing."""
        path = tmp_path / "preflight.json"
        path.write_text("{oops", encoding="utf-8")
        assert load_config_file(path) is None
        assert load_persistent_config(path) == PreflightConfig()


class TestActiveConfig:
    """Test layering session overrides."""

    def test_overrides_applied(self):
        """Session overrides win over the persistent config."""
        persistent = PreflightConfig(approval_mode="destructive", debug=True)
        active = resolve_active_config(persistent, {"approval_mode": "off"})
        assert active.approval_mode == "off"
        assert active.debug is True
        assert resolve_active_config(persistent, {}) is persistent

    def test_merge_configs(self):
        """Nested dictionaries are merged recursively."""
        merged = merge_configs({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}, "c": 4})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}
