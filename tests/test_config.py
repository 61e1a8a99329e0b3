"""Tests for configuration management and the server registry."""

import json

import pytest
from pydantic import ValidationError

from hitl_proxy.config import Settings, get_settings, reload_settings
from hitl_proxy.exceptions import ConfigurationError
from hitl_proxy.servers import DownstreamServerConfig, ServerRegistry


class TestSettings:
    """Test the Settings class."""

    def test_default_settings(self, monkeypatch):
        """Test that default settings are created correctly."""
        monkeypatch.delenv("HITL_DEFAULT_SERVER", raising=False)
        monkeypatch.delenv("STATUS_POLL_WINDOW", raising=False)
        monkeypatch.delenv("STATUS_POLL_INTERVAL", raising=False)
        monkeypatch.delenv("APPROVER_IDENTITY", raising=False)

        settings = Settings(_env_file=None)

        assert settings.hitl_log_level == "INFO"
        assert settings.hitl_default_server == "todo-mcp-server"
        assert settings.approver_identity == "bob@tables.fake"
        assert settings.status_poll_window == 10.0
        assert settings.status_poll_interval == 4.0

    def test_env_overrides(self, monkeypatch):
        """Test environment variables override defaults."""
        monkeypatch.setenv("STATUS_POLL_WINDOW", "30")
        monkeypatch.setenv("APPROVER_IDENTITY", "alice@example.com")

        settings = Settings(_env_file=None)

        assert settings.status_poll_window == 30.0
        assert settings.approver_identity == "alice@example.com"

    def test_interval_longer_than_window_rejected(self):
        """Test the poll interval must fit inside the window."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, status_poll_window=2.0, status_poll_interval=5.0)

    def test_non_positive_window_rejected(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, status_poll_window=0)

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, hitl_log_level="LOUD")

    def test_path_expansion(self, temp_data_dir):
        """Test that paths are properly expanded."""
        settings = Settings(_env_file=None, hitl_log_file=temp_data_dir / "logs" / "proxy.log")

        assert settings.hitl_log_file.is_absolute()

    def test_okta_base_url_strips_slash(self):
        settings = Settings(_env_file=None, okta_domain="https://acme.okta.com/")

        assert settings.okta_base_url == "https://acme.okta.com"

    def test_model_dump_safe_hides_secrets(self, test_settings):
        """Test secrets never appear in the safe dump."""
        dumped = test_settings.model_dump_safe()

        assert dumped["okta_client_secret"] == "***"
        assert dumped["access_token"] == "***"
        assert "s3cret" not in json.dumps(dumped)
        assert "bearer-abc" not in json.dumps(dumped)

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reload_settings_replaces_instance(self):
        first = get_settings()
        second = reload_settings()

        assert second is not first
        assert get_settings() is second


class TestServerRegistry:
    """Test the downstream server registry."""

    def test_default_registry(self, test_settings):
        registry = ServerRegistry.default(test_settings)
        config = registry.get_config("todo-mcp-server")

        assert config.command == "/usr/bin/node"
        assert config.high_risk_tools == ("add_todos",)
        assert config.blocked_tools == ("welcome_to_okta",)
        assert config.env["ACCESS_TOKEN"] == "bearer-abc"

    def test_unknown_server_raises(self, registry):
        with pytest.raises(ConfigurationError) as exc_info:
            registry.get_config("nope")

        assert exc_info.value.server_id == "nope"
        assert "todo-mcp-server" in str(exc_info.value)

    def test_mapping_protocol(self, registry):
        assert "todo-mcp-server" in registry
        assert "nope" not in registry
        assert registry.get("nope") is None
        assert list(registry) == ["todo-mcp-server"]
        assert len(registry) == 1

    def test_invalid_entry_fails_eagerly(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ServerRegistry({"broken": {"args": ["x"]}})

        assert exc_info.value.server_id == "broken"

    def test_unknown_fields_rejected(self):
        with pytest.raises(ConfigurationError):
            ServerRegistry({"s": {"command": "node", "HighRiskTools": ["x"]}})

    def test_config_is_frozen(self):
        config = DownstreamServerConfig(command="node")

        with pytest.raises(ValidationError):
            config.command = "python"

    def test_duplicate_names_collapsed(self):
        config = DownstreamServerConfig(command="node", high_risk_tools=("a", "b", "a"))

        assert config.high_risk_tools == ("a", "b")

    def test_from_file_merges_and_injects_env(self, temp_data_dir, test_settings):
        servers_file = temp_data_dir / "servers.json"
        servers_file.write_text(
            json.dumps(
                {
                    "files-server": {
                        "command": "python",
                        "args": ["-m", "files_server"],
                        "high_risk_tools": ["delete_file"],
                        "blocked_tools": ["format_disk"],
                    }
                }
            )
        )
        settings = test_settings.model_copy(update={"hitl_servers_file": servers_file})

        registry = ServerRegistry.default(settings)

        assert set(registry) == {"todo-mcp-server", "files-server"}
        files = registry.get_config("files-server")
        assert files.args == ("-m", "files_server")
        assert files.env == {"ACCESS_TOKEN": "bearer-abc"}

    def test_from_file_missing(self, temp_data_dir):
        with pytest.raises(ConfigurationError, match="Cannot read servers file"):
            ServerRegistry.from_file(temp_data_dir / "missing.json")

    def test_from_file_bad_json(self, temp_data_dir):
        servers_file = temp_data_dir / "servers.json"
        servers_file.write_text("{not json")

        with pytest.raises(ConfigurationError, match="not valid JSON"):
            ServerRegistry.from_file(servers_file)

    def test_from_file_not_object(self, temp_data_dir):
        servers_file = temp_data_dir / "servers.json"
        servers_file.write_text("[]")

        with pytest.raises(ConfigurationError, match="JSON object"):
            ServerRegistry.from_file(servers_file)

    def test_from_file_null_env_uses_default_env(self, temp_data_dir):
        servers_file = temp_data_dir / "servers.json"
        servers_file.write_text(json.dumps({"x": {"command": "node", "env": None}}))

        registry = ServerRegistry.from_file(servers_file, default_env={"ACCESS_TOKEN": "t"})

        assert registry.get_config("x").env == {"ACCESS_TOKEN": "t"}

    @pytest.mark.parametrize("env", [["ACCESS_TOKEN=t"], "ACCESS_TOKEN=t", 7])
    def test_from_file_non_object_env_rejected(self, temp_data_dir, env):
        servers_file = temp_data_dir / "servers.json"
        servers_file.write_text(json.dumps({"x": {"command": "node", "env": env}}))

        with pytest.raises(ConfigurationError) as exc_info:
            ServerRegistry.from_file(servers_file, default_env={"ACCESS_TOKEN": "t"})

        assert exc_info.value.server_id == "x"
