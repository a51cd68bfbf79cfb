"""
Tests for configuration loading, environment overrides and persistence.
"""

import yaml

import pytest

from watchdog_core.config_manager import ConfigManager, WatchdogConfig, mask_secret
from watchdog_core.model_passes import DEFAULT_MODELS


class TestLoading:

    def test_defaults_without_file(self, config_manager):
        config = config_manager.config
        assert config == WatchdogConfig()
        assert config.models == DEFAULT_MODELS
        assert config.pass_timeout == 90.0

    def test_load_from_file(self, tmp_path, clean_env):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump({
            "openrouter_api_key": "file-key-123456",
            "models": ["model-a", "model-b"],
            "pass_timeout": "30",
            "include_static_pass": "yes",
            "unknown_setting": 1,
        }))
        config = ConfigManager(config_file=str(config_file)).config
        assert config.openrouter_api_key == "file-key-123456"
        assert config.models == ["model-a", "model-b"]
        assert config.pass_timeout == 30.0
        assert config.include_static_pass is True
        assert not hasattr(config, "unknown_setting")

    def test_invalid_file_falls_back_to_defaults(self, tmp_path, clean_env):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("pass_timeout: [unclosed\n")
        assert ConfigManager(config_file=str(config_file)).config == WatchdogConfig()

    def test_environment_overrides_file(self, tmp_path, clean_env, monkeypatch):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(yaml.dump({"etherscan_api_key": "from-file"}))
        monkeypatch.setenv("ETHERSCAN_API_KEY", "from-env")
        assert ConfigManager(config_file=str(config_file)).config.etherscan_api_key == "from-env"

    def test_environment_ignored_when_disabled(self, tmp_path, clean_env, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "from-env")
        manager = ConfigManager(config_file=str(tmp_path / "config.yaml"), apply_env=False)
        assert manager.config.openrouter_api_key == ""


class TestPersistence:

    def test_set_value_persists(self, config_manager):
        assert config_manager.set_value("similarity_threshold", "0.7")
        assert config_manager.config.similarity_threshold == 0.7
        reloaded = ConfigManager(config_file=str(config_manager.config_file))
        assert reloaded.config.similarity_threshold == 0.7

    def test_set_list_value(self, config_manager):
        assert config_manager.set_value("models", "a/one, b/two")
        assert config_manager.config.models == ["a/one", "b/two"]

    def test_unknown_key_rejected(self, config_manager):
        assert config_manager.set_value("no_such_setting", "1") is False
        assert not config_manager.config_file.exists()

    def test_invalid_bool_rejected(self, config_manager):
        assert config_manager.set_value("include_static_pass", "maybe") is False
        assert config_manager.config.include_static_pass is False

    def test_env_secret_not_written(self, tmp_path, clean_env, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "env-secret-key")
        manager = ConfigManager(config_file=str(tmp_path / "config.yaml"))
        assert manager.set_value("max_tokens", "2000")
        saved = yaml.safe_load((tmp_path / "config.yaml").read_text())
        assert saved["openrouter_api_key"] == ""
        assert saved["max_tokens"] == 2000


class TestHelpers:

    @pytest.mark.parametrize("value,expected", [
        ("", "(not set)"),
        ("short", "****"),
        ("sk-or-v1-abcdef123456", "sk-o...3456"),
    ])
    def test_mask_secret(self, value, expected):
        assert mask_secret(value) == expected

    def test_explorer_keys(self, config_manager):
        config_manager.config.etherscan_api_key = "eth"
        config_manager.config.lineascan_api_key = "linea"
        config_manager.config.sonicscan_api_key = "sonic"
        assert config_manager.get_explorer_key("mainnet") == "eth"
        assert config_manager.get_explorer_key("linea-testnet") == "linea"
        assert config_manager.get_explorer_key("sonic") == "sonic"

    def test_linea_key_falls_back_to_etherscan(self, config_manager):
        config_manager.config.etherscan_api_key = "eth"
        config_manager.config.lineascan_api_key = ""
        assert config_manager.get_explorer_key("linea") == "eth"

    def test_show_config_masks_secrets(self, config_manager, capsys):
        config_manager.config.openrouter_api_key = "sk-or-v1-abcdef123456"
        config_manager.show_config()
        output = capsys.readouterr().out
        assert "sk-o...3456" in output
        assert "sk-or-v1-abcdef123456" not in output
