"""
Tests for ConfigManager and the ConfigFile settings model.
"""
import json

import pytest

from ganttsync.constants import DEFAULT_MAX_RETRIES, DEFAULT_SAVE_DELAY, ConfigManager
from ganttsync.exceptions import ConfigurationError
from ganttsync.models.files import ConfigFile


class TestConfigManager:
    """Test loading and saving config.json."""

    def test_missing_file_uses_defaults(self, config_dir):
        config = ConfigManager(config_dir=config_dir)
        assert config.get("save_delay", DEFAULT_SAVE_DELAY) == DEFAULT_SAVE_DELAY
        assert config.as_dict() == {}

    def test_reads_values(self, config_dir):
        (config_dir / "config.json").write_text(json.dumps({"max_retries": 7}))
        config = ConfigManager(config_dir=config_dir)
        assert config.get("max_retries", DEFAULT_MAX_RETRIES) == 7

    def test_invalid_json_falls_back(self, config_dir):
        (config_dir / "config.json").write_text("{not json")
        config = ConfigManager(config_dir=config_dir)
        assert config.as_dict() == {}

    def test_non_object_json_falls_back(self, config_dir):
        (config_dir / "config.json").write_text("[1, 2]")
        assert ConfigManager(config_dir=config_dir).as_dict() == {}

    def test_save_writes_atomically(self, temp_dir):
        path = temp_dir / "nested" / "config.json"
        config = ConfigManager(config_path=path)

        config.save({"auto_save": False})

        assert json.loads(path.read_text()) == {"auto_save": False}
        assert config.get("auto_save") is False
        assert [p.name for p in path.parent.iterdir()] == ["config.json"]

    def test_reload_picks_up_changes(self, config_dir):
        path = config_dir / "config.json"
        config = ConfigManager(config_path=path)
        assert config.get("max_retries") is None

        path.write_text(json.dumps({"max_retries": 2}))
        assert config.get("max_retries") is None
        config.reload()
        assert config.get("max_retries") == 2


class TestConfigFile:
    """Test the typed settings model."""

    def test_defaults(self, config_dir):
        settings = ConfigFile.load(ConfigManager(config_dir=config_dir))
        assert settings.auto_save is True
        assert settings.max_retries == DEFAULT_MAX_RETRIES
        assert settings.error_policy == "retry_all"

    def test_string_values_are_coerced(self, config_dir):
        (config_dir / "config.json").write_text(json.dumps({"max_retries": "5", "auto_save": "false"}))
        settings = ConfigFile.load(ConfigManager(config_dir=config_dir))
        assert settings.max_retries == 5
        assert settings.auto_save is False

    def test_unknown_keys_ignored(self):
        settings = ConfigFile.model_validate({"theme": "dark"})
        assert not hasattr(settings, "theme")

    @pytest.mark.parametrize(
        "values",
        [
            {"max_retries": -1},
            {"max_history_size": 0},
            {"error_policy": "retry_never"},
            {"http_timeout": 0},
        ],
    )
    def test_invalid_values_raise(self, config_dir, values):
        (config_dir / "config.json").write_text(json.dumps(values))
        with pytest.raises(ConfigurationError):
            ConfigFile.load(ConfigManager(config_dir=config_dir))

    def test_auto_version_config(self):
        settings = ConfigFile(auto_version_on_modify=True, min_change_threshold=1, max_versions_to_keep=4)
        config = settings.auto_version_config()
        assert config.on_modify is True
        assert config.min_change_threshold == 1
        assert config.max_versions_to_keep == 4
