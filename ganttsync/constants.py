"""
Constants for the ganttsync engine.

Note: These constants serve as default fallback values.
Actual values are loaded from .ganttsync/config.json at runtime via ConfigManager.
"""
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from ganttsync.exceptions import ConfigurationError

# =============================================================================
# Default Fallback Values
# These are used if config.json doesn't exist or doesn't specify a value.
# =============================================================================

# Auto-save defaults (seconds)
DEFAULT_SAVE_DELAY = 0.5
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_MAX_BATCH_SIZE = 10
DEFAULT_AUTO_SAVE_INTERVAL = 5.0

# History defaults
DEFAULT_MAX_HISTORY_SIZE = 50

# Dirty state defaults
DEFAULT_WARNING_MESSAGE = "You have unsaved changes. Are you sure you want to leave?"

# Auto-version defaults
DEFAULT_AUTO_VERSION_ENABLED = True
DEFAULT_AUTO_VERSION_ON_ADD = True
DEFAULT_AUTO_VERSION_ON_DELETE = True
DEFAULT_AUTO_VERSION_ON_MODIFY = False
DEFAULT_MIN_CHANGE_THRESHOLD = 3
DEFAULT_MAX_VERSIONS_TO_KEEP = 50

# Remote store defaults
DEFAULT_API_BASE_URL = "http://localhost:3000/api"
DEFAULT_HTTP_TIMEOUT = 15.0

# Logging defaults
DEFAULT_LOG_LEVEL = "INFO"

# Fields compared by the version diff, in display order
DIFF_FIELDS = (
    "name",
    "start_date",
    "end_date",
    "color",
    "position",
    "progress",
    "is_milestone",
)
DATE_FIELDS = ("start_date", "end_date")

# Descriptions recorded in history
HISTORY_INITIAL_STATE = "Initial state"
HISTORY_DISCARDED = "Discarded changes"

CONFIG_DIR_NAME = ".ganttsync"
CONFIG_FILE_NAME = "config.json"


# =============================================================================
# Config Loader
# Load values from .ganttsync/config.json at runtime.
# =============================================================================


class ConfigManager:
    """
    Manages loading configuration from a config.json file with fallback to defaults.

    The manager is constructed explicitly by its owner (usually the CLI or a
    ProjectSession) and never shared through module state.

    Usage:
        # With default path (.ganttsync/config.json)
        config = ConfigManager()
        delay = config.get('save_delay', DEFAULT_SAVE_DELAY)

        # With custom path
        config = ConfigManager(config_path=Path("/custom/path/config.json"))
        retries = config.get('max_retries', DEFAULT_MAX_RETRIES)
    """

    def __init__(self, config_path: Optional[Path] = None, config_dir: Optional[Path] = None) -> None:
        """
        Initialize ConfigManager.

        Args:
            config_path: Direct path to config.json file. Takes precedence over config_dir.
            config_dir: Path to .ganttsync/ directory. Config path will be config_dir/config.json.
        """
        self._config: Optional[dict] = None

        if config_path is not None:
            self._config_path = config_path
        elif config_dir is not None:
            self._config_path = config_dir / CONFIG_FILE_NAME
        else:
            self._config_path = Path(CONFIG_DIR_NAME) / CONFIG_FILE_NAME

    def _load_config(self) -> dict:
        """Load config from config.json file."""
        if self._config is not None:
            return self._config

        if self._config_path.exists():
            try:
                with open(self._config_path, "r") as f:
                    loaded = json.load(f)
                self._config = loaded if isinstance(loaded, dict) else {}
            except (json.JSONDecodeError, IOError):
                self._config = {}
        else:
            self._config = {}

        return self._config

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a config value with fallback to default.

        Args:
            key: Configuration key name.
            default: Default value if key not found.

        Returns:
            Config value or default.
        """
        config = self._load_config()
        return config.get(key, default)

    def as_dict(self) -> Dict[str, Any]:
        """Return a copy of the raw config values."""
        return dict(self._load_config())

    def save(self, values: Dict[str, Any]) -> None:
        """Write config values to disk atomically and refresh the cache.

        Args:
            values: Complete mapping of config values to store.

        Raises:
            ConfigurationError: If the file cannot be written.
        """
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(
            dir=self._config_path.parent, prefix=".tmp_ganttsync_", suffix=".json"
        )
        try:
            with os.fdopen(temp_fd, "w") as temp_file:
                json.dump(values, temp_file, indent=2)
            os.replace(temp_path, self._config_path)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise ConfigurationError(f"Failed to write {self._config_path}: {e}")
        self._config = dict(values)

    def reload(self) -> dict:
        """Force reload of config from disk."""
        self._config = None
        return self._load_config()

    @property
    def config_path(self) -> Path:
        """Get the config file path."""
        return self._config_path
