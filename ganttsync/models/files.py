"""
File models for ganttsync.

Models representing the structure of JSON files in the .ganttsync/ directory.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from ganttsync.constants import (
    DEFAULT_API_BASE_URL,
    DEFAULT_AUTO_SAVE_INTERVAL,
    DEFAULT_AUTO_VERSION_ENABLED,
    DEFAULT_AUTO_VERSION_ON_ADD,
    DEFAULT_AUTO_VERSION_ON_DELETE,
    DEFAULT_AUTO_VERSION_ON_MODIFY,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_BATCH_SIZE,
    DEFAULT_MAX_HISTORY_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_VERSIONS_TO_KEEP,
    DEFAULT_MIN_CHANGE_THRESHOLD,
    DEFAULT_RETRY_DELAY,
    DEFAULT_SAVE_DELAY,
    DEFAULT_WARNING_MESSAGE,
    ConfigManager,
)
from ganttsync.exceptions import ConfigurationError

from .version import AutoVersionConfig


class ConfigFile(BaseModel):
    """Model for config.json file.

    Engine settings. Unknown keys are ignored; string values written by
    ``ganttsync config set`` are coerced to the field types.
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    # Auto-save settings
    auto_save: bool = True
    save_delay: float = Field(default=DEFAULT_SAVE_DELAY, ge=0)
    auto_save_interval: float = Field(default=DEFAULT_AUTO_SAVE_INTERVAL, ge=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    retry_delay: float = Field(default=DEFAULT_RETRY_DELAY, ge=0)
    max_batch_size: int = Field(default=DEFAULT_MAX_BATCH_SIZE, ge=1)
    error_policy: Literal["retry_all", "retry_transient_only"] = "retry_all"

    # History settings
    max_history_size: int = Field(default=DEFAULT_MAX_HISTORY_SIZE, ge=1)

    # Dirty state settings
    warn_on_page_leave: bool = True
    warn_on_navigate: bool = True
    warning_message: str = DEFAULT_WARNING_MESSAGE

    # Optimistic update settings
    auto_rollback: bool = True

    # Auto-version settings
    auto_version_enabled: bool = DEFAULT_AUTO_VERSION_ENABLED
    auto_version_on_add: bool = DEFAULT_AUTO_VERSION_ON_ADD
    auto_version_on_delete: bool = DEFAULT_AUTO_VERSION_ON_DELETE
    auto_version_on_modify: bool = DEFAULT_AUTO_VERSION_ON_MODIFY
    min_change_threshold: int = Field(default=DEFAULT_MIN_CHANGE_THRESHOLD, ge=0)
    max_versions_to_keep: int = Field(default=DEFAULT_MAX_VERSIONS_TO_KEEP, ge=1)

    # Remote store settings
    api_base_url: str = DEFAULT_API_BASE_URL
    http_timeout: float = Field(default=DEFAULT_HTTP_TIMEOUT, gt=0)

    # Logging settings
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def load(cls, config: ConfigManager) -> "ConfigFile":
        """Build settings from a config manager's values.

        Raises:
            ConfigurationError: If a value has the wrong type or range.
        """
        try:
            return cls.model_validate(config.as_dict())
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid config in {config.config_path}: {e}")

    def auto_version_config(self) -> AutoVersionConfig:
        return AutoVersionConfig(
            enabled=self.auto_version_enabled,
            on_add=self.auto_version_on_add,
            on_delete=self.auto_version_on_delete,
            on_modify=self.auto_version_on_modify,
            min_change_threshold=self.min_change_threshold,
            max_versions_to_keep=self.max_versions_to_keep,
        )
