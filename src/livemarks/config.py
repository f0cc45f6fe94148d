"""Configuration management."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from .models.config import AppConfig, EnvSettings
from .utils.yaml_handler import YAMLError, dump_mapping, load_mapping, write_yaml_atomic


class ConfigError(Exception):
    """Configuration-related error."""

    pass


class ConfigManager:
    """Manages application configuration from .env and config.yaml."""

    def __init__(self, config_dir: Optional[Path] = None):
        """Initialize configuration manager.

        Args:
            config_dir: Configuration directory path. Defaults to ~/.livemarks
        """
        if config_dir is None:
            env_config_dir = os.environ.get("LIVEMARKS_CONFIG_DIR")
            if env_config_dir:
                config_dir = Path(env_config_dir)
            else:
                config_dir = Path.home() / '.livemarks'

        self.config_dir = config_dir
        self.config_file = config_dir / 'config.yaml'
        self.env_file = config_dir / '.env'
        self.session_file = config_dir / 'session.yaml'
        self.signal_dir = config_dir / 'signals'

    def load_env_settings(self) -> EnvSettings:
        """Load environment settings from .env file.

        A missing .env file is not an error; the store token is optional.

        Returns:
            EnvSettings instance

        Raises:
            ConfigError: If .env file is invalid
        """
        if self.env_file.exists():
            load_dotenv(self.env_file)

        try:
            return EnvSettings()
        except Exception as e:
            raise ConfigError(f"Invalid .env file: {e}") from e

    def load_app_config(self) -> AppConfig:
        """Load application configuration from config.yaml.

        Returns:
            AppConfig instance

        Raises:
            ConfigError: If config file is missing or invalid
        """
        if not self.config_file.exists():
            raise ConfigError(
                f"Config file not found at {self.config_file}. "
                f"Run 'livemarks init' to create configuration."
            )

        try:
            data = load_mapping(self.config_file) or {}
        except YAMLError as e:
            raise ConfigError(f"Invalid YAML in config file: {e}") from e

        try:
            return self._normalize_storage_path(AppConfig(**data))
        except ValidationError as e:
            raise ConfigError(f"Invalid settings in {self.config_file.name}: {e}") from e

    def save_app_config(self, config: AppConfig) -> None:
        """Save application configuration to config.yaml.

        Args:
            config: AppConfig instance to save

        Raises:
            ConfigError: If save fails
        """
        data = self._normalize_storage_path(config).model_dump(mode='json')
        try:
            write_yaml_atomic(dump_mapping(data), self.config_file)
        except YAMLError as e:
            raise ConfigError(f"Failed to save config: {e}") from e

    def create_env_file(self, store_api_token: Optional[str] = None) -> None:
        """Create .env file holding the store service token.

        Args:
            store_api_token: Shared bearer token; a placeholder is written if omitted

        Raises:
            ConfigError: If file creation fails
        """
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)

            env_content = f"""# Store service auth (shared by 'livemarks serve' and its clients).
# Leave empty to run the store service without a token on localhost.
STORE_API_TOKEN={store_api_token or ''}
"""

            with open(self.env_file, 'w', encoding='utf-8') as f:
                f.write(env_content)

            # Set restrictive permissions on Unix-like systems
            if os.name != 'nt':
                os.chmod(self.env_file, 0o600)

        except Exception as e:
            raise ConfigError(f"Failed to create .env file: {e}") from e

    def get_storage_path(self, config: AppConfig) -> Path:
        """Resolve the bookmark storage directory for a config."""
        if config.storage_path:
            return Path(config.storage_path)

        return self.config_dir / 'storage'

    def validate_storage_access(self, config: AppConfig) -> None:
        """Validate the storage directory is accessible.

        Raises:
            ConfigError: If storage is not accessible
        """
        path = self.get_storage_path(config)

        if not path.exists():
            raise ConfigError(f"Storage path does not exist: {path}")

        if not path.is_dir():
            raise ConfigError(f"Storage path is not a directory: {path}")

        if not os.access(path, os.R_OK):
            raise ConfigError(f"Storage path is not readable: {path}")

        if not os.access(path, os.W_OK):
            raise ConfigError(f"Storage path is not writable: {path}")

    def _normalize_storage_path(self, config: AppConfig) -> AppConfig:
        """Fill in the default storage path so saved configs are explicit."""
        if config.storage_path:
            return config

        return config.model_copy(update={"storage_path": str(self.config_dir / 'storage')})


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for CLI processes."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
