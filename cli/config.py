"""Configuration management for VidSwarm CLI."""

import json
import os
import shutil
from pathlib import Path
from typing import Optional

from common.constants import DB_PROVIDER, DEFAULT_TRANSCODER, KUBO_API_URL, PROTOCOL_TOPIC_PREFIX
from common.logging_config import get_logger
from uploader.config import UploaderSettings

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / '.vidswarm' / 'config.json'

# Config keys passed through to UploaderSettings
SETTINGS_KEYS = (
    "kubo_api_url",
    "default_transcoder",
    "db_provider",
    "topic_prefix",
    "job_timeout",
    "connect_retries",
    "send_retries",
    "retry_backoff_multiplier",
)


class Config:
    """Manages CLI configuration stored in JSON file."""

    DEFAULT_CONFIG = {
        "kubo_api_url": os.environ.get("VIDSWARM_KUBO_API_URL", KUBO_API_URL),
        "default_transcoder": os.environ.get("VIDSWARM_DEFAULT_TRANSCODER", DEFAULT_TRANSCODER),
        "db_provider": os.environ.get("VIDSWARM_DB_PROVIDER", DB_PROVIDER),
        "topic_prefix": os.environ.get("VIDSWARM_TOPIC_PREFIX", PROTOCOL_TOPIC_PREFIX),
        "job_timeout": float(os.environ.get("VIDSWARM_JOB_TIMEOUT", "600")),
        "timeout": 30,
        "max_retries": 3,
        "connect_retries": 2,
        "send_retries": 2,
        "retry_backoff_multiplier": 2,
    }

    def __init__(self, config_path: Path = DEFAULT_CONFIG_PATH):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (typically ~/.vidswarm/config.json)
        """
        self.config_path = config_path
        self.data = self._load()

    def _load(self) -> dict:
        """
        Load configuration from file, creating defaults if necessary.

        Returns:
            Configuration dictionary
        """
        try:
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            import tempfile
            self.config_path = Path(tempfile.gettempdir()) / '.vidswarm' / 'config.json'
            self.config_path.parent.mkdir(parents=True, exist_ok=True)

        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = json.load(f)
                config = self.DEFAULT_CONFIG.copy()
                config.update(data)
                return config
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Unreadable config {self.config_path}, using defaults: {e}")
                backup_path = self.config_path.with_suffix('.json.bak')
                try:
                    shutil.copy(self.config_path, backup_path)
                except OSError:
                    pass
                return self.DEFAULT_CONFIG.copy()
        else:
            config = self.DEFAULT_CONFIG.copy()
            try:
                with open(self.config_path, 'w') as f:
                    json.dump(config, f, indent=2)
            except IOError:
                pass
            return config

    def save(self) -> None:
        """Save current configuration to file."""
        try:
            with open(self.config_path, 'w') as f:
                json.dump(self.data, f, indent=2)
        except IOError as e:
            logger.warning(f"Could not save config to {self.config_path}: {e}")

    def get_db_provider(self) -> str:
        """
        Get metadata index base URL.

        Returns:
            Base URL string ending in '/'
        """
        return self.data.get('db_provider', DB_PROVIDER)

    def get_timeout(self) -> int:
        """
        Get request timeout in seconds.

        Returns:
            Timeout value in seconds
        """
        return self.data.get('timeout', 30)

    def get_retry_config(self) -> dict:
        """
        Get retry configuration.

        Returns:
            Dictionary with 'max_retries' and 'retry_backoff_multiplier'
        """
        return {
            'max_retries': self.data.get('max_retries', 3),
            'retry_backoff_multiplier': self.data.get('retry_backoff_multiplier', 2),
        }

    def to_settings(self, **overrides) -> UploaderSettings:
        """
        Build UploaderSettings from this config.

        Raises:
            ValidationError: If a configured value is invalid
        """
        values = {key: self.data[key] for key in SETTINGS_KEYS if self.data.get(key) is not None}
        values.update(overrides)
        return UploaderSettings.from_env(**values)

    def get(self, key: str, default: Optional[object] = None):
        return self.data.get(key, default)
