"""Persistent remote-server configuration backed by a JSON file."""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path

from pydantic import ValidationError

from codesensei.schemas import RemoteConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".codesensei"
DEFAULT_CONFIG_PATH = DEFAULT_CONFIG_DIR / "opencode-config.json"
DEFAULT_PROJECTS_DIR = DEFAULT_CONFIG_DIR / "projects"

CONFIG_PATH_ENV = "CODESENSEI_CONFIG"
PROJECTS_DIR_ENV = "CODESENSEI_PROJECTS_DIR"


class ConfigError(Exception):
    """Raised when the configuration file cannot be written."""

    pass


def default_config_path() -> Path:
    """Config file location, honoring the CODESENSEI_CONFIG override."""
    override = os.environ.get(CONFIG_PATH_ENV)
    return Path(override) if override else DEFAULT_CONFIG_PATH


def default_projects_dir() -> Path:
    """Projects directory, honoring the CODESENSEI_PROJECTS_DIR override."""
    override = os.environ.get(PROJECTS_DIR_ENV)
    return Path(override) if override else DEFAULT_PROJECTS_DIR


def normalize_server_url(url: str) -> str:
    """Trim whitespace and trailing slashes from a server URL."""
    return url.strip().rstrip("/")


class ConfigStore:
    """Reads and writes the RemoteConfig JSON document.

    Reads are far more frequent than writes; a single lock serializes both so
    a reader never sees a half-written file.
    """

    def __init__(self, config_path: Path | str | None = None):
        """Initialize the store.

        Args:
            config_path: Path to the JSON file (defaults to the per-user path)
        """
        self.config_path = Path(config_path) if config_path else default_config_path()
        self._lock = threading.Lock()

        self.config_path.parent.mkdir(parents=True, exist_ok=True)

    def load(self) -> RemoteConfig:
        """Load the configuration, synthesizing and saving a default on first run."""
        with self._lock:
            return self._read()

    def save(self, config: RemoteConfig) -> None:
        """Persist a complete configuration."""
        with self._lock:
            self._write(config)

    def update_server_url(self, url: str) -> RemoteConfig:
        """Change the server URL and persist."""
        with self._lock:
            config = self._read()
            config.server_url = normalize_server_url(url)
            self._write(config)
            return config

    def update_auth(self, username: str, password: str | None) -> RemoteConfig:
        """Change the Basic auth credentials and persist."""
        with self._lock:
            config = self._read()
            config.username = username
            config.password = password
            self._write(config)
            return config

    def update_provider(self, provider: str | None, model: str | None) -> RemoteConfig:
        """Change the default provider/model and persist."""
        with self._lock:
            config = self._read()
            config.default_provider = provider
            config.default_model = model
            self._write(config)
            return config

    def _read(self) -> RemoteConfig:
        if not self.config_path.exists():
            config = RemoteConfig()
            try:
                self._write(config)
            except ConfigError as e:
                logger.warning(f"Could not persist default config: {e}")
            return config

        try:
            return RemoteConfig.model_validate_json(self.config_path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Invalid config at {self.config_path}, using defaults: {e}")
            return RemoteConfig()

    def _write(self, config: RemoteConfig) -> None:
        try:
            self.config_path.write_text(
                json.dumps(config.model_dump(), indent=2) + "\n",
                encoding="utf-8",
            )
        except OSError as e:
            raise ConfigError(f"Failed to write config file {self.config_path}: {e}") from e

        logger.info(f"Config saved to {self.config_path}")
