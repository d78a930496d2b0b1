"""Configuration management for stacker_lite."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 60
DEFAULT_PROJECTION_BUFFER_DAYS = 30
DEFAULT_MAX_OCCURRENCES = 1000
DEFAULT_STORE_PATH = "stacker_tasks.json"


@dataclass
class EngineConfig:
    """Engine settings with explicit defaults.

    Consolidates projection and rollover settings so every entry point reads
    them the same way.
    """

    lookback_days: int = DEFAULT_LOOKBACK_DAYS
    projection_buffer_days: int = DEFAULT_PROJECTION_BUFFER_DAYS
    max_occurrences_per_rule: int = DEFAULT_MAX_OCCURRENCES

    @classmethod
    def from_settings(cls, settings: Any) -> EngineConfig:
        """Extract engine configuration from a settings dict or object.

        Args:
            settings: Mapping or object with engine settings (None for defaults)

        Returns:
            EngineConfig with values from settings or defaults
        """
        if settings is None:
            return cls()
        return cls(
            lookback_days=int(get_config_value(settings, "lookback_days", DEFAULT_LOOKBACK_DAYS)),
            projection_buffer_days=int(
                get_config_value(settings, "projection_buffer_days", DEFAULT_PROJECTION_BUFFER_DAYS)
            ),
            max_occurrences_per_rule=int(
                get_config_value(settings, "max_occurrences_per_rule", DEFAULT_MAX_OCCURRENCES)
            ),
        )


class ConfigManager:
    """Manages application configuration from environment variables and .env files."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file and set environment variables.

        Only sets variables that are not already in the environment to avoid
        surprising overrides of user's environment.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []

        try:
            content = self.env_file_path.read_text(encoding="utf-8")
        except OSError:
            logger.debug(
                "Failed to read .env file for defaults (continuing): %s",
                str(self.env_file_path),
                exc_info=True,
            )
            return []

        for raw_line in content.splitlines():
            line = raw_line.strip()

            if not line or line.startswith("#") or "=" not in line:
                continue

            key, val = line.split("=", 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")

            if key and key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))

        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes:
        - STACKER_LOOKBACK_DAYS -> 'lookback_days' (int)
        - STACKER_PROJECTION_BUFFER_DAYS -> 'projection_buffer_days' (int)
        - STACKER_MAX_OCCURRENCES -> 'max_occurrences_per_rule' (int)
        - STACKER_STORE_PATH -> 'store_path'
        - STACKER_LOG_LEVEL -> 'log_level'

        Returns:
            Configuration dictionary accepted by EngineConfig.from_settings
        """
        cfg: dict[str, Any] = {}

        int_settings = {
            "STACKER_LOOKBACK_DAYS": "lookback_days",
            "STACKER_PROJECTION_BUFFER_DAYS": "projection_buffer_days",
            "STACKER_MAX_OCCURRENCES": "max_occurrences_per_rule",
        }
        for env_key, cfg_key in int_settings.items():
            raw = os.environ.get(env_key)
            if not raw:
                continue
            try:
                value = int(raw)
            except ValueError:
                logger.warning("Invalid %s=%r; ignoring", env_key, raw)
                continue
            if value < 0:
                logger.warning("Negative %s=%r; ignoring", env_key, raw)
                continue
            cfg[cfg_key] = value

        store_path = os.environ.get("STACKER_STORE_PATH")
        if store_path:
            cfg["store_path"] = store_path

        log_level = os.environ.get("STACKER_LOG_LEVEL")
        if log_level:
            cfg["log_level"] = log_level.upper()

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment.

        This is the main entry point for loading configuration.
        """
        self.load_env_file()
        return self.build_config_from_env()


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and dataclass-like objects.

    Args:
        config: Configuration object (dict or object with attributes)
        key: Configuration key to retrieve
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)
