"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ytaudio.exceptions import ConfigurationError
from ytaudio.models.config import ServiceConfig

log = logging.getLogger(__name__)

LIST_KEYS = {"fallback_browsers"}
INT_KEYS = {
    "cache_ttl_seconds",
    "job_retention_seconds",
    "sweep_interval_seconds",
    "sweep_initial_delay_seconds",
    "max_concurrent_extractions",
    "metadata_timeout_seconds",
}
BOOL_KEYS = {"force_ipv4", "verify_artifacts"}


class ConfigManager:
    """Handles all operations related to the service's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self.config_dir = config_file_path.parent
        self._parser = configparser.ConfigParser(interpolation=None)

    def _path_defaults(self) -> dict[str, str]:
        return {
            "downloads_dir": str(self.config_dir / "downloads"),
            "database_path": str(self.config_dir / "store.sqlite"),
        }

    def default_config(self) -> ServiceConfig:
        """Builds the configuration used when no file settings apply."""
        return ServiceConfig(**self._path_defaults(), config_path=str(self.config_dir))

    def load_config(self, cli_options: dict[str, Any] | None = None) -> ServiceConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        A missing file is not an error: defaults rooted in the config directory
        are used instead.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated ServiceConfig object.

        Raises:
            ConfigurationError: If the config file is unreadable or validation fails.
        """
        settings: dict[str, Any] = self._path_defaults()

        if self.config_file_path.is_file():
            try:
                self._parser.read(self.config_file_path, encoding="utf-8")
            except configparser.Error as e:
                raise ConfigurationError(
                    f"Error parsing configuration file: {e}"
                ) from e

            if self._migrate_if_needed():
                log.info(
                    "[yellow]Configuration file was updated with new default values."
                    "[/yellow]"
                )
            settings.update(self._get_config_as_dict())
        else:
            log.debug(
                f"No configuration file at '{self.config_file_path}'; using defaults."
            )

        if cli_options:
            settings.update(cli_options)

        try:
            return ServiceConfig(**settings, config_path=str(self.config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    def save_new_config(self, settings: dict[str, Any] | None = None) -> None:
        """
        Creates and saves a new configuration file from defaults plus `settings`.
        """
        settings = settings or {}
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}
        defaults = self.default_config()

        for key in sorted(ServiceConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            if value is not None:
                config["DEFAULT"][key] = self._to_ini(value)

        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    @staticmethod
    def _to_ini(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, list):
            return ",".join(map(str, value))
        return str(value)

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the known keys of the 'DEFAULT' section into a dictionary."""
        section = self._parser["DEFAULT"]
        values: dict[str, Any] = {}
        for key in ServiceConfig.get_ini_keys():
            if key not in section:
                continue
            try:
                if key in INT_KEYS:
                    values[key] = section.getint(key)
                elif key in BOOL_KEYS:
                    values[key] = section.getboolean(key)
                elif key in LIST_KEYS:
                    values[key] = [
                        s.strip() for s in section.get(key, "").split(",") if s.strip()
                    ]
                else:
                    values[key] = section.get(key)
            except ValueError as e:
                raise ConfigurationError(f"Invalid value for '{key}': {e}") from e
        return values

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = self.default_config()
        needs_saving = False
        config_section = self._parser["DEFAULT"]

        for key in sorted(ServiceConfig.get_ini_keys()):
            if key not in config_section:
                config_section[key] = self._to_ini(getattr(defaults, key))
                needs_saving = True
                log.debug(
                    f"Migrating config: added missing key '{key}' with "
                    f"value '{config_section[key]}'."
                )

        if needs_saving:
            try:
                with open(self.config_file_path, "w", encoding="utf-8") as f:
                    self._parser.write(f)
            except OSError as e:
                log.error(f"Could not save migrated configuration file: {e}")
                return False

        return needs_saving
