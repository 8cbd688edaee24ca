"""
Manages loading, validation, and migration of the INI configuration file.
"""

import configparser
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from book_liberator.exceptions import ConfigurationError
from book_liberator.models.config import LiberatorConfig

log = logging.getLogger(__name__)

DEFAULT_LIBRARY_ROOT = Path("~/Audiobooks")
DEFAULT_DIRECTORIES = {
    "books_dir": DEFAULT_LIBRARY_ROOT / "Books",
    "downloads_in_progress_dir": DEFAULT_LIBRARY_ROOT / "DownloadsInProgress",
    "decrypt_in_progress_dir": DEFAULT_LIBRARY_ROOT / "DecryptInProgress",
}


class ConfigManager:
    """Handles all operations related to the application's INI config file."""

    def __init__(self, config_file_path: Path):
        self.config_file_path = config_file_path
        self._parser = configparser.ConfigParser(interpolation=None)

    @staticmethod
    def _defaults() -> LiberatorConfig:
        return LiberatorConfig.model_construct(**DEFAULT_DIRECTORIES)

    def load_config(self, cli_options: dict[str, Any] | None = None) -> LiberatorConfig:
        """
        Loads configuration from the INI file, applies CLI overrides, and validates it.

        Args:
            cli_options: A dictionary of options provided via the command line.

        Returns:
            A validated LiberatorConfig object.

        Raises:
            ConfigurationError: If the config file is missing, invalid, or validation
            fails.
        """
        if not self.config_file_path.is_file():
            raise ConfigurationError(
                f"Configuration file not found at '{self.config_file_path}'. "
                "Please run 'book-liberator init' first."
            )

        try:
            self._parser.read(self.config_file_path, encoding="utf-8")
        except configparser.Error as e:
            raise ConfigurationError(f"Error parsing configuration file: {e}") from e

        if self._migrate_if_needed():
            log.info(
                "[yellow]Configuration file was updated with new default values."
                "[/yellow]"
            )

        config_from_file = self._get_config_as_dict()

        # Override with CLI options
        if cli_options:
            config_from_file.update({k: v for k, v in cli_options.items() if v is not None})

        try:
            config_dir = self.config_file_path.parent
            return LiberatorConfig(**config_from_file, config_path=str(config_dir))
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed:\n{e}") from e

    @staticmethod
    def _to_ini_value(value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def save_new_config(self, settings: dict[str, Any]) -> None:
        """
        Creates and saves a new configuration file.

        Args:
            settings: A dictionary of settings to save. Missing keys get defaults.
        """
        config = configparser.ConfigParser(interpolation=None)
        config["DEFAULT"] = {}
        defaults = self._defaults()

        for key in sorted(LiberatorConfig.get_ini_keys()):
            value = settings.get(key, getattr(defaults, key, None))
            if value is not None:
                config["DEFAULT"][key] = self._to_ini_value(value)

        try:
            self.config_file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.config_file_path, "w", encoding="utf-8") as configfile:
                config.write(configfile)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration file: {e}") from e

    def _get_config_as_dict(self) -> dict[str, Any]:
        """Reads the 'DEFAULT' section of the INI file into a dictionary."""
        section = self._parser["DEFAULT"]
        defaults = self._defaults()
        try:
            return {
                "access_token": section.get("access_token", ""),
                "device_type": section.get("device_type", ""),
                "device_serial": section.get("device_serial", ""),
                "customer_id": section.get("customer_id", ""),
                "books_dir": section.get("books_dir", str(defaults.books_dir)),
                "downloads_in_progress_dir": section.get(
                    "downloads_in_progress_dir", str(defaults.downloads_in_progress_dir)
                ),
                "decrypt_in_progress_dir": section.get(
                    "decrypt_in_progress_dir", str(defaults.decrypt_in_progress_dir)
                ),
                "allow_fixup": section.getboolean("allow_fixup", defaults.allow_fixup),
                "decrypt_to_lossy": section.getboolean(
                    "decrypt_to_lossy", defaults.decrypt_to_lossy
                ),
                "max_workers": section.getint("max_workers", defaults.max_workers),
                "ffmpeg_path": section.get("ffmpeg_path", defaults.ffmpeg_path),
                "app_name": section.get("app_name", defaults.app_name),
                "user_agent": section.get("user_agent", defaults.user_agent),
            }
        except ValueError as e:
            raise ConfigurationError(f"Invalid value in configuration file: {e}") from e

    def _migrate_if_needed(self) -> bool:
        """Adds missing default values to an existing config file."""
        defaults = self._defaults()
        needs_saving = False

        config_section = self._parser["DEFAULT"]

        for key in sorted(LiberatorConfig.get_ini_keys()):
            if key not in config_section:
                config_section[key] = self._to_ini_value(getattr(defaults, key))
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
