from __future__ import annotations

import configparser
from pathlib import Path

import pytest

from book_liberator.exceptions import ConfigurationError
from book_liberator.models.config import LiberatorConfig, OutputFormat
from book_liberator.storage.config_manager import ConfigManager


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    return tmp_path / "book-liberator" / "config.ini"


def save(config_file: Path, tmp_path: Path, **overrides) -> ConfigManager:
    settings = {
        "access_token": "token",
        "books_dir": tmp_path / "Books",
        "downloads_in_progress_dir": tmp_path / "Downloads",
        "decrypt_in_progress_dir": tmp_path / "Decrypt",
    }
    settings.update(overrides)
    manager = ConfigManager(config_file)
    manager.save_new_config(settings)
    return manager


class TestConfigManager:
    def test_missing_file(self, config_file: Path):
        with pytest.raises(ConfigurationError, match="init"):
            ConfigManager(config_file).load_config()

    def test_round_trip(self, config_file: Path, tmp_path: Path):
        save(config_file, tmp_path, device_type="A2CZJZGLK2JJVM", max_workers=4)

        config = ConfigManager(config_file).load_config()

        assert config.access_token == "token"
        assert config.books_dir == tmp_path / "Books"
        assert config.max_workers == 4
        assert config.allow_fixup is True
        assert config.output_format == OutputFormat.M4B
        assert config.config_path == str(config_file.parent)
        assert not config.has_device_keys()

    def test_cli_overrides(self, config_file: Path, tmp_path: Path):
        manager = save(config_file, tmp_path)

        config = manager.load_config({"decrypt_to_lossy": True, "max_workers": None})

        assert config.output_format == OutputFormat.MP3
        assert config.max_workers == 2

    def test_missing_keys_are_migrated(self, config_file: Path, tmp_path: Path):
        save(config_file, tmp_path)
        parser = configparser.ConfigParser(interpolation=None)
        parser.read(config_file)
        parser.remove_option("DEFAULT", "ffmpeg_path")
        with open(config_file, "w", encoding="utf-8") as f:
            parser.write(f)

        config = ConfigManager(config_file).load_config()

        assert config.ffmpeg_path == "ffmpeg"
        assert "ffmpeg_path = ffmpeg" in config_file.read_text(encoding="utf-8")

    def test_invalid_worker_count(self, config_file: Path, tmp_path: Path):
        save(config_file, tmp_path, max_workers=64)
        with pytest.raises(ConfigurationError, match="Max workers"):
            ConfigManager(config_file).load_config()

    def test_scratch_dir_cannot_be_library(self, config_file: Path, tmp_path: Path):
        save(config_file, tmp_path, decrypt_in_progress_dir=tmp_path / "Books")
        with pytest.raises(ConfigurationError, match="cannot be the books directory"):
            ConfigManager(config_file).load_config()


class TestLiberatorConfig:
    def test_home_is_expanded(self, tmp_path: Path):
        config = LiberatorConfig(
            books_dir="~/Books",
            downloads_in_progress_dir=tmp_path / "a",
            decrypt_in_progress_dir=tmp_path / "b",
            config_path=str(tmp_path),
        )
        assert "~" not in str(config.books_dir)

    def test_ini_keys_exclude_internal_fields(self):
        keys = LiberatorConfig.get_ini_keys()
        assert "config_path" not in keys
        assert {"books_dir", "access_token", "decrypt_to_lossy"} <= keys
