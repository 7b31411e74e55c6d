"""Tests for the INI configuration manager and the ServiceConfig model."""

import configparser

import pytest
from pydantic import ValidationError

from ytaudio.exceptions import ConfigurationError
from ytaudio.models.config import SUPPORTED_FORMATS, ServiceConfig, get_format_info
from ytaudio.storage.config_manager import ConfigManager


@pytest.fixture
def config_file(tmp_path):
    return tmp_path / "ytaudio" / "config.ini"


def write_ini(path, **values):
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = ["[DEFAULT]"] + [f"{key} = {value}" for key, value in values.items()]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def test_missing_file_uses_defaults_under_the_config_dir(config_file):
    config = ConfigManager(config_file).load_config()
    assert config.downloads_dir == str(config_file.parent / "downloads")
    assert config.database_path == str(config_file.parent / "store.sqlite")
    assert config.cache_ttl_seconds == 7 * 86400
    assert config.fallback_browsers == ["firefox", "edge", "brave", "chromium"]
    assert config.public_prefix == "/downloads"
    assert not config_file.exists()


def test_saved_config_round_trips(config_file):
    manager = ConfigManager(config_file)
    manager.save_new_config({"cache_ttl_seconds": 7200, "force_ipv4": False})

    config = ConfigManager(config_file).load_config()
    assert config.cache_ttl_seconds == 7200
    assert config.force_ipv4 is False
    assert config.verify_artifacts is True


def test_missing_keys_are_migrated_into_the_file(config_file):
    write_ini(config_file, cache_ttl_seconds=1200, sweep_interval_seconds=600)

    config = ConfigManager(config_file).load_config()
    assert config.cache_ttl_seconds == 1200

    parser = configparser.ConfigParser(interpolation=None)
    parser.read(config_file, encoding="utf-8")
    for key in ServiceConfig.get_ini_keys():
        assert key in parser["DEFAULT"]
    assert parser["DEFAULT"]["cache_ttl_seconds"] == "1200"
    assert "config_path" not in parser["DEFAULT"]


def test_cli_options_override_file_values(config_file):
    write_ini(config_file, max_concurrent_extractions=2)
    config = ConfigManager(config_file).load_config({"max_concurrent_extractions": 8})
    assert config.max_concurrent_extractions == 8


def test_list_values_are_normalised(config_file):
    write_ini(config_file, fallback_browsers="Firefox, edge ,firefox,")
    config = ConfigManager(config_file).load_config()
    assert config.fallback_browsers == ["firefox", "edge"]


@pytest.mark.parametrize(
    "values",
    [
        {"cache_ttl_seconds": 60},
        {"cache_ttl_seconds": "soon"},
        {"max_concurrent_extractions": 0},
        {"default_browser": "netscape"},
        {"public_prefix": "downloads"},
        {"force_ipv4": "perhaps"},
    ],
)
def test_invalid_values_raise_configuration_error(config_file, values):
    write_ini(config_file, **values)
    with pytest.raises(ConfigurationError):
        ConfigManager(config_file).load_config()


def test_unparseable_file_raises_configuration_error(config_file):
    config_file.parent.mkdir(parents=True)
    config_file.write_text("this is not ini\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigManager(config_file).load_config()


def test_sweep_interval_cannot_exceed_ttl(tmp_path):
    with pytest.raises(ValidationError):
        ServiceConfig(
            downloads_dir=str(tmp_path),
            database_path=str(tmp_path / "db.sqlite"),
            cache_ttl_seconds=600,
            sweep_interval_seconds=3600,
        )


def test_public_prefix_trailing_slash_is_trimmed(tmp_path):
    config = ServiceConfig(
        downloads_dir=str(tmp_path),
        database_path=str(tmp_path / "db.sqlite"),
        public_prefix="/media/audio/",
    )
    assert config.public_prefix == "/media/audio"


def test_format_map():
    assert SUPPORTED_FORMATS == ("mp3", "m4a", "opus", "flac", "wav")
    assert get_format_info("flac")["lossless"] is True
    assert get_format_info("ogg")["name"] == "Unknown"
