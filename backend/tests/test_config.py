"""Tests for configuration loading."""

import pytest
from pathlib import Path

from vnotes.config import NoteLimits, load_config

_ENV_KEYS = [
    "VNOTES_DATA_DIR",
    "VNOTES_STORAGE_KEY",
    "VNOTES_AUTOSAVE_INTERVAL",
    "VNOTES_RATE_LIMIT_MS",
    "VNOTES_MAX_NOTES",
    "VNOTES_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestConfig:
    def test_defaults(self, tmp_path: Path):
        config = load_config(tmp_path / "absent.toml")
        assert config.storage_key == "vnotes-data"
        assert config.autosave_interval == 30
        assert config.rate_limit_ms == 300
        assert config.limits == NoteLimits(max_notes=100, max_title_length=100, max_content_length=10_000)
        assert config.data_dir.name == "data"

    def test_env_override(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("VNOTES_DATA_DIR", str(tmp_path / "notes"))
        monkeypatch.setenv("VNOTES_AUTOSAVE_INTERVAL", "5")
        monkeypatch.setenv("VNOTES_MAX_NOTES", "10")

        config = load_config()
        assert config.data_dir == tmp_path / "notes"
        assert config.autosave_interval == 5
        assert config.limits.max_notes == 10

    def test_toml_file(self, tmp_path: Path):
        toml_path = tmp_path / "vnotes.toml"
        toml_path.write_text("""
log_level = "DEBUG"

[storage]
key = "work-notes"
autosave_interval = 10

[limits]
max_notes = 50
max_title_length = 80
""")
        config = load_config(toml_path)
        assert config.storage_key == "work-notes"
        assert config.autosave_interval == 10
        assert config.max_notes == 50
        assert config.limits.max_title_length == 80
        assert config.log_level == "DEBUG"

    def test_toml_in_cwd_is_discovered(self, tmp_path: Path):
        (tmp_path / "vnotes.toml").write_text('[storage]\nkey = "found"\n')
        assert load_config().storage_key == "found"

    def test_env_overrides_toml(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("VNOTES_RATE_LIMIT_MS", "500")
        toml_path = tmp_path / "vnotes.toml"
        toml_path.write_text("[limits]\nrate_limit_ms = 100\n")

        config = load_config(toml_path)
        assert config.rate_limit_ms == 500  # env wins
