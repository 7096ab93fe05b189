"""Configuration loading from environment variables and vnotes.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

_DEFAULT_DATA_DIR = Path.home() / ".vnotes" / "data"
_CONFIG_FILENAME = "vnotes.toml"


@dataclass(frozen=True)
class NoteLimits:
    """Bounds enforced on every note the core accepts."""

    max_notes: int = 100
    max_title_length: int = 100
    max_content_length: int = 10_000


@dataclass
class NotesConfig:
    """Top-level vnotes configuration."""

    data_dir: Path = _DEFAULT_DATA_DIR
    storage_key: str = "vnotes-data"
    autosave_interval: float = 30.0
    rate_limit_ms: int = 300
    max_notes: int = 100
    max_title_length: int = 100
    max_content_length: int = 10_000
    log_level: str = "INFO"

    @property
    def limits(self) -> NoteLimits:
        return NoteLimits(
            max_notes=self.max_notes,
            max_title_length=self.max_title_length,
            max_content_length=self.max_content_length,
        )


def load_config(config_path: Path | None = None) -> NotesConfig:
    """Load configuration from environment variables and optional vnotes.toml.

    Priority: environment variables > vnotes.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.vnotes/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".vnotes" / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    storage_data = file_data.get("storage", {})
    limits_data = file_data.get("limits", {})

    return NotesConfig(
        data_dir=Path(os.getenv("VNOTES_DATA_DIR", storage_data.get("data_dir", str(_DEFAULT_DATA_DIR)))),
        storage_key=os.getenv("VNOTES_STORAGE_KEY", storage_data.get("key", "vnotes-data")),
        autosave_interval=float(
            os.getenv("VNOTES_AUTOSAVE_INTERVAL", storage_data.get("autosave_interval", 30))
        ),
        rate_limit_ms=int(os.getenv("VNOTES_RATE_LIMIT_MS", limits_data.get("rate_limit_ms", 300))),
        max_notes=int(os.getenv("VNOTES_MAX_NOTES", limits_data.get("max_notes", 100))),
        max_title_length=int(limits_data.get("max_title_length", 100)),
        max_content_length=int(limits_data.get("max_content_length", 10_000)),
        log_level=os.getenv("VNOTES_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
