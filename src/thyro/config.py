"""Configuration loading from environment variables and thyro.toml."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_DATA_DIR = Path.home() / ".thyro" / "data"
_CONFIG_FILENAME = "thyro.toml"


@dataclass
class RemoteConfig:
    """Remote backend (PostgREST + anonymous auth) configuration."""

    url: str = ""
    anon_key: str = ""
    timeout: float = 10.0
    profile_table: str = "journey_profiles"
    config_table: str = "user_configs"

    @property
    def enabled(self) -> bool:
        return bool(self.url)


@dataclass
class SyncConfig:
    """Debounce, retry and network monitor settings."""

    debounce_seconds: float = 0.5
    max_attempts: int = 5
    retry_base_delay: float = 1.0
    retry_max_delay: float = 60.0
    poll_interval: float = 15.0


@dataclass
class ThyroConfig:
    """Top-level configuration."""

    remote: RemoteConfig = field(default_factory=RemoteConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    data_dir: Path = _DEFAULT_DATA_DIR
    pid_file: Path = Path.home() / ".thyro" / "thyro.pid"
    log_level: str = "INFO"


def load_config(config_path: Path | None = None) -> ThyroConfig:
    """Load configuration from environment variables and optional thyro.toml.

    Priority: environment variables > thyro.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.thyro/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".thyro" / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    remote_data = file_data.get("remote", {})
    sync_data = file_data.get("sync", {})

    config = ThyroConfig(
        remote=RemoteConfig(
            url=os.getenv("THYRO_REMOTE_URL", remote_data.get("url", "")).rstrip("/"),
            anon_key=os.getenv("THYRO_ANON_KEY", remote_data.get("anon_key", "")),
            timeout=float(os.getenv("THYRO_REMOTE_TIMEOUT", remote_data.get("timeout", 10.0))),
            profile_table=remote_data.get("profile_table", "journey_profiles"),
            config_table=remote_data.get("config_table", "user_configs"),
        ),
        sync=SyncConfig(
            debounce_seconds=float(
                os.getenv("THYRO_DEBOUNCE", sync_data.get("debounce_seconds", 0.5))
            ),
            max_attempts=int(os.getenv("THYRO_MAX_ATTEMPTS", sync_data.get("max_attempts", 5))),
            retry_base_delay=float(sync_data.get("retry_base_delay", 1.0)),
            retry_max_delay=float(sync_data.get("retry_max_delay", 60.0)),
            poll_interval=float(
                os.getenv("THYRO_POLL_INTERVAL", sync_data.get("poll_interval", 15.0))
            ),
        ),
        data_dir=Path(
            os.getenv("THYRO_DATA_DIR", file_data.get("data_dir", str(_DEFAULT_DATA_DIR)))
        ).expanduser(),
        log_level=os.getenv("THYRO_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    if "pid_file" in file_data:
        config.pid_file = Path(file_data["pid_file"]).expanduser()
    return config
