from __future__ import annotations

import json
import os
import tomllib
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

APP_NAME = "wledlink"
CONFIG_FILENAME = "config.toml"
CONFIG_ENV_VAR = "WLEDLINK_CONFIG"

WLED_SERVICE_TYPE = "_wled._tcp.local."


def _xdg_dir(env_var: str, fallback: Path) -> Path:
    return Path(os.environ.get(env_var) or fallback)


def default_config_path() -> Path:
    config_home = _xdg_dir("XDG_CONFIG_HOME", Path.home() / ".config")
    return config_home / APP_NAME / CONFIG_FILENAME


def default_data_dir() -> Path:
    return _xdg_dir("XDG_DATA_HOME", Path.home() / ".local" / "share") / APP_NAME


def expand_path(value: str) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(value)))


class DatabaseConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    path: str = Field(default_factory=lambda: str(default_data_dir()))


class DiscoveryConfig(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    service_type: str = WLED_SERVICE_TYPE
    browse_timeout: float = Field(default=5.0, gt=0)
    probe_timeout: float = Field(default=2.0, gt=0)


class SessionConfig(BaseModel):
    """Timing of the identification request and of websocket sessions."""

    model_config = {"frozen": True, "extra": "forbid"}

    identify_timeout: float = Field(default=5.0, gt=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    base_delay: float = Field(default=2.5, gt=0)
    max_delay: float = Field(default=60.0, gt=0)


class Settings(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)


def resolve_config_path(allow_missing: bool = False) -> tuple[Path, bool]:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = expand_path(env_path)
        if not allow_missing and not path.exists():
            raise FileNotFoundError(f"{CONFIG_ENV_VAR} points to missing file: {path}")
        return path, path.exists()

    path = default_config_path()
    return path, path.exists()


def load_settings(path: Path) -> Settings:
    try:
        with path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Invalid TOML in config file: {path}\n{exc}") from exc

    try:
        return Settings.model_validate(data or {})
    except ValidationError as exc:
        raise ValueError(f"Invalid config file: {path}\n{exc}") from exc


@lru_cache
def get_settings() -> Settings:
    path, exists = resolve_config_path(allow_missing=False)
    if exists:
        return load_settings(path)
    return Settings()


def data_dir_from_settings(settings: Settings) -> Path:
    return expand_path(settings.database.path)


def _toml_value(value: object) -> str:
    # JSON strings and numbers are valid TOML literals
    return json.dumps(value)


def _render_section(name: str, model: BaseModel) -> list[str]:
    lines = [f"[{name}]"]
    for key, value in model.model_dump().items():
        lines.append(f"{key} = {_toml_value(value)}")
    lines.append("")
    return lines


def render_settings_toml(settings: Settings) -> str:
    lines = ["# wledlink configuration", ""]
    lines += _render_section("database", settings.database)
    lines += _render_section("discovery", settings.discovery)
    lines += _render_section("session", settings.session)
    return "\n".join(lines)


def write_settings(settings: Settings, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_settings_toml(settings))
