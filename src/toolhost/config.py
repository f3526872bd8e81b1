from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import yaml

from .authorizer import DEFAULT_ALLOWED_COMMANDS

CONFIG_PATH = Path.home() / ".config" / "toolhost" / "config.yml"

# Environment overrides for collaborator endpoints.
_ENV_OVERRIDES = {
    "image_generate_url": "GENERATE_IMAGE_API_URL",
    "image_edit_url": "EDIT_IMAGE_API_URL",
    "geocoding_url": "TOOLHOST_GEOCODING_URL",
    "forecast_url": "TOOLHOST_FORECAST_URL",
}

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class ServerConfig:
    allowed_commands: tuple[str, ...] = DEFAULT_ALLOWED_COMMANDS
    block_metacharacters: bool = True
    command_timeout_ms: int = 10_000
    command_max_output_bytes: int = 1024 * 1024
    listing_timeout_ms: int = 5_000
    listing_max_output_bytes: int = 512 * 1024
    azure_timeout_ms: int = 30_000
    geocoding_url: str = "https://geocoding-api.open-meteo.com/v1/search"
    forecast_url: str = "https://api.open-meteo.com/v1/forecast"
    image_generate_url: str = "http://127.0.0.1:8000/v1/images/generations"
    image_edit_url: str = "http://127.0.0.1:8000/v1/images/edits"
    http_timeout_s: float = 30.0
    log_level: str = "INFO"

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level)


def _positive_int(value: object, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or int(value) <= 0:
        return default
    return int(value)


def _url(value: object, default: str) -> str:
    if not isinstance(value, str) or not value.strip():
        return default
    return value.strip()


def _validate(cfg: dict[str, Any]) -> dict[str, Any]:
    defaults = asdict(ServerConfig())
    merged = {**defaults, **{k: v for k, v in cfg.items() if k in defaults}}

    raw_allowed = merged["allowed_commands"]
    if isinstance(raw_allowed, (list, tuple)):
        allowed = tuple(str(entry).strip() for entry in raw_allowed if str(entry).strip())
        merged["allowed_commands"] = allowed or defaults["allowed_commands"]
    else:
        merged["allowed_commands"] = defaults["allowed_commands"]
    merged["block_metacharacters"] = bool(merged["block_metacharacters"])
    for key in (
        "command_timeout_ms",
        "command_max_output_bytes",
        "listing_timeout_ms",
        "listing_max_output_bytes",
        "azure_timeout_ms",
    ):
        merged[key] = _positive_int(merged[key], defaults[key])
    for key in ("geocoding_url", "forecast_url", "image_generate_url", "image_edit_url"):
        merged[key] = _url(merged[key], defaults[key])
    raw_timeout = merged["http_timeout_s"]
    merged["http_timeout_s"] = (
        float(raw_timeout)
        if isinstance(raw_timeout, (int, float)) and not isinstance(raw_timeout, bool) and raw_timeout > 0
        else defaults["http_timeout_s"]
    )
    level = str(merged["log_level"]).upper()
    merged["log_level"] = level if level in _LOG_LEVELS else defaults["log_level"]
    return merged


def load_config(path: Path | None = None, environ: dict[str, str] | None = None) -> ServerConfig:
    path = path or CONFIG_PATH
    env = os.environ if environ is None else environ
    raw: object = {}
    if path.exists():
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    cfg = dict(raw) if isinstance(raw, dict) else {}
    for key, var in _ENV_OVERRIDES.items():
        if env.get(var):
            cfg[key] = env[var]
    return ServerConfig(**_validate(cfg))
