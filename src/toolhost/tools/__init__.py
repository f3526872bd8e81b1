from __future__ import annotations

import time

from ..authorizer import CommandAuthorizer
from ..config import ServerConfig
from ..process import ProcessRunner
from ..registry import ToolRegistry
from . import azure, images, system, weather
from .azure import AzureCli
from .images import ImageClient
from .weather import WeatherClient


def build_registry(
    config: ServerConfig | None = None,
    *,
    runner: ProcessRunner | None = None,
    weather_client: WeatherClient | None = None,
    azure_cli: AzureCli | None = None,
    image_client: ImageClient | None = None,
) -> ToolRegistry:
    """Register every built-in tool. Collaborators may be swapped for fakes."""
    config = config or ServerConfig()
    runner = runner or ProcessRunner()
    registry = ToolRegistry()
    weather.register(
        registry,
        weather_client
        or WeatherClient(config.geocoding_url, config.forecast_url, timeout=config.http_timeout_s),
    )
    system.register(
        registry,
        CommandAuthorizer(config.allowed_commands, block_metacharacters=config.block_metacharacters),
        runner,
        config,
        started_at=time.monotonic(),
    )
    azure.register(
        registry,
        azure_cli or AzureCli(runner, timeout_ms=config.azure_timeout_ms),
    )
    images.register(
        registry,
        image_client
        or ImageClient(config.image_generate_url, config.image_edit_url, timeout=config.http_timeout_s),
    )
    return registry
