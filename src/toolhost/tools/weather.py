from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import Field

from ..elicitation import InvocationContext
from ..errors import CapabilityError
from ..registry import ToolArguments, ToolDescriptor, ToolRegistry


class WeatherToolError(CapabilityError):
    pass


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    name: str
    country: str

    @property
    def label(self) -> str:
        return f"{self.name}, {self.country}"


@dataclass(frozen=True)
class DailyForecast:
    dates: tuple[str, ...]
    minimums: tuple[float, ...]
    maximums: tuple[float, ...]
    codes: tuple[int, ...]


class WeatherClient:
    """Open-Meteo geocoding and forecast lookups."""

    def __init__(
        self,
        geocoding_url: str = "https://geocoding-api.open-meteo.com/v1/search",
        forecast_url: str = "https://api.open-meteo.com/v1/forecast",
        timeout: float = 30.0,
    ) -> None:
        self.geocoding_url = geocoding_url
        self.forecast_url = forecast_url
        self.timeout = timeout

    async def _get(self, url: str, params: dict[str, Any], what: str) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPError as exc:
            status = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
            raise WeatherToolError(f"Failed to fetch {what}: {exc}", status_code=status) from exc

    async def search(self, query: str, count: int = 5) -> list[Location]:
        data = await self._get(
            self.geocoding_url,
            {"name": query, "count": count, "language": "en", "format": "json"},
            "city search",
        )
        return [
            Location(
                latitude=item["latitude"],
                longitude=item["longitude"],
                name=item.get("name", query),
                country=item.get("country", ""),
            )
            for item in data.get("results") or []
        ]

    async def lookup(self, city: str) -> Location:
        matches = await self.search(city, count=1)
        if not matches:
            raise WeatherToolError("City not found")
        return matches[0]

    async def current(self, latitude: float, longitude: float) -> dict[str, Any]:
        data = await self._get(
            self.forecast_url,
            {"latitude": latitude, "longitude": longitude, "current_weather": "true"},
            "weather",
        )
        current = data.get("current_weather")
        if not current:
            raise WeatherToolError("No weather data available")
        return current

    async def forecast(self, latitude: float, longitude: float, days: int = 3) -> DailyForecast:
        data = await self._get(
            self.forecast_url,
            {
                "latitude": latitude,
                "longitude": longitude,
                "daily": "temperature_2m_max,temperature_2m_min,weathercode",
                "forecast_days": days,
                "timezone": "auto",
            },
            "forecast",
        )
        daily = data.get("daily") or {}
        if not daily.get("time"):
            raise WeatherToolError("No forecast data available")
        return DailyForecast(
            dates=tuple(daily["time"]),
            minimums=tuple(daily.get("temperature_2m_min", ())),
            maximums=tuple(daily.get("temperature_2m_max", ())),
            codes=tuple(daily.get("weathercode", ())),
        )


class CityArguments(ToolArguments):
    city: str = Field(description="City name, e.g. 'Seattle'.")


class SearchCityArguments(ToolArguments):
    query: str = Field(description="Partial or full city name to search for.")


def format_forecast(location: Location, forecast: DailyForecast) -> str:
    lines = [f"{len(forecast.dates)}-day forecast for {location.label}:"]
    for date, low, high, code in zip(forecast.dates, forecast.minimums, forecast.maximums, forecast.codes):
        lines.append(f"- {date}: {low}°C - {high}°C, code {code}")
    return "\n".join(lines)


def register(registry: ToolRegistry, client: WeatherClient) -> None:
    async def current_weather(args: CityArguments, ctx: InvocationContext) -> str:
        location = await client.lookup(args.city)
        weather = await client.current(location.latitude, location.longitude)
        return (
            f"Current weather in {location.label}: {weather.get('temperature')}°C, "
            f"wind {weather.get('windspeed')} km/h, code {weather.get('weathercode')}"
        )

    async def forecast(args: CityArguments, ctx: InvocationContext) -> str:
        location = await client.lookup(args.city)
        return format_forecast(location, await client.forecast(location.latitude, location.longitude))

    async def search_city(args: SearchCityArguments, ctx: InvocationContext) -> str:
        matches = await client.search(args.query)
        if not matches:
            return "No matching cities found."
        lines = [f"{m.label} ({m.latitude},{m.longitude})" for m in matches]
        return "Matching cities:\n" + "\n".join(lines)

    registry.register(
        ToolDescriptor("currentWeather", "Current Weather", "Get the current weather for a city", CityArguments),
        current_weather,
    )
    registry.register(
        ToolDescriptor("forecast", "Weather Forecast", "Get a 3-day weather forecast for a city", CityArguments),
        forecast,
    )
    registry.register(
        ToolDescriptor("searchCity", "Search City", "Find cities matching a query string", SearchCityArguments),
        search_city,
    )
