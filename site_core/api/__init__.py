"""
Backend API clients
Weather readings served through the Supabase weather cache and edge function
"""

from .weather_client import (
    WeatherClient,
    WeatherError,
    WeatherReading,
    format_temperature,
    is_weather_error,
    weather_icon,
)

__all__ = [
    "WeatherClient",
    "WeatherError",
    "WeatherReading",
    "format_temperature",
    "is_weather_error",
    "weather_icon",
]
