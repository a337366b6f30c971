"""
Project Weather Client
Reads the server-side weather cache and falls back to the fetch-weather edge function
"""
from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Union
import asyncio
import logging

import pandas as pd

from site_core.cache import QueryCache
from site_core.errors import WeatherFetchError
from site_core.utils.retry import RetryPolicy, retry_with_backoff

logger = logging.getLogger(__name__)

WEATHER_CACHE_TABLE = "weather_cache"
WEATHER_FUNCTION = "fetch-weather"

ICON_MAP = {
    "Clear": "☀️",
    "Clouds": "☁️",
    "Rain": "🌧️",
    "Drizzle": "🌦️",
    "Thunderstorm": "⛈️",
    "Snow": "❄️",
    "Mist": "🌫️",
    "Fog": "🌫️",
    "Haze": "🌫️",
}


@dataclass
class WeatherReading:
    """Current conditions for one project site"""
    temperature_current: float
    temperature_high: float
    temperature_low: float
    condition: str
    humidity: float
    wind_speed: float
    icon: str
    cached: bool = False
    age_minutes: Optional[int] = None
    last_updated: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], cached: bool = False) -> WeatherReading:
        """Build from an edge-function response or a weather_cache row"""
        try:
            return cls(
                temperature_current=payload["temperature_current"],
                temperature_high=payload["temperature_high"],
                temperature_low=payload["temperature_low"],
                condition=payload.get("condition", ""),
                humidity=payload.get("humidity"),
                wind_speed=payload.get("wind_speed"),
                icon=payload.get("weather_icon") or payload.get("icon") or "",
                cached=cached,
                last_updated=payload.get("last_updated"),
            )
        except KeyError as e:
            raise WeatherFetchError(f"Weather payload missing field {e}") from e

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> WeatherReading:
        """Build from a weather_cache row; the reading is always marked cached"""
        return cls.from_payload(row, cached=True)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_cache_row(self, project_id: str, updated_at: datetime) -> Dict[str, Any]:
        return {
            "project_id": project_id,
            "temperature_current": self.temperature_current,
            "temperature_high": self.temperature_high,
            "temperature_low": self.temperature_low,
            "condition": self.condition,
            "humidity": self.humidity,
            "wind_speed": self.wind_speed,
            "weather_icon": self.icon,
            "last_updated": updated_at.isoformat(),
        }


@dataclass
class WeatherError:
    """Typed 'fetch failed' result. Callers branch on the presence of ``error``."""
    error: str
    message: str = ""
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


WeatherResult = Union[WeatherReading, WeatherError, None]


def is_weather_error(result: Any) -> bool:
    """True for WeatherError objects and error-shaped dicts"""
    if isinstance(result, WeatherError):
        return True
    return isinstance(result, dict) and "error" in result


def weather_icon(condition: str) -> str:
    return ICON_MAP.get(condition, "🌤️")


def format_temperature(temp: float) -> str:
    return f"{round(temp)}°F"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return pd.to_datetime(value, utc=True).to_pydatetime()
    except (ValueError, TypeError):
        logger.warning(f"Unparseable weather timestamp: {value!r}")
        return None


class WeatherClient:
    """
    Per-project weather with a server-side cache row, a provider fallback and
    an in-memory query cache on top.

    Usage:
        weather = WeatherClient(supabase, query_cache=cache, connection=manager)
        reading = await weather.get_fresh("p1", "123 Main St")
        if is_weather_error(reading):
            ...
    """

    STALE_TIME = timedelta(minutes=5)
    REFETCH_INTERVAL = timedelta(minutes=15)
    GC_TIME = timedelta(minutes=30)

    def __init__(
        self,
        client,
        query_cache: Optional[QueryCache] = None,
        connection=None,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Any] = asyncio.sleep,
        stale_time: Optional[timedelta] = None,
        refetch_interval: Optional[timedelta] = None,
    ):
        """
        Args:
            client: Async Supabase client
            query_cache: In-memory cache shared with list views
            connection: ConnectionManager; provider calls are skipped while offline
            retry_policy: Provider retry policy (default 3 attempts)
            clock: Returns an aware UTC datetime
            sleep: Awaitable sleep used for backoff and the refresh loop
        """
        self.client = client
        self.stale_time = stale_time or self.STALE_TIME
        self.refetch_interval = refetch_interval or self.REFETCH_INTERVAL
        self.query_cache = query_cache if query_cache is not None else QueryCache(
            stale_time=self.stale_time.total_seconds(),
            gc_time=self.GC_TIME.total_seconds(),
        )
        self.connection = connection
        self.retry_policy = retry_policy if retry_policy is not None else RetryPolicy()
        self._clock = clock
        self._sleep = sleep

    @staticmethod
    def query_key(project_id: str) -> tuple:
        return ("weather", project_id)

    # =========================================================================
    # SERVER-SIDE CACHE ROW
    # =========================================================================

    async def _latest_row(self, project_id: str) -> Optional[Dict[str, Any]]:
        response = await (
            self.client.table(WEATHER_CACHE_TABLE)
            .select("*")
            .eq("project_id", project_id)
            .order("last_updated", desc=True)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return rows[0] if rows else None

    def _age_minutes(self, last_updated: Optional[datetime]) -> Optional[int]:
        """Whole minutes since ``last_updated``; None when the age is unknown."""
        if last_updated is None:
            return None
        age_ms = (self._clock() - last_updated).total_seconds() * 1000
        return max(0, math.floor(age_ms / 60000))

    async def get_cached(self, project_id: str) -> Optional[WeatherReading]:
        """
        Newest cached reading for the project, whatever its age.

        Returns:
            WeatherReading with cached=True, or None when there is no row
            (or the cache table could not be read)
        """
        self._require_project(project_id)
        try:
            row = await self._latest_row(project_id)
        except Exception as e:
            logger.error(f"Error querying cached weather for {project_id}: {e}")
            return None

        if row is None:
            logger.info(f"No cached weather data found for project: {project_id}")
            return None

        try:
            reading = WeatherReading.from_row(row)
        except WeatherFetchError as e:
            logger.error(f"Malformed weather cache row for {project_id}: {e}")
            return None
        reading.age_minutes = self._age_minutes(_parse_timestamp(row.get("last_updated")))
        return reading

    # =========================================================================
    # PROVIDER
    # =========================================================================

    async def _invoke_provider(self, project_id: str, address: str, force_refresh: bool) -> WeatherReading:
        try:
            payload = await self.client.functions.invoke(
                WEATHER_FUNCTION,
                invoke_options={
                    "body": {"address": address, "projectId": project_id, "forceRefresh": force_refresh},
                    "responseType": "json",
                },
            )
        except Exception as e:
            raise WeatherFetchError(
                f"Weather service request failed: {e}", project_id=project_id
            ) from e

        if isinstance(payload, (bytes, str)):
            try:
                payload = json.loads(payload)
            except ValueError as e:
                raise WeatherFetchError("Weather service returned invalid JSON", project_id=project_id) from e

        if not isinstance(payload, dict):
            raise WeatherFetchError("Weather service returned no data", project_id=project_id)

        if "error" in payload:
            raise WeatherFetchError(
                payload.get("message") or "Weather service error",
                project_id=project_id,
                provider_error=str(payload["error"]),
            )

        return WeatherReading.from_payload(payload, cached=False)

    async def _store(self, project_id: str, reading: WeatherReading) -> None:
        """Write the cache row; concurrent writers race and the last one wins."""
        now = self._clock()
        reading.last_updated = now.isoformat()
        try:
            await (
                self.client.table(WEATHER_CACHE_TABLE)
                .upsert(reading.to_cache_row(project_id, now), on_conflict="project_id")
                .execute()
            )
        except Exception as e:
            logger.error(f"Could not store weather cache row for {project_id}: {e}")

    async def get_fresh(
        self,
        project_id: str,
        address: Optional[str] = None,
        force_refresh: bool = False,
    ) -> WeatherResult:
        """
        Weather for a project, preferring a fresh cache row over a provider call.

        Returns:
            WeatherReading (cached=True from the cache row, cached=False from
            the provider), WeatherError once every provider attempt failed,
            or None when there is no data and no way to fetch it
        """
        self._require_project(project_id)

        cached = None
        # Without an address the cache row is the only source, forced or not
        if not force_refresh or not address or self._is_offline():
            cached = await self.get_cached(project_id)
            if cached is not None and self._is_fresh(cached):
                return cached

        if self._is_offline():
            logger.info(f"Offline: serving cached weather for {project_id}")
            return cached

        if not address:
            return cached

        try:
            reading = await retry_with_backoff(
                lambda: self._invoke_provider(project_id, address, force_refresh),
                self.retry_policy,
                retry_on=(WeatherFetchError,),
                sleep=self._sleep,
                description=f"Weather fetch for {project_id}",
            )
        except WeatherFetchError as e:
            return WeatherError(
                error=e.details.get("provider_error", "weather_unavailable"),
                message=e.message,
                cached=False,
            )

        await self._store(project_id, reading)
        reading.age_minutes = 0
        self.query_cache.set_data(self.query_key(project_id), reading)
        return reading

    # =========================================================================
    # QUERY-CACHE FRONT
    # =========================================================================

    async def load(self, project_id: str, address: Optional[str] = None) -> WeatherResult:
        """
        Reading served from memory while fresh, otherwise re-queried.

        Errors are returned, not cached.
        """
        self._require_project(project_id)

        async def query() -> Optional[WeatherReading]:
            if address:
                result = await self.get_fresh(project_id, address, False)
            else:
                result = await self.get_cached(project_id)
            if isinstance(result, WeatherError):
                raise WeatherFetchError(
                    result.message, project_id=project_id, provider_error=result.error
                )
            return result

        try:
            return await self.query_cache.fetch(
                self.query_key(project_id), query, stale_time=self.stale_time.total_seconds()
            )
        except WeatherFetchError as e:
            return WeatherError(
                error=e.details.get("provider_error", "weather_unavailable"),
                message=e.message,
            )

    async def refresh(self, project_id: str, address: Optional[str] = None, force_refresh: bool = False) -> WeatherResult:
        """Drop the in-memory reading and fetch again."""
        self.query_cache.remove(self.query_key(project_id))
        if force_refresh and address:
            return await self.get_fresh(project_id, address, True)
        return await self.load(project_id, address)

    async def auto_refresh_loop(self, project_id: str, address: Optional[str] = None) -> None:
        """Load once right away, then re-query every refetch interval until cancelled."""
        result = await self.load(project_id, address)
        if is_weather_error(result):
            logger.warning(f"Initial weather load failed for {project_id}")

        while True:
            await self._sleep(self.refetch_interval.total_seconds())
            self.query_cache.evict_expired()
            result = await self.refresh(project_id, address)
            if is_weather_error(result):
                logger.warning(f"Background weather refresh failed for {project_id}")

    def start_auto_refresh(self, scope, project_id: str, address: Optional[str] = None):
        """Spawn the load-and-refresh loop on a ViewScope so it ends with the view."""
        return scope.spawn(
            self.auto_refresh_loop(project_id, address),
            name=f"weather-refresh-{project_id}",
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _is_fresh(self, reading: WeatherReading) -> bool:
        # Unknown age counts as stale
        if reading.age_minutes is None:
            return False
        return reading.age_minutes * 60 < self.stale_time.total_seconds()

    def _is_offline(self) -> bool:
        return self.connection is not None and self.connection.is_offline

    @staticmethod
    def _require_project(project_id: str) -> None:
        if not project_id or not isinstance(project_id, str):
            raise ValueError("project_id is required")
