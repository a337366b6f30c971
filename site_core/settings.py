# =============================================================================
# site_core/settings.py
# Runtime Configuration and Supabase Client Factory
# =============================================================================
"""
Settings are read from environment variables (a local ``.env`` is loaded
first), then from ``.streamlit/secrets.toml``:

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"
"""

from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import toml
from dotenv import load_dotenv

from site_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

SECRETS_PATH = Path(".streamlit") / "secrets.toml"
DEFAULT_STORAGE_PATH = Path("local_data") / "sitepulse.db"


@dataclass
class Settings:
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    storage_path: str = str(DEFAULT_STORAGE_PATH)
    storage_quota_bytes: Optional[int] = 5 * 1024 * 1024
    weather_stale_minutes: int = 5
    weather_refetch_minutes: int = 15
    weather_gc_minutes: int = 30
    log_level: str = "INFO"

    @property
    def has_credentials(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def _read_secrets(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        return toml.load(path).get("supabase", {})
    except (toml.TomlDecodeError, OSError) as e:
        logger.warning(f"Could not read {path}: {e}")
        return {}


def _int_env(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{name} must be an integer, got {raw!r}", config_key=name, expected_type="int"
        ) from e


def load_settings(secrets_path: Optional[Path] = None, env_file: Optional[str] = None) -> Settings:
    """
    Build Settings from the environment, falling back to Streamlit secrets.

    Raises:
        ConfigurationError: a numeric variable is not an integer
    """
    load_dotenv(env_file)
    secrets = _read_secrets(Path(secrets_path) if secrets_path else SECRETS_PATH)

    quota_default = Settings.storage_quota_bytes
    return Settings(
        supabase_url=os.getenv("SUPABASE_URL") or secrets.get("url"),
        supabase_key=os.getenv("SUPABASE_KEY") or secrets.get("key"),
        storage_path=os.getenv("SITEPULSE_STORAGE_PATH", str(DEFAULT_STORAGE_PATH)),
        storage_quota_bytes=_int_env("SITEPULSE_STORAGE_QUOTA_BYTES", quota_default),
        weather_stale_minutes=_int_env("SITEPULSE_WEATHER_STALE_MINUTES", 5),
        weather_refetch_minutes=_int_env("SITEPULSE_WEATHER_REFETCH_MINUTES", 15),
        weather_gc_minutes=_int_env("SITEPULSE_WEATHER_GC_MINUTES", 30),
        log_level=os.getenv("SITEPULSE_LOG_LEVEL", "INFO"),
    )


async def get_supabase_client(settings: Settings):
    """
    Create the async Supabase client.

    Raises:
        ConfigurationError: URL or key missing, or the client rejected them
    """
    if not settings.has_credentials:
        raise ConfigurationError(
            "Supabase credentials not found. Set SUPABASE_URL and SUPABASE_KEY "
            "or configure [supabase] in .streamlit/secrets.toml",
        )

    from supabase import acreate_client

    try:
        return await acreate_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        raise ConfigurationError(f"Failed to initialize Supabase client: {e}") from e
