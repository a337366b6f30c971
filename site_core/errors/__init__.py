# =============================================================================
# site_core/errors/__init__.py
# Centralized Error Handling for SitePulse
# =============================================================================

from .exceptions import (
    SitePulseError,
    StorageError,
    StorageQuotaError,
    WeatherFetchError,
    RealtimeSubscriptionError,
    LimitCheckError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    safe_execute,
    safe_execute_async,
    ErrorContext,
    error_boundary,
)

__all__ = [
    # Exceptions
    "SitePulseError",
    "StorageError",
    "StorageQuotaError",
    "WeatherFetchError",
    "RealtimeSubscriptionError",
    "LimitCheckError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "safe_execute",
    "safe_execute_async",
    "ErrorContext",
    "error_boundary",
]
