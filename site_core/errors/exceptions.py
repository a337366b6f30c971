# =============================================================================
# site_core/errors/exceptions.py
# Custom Exception Hierarchy for SitePulse
# =============================================================================

from typing import Optional, Dict, Any


class SitePulseError(Exception):
    """
    Base exception for all SitePulse errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "STORE_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "SP_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# LOCAL STORAGE EXCEPTIONS
# =============================================================================

class StorageError(SitePulseError):
    """Raised when the local key/value medium cannot read or write"""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if key:
            details["key"] = key

        super().__init__(
            message=message,
            code=kwargs.pop("code", "STORE_001"),
            details=details,
            **kwargs,
        )


class StorageQuotaError(StorageError):
    """Raised when a write would exceed the local storage quota"""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        quota_bytes: Optional[int] = None,
        requested_bytes: Optional[int] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if quota_bytes is not None:
            details["quota_bytes"] = quota_bytes
        if requested_bytes is not None:
            details["requested_bytes"] = requested_bytes

        super().__init__(
            message=message,
            key=key,
            code="STORE_002",
            details=details,
            **kwargs,
        )


# =============================================================================
# NETWORK / PROVIDER EXCEPTIONS
# =============================================================================

class WeatherFetchError(SitePulseError):
    """Raised when the weather provider function fails or returns an error payload"""

    def __init__(
        self,
        message: str,
        project_id: Optional[str] = None,
        provider_error: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if project_id:
            details["project_id"] = project_id
        if provider_error:
            details["provider_error"] = provider_error

        super().__init__(
            message=message,
            code="WEATHER_001",
            details=details,
            **kwargs,
        )


class RealtimeSubscriptionError(SitePulseError):
    """Raised when a realtime channel cannot be joined"""

    def __init__(
        self,
        message: str,
        channel: Optional[str] = None,
        status: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if channel:
            details["channel"] = channel
        if status:
            details["status"] = status

        super().__init__(
            message=message,
            code="RT_001",
            details=details,
            **kwargs,
        )


class LimitCheckError(SitePulseError):
    """Raised when a plan usage aggregate cannot be read"""

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if kind:
            details["kind"] = kind

        super().__init__(
            message=message,
            code="LIMIT_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(SitePulseError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
