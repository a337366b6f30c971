# =============================================================================
# site_core/ui/__init__.py
# User-Facing Notification Surface
# =============================================================================

from .notifications import (
    DEFAULT,
    DESTRUCTIVE,
    LoggingNotifier,
    Notification,
    Notifier,
    StreamlitNotifier,
)

__all__ = [
    "DEFAULT",
    "DESTRUCTIVE",
    "LoggingNotifier",
    "Notification",
    "Notifier",
    "StreamlitNotifier",
]
