# =============================================================================
# site_core/errors/handlers.py
# Error Handling Utilities for SitePulse
# =============================================================================

from __future__ import annotations
import functools
import traceback
from typing import Any, Awaitable, Callable, Optional, TypeVar

from site_core.logging import get_logger
from site_core.ui.notifications import DESTRUCTIVE, LoggingNotifier, Notifier
from .exceptions import SitePulseError

logger = get_logger(__name__)

T = TypeVar("T")

_fallback_notifier = LoggingNotifier()


def handle_error(
    error: Exception,
    notifier: Optional[Notifier] = None,
    show_user_message: bool = True,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> None:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        notifier: Notification surface (defaults to a logging notifier)
        show_user_message: Whether to surface the error as a notification
        log_error: Whether to log the error
        user_message: Custom message to show user (uses error message if None)
    """
    if isinstance(error, SitePulseError):
        message = user_message or error.message
        code = error.code
        details = error.details
        recoverable = error.recoverable
    else:
        message = user_message or str(error)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}
        recoverable = True

    if log_error:
        logger.error(
            f"[{code}] {message}",
            extra={"details": details},
            exc_info=error,
        )

    if show_user_message:
        notifier = notifier or _fallback_notifier
        if recoverable:
            notifier.notify("Something went wrong", message, variant=DESTRUCTIVE)
        else:
            notifier.notify(
                "Critical error",
                f"{message}. Please contact support.",
                variant=DESTRUCTIVE,
            )


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    error_message: Optional[str] = None,
    notifier: Optional[Notifier] = None,
    reraise: bool = False,
    **kwargs,
) -> Optional[T]:
    """
    Execute a function with automatic error handling.

    Usage:
        drafts = safe_execute(
            store.list,
            default=[],
            error_message="Could not read offline drafts",
            notifier=notifier,
        )
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        handle_error(e, notifier=notifier, user_message=error_message)
        if reraise:
            raise
        return default


async def safe_execute_async(
    func: Callable[..., Awaitable[T]],
    *args,
    default: Optional[T] = None,
    error_message: Optional[str] = None,
    notifier: Optional[Notifier] = None,
    reraise: bool = False,
    **kwargs,
) -> Optional[T]:
    """Awaitable counterpart of ``safe_execute`` for coroutine functions."""
    try:
        return await func(*args, **kwargs)
    except Exception as e:
        handle_error(e, notifier=notifier, user_message=error_message)
        if reraise:
            raise
        return default


class ErrorContext:
    """
    Context manager for error handling with automatic logging and user feedback.

    Usage:
        with ErrorContext("Saving form draft", notifier=notifier):
            store.save(template_id, name, data)

        # On error, logs and notifies: "Error during: Saving form draft"
    """

    def __init__(
        self,
        operation: str,
        notifier: Optional[Notifier] = None,
        recoverable: bool = True,
        show_success: bool = False,
        success_message: Optional[str] = None,
    ):
        self.operation = operation
        self.notifier = notifier
        self.recoverable = recoverable
        self.show_success = show_success
        self.success_message = success_message

    def __enter__(self) -> ErrorContext:
        logger.info(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            if isinstance(exc_val, SitePulseError):
                handle_error(exc_val, notifier=self.notifier)
            else:
                handle_error(
                    exc_val,
                    notifier=self.notifier,
                    user_message=f"Error during: {self.operation}",
                )

            # Suppress exception if recoverable
            return self.recoverable

        logger.info(f"Completed: {self.operation}")
        if self.show_success and self.notifier is not None:
            self.notifier.notify(self.success_message or f"{self.operation} completed")

        return False

    async def __aenter__(self) -> ErrorContext:
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        return self.__exit__(exc_type, exc_val, exc_tb)


def error_boundary(
    default_return: Any = None,
    error_message: Optional[str] = None,
    log: bool = True,
):
    """
    Decorator to wrap coroutine functions with error handling.

    The wrapped callable's first positional argument may expose a
    ``notifier`` attribute; when it does and ``error_message`` is set, the
    message is surfaced through it.

    Usage:
        @error_boundary(default_return=None, error_message="Weather unavailable")
        async def load_weather(self, project_id):
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[Optional[T]]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if log:
                    logger.error(
                        f"Error in {func.__name__}: {e}",
                        exc_info=True,
                    )
                if error_message:
                    notifier = getattr(args[0], "notifier", None) if args else None
                    (notifier or _fallback_notifier).notify(
                        error_message, str(e), variant=DESTRUCTIVE
                    )
                return default_return

        return wrapper

    return decorator
