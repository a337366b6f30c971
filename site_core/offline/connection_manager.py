# =============================================================================
# site_core/offline/connection_manager.py
# Connection Status Tracking and Notifications
# =============================================================================
"""
ConnectionManager - tracks online/offline transitions reported by the host.

Features:
- Two states, ONLINE and OFFLINE, seeded from the host's current status
- Edge-triggered: one event per real transition, repeats are ignored
- Subscribers get an unsubscribe handle back
- No connectivity probing; the host signal is trusted even when it is wrong
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional
import logging

from site_core.ui.notifications import DESTRUCTIVE, Notifier

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.ONLINE
    last_change: Optional[datetime] = None
    last_online: Optional[datetime] = None
    transitions: int = 0


@dataclass(frozen=True)
class ConnectivityEvent:
    online: bool
    at: datetime


ConnectivityHandler = Callable[[ConnectivityEvent], None]
Unsubscribe = Callable[[], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionManager:
    """
    Holds the online/offline state for one client session.

    Usage:
        manager = ConnectionManager(initial_online=True)
        unsubscribe = manager.subscribe(on_change)
        manager.report(False)   # host says we went offline -> one event
        manager.report(False)   # same status again -> nothing
        unsubscribe()
    """

    def __init__(self, initial_online: bool = True, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        now = clock()
        self._state = ConnectionState(
            status=ConnectionStatus.ONLINE if initial_online else ConnectionStatus.OFFLINE,
            last_change=now,
            last_online=now if initial_online else None,
        )
        self._handlers: List[ConnectivityHandler] = []
        logger.info(f"ConnectionManager initialized. Status: {self._state.status.value}")

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        return self._state.status == ConnectionStatus.OFFLINE

    def report(self, online: bool) -> bool:
        """
        Feed a host network-status signal.

        Returns:
            True if the status changed and an event was emitted
        """
        new_status = ConnectionStatus.ONLINE if online else ConnectionStatus.OFFLINE
        if new_status == self._state.status:
            return False

        old_status = self._state.status
        now = self._clock()
        self._state.status = new_status
        self._state.last_change = now
        self._state.transitions += 1
        if online:
            self._state.last_online = now

        logger.info(f"Connection status changed: {old_status.value} -> {new_status.value}")
        self._notify_handlers(ConnectivityEvent(online=online, at=now))
        return True

    def subscribe(self, handler: ConnectivityHandler) -> Unsubscribe:
        """Register a transition handler and return its disposer."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    def _notify_handlers(self, event: ConnectivityEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        return {
            "status": self._state.status.value,
            "is_online": self.is_online,
            "last_change": self._state.last_change.isoformat() if self._state.last_change else None,
            "last_online": self._state.last_online.isoformat() if self._state.last_online else None,
            "transitions": self._state.transitions,
        }


class ConnectivityNotifier:
    """
    Turns connectivity transitions into toasts and runs reconciliation passes
    when the connection comes back.
    """

    def __init__(self, manager: ConnectionManager, notifier: Notifier):
        self.manager = manager
        self.notifier = notifier
        self._on_reconnect: List[Callable[[], None]] = []
        self._unsubscribe: Optional[Unsubscribe] = None

    def on_reconnect(self, callback: Callable[[], None]) -> None:
        self._on_reconnect.append(callback)

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.manager.subscribe(self._handle)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle(self, event: ConnectivityEvent) -> None:
        if event.online:
            self.notifier.notify("Back online", "Syncing latest data...")
            for callback in self._on_reconnect:
                try:
                    callback()
                except Exception as e:
                    logger.error(f"Reconciliation after reconnect failed: {e}")
        else:
            self.notifier.notify("You're offline", "Showing cached data", variant=DESTRUCTIVE)
