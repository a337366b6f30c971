# =============================================================================
# site_core/realtime/channels.py
# Realtime Channel Subscriptions
# =============================================================================
"""
RealtimeListener - one channel per topic, released through its Subscription.

A topic groups several table bindings (e.g. project members and the audit
log of one project) onto a single channel so a view holds one server-side
subscription, not one per table.

    sub = await listener.subscribe(project_topic("p1"), reconciler.handle)
    ...
    await sub.unsubscribe()      # exactly one remove_channel call

or, scoped:

    async with listener.scoped(project_topic("p1"), reconciler.handle):
        ...
"""

from __future__ import annotations
import asyncio
import inspect
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, List, Optional, Set, Tuple
import logging

from site_core.errors import RealtimeSubscriptionError
from site_core.realtime.events import ChangeEvent
from site_core.ui.notifications import DESTRUCTIVE, Notifier

logger = logging.getLogger(__name__)

ChangeHandler = Callable[[ChangeEvent], Any]


@dataclass(frozen=True)
class TableBinding:
    table: str
    filter: Optional[str] = None
    event: str = "*"
    schema: str = "public"


@dataclass(frozen=True)
class ChannelTopic:
    name: str
    bindings: Tuple[TableBinding, ...] = field(default_factory=tuple)


class ChannelState(Enum):
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    ERROR = "error"
    CLOSED = "closed"


# Status strings reported by the realtime client's subscribe callback
_STATUS_MAP = {
    "SUBSCRIBED": ChannelState.SUBSCRIBED,
    "CHANNEL_ERROR": ChannelState.ERROR,
    "TIMED_OUT": ChannelState.ERROR,
    "CLOSED": ChannelState.CLOSED,
}


class Subscription:
    """Handle for one open channel. ``unsubscribe`` is safe to call repeatedly."""

    def __init__(self, listener: RealtimeListener, topic: ChannelTopic, channel: Any):
        self.listener = listener
        self.topic = topic
        self.channel = channel
        self.state = ChannelState.CONNECTING
        self.error: Optional[str] = None
        self.events_received = 0
        self._released = False
        self._handler_tasks: Set[asyncio.Task] = set()

    @property
    def is_connected(self) -> bool:
        return self.state == ChannelState.SUBSCRIBED

    @property
    def released(self) -> bool:
        return self._released

    @property
    def pending_handlers(self) -> int:
        return len(self._handler_tasks)

    def _track(self, task: asyncio.Task) -> None:
        self._handler_tasks.add(task)
        task.add_done_callback(self._on_handler_done)

    def _on_handler_done(self, task: asyncio.Task) -> None:
        self._handler_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Error handling realtime event on {self.topic.name}: {error}")

    def _on_status(self, status: Any, err: Optional[Exception] = None) -> None:
        name = str(getattr(status, "value", status)).upper()
        new_state = _STATUS_MAP.get(name)
        if new_state is None or self._released:
            return

        logger.info(f"Realtime subscription status for {self.topic.name}: {name}")
        if new_state == ChannelState.ERROR and self.state != ChannelState.ERROR:
            self.state = new_state
            self.listener._report_failure(
                RealtimeSubscriptionError(
                    f"Could not subscribe to live updates ({name.lower()})",
                    channel=self.topic.name,
                    status=name,
                    details={"cause": str(err)} if err else None,
                )
            )
            return
        self.state = new_state

    async def unsubscribe(self) -> None:
        if self._released:
            return
        self._released = True
        self.state = ChannelState.CLOSED
        for task in list(self._handler_tasks):
            task.cancel()
        try:
            await self.listener.client.remove_channel(self.channel)
        except Exception as e:
            logger.error(f"Error removing channel {self.topic.name}: {e}")
        finally:
            self.listener._open.discard(self)
        logger.debug(f"Unsubscribed from {self.topic.name}")


class RealtimeListener:
    """
    Opens realtime channels on an async Supabase client and tracks them so
    leaks are visible (``open_channels``).
    """

    def __init__(self, client, notifier: Notifier):
        self.client = client
        self.notifier = notifier
        self._open: Set[Subscription] = set()

    @property
    def open_channels(self) -> int:
        return len(self._open)

    def subscriptions(self) -> List[Subscription]:
        return list(self._open)

    async def subscribe(self, topic: ChannelTopic, handler: ChangeHandler) -> Subscription:
        """
        Open one channel carrying every binding of ``topic``.

        Subscribe failures are reported once through the notifier and leave
        the subscription in ERROR; the caller still owns it and must release it.
        """
        if not topic.bindings:
            raise ValueError(f"Topic '{topic.name}' has no table bindings")

        channel = self.client.channel(topic.name)
        subscription = Subscription(self, topic, channel)
        self._open.add(subscription)

        for binding in topic.bindings:
            channel.on_postgres_changes(
                binding.event,
                callback=self._make_callback(subscription, binding, handler),
                table=binding.table,
                schema=binding.schema,
                filter=binding.filter,
            )

        try:
            await channel.subscribe(subscription._on_status)
        except Exception as e:
            subscription.state = ChannelState.ERROR
            self._report_failure(
                RealtimeSubscriptionError(
                    f"Could not subscribe to live updates: {e}",
                    channel=topic.name,
                )
            )

        return subscription

    @asynccontextmanager
    async def scoped(self, topic: ChannelTopic, handler: ChangeHandler) -> AsyncIterator[Subscription]:
        subscription = await self.subscribe(topic, handler)
        try:
            yield subscription
        finally:
            await subscription.unsubscribe()

    async def close_all(self) -> None:
        for subscription in list(self._open):
            await subscription.unsubscribe()

    def _make_callback(self, subscription: Subscription, binding: TableBinding, handler: ChangeHandler):
        def callback(payload: Any) -> None:
            if subscription.released:
                return
            event = ChangeEvent.from_payload(payload, table=binding.table)
            if event is None:
                return
            subscription.events_received += 1
            logger.debug(f"Real-time {event.table} {event.action.value} on {subscription.topic.name}")
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    subscription._track(asyncio.ensure_future(result))
            except Exception as e:
                logger.error(f"Error handling realtime event on {subscription.topic.name}: {e}")

        return callback

    def _report_failure(self, error: RealtimeSubscriptionError) -> None:
        logger.error(str(error))
        self.notifier.notify(
            "Live updates unavailable",
            error.message,
            variant=DESTRUCTIVE,
        )
