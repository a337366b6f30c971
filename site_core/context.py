# =============================================================================
# site_core/context.py
# Composition Root for a SitePulse Session
# =============================================================================
"""
SiteContext - every component of a session, built explicitly and owned in
one place (no module-level singletons).

    settings = load_settings()
    client = await get_supabase_client(settings)
    ctx = SiteContext.build(settings, client, StreamlitNotifier())
    ctx.init()

    scope = await ctx.watch_tasks()
    ...
    await scope.aclose()       # leaving the view
    await ctx.teardown()       # ending the session
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, List, Optional
import logging

from site_core.api.weather_client import WeatherClient
from site_core.cache.query_cache import QueryCache
from site_core.offline.connection_manager import ConnectionManager, ConnectivityNotifier
from site_core.offline.form_drafts import OfflineFormStore
from site_core.offline.local_storage import LocalStorage
from site_core.offline.snapshot_store import OfflineSnapshotStore
from site_core.realtime.channels import ChannelTopic, RealtimeListener
from site_core.realtime.events import ChangeEvent
from site_core.realtime.reconciler import Reconciler, ReconciliationRule
from site_core.realtime.scope import ViewScope
from site_core.realtime.topics import (
    FileActivityFeed,
    file_rules,
    file_updates_topic,
    project_rules,
    project_topic,
    task_rules,
    tasks_topic,
)
from site_core.errors import ErrorContext
from site_core.logging import LogContext, setup_logging
from site_core.settings import Settings, get_supabase_client, load_settings
from site_core.subscription.limit_gate import LimitGate
from site_core.ui.notifications import Notifier, StreamlitNotifier

logger = logging.getLogger(__name__)


@dataclass
class SiteContext:
    settings: Settings
    notifier: Notifier
    storage: LocalStorage
    forms: OfflineFormStore
    snapshot: OfflineSnapshotStore
    connection: ConnectionManager
    connectivity: ConnectivityNotifier
    query_cache: QueryCache
    weather: WeatherClient
    realtime: RealtimeListener
    limits: LimitGate
    _scopes: List[ViewScope] = field(default_factory=list)

    @classmethod
    def build(cls, settings: Settings, client, notifier: Notifier, initial_online: bool = True) -> SiteContext:
        storage = LocalStorage(settings.storage_path, quota_bytes=settings.storage_quota_bytes)
        connection = ConnectionManager(initial_online=initial_online)
        query_cache = QueryCache(gc_time=timedelta(minutes=settings.weather_gc_minutes).total_seconds())

        return cls(
            settings=settings,
            notifier=notifier,
            storage=storage,
            forms=OfflineFormStore(storage, connection=connection),
            snapshot=OfflineSnapshotStore(storage),
            connection=connection,
            connectivity=ConnectivityNotifier(connection, notifier),
            query_cache=query_cache,
            weather=WeatherClient(
                client,
                query_cache=query_cache,
                connection=connection,
                stale_time=timedelta(minutes=settings.weather_stale_minutes),
                refetch_interval=timedelta(minutes=settings.weather_refetch_minutes),
            ),
            realtime=RealtimeListener(client, notifier),
            limits=LimitGate(client, notifier),
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def init(self) -> None:
        """Hydrate local stores and start listening for connectivity changes."""
        self.forms.init()
        self.snapshot.init()
        self.connectivity.on_reconnect(self.query_cache.invalidate_all)
        self.connectivity.start()
        logger.info("Site context initialized")

    async def teardown(self) -> None:
        async with LogContext(logger, "Tearing down site context"):
            for scope in list(self._scopes):
                await scope.aclose()
            self._scopes.clear()
            await self.realtime.close_all()
            await self.query_cache.drain()
            self.connectivity.stop()
            self.forms.teardown()
            self.snapshot.teardown()
            self.storage.close()

    # =========================================================================
    # VIEWS
    # =========================================================================

    async def _watch(
        self,
        name: str,
        topic: ChannelTopic,
        rules: List[ReconciliationRule],
        on_event: Optional[Callable[[ChangeEvent], object]] = None,
    ) -> ViewScope:
        scope = ViewScope(name)
        reconciler = Reconciler(self.query_cache, rules)

        def handle(event: ChangeEvent) -> None:
            reconciler.handle(event)
            if on_event is not None:
                on_event(event)

        subscription = await self.realtime.subscribe(topic, handle)
        scope.add_disposer(subscription.unsubscribe)
        self._track(scope)
        return scope

    async def watch_project(self, project_id: str) -> ViewScope:
        """Members and audit log of one project."""
        return await self._watch(f"project-{project_id}", project_topic(project_id), project_rules(project_id))

    async def watch_tasks(self) -> ViewScope:
        return await self._watch("task-board", tasks_topic(), task_rules())

    async def watch_files(self, project_id: str, feed: Optional[FileActivityFeed] = None) -> ViewScope:
        feed = feed if feed is not None else FileActivityFeed(self.notifier)
        return await self._watch(
            f"files-{project_id}", file_updates_topic(project_id), file_rules(project_id), on_event=feed
        )

    async def watch_weather(self, project_id: str, address: Optional[str] = None) -> ViewScope:
        """Weather panel: an immediate load, then the background refresh loop, both owned by the view."""
        scope = ViewScope(f"weather-{project_id}")
        self.weather.start_auto_refresh(scope, project_id, address)
        self._track(scope)
        return scope

    def _track(self, scope: ViewScope) -> None:
        self._scopes.append(scope)

        def forget() -> None:
            if scope in self._scopes:
                self._scopes.remove(scope)

        scope.add_disposer(forget)

    @property
    def open_views(self) -> int:
        return len(self._scopes)


async def create_context(
    settings: Optional[Settings] = None,
    notifier: Optional[Notifier] = None,
    log_to_file: bool = True,
) -> SiteContext:
    """
    Load settings, configure logging, connect to Supabase and hydrate stores.

    Raises:
        ConfigurationError: Supabase credentials are missing or rejected
    """
    settings = settings or load_settings()
    setup_logging(settings.log_level, log_to_file=log_to_file)

    notifier = notifier if notifier is not None else StreamlitNotifier()

    async with ErrorContext("Connecting to Supabase", notifier=notifier, recoverable=False):
        client = await get_supabase_client(settings)

    ctx = SiteContext.build(settings, client, notifier)
    ctx.init()
    return ctx
