# =============================================================================
# site_core/realtime/__init__.py
# Realtime Change Feeds and Cache Reconciliation
# =============================================================================
"""
Realtime layer: server-pushed row changes reconciled into the query cache.

Usage:
------
from site_core.realtime import RealtimeListener, Reconciler, ViewScope, tasks_topic, task_rules

reconciler = Reconciler(query_cache, task_rules())
async with ViewScope("task-board") as scope:
    sub = await listener.subscribe(tasks_topic(), reconciler.handle)
    scope.add_disposer(sub.unsubscribe)
"""

from site_core.realtime.events import ChangeAction, ChangeEvent

from site_core.realtime.channels import (
    ChannelState,
    ChannelTopic,
    RealtimeListener,
    Subscription,
    TableBinding,
)

from site_core.realtime.reconciler import (
    ReconcileAction,
    Reconciler,
    ReconciliationRule,
)

from site_core.realtime.scope import ViewScope

from site_core.realtime.topics import (
    FileActivityFeed,
    FileUpdate,
    file_rules,
    file_updates_topic,
    project_rules,
    project_topic,
    task_rules,
    tasks_topic,
)

__all__ = [
    # Events
    "ChangeAction",
    "ChangeEvent",
    # Channels
    "ChannelState",
    "ChannelTopic",
    "RealtimeListener",
    "Subscription",
    "TableBinding",
    # Reconciliation
    "ReconcileAction",
    "Reconciler",
    "ReconciliationRule",
    # Scoping
    "ViewScope",
    # Topics
    "FileActivityFeed",
    "FileUpdate",
    "file_rules",
    "file_updates_topic",
    "project_rules",
    "project_topic",
    "task_rules",
    "tasks_topic",
]
