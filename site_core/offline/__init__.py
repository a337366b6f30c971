# =============================================================================
# site_core/offline/__init__.py
# Offline-First Storage for SitePulse
# =============================================================================
"""
Offline Module

Local, disposable copies of server data plus the offline form drafts that
stay authoritative until they are submitted.

Architecture:
------------
┌──────────────────────────────────────────────────────────┐
│  OfflineFormStore        OfflineSnapshotStore            │
│  ("offline_forms")       ("offlineData")                 │
│            │                      │                      │
│            └──────────┬───────────┘                      │
│                       ▼                                  │
│                ┌──────────────┐                          │
│                │ LocalStorage │  SQLite key/value blobs  │
│                └──────────────┘                          │
│                                                          │
│  ConnectionManager ──► ConnectivityNotifier (toasts,     │
│  (host online/offline    reconnect reconciliation)       │
│   signal)                                                │
└──────────────────────────────────────────────────────────┘

Usage:
------
from site_core.offline import LocalStorage, OfflineFormStore

storage = LocalStorage("local_data/sitepulse.db")
forms = OfflineFormStore(storage)
forms.init()
draft_id = forms.save("tpl-7", "Concrete Pour Checklist", {"slab": "B2"})
"""

from site_core.offline.local_storage import LocalStorage

from site_core.offline.form_drafts import (
    OFFLINE_FORMS_KEY,
    OfflineFormRecord,
    OfflineFormStore,
)

from site_core.offline.snapshot_store import (
    OFFLINE_DATA_KEY,
    OfflineSnapshot,
    OfflineSnapshotStore,
)

from site_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
    ConnectivityEvent,
    ConnectivityNotifier,
)

__all__ = [
    # Storage medium
    "LocalStorage",
    # Form drafts
    "OFFLINE_FORMS_KEY",
    "OfflineFormRecord",
    "OfflineFormStore",
    # Snapshot
    "OFFLINE_DATA_KEY",
    "OfflineSnapshot",
    "OfflineSnapshotStore",
    # Connection Management
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    "ConnectivityEvent",
    "ConnectivityNotifier",
]
