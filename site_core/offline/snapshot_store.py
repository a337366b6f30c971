# =============================================================================
# site_core/offline/snapshot_store.py
# Offline Snapshot of Projects, Tasks and Team Members
# =============================================================================
"""
OfflineSnapshotStore - the last synced copy of list data, shown while offline.

The snapshot is a derived, disposable copy. Each supplied collection replaces
the stored one wholesale; there is no per-record merge, so the most recent
sync wins.
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import logging

from site_core.errors import StorageError
from site_core.offline.local_storage import LocalStorage

logger = logging.getLogger(__name__)

OFFLINE_DATA_KEY = "offlineData"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class OfflineSnapshot:
    projects: List[Dict[str, Any]] = field(default_factory=list)
    tasks: List[Dict[str, Any]] = field(default_factory=list)
    team_members: List[Dict[str, Any]] = field(default_factory=list)
    last_sync: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "projects": self.projects,
            "tasks": self.tasks,
            "teamMembers": self.team_members,
            "lastSync": self.last_sync,
        }

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> OfflineSnapshot:
        return cls(
            projects=list(raw.get("projects") or []),
            tasks=list(raw.get("tasks") or []),
            team_members=list(raw.get("teamMembers") or []),
            last_sync=raw.get("lastSync"),
        )


class OfflineSnapshotStore:
    """Process-wide snapshot holder, constructed and injected explicitly."""

    def __init__(self, storage: LocalStorage, clock: Callable[[], datetime] = _utcnow):
        self.storage = storage
        self._clock = clock
        self._snapshot: Optional[OfflineSnapshot] = None

    def init(self) -> None:
        self._snapshot = self._read()

    def teardown(self) -> None:
        self._snapshot = None

    @property
    def snapshot(self) -> Optional[OfflineSnapshot]:
        return self._snapshot

    def _read(self) -> Optional[OfflineSnapshot]:
        try:
            stored = self.storage.get_item(OFFLINE_DATA_KEY)
            if not stored:
                return None
            raw = json.loads(stored)
            if not isinstance(raw, dict):
                raise ValueError(f"expected an object, got {type(raw).__name__}")
            return OfflineSnapshot.from_json(raw)
        except (StorageError, ValueError, TypeError) as e:
            logger.error(f"Failed to load offline data: {e}")
            return None

    def save(
        self,
        projects: Optional[List[Dict[str, Any]]] = None,
        tasks: Optional[List[Dict[str, Any]]] = None,
        team_members: Optional[List[Dict[str, Any]]] = None,
    ) -> OfflineSnapshot:
        """
        Replace the supplied collections and stamp ``last_sync``.

        Omitted collections keep their previous value. Storage faults are
        logged; the returned snapshot is still held in memory.
        """
        current = self._snapshot or OfflineSnapshot()
        updated = OfflineSnapshot(
            projects=list(projects) if projects is not None else current.projects,
            tasks=list(tasks) if tasks is not None else current.tasks,
            team_members=list(team_members) if team_members is not None else current.team_members,
            last_sync=self._clock().isoformat(),
        )
        self._snapshot = updated

        try:
            self.storage.set_item(OFFLINE_DATA_KEY, json.dumps(updated.to_json()))
        except (StorageError, TypeError, ValueError) as e:
            logger.error(f"Failed to save offline data: {e}")

        return updated

    def load(self) -> Optional[OfflineSnapshot]:
        """Re-read the snapshot from storage, falling back to memory."""
        stored = self._read()
        if stored is not None:
            self._snapshot = stored
        return self._snapshot

    def clear(self) -> None:
        self._snapshot = None
        try:
            self.storage.remove_item(OFFLINE_DATA_KEY)
        except StorageError as e:
            logger.error(f"Failed to clear offline data: {e}")
