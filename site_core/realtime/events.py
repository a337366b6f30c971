# =============================================================================
# site_core/realtime/events.py
# Row Change Notifications
# =============================================================================
"""
ChangeEvent - one INSERT/UPDATE/DELETE notification pushed by the server.

Two payload shapes are accepted:

    {"eventType": "UPDATE", "new": {...}, "old": {...}, "table": "tasks"}
    {"data": {"type": "UPDATE", "record": {...}, "old_record": {...}, "table": "tasks"}}

Either ``new`` or ``old`` may be missing (DELETE carries only ``old``,
INSERT only ``new``).
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional
import logging

logger = logging.getLogger(__name__)

ACTOR_FIELDS = ("actor_id", "user_id", "uploader_id", "updated_by", "created_by")


class ChangeAction(Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    action: ChangeAction
    new: Dict[str, Any] = field(default_factory=dict)
    old: Dict[str, Any] = field(default_factory=dict)
    commit_timestamp: Optional[str] = None
    received_at: datetime = field(default_factory=_utcnow, compare=False)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], table: Optional[str] = None) -> Optional[ChangeEvent]:
        """
        Normalize a raw channel payload.

        Returns:
            None when the payload carries no recognizable action
        """
        if not isinstance(payload, dict):
            return None

        body = payload.get("data") if isinstance(payload.get("data"), dict) else payload

        raw_action = body.get("eventType") or body.get("type")
        try:
            action = ChangeAction(str(raw_action).upper())
        except ValueError:
            logger.debug(f"Ignoring realtime payload without a row action: {raw_action!r}")
            return None

        new = body.get("new") if "new" in body else body.get("record")
        old = body.get("old") if "old" in body else body.get("old_record")

        return cls(
            table=body.get("table") or table or "",
            action=action,
            new=dict(new or {}),
            old=dict(old or {}),
            commit_timestamp=body.get("commit_timestamp"),
        )

    @property
    def record(self) -> Dict[str, Any]:
        """The row as known after the change (or before it, for DELETE)."""
        return self.new or self.old

    def record_id(self, id_field: str = "id") -> Any:
        return self.record.get(id_field)

    @property
    def project_id(self) -> Any:
        return self.record.get("project_id")

    @property
    def actor_id(self) -> Any:
        for name in ACTOR_FIELDS:
            if self.record.get(name):
                return self.record[name]
        return None

    @property
    def timestamp(self) -> str:
        return self.commit_timestamp or self.received_at.isoformat()

    @property
    def field_names(self) -> FrozenSet[str]:
        """Columns that differ between ``old`` and ``new`` (all of ``new`` when ``old`` is partial)."""
        if not self.old:
            return frozenset(self.new)
        return frozenset(k for k, v in self.new.items() if k in self.old and self.old[k] != v)
