# =============================================================================
# site_core/offline/form_drafts.py
# Offline Form Draft Storage
# =============================================================================
"""
OfflineFormStore - form submissions saved locally before the server confirms them.

Drafts live in memory and are mirrored to the ``offline_forms`` namespace of
a LocalStorage. The in-memory list is what callers read; if the medium
fails (quota, serialization) the failure is logged and the memory copy stays
the source of truth for the rest of the session.
"""

from __future__ import annotations
import json
import random
import string
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import logging

import pandas as pd

from site_core.errors import StorageError
from site_core.offline.local_storage import LocalStorage

logger = logging.getLogger(__name__)

OFFLINE_FORMS_KEY = "offline_forms"

_ID_ALPHABET = string.digits + string.ascii_lowercase


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def generate_draft_id(now_ms: Optional[int] = None) -> str:
    """Return an id like ``offline_1718000000000_k3j9x0a2b``."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"offline_{now_ms if now_ms is not None else _now_ms()}_{suffix}"


@dataclass
class OfflineFormRecord:
    """A single locally held form draft."""
    id: str
    form_template_id: str
    form_name: str
    data: Any
    timestamp: int = field(default_factory=_now_ms)
    is_submitted: bool = False

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "formTemplateId": self.form_template_id,
            "formName": self.form_name,
            "data": self.data,
            "timestamp": self.timestamp,
            "isSubmitted": self.is_submitted,
        }

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> OfflineFormRecord:
        return cls(
            id=str(raw["id"]),
            form_template_id=str(raw["formTemplateId"]),
            form_name=raw.get("formName", ""),
            data=raw.get("data"),
            timestamp=int(raw.get("timestamp", 0)),
            is_submitted=bool(raw.get("isSubmitted", False)),
        )


class OfflineFormStore:
    """
    Local persistence for offline form drafts.

    Usage:
        store = OfflineFormStore(storage)
        store.init()
        draft_id = store.save("tpl-1", "Daily Safety Check", {"crew": 4})
        store.mark_submitted(draft_id)
    """

    def __init__(
        self,
        storage: LocalStorage,
        connection=None,
        clock: Callable[[], int] = _now_ms,
    ):
        """
        Args:
            storage: Key/value medium
            connection: Optional ConnectionManager, used for storage_info()
            clock: Returns epoch milliseconds
        """
        self.storage = storage
        self.connection = connection
        self._clock = clock
        self._forms: List[OfflineFormRecord] = []
        self._persist_ok = True
        self._initialized = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def init(self) -> None:
        """Hydrate in-memory drafts from storage. Never raises."""
        self._forms = self._load()
        self._initialized = True
        logger.info(f"Offline form store ready ({len(self._forms)} drafts)")

    def teardown(self) -> None:
        self._initialized = False

    def _load(self) -> List[OfflineFormRecord]:
        try:
            stored = self.storage.get_item(OFFLINE_FORMS_KEY)
            if not stored:
                return []
            raw = json.loads(stored)
            if not isinstance(raw, list):
                raise ValueError(f"expected a list, got {type(raw).__name__}")
            return [OfflineFormRecord.from_json(item) for item in raw]
        except (StorageError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Error loading offline forms, starting empty: {e}")
            return []

    def _persist(self) -> None:
        """Write the whole list; failures leave memory as the source of truth."""
        try:
            payload = json.dumps([form.to_json() for form in self._forms])
            self.storage.set_item(OFFLINE_FORMS_KEY, payload)
            self._persist_ok = True
        except (StorageError, TypeError, ValueError) as e:
            self._persist_ok = False
            logger.error(f"Error persisting offline forms, keeping in memory: {e}")

    @property
    def is_persisted(self) -> bool:
        """False after a failed write, until the next successful one."""
        return self._persist_ok

    # =========================================================================
    # CRUD
    # =========================================================================

    def save(self, form_template_id: str, form_name: str, data: Any) -> str:
        """Add a new draft and return its id. Drafts for one template coexist."""
        now = self._clock()
        record = OfflineFormRecord(
            id=generate_draft_id(now),
            form_template_id=form_template_id,
            form_name=form_name,
            data=data,
            timestamp=now,
        )
        self._forms = [*self._forms, record]
        self._persist()
        return record.id

    def update(self, form_id: str, data: Any) -> bool:
        """Replace a draft's data and refresh its timestamp."""
        found = False
        updated = []
        for form in self._forms:
            if form.id == form_id:
                form = replace(form, data=data, timestamp=self._clock())
                found = True
            updated.append(form)

        if not found:
            logger.debug(f"Draft {form_id} not found for update")
            return False

        self._forms = updated
        self._persist()
        return True

    def mark_submitted(self, form_id: str) -> bool:
        found = False
        updated = []
        for form in self._forms:
            if form.id == form_id:
                form = replace(form, is_submitted=True)
                found = True
            updated.append(form)

        if found:
            self._forms = updated
            self._persist()
        return found

    def delete(self, form_id: str) -> bool:
        remaining = [form for form in self._forms if form.id != form_id]
        if len(remaining) == len(self._forms):
            return False
        self._forms = remaining
        self._persist()
        return True

    def get(self, form_id: str) -> Optional[OfflineFormRecord]:
        for form in self._forms:
            if form.id == form_id:
                return form
        return None

    def list(
        self,
        where: Optional[Callable[[OfflineFormRecord], bool]] = None,
        *,
        form_template_id: Optional[str] = None,
        is_submitted: Optional[bool] = None,
    ) -> List[OfflineFormRecord]:
        """
        Return drafts in insertion order, optionally filtered.

        Args:
            where: Arbitrary predicate
            form_template_id: Only drafts of this template
            is_submitted: Only submitted (True) or pending (False) drafts
        """
        forms = list(self._forms)
        if form_template_id is not None:
            forms = [f for f in forms if f.form_template_id == form_template_id]
        if is_submitted is not None:
            forms = [f for f in forms if f.is_submitted == is_submitted]
        if where is not None:
            forms = [f for f in forms if where(f)]
        return forms

    def pending(self) -> List[OfflineFormRecord]:
        return self.list(is_submitted=False)

    def submitted(self) -> List[OfflineFormRecord]:
        return self.list(is_submitted=True)

    def clear(self) -> None:
        self._forms = []
        try:
            self.storage.remove_item(OFFLINE_FORMS_KEY)
        except StorageError as e:
            logger.error(f"Error clearing offline forms: {e}")

    # =========================================================================
    # REPORTING
    # =========================================================================

    def storage_info(self) -> Dict[str, Any]:
        """Counts and estimated size of the drafts, for the offline panel."""
        size = len(json.dumps([f.to_json() for f in self._forms], default=str))
        return {
            "total_forms": len(self._forms),
            "pending_forms": len(self.pending()),
            "submitted_forms": len(self.submitted()),
            "storage_size_kb": round(size / 1024),
            "persisted": self._persist_ok,
            "is_offline": self.connection.is_offline if self.connection is not None else None,
        }

    def to_frame(self) -> pd.DataFrame:
        """Drafts as a DataFrame (one row per draft, newest first)."""
        columns = ["id", "form_template_id", "form_name", "saved_at", "is_submitted"]
        if not self._forms:
            return pd.DataFrame(columns=columns)

        df = pd.DataFrame(
            [
                {
                    "id": f.id,
                    "form_template_id": f.form_template_id,
                    "form_name": f.form_name,
                    "saved_at": pd.to_datetime(f.timestamp, unit="ms", utc=True),
                    "is_submitted": f.is_submitted,
                }
                for f in self._forms
            ],
            columns=columns,
        )
        return df.sort_values("saved_at", ascending=False).reset_index(drop=True)
