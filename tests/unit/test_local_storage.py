# =============================================================================
# tests/unit/test_local_storage.py
# Unit Tests for LocalStorage, OfflineFormStore and OfflineSnapshotStore
# =============================================================================

import json
import re

import pytest
import pandas as pd


class TestLocalStorage:
    """Test the SQLite key/value medium"""

    def test_set_and_get_item(self, memory_storage):
        """Stored text is returned unchanged"""
        memory_storage.set_item("k", '{"a": 1}')
        assert memory_storage.get_item("k") == '{"a": 1}'

    def test_missing_key_returns_none(self, memory_storage):
        """Unknown keys read as None"""
        assert memory_storage.get_item("nope") is None

    def test_overwrite_and_remove(self, memory_storage):
        """Set replaces, remove deletes"""
        memory_storage.set_item("k", "one")
        memory_storage.set_item("k", "two")
        assert memory_storage.get_item("k") == "two"
        assert memory_storage.keys() == ["k"]

        memory_storage.remove_item("k")
        assert memory_storage.get_item("k") is None

    def test_non_text_value_rejected(self, memory_storage):
        """Only text values are accepted"""
        from site_core.errors import StorageError

        with pytest.raises(StorageError):
            memory_storage.set_item("k", {"a": 1})

    def test_quota_exceeded_raises(self):
        """A write past the quota raises StorageQuotaError and keeps the old value"""
        from site_core.errors import StorageQuotaError
        from site_core.offline.local_storage import LocalStorage

        storage = LocalStorage(":memory:", quota_bytes=10)
        storage.set_item("k", "short")

        with pytest.raises(StorageQuotaError):
            storage.set_item("k", "x" * 50)

        assert storage.get_item("k") == "short"
        storage.close()

    def test_usage_counts_value_bytes(self, memory_storage):
        """Usage is the UTF-8 size of all values"""
        memory_storage.set_item("a", "abc")
        memory_storage.set_item("b", "é")
        assert memory_storage.usage_bytes() == 5


class TestOfflineFormStore:
    """Test offline form drafts"""

    def test_save_returns_offline_id(self, memory_storage):
        """Draft ids look like offline_<ms>_<suffix>"""
        from site_core.offline.form_drafts import OfflineFormStore

        store = OfflineFormStore(memory_storage, clock=lambda: 1700000000000)
        store.init()
        draft_id = store.save("tpl-1", "Daily Safety Check", {"crew": 4})

        assert re.fullmatch(r"offline_1700000000000_[0-9a-z]{9}", draft_id)
        record = store.get(draft_id)
        assert record.form_template_id == "tpl-1"
        assert record.is_submitted is False
        assert record.timestamp == 1700000000000

    def test_blob_uses_camel_case_keys(self, memory_storage):
        """The serialized list keeps the stored field names"""
        from site_core.offline.form_drafts import OFFLINE_FORMS_KEY, OfflineFormStore

        store = OfflineFormStore(memory_storage)
        store.init()
        store.save("tpl-1", "Checklist", {"x": 1})

        raw = json.loads(memory_storage.get_item(OFFLINE_FORMS_KEY))
        assert set(raw[0]) == {"id", "formTemplateId", "formName", "data", "timestamp", "isSubmitted"}

    def test_drafts_for_same_template_coexist(self, memory_storage):
        """Saving twice for one template keeps both drafts"""
        from site_core.offline.form_drafts import OfflineFormStore

        store = OfflineFormStore(memory_storage)
        store.init()
        first = store.save("tpl-1", "Checklist", {"n": 1})
        second = store.save("tpl-1", "Checklist", {"n": 2})

        assert first != second
        assert len(store.list(form_template_id="tpl-1")) == 2

    def test_round_trip_after_reload(self, file_storage):
        """save/update/delete sequence survives re-hydration"""
        from site_core.offline.form_drafts import OfflineFormStore

        ticks = iter(range(1000, 2000))
        store = OfflineFormStore(file_storage, clock=lambda: next(ticks))
        store.init()
        a = store.save("tpl-1", "A", {"v": 1})
        b = store.save("tpl-2", "B", {"v": 2})
        c = store.save("tpl-3", "C", {"v": 3})
        store.update(b, {"v": 20})
        store.delete(a)
        store.mark_submitted(c)
        before = store.list()

        reloaded = OfflineFormStore(file_storage)
        reloaded.init()

        assert reloaded.list() == before
        assert reloaded.get(b).data == {"v": 20}
        assert reloaded.get(c).is_submitted is True

    def test_update_refreshes_timestamp(self, memory_storage):
        """update replaces data and restamps the draft"""
        from site_core.offline.form_drafts import OfflineFormStore

        ticks = iter([100, 200])
        store = OfflineFormStore(memory_storage, clock=lambda: next(ticks))
        store.init()
        draft_id = store.save("tpl", "Form", {"a": 1})

        assert store.update(draft_id, {"a": 2}) is True
        assert store.get(draft_id).timestamp == 200
        assert store.update("missing", {}) is False

    def test_pending_and_submitted_filters(self, memory_storage):
        """pending/submitted split on is_submitted"""
        from site_core.offline.form_drafts import OfflineFormStore

        store = OfflineFormStore(memory_storage)
        store.init()
        a = store.save("tpl", "A", {})
        store.save("tpl", "B", {})
        store.mark_submitted(a)

        assert [f.form_name for f in store.pending()] == ["B"]
        assert [f.form_name for f in store.submitted()] == ["A"]
        assert store.list(where=lambda f: f.form_name == "B")[0].form_name == "B"

    def test_quota_fault_keeps_draft_in_memory(self):
        """A rejected write is logged, not raised, and the draft stays usable"""
        from site_core.offline.form_drafts import OfflineFormStore
        from site_core.offline.local_storage import LocalStorage

        storage = LocalStorage(":memory:", quota_bytes=20)
        store = OfflineFormStore(storage)
        store.init()

        draft_id = store.save("tpl-1", "Big Form", {"notes": "x" * 500})

        assert store.get(draft_id) is not None
        assert store.is_persisted is False
        assert store.storage_info()["persisted"] is False
        storage.close()

    def test_corrupt_blob_hydrates_empty(self, memory_storage):
        """Unparseable stored data starts an empty list"""
        from site_core.offline.form_drafts import OFFLINE_FORMS_KEY, OfflineFormStore

        memory_storage.set_item(OFFLINE_FORMS_KEY, "{not json")
        store = OfflineFormStore(memory_storage)
        store.init()

        assert store.list() == []

    def test_storage_info_reports_connection(self, memory_storage):
        """storage_info reflects counts and the offline flag"""
        from site_core.offline.connection_manager import ConnectionManager
        from site_core.offline.form_drafts import OfflineFormStore

        manager = ConnectionManager(initial_online=False)
        store = OfflineFormStore(memory_storage, connection=manager)
        store.init()
        store.save("tpl", "A", {})

        info = store.storage_info()
        assert info["total_forms"] == 1
        assert info["pending_forms"] == 1
        assert info["submitted_forms"] == 0
        assert info["is_offline"] is True

    def test_to_frame_newest_first(self, memory_storage):
        """to_frame sorts by saved_at descending"""
        from site_core.offline.form_drafts import OfflineFormStore

        ticks = iter([1000, 5000])
        store = OfflineFormStore(memory_storage, clock=lambda: next(ticks))
        store.init()
        store.save("tpl", "Old", {})
        store.save("tpl", "New", {})

        df = store.to_frame()
        assert isinstance(df, pd.DataFrame)
        assert list(df["form_name"]) == ["New", "Old"]

    def test_clear_removes_blob(self, memory_storage):
        """clear empties memory and storage"""
        from site_core.offline.form_drafts import OFFLINE_FORMS_KEY, OfflineFormStore

        store = OfflineFormStore(memory_storage)
        store.init()
        store.save("tpl", "A", {})
        store.clear()

        assert store.list() == []
        assert memory_storage.get_item(OFFLINE_FORMS_KEY) is None


class TestOfflineSnapshotStore:
    """Test the last-write-wins offline snapshot"""

    def test_save_stamps_last_sync(self, memory_storage, clock):
        """save records the sync time"""
        from site_core.offline.snapshot_store import OfflineSnapshotStore

        store = OfflineSnapshotStore(memory_storage, clock=clock)
        store.init()
        snapshot = store.save(projects=[{"id": "p1"}])

        assert snapshot.last_sync == clock.now.isoformat()
        assert snapshot.projects == [{"id": "p1"}]

    def test_partial_save_keeps_other_collections(self, memory_storage, clock):
        """Saving tasks keeps previously stored projects"""
        from site_core.offline.snapshot_store import OfflineSnapshotStore

        store = OfflineSnapshotStore(memory_storage, clock=clock)
        store.init()
        store.save(projects=[{"id": "p1"}])
        store.save(tasks=[{"id": "t1"}])

        reloaded = OfflineSnapshotStore(memory_storage)
        reloaded.init()
        assert reloaded.snapshot.projects == [{"id": "p1"}]
        assert reloaded.snapshot.tasks == [{"id": "t1"}]
        assert reloaded.snapshot.team_members == []

    def test_collections_replaced_wholesale(self, memory_storage, clock):
        """A supplied collection replaces the old one entirely"""
        from site_core.offline.snapshot_store import OfflineSnapshotStore

        store = OfflineSnapshotStore(memory_storage, clock=clock)
        store.init()
        store.save(projects=[{"id": "p1"}, {"id": "p2"}])
        store.save(projects=[{"id": "p3"}])

        assert store.load().projects == [{"id": "p3"}]

    def test_clear(self, memory_storage, clock):
        """clear drops the snapshot"""
        from site_core.offline.snapshot_store import OfflineSnapshotStore

        store = OfflineSnapshotStore(memory_storage, clock=clock)
        store.init()
        store.save(projects=[])
        store.clear()

        assert store.snapshot is None
        assert store.load() is None
