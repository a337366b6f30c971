# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import pytest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock


# =============================================================================
# FAKE SUPABASE CLIENT
# =============================================================================

class FakeQuery:
    """Chainable table query resolved against FakeSupabase.tables"""

    def __init__(self, db, table: str):
        self.db = db
        self.table_name = table
        self.filters: List[tuple] = []
        self._order: Optional[tuple] = None
        self._limit: Optional[int] = None
        self._upsert: Optional[tuple] = None
        self._count: Optional[str] = None

    def select(self, *columns, count=None):
        self._count = count
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, n):
        self._limit = n
        return self

    def upsert(self, row, on_conflict=None):
        self._upsert = (dict(row), on_conflict)
        return self

    async def execute(self):
        self.db.queries.append(self)
        error = self.db.table_errors.get(self.table_name)
        if error is not None:
            raise error

        rows = self.db.tables.setdefault(self.table_name, [])

        if self._upsert is not None:
            row, key = self._upsert
            for index, existing in enumerate(rows):
                if key and existing.get(key) == row.get(key):
                    rows[index] = row
                    break
            else:
                rows.append(row)
            return SimpleNamespace(data=[row], count=None)

        matched = [r for r in rows if all(r.get(c) == v for c, v in self.filters)]
        if self._order is not None:
            column, desc = self._order
            matched.sort(key=lambda r: r.get(column) or "", reverse=desc)
        if self._limit is not None:
            matched = matched[:self._limit]
        return SimpleNamespace(
            data=[dict(r) for r in matched],
            count=len(matched) if self._count == "exact" else None,
        )


class FakeRpc:
    def __init__(self, db, name: str, params: Dict[str, Any]):
        self.db = db
        self.name = name
        self.params = params

    async def execute(self):
        self.db.rpc_calls.append((self.name, self.params))
        result = self.db.rpc_results.get(self.name)
        if isinstance(result, Exception):
            raise result
        return SimpleNamespace(data=result)


class FakeChannel:
    """Records postgres_changes bindings and replays payloads to them"""

    def __init__(self, name: str, status: str = "SUBSCRIBED", fail_with: Optional[Exception] = None):
        self.name = name
        self.status = status
        self.fail_with = fail_with
        self.bindings: List[Dict[str, Any]] = []
        self.status_callback = None

    def on_postgres_changes(self, event, callback, table="*", schema="public", filter=None):
        self.bindings.append({
            "event": event, "callback": callback, "table": table,
            "schema": schema, "filter": filter,
        })
        return self

    async def subscribe(self, callback=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.status_callback = callback
        if callback is not None:
            callback(self.status, None)
        return self

    def push_status(self, status: str):
        self.status_callback(status, None)

    def emit(self, table: str, payload: Dict[str, Any]):
        for binding in self.bindings:
            if binding["table"] == table:
                binding["callback"](payload)


class FakeSupabase:
    """
    In-memory stand-in for the async Supabase client: tables, rpc,
    edge functions and realtime channels.
    """

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.table_errors: Dict[str, Exception] = {}
        self.queries: List[FakeQuery] = []
        self.rpc_results: Dict[str, Any] = {}
        self.rpc_calls: List[tuple] = []
        self.functions = SimpleNamespace(invoke=AsyncMock())
        self.channels: Dict[str, FakeChannel] = {}
        self.channel_status = "SUBSCRIBED"
        self.channel_error: Optional[Exception] = None
        self.remove_channel = AsyncMock()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> FakeRpc:
        return FakeRpc(self, name, params or {})

    def channel(self, name: str) -> FakeChannel:
        channel = FakeChannel(name, status=self.channel_status, fail_with=self.channel_error)
        self.channels[name] = channel
        return channel


@pytest.fixture
def fake_supabase():
    """Async Supabase client double"""
    return FakeSupabase()


# =============================================================================
# CLOCKS / STORAGE / NOTIFIER FIXTURES
# =============================================================================

class FakeClock:
    """Settable UTC clock"""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def no_sleep():
    """Awaitable sleep double that records requested delays"""
    return AsyncMock(return_value=None)


@pytest.fixture
def notifier():
    from site_core.ui.notifications import LoggingNotifier
    return LoggingNotifier()


@pytest.fixture
def memory_storage():
    """SQLite-backed LocalStorage kept in memory"""
    from site_core.offline.local_storage import LocalStorage

    storage = LocalStorage(":memory:")
    yield storage
    storage.close()


@pytest.fixture
def file_storage(tmp_path):
    """LocalStorage on a temp file, for reload tests"""
    from site_core.offline.local_storage import LocalStorage

    path = tmp_path / "local.db"
    storage = LocalStorage(path)
    yield storage
    storage.close()


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_streamlit(monkeypatch):
    """Mock Streamlit for testing"""
    import sys

    # Create mock streamlit module
    mock_st = MagicMock()
    mock_st.session_state = {}
    mock_st.cache_data = lambda f: f
    mock_st.cache_resource = lambda f: f

    monkeypatch.setitem(sys.modules, 'streamlit', mock_st)

    # Modules already imported hold their own reference
    import site_core.ui.notifications as notifications
    import site_core.ui.connectivity_indicator as indicator
    monkeypatch.setattr(notifications, 'st', mock_st)
    monkeypatch.setattr(indicator, 'st', mock_st)

    yield mock_st


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def weather_payload(**overrides) -> Dict[str, Any]:
    """Edge function response for a successful provider call"""
    payload = {
        "temperature_current": 72.4,
        "temperature_high": 80.0,
        "temperature_low": 61.0,
        "condition": "Clear",
        "humidity": 40,
        "wind_speed": 6.5,
        "weather_icon": "☀️",
    }
    payload.update(overrides)
    return payload


def cache_row(project_id: str, last_updated: datetime, **overrides) -> Dict[str, Any]:
    row = weather_payload(**overrides)
    row["project_id"] = project_id
    row["last_updated"] = last_updated.isoformat()
    return row
