"""
Shared test fixtures.

Settings are read at import time, so the environment is prepared here
before any application module is imported.
"""

import os
import sys
from pathlib import Path

# Add project root to Python path
project_dir = Path(__file__).parent.parent
sys.path.insert(0, str(project_dir))

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
# No real pauses in tests
os.environ["IMPORT_BATCH_DELAY_SECONDS"] = "0"
os.environ["IMPORT_PER_ITEM_DELAY_SECONDS"] = "0"
os.environ["IMPORT_RETRY_INITIAL_DELAY_SECONDS"] = "0"
os.environ["IMPORT_REQUEST_PAUSE_SECONDS"] = "0"
os.environ["READ_ONLY_MODE"] = "false"

import pytest
from datetime import datetime
from typing import Callable, Generator, Optional
from unittest.mock import AsyncMock, patch

# ===================
# FAKE ASYNC SUPABASE CLIENT
# ===================

class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: list = None, count: int = None):
        self.data = data or []
        self.count = count if count is not None else len(self.data)


class MockSupabaseQuery:
    """
    Chainable query over an in-memory table.

    Filters (eq / is_) apply to select, update and delete; execute() is
    awaited like the real async client.
    """

    def __init__(self, client: "MockSupabaseClient", table: str, operation: str, payload=None):
        self._client = client
        self._table = table
        self._operation = operation
        self._payload = payload
        self._columns = "*"
        self._filters: list[Callable[[dict], bool]] = []
        self._order: Optional[tuple[str, bool]] = None
        self._limit: Optional[int] = None

    def select(self, columns: str = "*", count: Optional[str] = None):
        self._columns = columns
        return self

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def is_(self, column, value):
        expected = None if value in ("null", None) else value
        self._filters.append(lambda row: row.get(column) is expected)
        return self

    def order(self, column, desc: bool = False):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def _project(self, row: dict) -> dict:
        if self._columns == "*":
            return dict(row)
        return {c.strip(): row.get(c.strip()) for c in self._columns.split(",")}

    async def execute(self) -> MockSupabaseResponse:
        self._client.calls.append((self._table, self._operation, self._payload))
        self._client.raise_injected_failure(self._table, self._operation, self._payload)

        rows = self._client.tables.setdefault(self._table, [])

        if self._operation == "select":
            matched = [r for r in rows if self._matches(r)]
            if self._order:
                column, desc = self._order
                matched.sort(key=lambda r: (r.get(column) is None, r.get(column) or 0), reverse=desc)
            if self._limit is not None:
                matched = matched[:self._limit]
            return MockSupabaseResponse([self._project(r) for r in matched])

        if self._operation == "insert":
            items = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = []
            for item in items:
                doc = dict(item)
                doc["id"] = self._client.next_id(self._table)
                doc["created_at"] = datetime.utcnow().isoformat() + "Z"
                doc["updated_at"] = doc["created_at"]
                rows.append(doc)
                inserted.append(dict(doc))
            return MockSupabaseResponse(inserted)

        if self._operation == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(self._payload)
                    row["updated_at"] = datetime.utcnow().isoformat() + "Z"
                    updated.append(dict(row))
            return MockSupabaseResponse(updated)

        if self._operation == "delete":
            removed = [r for r in rows if self._matches(r)]
            self._client.tables[self._table] = [r for r in rows if not self._matches(r)]
            return MockSupabaseResponse(removed)

        raise AssertionError(f"Unsupported operation {self._operation}")


class MockSupabaseTable:
    def __init__(self, client: "MockSupabaseClient", name: str):
        self._client = client
        self._name = name

    def select(self, columns: str = "*", count: Optional[str] = None):
        return MockSupabaseQuery(self._client, self._name, "select").select(columns, count)

    def insert(self, data):
        return MockSupabaseQuery(self._client, self._name, "insert", data)

    def update(self, data):
        return MockSupabaseQuery(self._client, self._name, "update", data)

    def delete(self):
        return MockSupabaseQuery(self._client, self._name, "delete")


class MockSupabaseClient:
    """
    Stateful fake of the async Supabase client.

    Usage:
        mock_supabase.set_table_data("categories", [...])
        mock_supabase.fail_next("products", "insert", error)
        mock_supabase.fail_when("products", "insert", lambda p: p["name"] == "Bad", error)
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.calls: list[tuple] = []
        self._counters: dict[str, int] = {}
        self._queued: dict[tuple[str, str], list[Exception]] = {}
        self._rules: list[tuple[str, str, Callable, Exception]] = []

    def set_table_data(self, table_name: str, data: list):
        """Configure rows for a table."""
        self.tables[table_name] = [dict(row) for row in data]

    def table(self, name: str) -> MockSupabaseTable:
        return MockSupabaseTable(self, name)

    def next_id(self, table: str) -> str:
        self._counters[table] = self._counters.get(table, 0) + 1
        return f"{table}-{self._counters[table]}"

    def fail_next(self, table: str, operation: str, *errors: Exception):
        """Raise the given errors, in order, on the next matching requests."""
        self._queued.setdefault((table, operation), []).extend(errors)

    def fail_when(self, table: str, operation: str, predicate: Callable, error: Exception):
        """Raise error on every matching request whose payload satisfies predicate."""
        self._rules.append((table, operation, predicate, error))

    def raise_injected_failure(self, table: str, operation: str, payload):
        queued = self._queued.get((table, operation))
        if queued:
            raise queued.pop(0)
        for rule_table, rule_operation, predicate, error in self._rules:
            if rule_table == table and rule_operation == operation and predicate(payload):
                raise error

    def count_calls(self, table: str, operation: str) -> int:
        return sum(1 for t, op, _ in self.calls if t == table and op == operation)


# ===================
# FIXTURES
# ===================

async def no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """Fresh in-memory Supabase fake."""
    return MockSupabaseClient()


@pytest.fixture
def catalog_store(mock_supabase):
    """CatalogStore over the fake client with no pacing."""
    from services.catalog_store import CatalogStore
    return CatalogStore(mock_supabase, request_pause=0, retry_pause=0, sleep=no_sleep)


@pytest.fixture
def import_service(catalog_store):
    """ImportService that never sleeps and always writes."""
    from services.batch_executor import RateLimitConfig
    from services.import_service import ImportService

    limits = RateLimitConfig(batch_delay=0, per_item_delay=0, retry_initial_delay=0)
    return ImportService(
        catalog_store,
        product_limits=limits,
        category_limits=limits,
        failure_detail_limit=5,
        read_only=False,
        sleep=no_sleep,
    )


@pytest.fixture
def api_client(catalog_store, import_service) -> Generator:
    """
    TestClient with the import routes wired to the fake store.

    Lifespan is not entered, so no real connection is attempted.
    """
    from fastapi.testclient import TestClient
    from services import import_session_service
    from main import app

    import_session_service.clear_sessions()
    with patch("routes.imports.get_catalog_store", new=AsyncMock(return_value=catalog_store)):
        with patch("routes.imports.get_import_service", new=AsyncMock(return_value=import_service)):
            yield TestClient(app)
    import_session_service.clear_sessions()


@pytest.fixture
def sample_categories() -> list:
    """Hardware root with a Handles child, plus a flat Knobs root."""
    return [
        {"id": "cat-hardware", "name": "Hardware", "slug": "hardware", "parent_id": None, "sort_order": 100, "business_id": "biz-1"},
        {"id": "cat-handles", "name": "Handles", "slug": "handles", "parent_id": "cat-hardware", "sort_order": 200, "business_id": "biz-1"},
        {"id": "cat-knobs", "name": "Knobs", "slug": "knobs", "parent_id": None, "sort_order": 100, "business_id": "biz-1"},
    ]
