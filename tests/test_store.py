import pytest

from emailgen.config import Settings
from emailgen.errors import NotFoundError, StoreError
from emailgen.store import MemoryStore, SupabaseStore, build_store


def test_memory_store_select_filters_and_orders():
    store = MemoryStore()
    for n in (2, 1, 3):
        store.insert("email_versions", {"email_id": "e", "version_number": n})
    store.insert("email_versions", {"email_id": "other", "version_number": 9})

    rows = store.select("email_versions", {"email_id": "e"}, order_by="version_number", descending=True)
    assert [r["version_number"] for r in rows] == [3, 2, 1]
    assert all("id" in r and "created_at" in r for r in rows)

    first = store.select("email_versions", {"version_number": [1, 9]}, order_by="version_number", limit=1)
    assert [r["version_number"] for r in first] == [1]


def test_memory_store_returns_copies():
    store = MemoryStore()
    row = store.insert("t", {"metadata": {"a": 1}})
    row["metadata"]["a"] = 2
    assert store.first("t", {"id": row["id"]})["metadata"] == {"a": 1}


def test_memory_store_objects():
    store = MemoryStore()
    store.upload("design-files", "1_a.pdf", b"%PDF", "application/pdf")
    assert store.download("design-files", "1_a.pdf") == b"%PDF"
    with pytest.raises(NotFoundError):
        store.download("design-files", "missing.pdf")


class FakeQuery:
    def __init__(self, calls, data=None, error=None):
        self.calls = calls
        self.data = data
        self.error = error

    def __getattr__(self, name):
        def record(*args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return record

    def execute(self):
        if self.error:
            raise self.error
        return type("Response", (), {"data": self.data})()


class FakeSupabase:
    def __init__(self, data=None, error=None):
        self.calls = []
        self.data = data
        self.error = error

    def table(self, name):
        self.calls.append(("table", (name,), {}))
        return FakeQuery(self.calls, self.data, self.error)


def test_supabase_store_builds_query():
    client = FakeSupabase(data=[{"id": "1"}])
    rows = SupabaseStore(client).select(
        "qa_rules", {"is_active": True, "id": ["a", "b"]}, order_by="name", descending=True, limit=5
    )

    assert rows == [{"id": "1"}]
    names = [c[0] for c in client.calls]
    assert names == ["table", "select", "eq", "in_", "order", "limit"]
    assert client.calls[4][2] == {"desc": True}


def test_supabase_store_wraps_errors():
    client = FakeSupabase(error=RuntimeError("connection refused"))
    with pytest.raises(StoreError, match="connection refused"):
        SupabaseStore(client).insert("email_versions", {"email_id": "e"})


def test_build_store_falls_back_to_memory():
    assert isinstance(build_store(Settings()), MemoryStore)
