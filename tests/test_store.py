"""
Tests for the Vault Record Store implementations.

Tests cover:
- MemoryRecordStore CRUD, ordering, isolation of returned rows
- StoreError for unknown ids and fields
- PoolRecordStore SQL parameters, row mapping and error wrapping
"""
import contextlib
import uuid
from datetime import datetime, timezone

import pytest

from lifedash_vault.exceptions import StoreError
from lifedash_vault.vault.crypto import encrypt_secret
from lifedash_vault.vault.records import SecretRecord
from lifedash_vault.vault.store import (
    MemoryRecordStore,
    PoolRecordStore,
    VaultRecordStore,
)

BUNDLE = SecretRecord.bundle_fields(encrypt_secret("hunter2", "pw"))


def _new(website: str, **extra) -> dict:
    return {"website": website, **BUNDLE, **extra}


# --- Fake asyncpg pool ---

class FakeConnection:
    def __init__(self, pool):
        self.pool = pool

    async def fetchrow(self, sql, *args):
        self.pool.calls.append(("fetchrow", sql, args))
        if self.pool.error:
            raise self.pool.error
        return self.pool.row

    async def fetch(self, sql, *args):
        self.pool.calls.append(("fetch", sql, args))
        if self.pool.error:
            raise self.pool.error
        return self.pool.rows

    async def execute(self, sql, *args):
        self.pool.calls.append(("execute", sql, args))
        if self.pool.error:
            raise self.pool.error
        return self.pool.status


class FakePool:
    def __init__(self):
        self.calls = []
        self.error = None
        self.row = None
        self.rows = []
        self.status = "DELETE 1"

    @contextlib.asynccontextmanager
    async def acquire(self):
        yield FakeConnection(self)


def _row(website: str = "github.com") -> dict:
    now = datetime.now(timezone.utc)
    return {
        "id": uuid.uuid4(),
        "user_id": "user-1",
        "website": website,
        "username": "octocat",
        "notes": None,
        "created_at": now,
        "updated_at": now,
        **BUNDLE,
    }


@pytest.fixture
def store():
    return MemoryRecordStore(user_id="user-1")


@pytest.fixture
def pool():
    return FakePool()


class TestMemoryRecordStore:
    """Tests for MemoryRecordStore."""

    def test_implements_protocol(self, store):
        """Test the memory store satisfies VaultRecordStore."""
        assert isinstance(store, VaultRecordStore)

    @pytest.mark.asyncio
    async def test_create_assigns_id_and_owner(self, store):
        """Test create returns a record with id, owner and timestamps."""
        record = await store.create(_new("github.com", username="octocat"))
        assert record.id
        assert record.user_id == "user-1"
        assert record.username == "octocat"
        assert record.created_at == record.updated_at
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_list_sorted_by_website(self, store):
        """Test list orders records by website, case-insensitively."""
        for site in ("zeta.io", "Alpha.com", "beta.org"):
            await store.create(_new(site))
        assert [r.website for r in await store.list()] == ["Alpha.com", "beta.org", "zeta.io"]

    @pytest.mark.asyncio
    async def test_update_patches_fields(self, store):
        """Test update changes only the patched fields."""
        record = await store.create(_new("github.com", notes="old"))
        updated = await store.update(record.id, {"notes": "new"})
        assert updated.notes == "new"
        assert updated.website == "github.com"
        assert updated.encrypted_data == record.encrypted_data
        assert updated.updated_at >= record.updated_at

    @pytest.mark.asyncio
    async def test_returned_records_are_copies(self, store):
        """Test callers cannot mutate stored rows through returned records."""
        record = await store.create(_new("github.com"))
        record.website = "evil.com"
        assert (await store.list())[0].website == "github.com"

    @pytest.mark.asyncio
    async def test_delete(self, store):
        """Test delete removes the record."""
        record = await store.create(_new("github.com"))
        await store.delete(record.id)
        assert await store.list() == []

    @pytest.mark.asyncio
    async def test_unknown_id(self, store):
        """Test update and delete of unknown ids raise StoreError."""
        with pytest.raises(StoreError):
            await store.update("missing", {"notes": "x"})
        with pytest.raises(StoreError):
            await store.delete("missing")

    @pytest.mark.asyncio
    async def test_unknown_field(self, store):
        """Test fields outside the record columns are rejected."""
        with pytest.raises(StoreError):
            await store.create(_new("github.com", password="plaintext"))

    @pytest.mark.asyncio
    async def test_incomplete_record(self, store):
        """Test a record without its bundle is rejected."""
        with pytest.raises(StoreError):
            await store.create({"website": "github.com"})


class TestPoolRecordStore:
    """Tests for PoolRecordStore against a fake asyncpg pool."""

    @pytest.mark.asyncio
    async def test_create(self, pool):
        """Test create binds user_id first and maps the returned row."""
        row = _row()
        pool.row = row
        store = PoolRecordStore(pool, user_id="user-1")
        record = await store.create(_new("github.com", username="octocat"))
        kind, sql, args = pool.calls[0]
        assert kind == "fetchrow"
        assert "INSERT INTO passwords" in sql
        assert args[0] == "user-1"
        assert args[1] == "github.com"
        assert record.id == str(row["id"])

    @pytest.mark.asyncio
    async def test_list(self, pool):
        """Test list filters by user and sorts by website."""
        pool.rows = [_row("b.com"), _row("A.com")]
        store = PoolRecordStore(pool, user_id="user-1")
        records = await store.list()
        assert [r.website for r in records] == ["A.com", "b.com"]
        assert pool.calls[0][2] == ("user-1",)

    @pytest.mark.asyncio
    async def test_update_builds_assignments(self, pool):
        """Test update numbers its parameters after the patched columns."""
        pool.row = _row()
        store = PoolRecordStore(pool, user_id="user-1")
        await store.update("rec-1", {"website": "github.com", "notes": "n"})
        _, sql, args = pool.calls[0]
        assert "website = $1" in sql
        assert "notes = $2" in sql
        assert "id = $3 AND user_id = $4" in sql
        assert args == ("github.com", "n", "rec-1", "user-1")

    @pytest.mark.asyncio
    async def test_update_missing_row(self, pool):
        """Test an update that matches nothing raises StoreError."""
        store = PoolRecordStore(pool, user_id="user-1")
        with pytest.raises(StoreError):
            await store.update("rec-1", {"notes": "n"})

    @pytest.mark.asyncio
    async def test_update_empty_patch(self, pool):
        """Test an empty patch is refused before reaching the database."""
        store = PoolRecordStore(pool, user_id="user-1")
        with pytest.raises(StoreError):
            await store.update("rec-1", {})
        assert pool.calls == []

    @pytest.mark.asyncio
    async def test_delete_missing_row(self, pool):
        """Test a delete affecting no rows raises StoreError."""
        pool.status = "DELETE 0"
        store = PoolRecordStore(pool, user_id="user-1")
        with pytest.raises(StoreError):
            await store.delete("rec-1")

    @pytest.mark.asyncio
    async def test_backend_errors_are_wrapped(self, pool):
        """Test driver exceptions surface as StoreError with the cause kept."""
        pool.error = ConnectionError("connection reset")
        store = PoolRecordStore(pool, user_id="user-1")
        with pytest.raises(StoreError) as exc:
            await store.list()
        assert isinstance(exc.value.__cause__, ConnectionError)
