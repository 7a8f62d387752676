"""
Vault Record Store — Persistence boundary for ciphertext-only records.

The store only ever receives labels and ciphertext bundles. Stores are scoped
to a single account (``user_id``); per-account isolation is their job.

Two implementations are provided:
- ``MemoryRecordStore`` — in-process rows kept as JSON documents
- ``PoolRecordStore`` — asyncpg-compatible connection pool, ``passwords`` table

Any backend failure is re-raised as ``StoreError`` with the original error
chained as ``__cause__``.
"""
import uuid
import logging
import contextlib
from typing import Any, Protocol, runtime_checkable
from datetime import datetime, timezone
from collections.abc import AsyncIterator, Mapping

import orjson
from pydantic import ValidationError

from ..exceptions import StoreError
from .records import SecretRecord

logger = logging.getLogger("lifedash.vault")

# Columns a caller may set on create/update.
WRITABLE_COLUMNS = ("website", "username", "notes", "encrypted_data", "iv", "salt")

# ---------------------------------------------------------------------------
# SQL statements
# ---------------------------------------------------------------------------

_INSERT_RECORD = """
INSERT INTO passwords (user_id, website, username, notes, encrypted_data, iv, salt)
VALUES ($1, $2, $3, $4, $5, $6, $7)
RETURNING id, user_id, website, username, notes, encrypted_data, iv, salt,
          created_at, updated_at
"""

_SELECT_ALL = """
SELECT id, user_id, website, username, notes, encrypted_data, iv, salt,
       created_at, updated_at
FROM passwords
WHERE user_id = $1
ORDER BY website ASC
"""

_UPDATE_RECORD = """
UPDATE passwords
SET {assignments}, updated_at = NOW()
WHERE id = ${id_arg} AND user_id = ${user_arg}
RETURNING id, user_id, website, username, notes, encrypted_data, iv, salt,
          created_at, updated_at
"""

_DELETE_RECORD = """
DELETE FROM passwords
WHERE id = $1 AND user_id = $2
"""


def _writable(values: Mapping[str, Any]) -> dict[str, Any]:
    """Keep only writable columns, rejecting anything else."""
    unknown = set(values) - set(WRITABLE_COLUMNS)
    if unknown:
        raise StoreError(f"Unknown record field(s): {sorted(unknown)}")
    return {k: values[k] for k in WRITABLE_COLUMNS if k in values}


def _sort_key(record: SecretRecord) -> str:
    return record.website.lower()


@runtime_checkable
class VaultRecordStore(Protocol):
    """Keyed read/write surface for secret records. Last write wins per id."""

    user_id: str

    async def create(self, record: Mapping[str, Any]) -> SecretRecord:
        ...

    async def update(self, record_id: str, patch: Mapping[str, Any]) -> SecretRecord:
        ...

    async def delete(self, record_id: str) -> None:
        ...

    async def list(self) -> list[SecretRecord]:
        ...


class MemoryRecordStore:
    """Record store kept in process memory.

    Rows are stored as orjson documents so callers never share mutable state
    with the store, the same way rows come back fresh from a remote backend.
    """

    def __init__(self, user_id: str):
        self.user_id = user_id
        self._rows: dict[str, bytes] = {}

    def __len__(self) -> int:
        return len(self._rows)

    def _load(self, record_id: str) -> SecretRecord:
        try:
            doc = self._rows[record_id]
        except KeyError:
            raise StoreError(f"Record {record_id} not found") from None
        return SecretRecord.model_validate(orjson.loads(doc))

    def _save(self, data: dict[str, Any]) -> SecretRecord:
        try:
            record = SecretRecord.model_validate(data)
        except ValidationError as err:
            raise StoreError(f"Invalid record: {err}") from err
        self._rows[record.id] = orjson.dumps(record.model_dump())
        return record

    async def create(self, record: Mapping[str, Any]) -> SecretRecord:
        now = datetime.now(timezone.utc)
        data = {
            **_writable(record),
            "id": str(uuid.uuid4()),
            "user_id": self.user_id,
            "created_at": now,
            "updated_at": now,
        }
        saved = self._save(data)
        logger.debug("Store create: user=%s id=%s", self.user_id, saved.id)
        return saved

    async def update(self, record_id: str, patch: Mapping[str, Any]) -> SecretRecord:
        current = self._load(record_id)
        data = {
            **current.model_dump(),
            **_writable(patch),
            "updated_at": datetime.now(timezone.utc),
        }
        saved = self._save(data)
        logger.debug("Store update: user=%s id=%s", self.user_id, record_id)
        return saved

    async def delete(self, record_id: str) -> None:
        if self._rows.pop(record_id, None) is None:
            raise StoreError(f"Record {record_id} not found")
        logger.debug("Store delete: user=%s id=%s", self.user_id, record_id)

    async def list(self) -> list[SecretRecord]:
        records = [SecretRecord.model_validate(orjson.loads(doc)) for doc in self._rows.values()]
        return sorted(records, key=_sort_key)


class PoolRecordStore:
    """Record store backed by an asyncpg-compatible connection pool.

    Args:
        db_pool: Pool exposing ``acquire()`` as an async context manager whose
            connections provide ``fetch``, ``fetchrow`` and ``execute``.
        user_id: Account owning every row this store touches.
    """

    def __init__(self, db_pool: Any, user_id: str):
        self._db = db_pool
        self.user_id = user_id

    @contextlib.asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        """Translate backend failures into ``StoreError``."""
        try:
            yield
        except StoreError:
            raise
        except Exception as err:
            logger.error(
                "Store %s failed for user=%s: %s", operation, self.user_id, err,
            )
            raise StoreError(f"Failed to {operation} record: {err}") from err

    @staticmethod
    def _to_record(row: Any) -> SecretRecord:
        data = dict(row)
        data["id"] = str(data["id"])
        data["user_id"] = str(data["user_id"])
        return SecretRecord.model_validate(data)

    async def create(self, record: Mapping[str, Any]) -> SecretRecord:
        values = _writable(record)
        async with self._guard("create"):
            async with self._db.acquire() as conn:
                row = await conn.fetchrow(
                    _INSERT_RECORD,
                    self.user_id,
                    values.get("website"),
                    values.get("username"),
                    values.get("notes"),
                    values.get("encrypted_data"),
                    values.get("iv"),
                    values.get("salt"),
                )
            saved = self._to_record(row)
        logger.debug("Store create: user=%s id=%s", self.user_id, saved.id)
        return saved

    async def update(self, record_id: str, patch: Mapping[str, Any]) -> SecretRecord:
        values = _writable(patch)
        if not values:
            raise StoreError("Empty update")
        assignments = ", ".join(
            f"{column} = ${pos}" for pos, column in enumerate(values, start=1)
        )
        sql = _UPDATE_RECORD.format(
            assignments=assignments,
            id_arg=len(values) + 1,
            user_arg=len(values) + 2,
        )
        async with self._guard("update"):
            async with self._db.acquire() as conn:
                row = await conn.fetchrow(sql, *values.values(), record_id, self.user_id)
            if row is None:
                raise StoreError(f"Record {record_id} not found")
            saved = self._to_record(row)
        logger.debug("Store update: user=%s id=%s", self.user_id, record_id)
        return saved

    async def delete(self, record_id: str) -> None:
        async with self._guard("delete"):
            async with self._db.acquire() as conn:
                status = await conn.execute(_DELETE_RECORD, record_id, self.user_id)
            if isinstance(status, str) and status.split()[-1:] == ["0"]:
                raise StoreError(f"Record {record_id} not found")
        logger.debug("Store delete: user=%s id=%s", self.user_id, record_id)

    async def list(self) -> list[SecretRecord]:
        async with self._guard("list"):
            async with self._db.acquire() as conn:
                rows = await conn.fetch(_SELECT_ALL, self.user_id)
            records = [self._to_record(row) for row in rows]
        return sorted(records, key=_sort_key)
