"""
Record store adapters: an in-memory store for tests and local runs, and a
Supabase-backed store for deployments.

Both expose the same async ``insert / update / get / query`` surface and
raise the exception types defined here, so the lifecycle manager can tell
a missing row from a backend outage. ``update`` accepts an ``expected``
mapping and only writes while the row still holds those values.
"""

import asyncio
import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

_UNIQUE_VIOLATION_CODE = "23505"


class PersistenceError(Exception):
    """Base class for all persistence related errors."""


class RecordNotFoundError(PersistenceError):
    """Raised when an update targets a row that does not exist."""


class PreconditionFailedError(PersistenceError):
    """Raised when a conditional update finds the row in a different state."""


class UniqueViolationError(PersistenceError):
    """Raised when an insert would duplicate a unique key."""


class AdapterError(PersistenceError):
    """Raised when the underlying backend fails irrecoverably."""


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryStore:
    """
    Dictionary-backed store with per-table unique keys.

    Args:
        unique_keys: Optional mapping of table name to column tuples that
            must be unique together, e.g. ``{"providers": [("call_id",)]}``.
            Rows where any of the columns is None are not checked.
    """

    def __init__(self, unique_keys: Optional[dict[str, list[tuple[str, ...]]]] = None) -> None:
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}
        self._unique_keys = unique_keys or {}

    def _table(self, name: str) -> dict[str, dict[str, Any]]:
        return self._tables.setdefault(name, {})

    def _check_unique(self, table: str, row: dict[str, Any]) -> None:
        for columns in self._unique_keys.get(table, []):
            key = tuple(row.get(c) for c in columns)
            if any(v is None for v in key):
                continue
            for existing in self._table(table).values():
                if existing["id"] == row.get("id"):
                    continue
                if tuple(existing.get(c) for c in columns) == key:
                    raise UniqueViolationError(
                        f"Duplicate {table}.{'/'.join(columns)}: {key}"
                    )

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        row = copy.deepcopy(record)
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", _utcnow_iso())
        if row["id"] in self._table(table):
            raise UniqueViolationError(f"Duplicate {table}.id: {row['id']}")
        self._check_unique(table, row)
        self._table(table)[row["id"]] = row
        return copy.deepcopy(row)

    async def update(
        self,
        table: str,
        record_id: str,
        changes: dict[str, Any],
        expected: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        rows = self._table(table)
        if record_id not in rows:
            raise RecordNotFoundError(f"{table} row {record_id} not found")
        current = rows[record_id]
        if expected and any(current.get(k) != v for k, v in expected.items()):
            raise PreconditionFailedError(
                f"{table} row {record_id} no longer matches {expected}"
            )
        updated = {**rows[record_id], **copy.deepcopy(changes), "id": record_id}
        self._check_unique(table, updated)
        rows[record_id] = updated
        return copy.deepcopy(updated)

    async def get(self, table: str, record_id: str) -> Optional[dict[str, Any]]:
        row = self._table(table).get(record_id)
        return copy.deepcopy(row) if row is not None else None

    async def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        rows = [
            row for row in self._table(table).values()
            if all(row.get(k) == v for k, v in (filters or {}).items())
        ]
        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return [copy.deepcopy(r) for r in rows]


def _response_data(resp: Any) -> Any:
    return resp.get("data") if isinstance(resp, dict) else getattr(resp, "data", None)


def _translate_error(table: str, exc: Exception) -> PersistenceError:
    code = getattr(exc, "code", None)
    if code == _UNIQUE_VIOLATION_CODE:
        return UniqueViolationError(f"Duplicate row in {table}: {exc}")
    return AdapterError(f"Supabase {table} operation failed: {exc}")


class SupabaseStore:
    """
    Record store over the Supabase SDK.

    The SDK client is synchronous; every call runs in a worker thread so
    the event loop is never blocked.
    """

    def __init__(self, url: str, key: str, client: Optional[Any] = None) -> None:
        if client is None:
            from supabase import create_client

            client = create_client(url, key)
        self.url = url.rstrip("/")
        self.client = client

    async def _execute(self, table: str, build) -> Any:
        try:
            resp = await asyncio.to_thread(lambda: build(self.client.table(table)).execute())
        except PersistenceError:
            raise
        except Exception as exc:
            raise _translate_error(table, exc) from exc
        return _response_data(resp)

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        data = await self._execute(table, lambda t: t.insert(record))
        if isinstance(data, list) and data:
            return data[0]
        raise AdapterError(f"Insert into {table} returned no row")

    async def update(
        self,
        table: str,
        record_id: str,
        changes: dict[str, Any],
        expected: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        def build(t):
            q = t.update(changes).eq("id", record_id)
            for k, v in (expected or {}).items():
                q = q.eq(k, v)
            return q

        data = await self._execute(table, build)
        if isinstance(data, list) and data:
            return data[0]
        if expected and await self.get(table, record_id) is not None:
            raise PreconditionFailedError(
                f"{table} row {record_id} no longer matches {expected}"
            )
        raise RecordNotFoundError(f"{table} row {record_id} not found")

    async def get(self, table: str, record_id: str) -> Optional[dict[str, Any]]:
        data = await self._execute(
            table, lambda t: t.select("*").eq("id", record_id).limit(1)
        )
        if isinstance(data, list) and data:
            return data[0]
        return None

    async def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        def build(t):
            q = t.select("*")
            for k, v in (filters or {}).items():
                q = q.eq(k, v)
            if order_by:
                q = q.order(order_by, desc=descending)
            if limit is not None:
                q = q.limit(limit)
            return q

        data = await self._execute(table, build)
        return data if isinstance(data, list) else []
