"""
Persistence backends.

Services only use the small Store interface below. SupabaseStore talks to
the hosted Postgres/object store; MemoryStore keeps everything in process
and is used for local development and tests.
"""

import threading
import uuid
from abc import ABC, abstractmethod
from copy import deepcopy
from typing import Any, Dict, List, Optional

import structlog

from emailgen.config import Settings
from emailgen.errors import NotFoundError, StoreError
from emailgen.models import utc_now

logger = structlog.get_logger(__name__)

Row = Dict[str, Any]


class Store(ABC):
    @abstractmethod
    def insert(self, table: str, row: Row) -> Row:
        """Inserts one row and returns it as stored (with id)."""

    @abstractmethod
    def select(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """
        Returns matching rows. A list value in filters means "column in list".
        """

    @abstractmethod
    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        """Stores an object and returns its path."""

    @abstractmethod
    def download(self, bucket: str, path: str) -> bytes:
        ...

    def first(self, table: str, filters: Dict[str, Any]) -> Optional[Row]:
        rows = self.select(table, filters, limit=1)
        return rows[0] if rows else None


class SupabaseStore(Store):
    def __init__(self, client):
        self.client = client

    def insert(self, table: str, row: Row) -> Row:
        try:
            response = self.client.table(table).insert(row).execute()
        except Exception as exc:
            raise StoreError(f"Insert into {table} failed: {exc}") from exc
        if not response.data:
            raise StoreError(f"Insert into {table} returned no rows")
        return response.data[0]

    def select(self, table, filters=None, order_by=None, descending=False, limit=None):
        query = self.client.table(table).select("*")
        for column, value in (filters or {}).items():
            if isinstance(value, (list, tuple)):
                query = query.in_(column, list(value))
            else:
                query = query.eq(column, value)
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit is not None:
            query = query.limit(limit)
        try:
            return query.execute().data or []
        except Exception as exc:
            raise StoreError(f"Select from {table} failed: {exc}") from exc

    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        try:
            self.client.storage.from_(bucket).upload(
                path, data, {"content-type": content_type}
            )
        except Exception as exc:
            raise StoreError(f"Upload to {bucket}/{path} failed: {exc}") from exc
        return path

    def download(self, bucket: str, path: str) -> bytes:
        try:
            return self.client.storage.from_(bucket).download(path)
        except Exception as exc:
            raise StoreError(f"Download of {bucket}/{path} failed: {exc}") from exc


class MemoryStore(Store):
    def __init__(self):
        self._tables: Dict[str, List[Row]] = {}
        self._objects: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def insert(self, table: str, row: Row) -> Row:
        stored = deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        stored.setdefault("created_at", utc_now())
        with self._lock:
            self._tables.setdefault(table, []).append(stored)
        return deepcopy(stored)

    def select(self, table, filters=None, order_by=None, descending=False, limit=None):
        with self._lock:
            rows = [deepcopy(r) for r in self._tables.get(table, [])]

        for column, value in (filters or {}).items():
            if isinstance(value, (list, tuple)):
                rows = [r for r in rows if r.get(column) in value]
            else:
                rows = [r for r in rows if r.get(column) == value]

        if order_by:
            rows.sort(key=lambda r: (r.get(order_by) is None, r.get(order_by)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def upload(self, bucket: str, path: str, data: bytes, content_type: str) -> str:
        with self._lock:
            self._objects[f"{bucket}/{path}"] = bytes(data)
        return path

    def download(self, bucket: str, path: str) -> bytes:
        with self._lock:
            try:
                return self._objects[f"{bucket}/{path}"]
            except KeyError:
                raise NotFoundError(f"No object at {bucket}/{path}") from None


def build_store(settings: Settings) -> Store:
    if settings.supabase_configured:
        from supabase import create_client

        logger.info("Using Supabase store", url=settings.supabase_url)
        return SupabaseStore(create_client(settings.supabase_url, settings.supabase_service_key))

    logger.warning("Supabase is not configured; using in-memory store")
    return MemoryStore()
