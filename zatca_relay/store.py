from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Protocol

import requests

from zatca_relay.config import Settings

INVOICES_TABLE = "invoices"
SYNC_TRACKING_TABLE = "sync_tracking"
SYNC_LOGS_TABLE = "sync_logs"


class StoreError(RuntimeError):
    pass


class RecordStore(Protocol):
    def update(self, table: str, match_column: str, match_value: str, values: dict[str, Any]) -> None:
        """Update every row of ``table`` whose ``match_column`` equals ``match_value``."""

    def insert(self, table: str, values: dict[str, Any]) -> None:
        """Append one row to ``table``."""


class RestRecordStore:
    """Record store speaking the PostgREST dialect exposed by Supabase."""

    def __init__(self, base_url: str, service_key: str, session: Any | None = None, timeout: float = 30) -> None:
        self._base_url = base_url.rstrip("/")
        self._key = service_key
        self._session = session or requests.Session()
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "RestRecordStore":
        if not settings.supabase_url or not settings.supabase_service_key:
            raise StoreError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY are required for the REST store.")
        return cls(base_url=settings.supabase_url, service_key=settings.supabase_service_key)

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self._key,
            "Authorization": f"Bearer {self._key}",
            "Content-Type": "application/json",
            "Prefer": "return=minimal",
        }

    def _url(self, table: str) -> str:
        return f"{self._base_url}/rest/v1/{table}"

    def update(self, table: str, match_column: str, match_value: str, values: dict[str, Any]) -> None:
        try:
            response = self._session.patch(
                self._url(table),
                params={match_column: f"eq.{match_value}"},
                headers=self._headers(),
                json=values,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise StoreError(f"Update of {table} failed: {exc}") from exc
        if response.status_code >= 400:
            raise StoreError(f"Update of {table} failed with status {response.status_code}: {response.text[:300]}")

    def insert(self, table: str, values: dict[str, Any]) -> None:
        try:
            response = self._session.post(
                self._url(table),
                headers=self._headers(),
                json=values,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise StoreError(f"Insert into {table} failed: {exc}") from exc
        if response.status_code >= 400:
            raise StoreError(f"Insert into {table} failed with status {response.status_code}: {response.text[:300]}")


_SQLITE_SCHEMA: dict[str, tuple[str, ...]] = {
    INVOICES_TABLE: (
        "zatca_uuid",
        "sync_status",
        "zatca_qr_code",
        "zatca_response",
        "updated_at",
    ),
    SYNC_TRACKING_TABLE: (
        "zatca_uuid",
        "sync_status",
        "zatca_qr_code",
        "zatca_response",
        "sync_timestamp",
        "error_message",
        "updated_at",
    ),
    SYNC_LOGS_TABLE: (
        "action",
        "status",
        "details",
        "timestamp",
        "invoice_id",
        "request_id",
    ),
}


def _encode(value: Any) -> Any:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=True)
    return value


class SqliteRecordStore:
    """Local stand-in for the hosted tables, used for development and tests."""

    def __init__(self, db_path: str | Path = "data/zatca_sync.db") -> None:
        self._db_path = str(db_path)
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    @classmethod
    def from_settings(cls, settings: Settings) -> "SqliteRecordStore":
        return cls(db_path=settings.sqlite_store_path)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=10, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            for table, columns in _SQLITE_SCHEMA.items():
                column_sql = ", ".join(f"{name} TEXT" for name in columns)
                conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {table} (id INTEGER PRIMARY KEY AUTOINCREMENT, {column_sql})"
                )

    def _columns(self, table: str, names: list[str]) -> None:
        allowed = _SQLITE_SCHEMA.get(table)
        if allowed is None:
            raise StoreError(f"Unknown table: {table}")
        unknown = [name for name in names if name not in allowed]
        if unknown:
            raise StoreError(f"Unknown column(s) for {table}: {', '.join(unknown)}")

    def update(self, table: str, match_column: str, match_value: str, values: dict[str, Any]) -> None:
        self._columns(table, [match_column, *values])
        assignments = ", ".join(f"{name} = ?" for name in values)
        params = [_encode(v) for v in values.values()] + [match_value]
        try:
            with self._connect() as conn:
                conn.execute(f"UPDATE {table} SET {assignments} WHERE {match_column} = ?", params)
        except sqlite3.Error as exc:
            raise StoreError(f"Update of {table} failed: {exc}") from exc

    def insert(self, table: str, values: dict[str, Any]) -> None:
        self._columns(table, list(values))
        names = ", ".join(values)
        placeholders = ", ".join("?" for _ in values)
        try:
            with self._connect() as conn:
                conn.execute(
                    f"INSERT INTO {table} ({names}) VALUES ({placeholders})",
                    [_encode(v) for v in values.values()],
                )
        except sqlite3.Error as exc:
            raise StoreError(f"Insert into {table} failed: {exc}") from exc

    def fetch_all(self, table: str, match_column: str | None = None, match_value: str | None = None) -> list[dict[str, Any]]:
        self._columns(table, [match_column] if match_column else [])
        query = f"SELECT * FROM {table}"
        params: list[Any] = []
        if match_column:
            query += f" WHERE {match_column} = ?"
            params.append(match_value)
        with self._connect() as conn:
            rows = conn.execute(query + " ORDER BY id", params).fetchall()
        return [dict(row) for row in rows]


def build_record_store(settings: Settings) -> RecordStore:
    if settings.record_store_backend == "sqlite":
        return SqliteRecordStore.from_settings(settings)
    return RestRecordStore.from_settings(settings)
