"""
Database-backed key/value store for production use (Postgres/Supabase).

Why: The in-memory store is neither durable nor shared between worker
processes. This store keeps the same flat `prefix:id -> JSON` layout in a
single Postgres table so the services stay unchanged.

Concurrency:
- `set_if_absent` relies on the primary key (`on conflict do nothing`).
- `compare_and_set` is a single `update ... where key = %s and value = %s`;
  `delete_if` is the matching conditional `delete`. Postgres row locking makes
  both atomic per key, and rows for different keys never contend.

Note: This module uses psycopg3 and opens a short-lived connection per call.
It is imported only when enabled via `KV_BACKEND=db`. Tests use a fake driver.
"""
from __future__ import annotations

from typing import List, Optional, Tuple
import os
import re

try:
    import psycopg
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional dependency in dev
    psycopg = None  # type: ignore
    HAVE_PSYCOPG = False


_TABLE_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}(?:\.[A-Za-z_][A-Za-z0-9_]{0,62})?$")


class DBKeyValueStore:
    """Postgres-backed key/value store.

    Parameters
    ----------
    dsn:
        Psycopg3 connection string. Falls back to KV_DATABASE_URL, then DATABASE_URL.
    table:
        Table name, optionally schema-qualified. Defaults to `public.portal_kv`.
    connect_timeout:
        Seconds before a connection attempt is abandoned.
    """

    def __init__(self, dsn: str | None = None, table: str = "public.portal_kv", connect_timeout: int = 5) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBKeyValueStore")
        self._dsn = dsn or os.getenv("KV_DATABASE_URL") or os.getenv("DATABASE_URL", "")
        if not self._dsn:
            raise RuntimeError("No database DSN provided for DBKeyValueStore")
        # The table name is interpolated into SQL text, so it must be a plain identifier.
        if not _TABLE_RE.match(table or ""):
            raise ValueError("Invalid table name")
        self._table = table
        self._connect_timeout = connect_timeout

    def _connect(self):
        return psycopg.connect(self._dsn, autocommit=True, connect_timeout=self._connect_timeout)

    def ensure_schema(self) -> None:
        """Create the backing table if it does not exist (idempotent)."""
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"create table if not exists {self._table} ("
                    "key text primary key, "
                    "value text not null, "
                    "updated_at timestamptz not null default now())",
                    (),
                )

    def get(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(f"select value from {self._table} where key = %s", (key,))
                row = cur.fetchone()
        return str(row[0]) if row else None

    def set(self, key: str, value: str) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"insert into {self._table} (key, value) values (%s, %s) "
                    "on conflict (key) do update set value = excluded.value, updated_at = now()",
                    (key, value),
                )

    def set_if_absent(self, key: str, value: str) -> bool:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"insert into {self._table} (key, value) values (%s, %s) "
                    "on conflict (key) do nothing returning key",
                    (key, value),
                )
                row = cur.fetchone()
        return bool(row)

    def compare_and_set(self, key: str, expected: str, value: str) -> bool:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"update {self._table} set value = %s, updated_at = now() "
                    "where key = %s and value = %s returning key",
                    (value, key, expected),
                )
                row = cur.fetchone()
        return bool(row)

    def delete(self, key: str) -> None:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(f"delete from {self._table} where key = %s", (key,))

    def delete_if(self, key: str, expected: str) -> bool:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"delete from {self._table} where key = %s and value = %s returning key",
                    (key, expected),
                )
                row = cur.fetchone()
        return bool(row)

    def scan_prefix(self, prefix: str) -> List[Tuple[str, str]]:
        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select key, value from {self._table} where starts_with(key, %s) order by key",
                    (prefix,),
                )
                rows = cur.fetchall() or []
        return [(str(r[0]), str(r[1])) for r in rows]


__all__ = ["DBKeyValueStore"]
