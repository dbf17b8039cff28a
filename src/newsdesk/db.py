from __future__ import annotations

import os
import re
import sqlite3
from typing import Any

from .migrations import apply_migrations

DEFAULT_DATA_DIR = "/data"

SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
    "PRAGMA busy_timeout=5000",
)

# Quoted literals and identifiers, including doubled-quote escapes.
_QUOTED = re.compile(r"('(?:[^']|'')*'|\"(?:[^\"]|\"\")*\")")

_MIGRATED: set[str] = set()


def get_db_url() -> str | None:
    url = os.environ.get("ND_DB_URL", "").strip()
    return url or None


def is_postgres_url(url: str | None) -> bool:
    return bool(url) and url.startswith(("postgres://", "postgresql://"))


def get_state_db_path() -> str:
    data_dir = os.environ.get("ND_DATA_DIR", DEFAULT_DATA_DIR)
    return os.path.join(data_dir, "state.sqlite3")


class DBConn:
    """Thin wrapper so storage code can write sqlite-style SQL for both backends."""

    def __init__(self, conn: Any, backend: str) -> None:
        self._conn = conn
        self.backend = backend

    def execute(self, sql: str, params: tuple | list | None = None):
        cursor = self._conn.cursor()
        cursor.execute(_normalize_sql(sql, self.backend), params or ())
        return cursor

    def commit(self) -> None:
        self._conn.commit()

    def rollback(self) -> None:
        self._conn.rollback()

    def close(self) -> None:
        self._conn.close()


def connect_db(path: str | None = None) -> DBConn:
    url = get_db_url()
    if is_postgres_url(url):
        return _migrate_once(_connect_postgres(url), url)
    path = path or get_state_db_path()
    return _migrate_once(_connect_sqlite(path), path)


def _connect_postgres(url: str) -> DBConn:
    try:
        import psycopg
    except ImportError as exc:  # pragma: no cover - depends on env
        raise RuntimeError("psycopg is required for PostgreSQL support (pip install newsdesk[postgres])") from exc
    return DBConn(psycopg.connect(url), "postgres")


def _connect_sqlite(path: str) -> DBConn:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    raw = sqlite3.connect(path)
    for pragma in SQLITE_PRAGMAS:
        raw.execute(pragma)
    return DBConn(raw, "sqlite")


def _migrate_once(conn: DBConn, target: str) -> DBConn:
    if target not in _MIGRATED:
        apply_migrations(conn)
        _MIGRATED.add(target)
    return conn


def _normalize_sql(sql: str, backend: str) -> str:
    if backend != "postgres":
        return sql
    if re.search(r"\bINSERT\s+OR\s+IGNORE\b", sql, re.IGNORECASE):
        sql = re.sub(r"\bINSERT\s+OR\s+IGNORE\b", "INSERT", sql, count=1, flags=re.IGNORECASE)
        if "ON CONFLICT" not in sql.upper():
            sql = sql.rstrip().rstrip(";") + " ON CONFLICT DO NOTHING"
    sql = sql.replace("BEGIN IMMEDIATE", "BEGIN")
    return _qmark_to_format(sql)


def _qmark_to_format(sql: str) -> str:
    # Odd chunks are quoted text and keep their question marks.
    chunks = _QUOTED.split(sql)
    return "".join(
        chunk if index % 2 else chunk.replace("?", "%s")
        for index, chunk in enumerate(chunks)
    )
