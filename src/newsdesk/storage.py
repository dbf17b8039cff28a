from __future__ import annotations

import json
import os
import uuid
from typing import Any

from .db import connect_db
from .models import AgentDefinition
from .utils import json_dumps, utc_now_iso

COLLECTIONS: dict[str, tuple[str, ...]] = {
    "posts": (
        "id",
        "title",
        "slug",
        "content",
        "excerpt",
        "status",
        "type",
        "author_id",
        "journalist_id",
        "category_id",
        "featured_image",
        "created_at",
        "updated_at",
    ),
    "journalists": (
        "id",
        "name",
        "niche",
        "category",
        "category_id",
        "schedule",
        "status",
        "last_run",
        "perspective",
        "use_current_events",
        "age",
        "gender",
        "avatar_url",
        "claim_token",
        "claimed_at",
        "created_at",
        "updated_at",
    ),
    "categories": ("id", "name", "slug", "created_at"),
}

PRINCIPAL_SETTING_KEY = "session.principal_id"


def init_db(path: str | None = None):
    return connect_db(path)


def get_setting(conn: Any, key: str, default: object) -> object:
    cursor = conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
    row = cursor.fetchone()
    if not row:
        return default
    try:
        return json.loads(row[0])
    except json.JSONDecodeError:
        return default


def set_setting(conn: Any, key: str, value: object) -> None:
    payload = json_dumps(value)
    now = utc_now_iso()
    conn.execute(
        """
        INSERT INTO settings (key, value, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
        """,
        (key, payload, now),
    )
    conn.commit()


def insert_record(conn: Any, collection: str, fields: dict[str, Any]) -> str:
    columns = _columns(collection)
    data = {key: value for key, value in fields.items() if key in columns}
    unknown = sorted(set(fields) - set(columns))
    if unknown:
        raise ValueError(f"unknown_fields: {', '.join(unknown)}")
    data.setdefault("id", str(uuid.uuid4()))
    now = utc_now_iso()
    if "created_at" in columns:
        data.setdefault("created_at", now)
    if "updated_at" in columns:
        data.setdefault("updated_at", now)
    names = list(data.keys())
    placeholders = ", ".join("?" for _ in names)
    conn.execute(
        f"INSERT INTO {collection} ({', '.join(names)}) VALUES ({placeholders})",
        tuple(data[name] for name in names),
    )
    conn.commit()
    return str(data["id"])


def update_record(conn: Any, collection: str, record_id: str, fields: dict[str, Any]) -> bool:
    columns = _columns(collection)
    data = {key: value for key, value in fields.items() if key in columns and key != "id"}
    if not data:
        return False
    if "updated_at" in columns:
        data.setdefault("updated_at", utc_now_iso())
    assignments = ", ".join(f"{name} = ?" for name in data)
    cursor = conn.execute(
        f"UPDATE {collection} SET {assignments} WHERE id = ?",
        (*data.values(), record_id),
    )
    conn.commit()
    return cursor.rowcount == 1


def select_records(
    conn: Any,
    collection: str,
    filters: dict[str, Any] | None = None,
    order_by: str | None = None,
    descending: bool = False,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    columns = _columns(collection)
    clauses: list[str] = []
    params: list[Any] = []
    for key, value in (filters or {}).items():
        if key not in columns:
            raise ValueError(f"unknown_filter: {key}")
        if value is None:
            clauses.append(f"{key} IS NULL")
        else:
            clauses.append(f"{key} = ?")
            params.append(value)
    sql = f"SELECT {', '.join(columns)} FROM {collection}"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    if order_by:
        if order_by not in columns:
            raise ValueError(f"unknown_order: {order_by}")
        sql += f" ORDER BY {order_by} {'DESC' if descending else 'ASC'}"
    if limit is not None:
        sql += " LIMIT ?"
        params.append(int(limit))
    cursor = conn.execute(sql, tuple(params))
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def get_record(conn: Any, collection: str, record_id: str) -> dict[str, Any] | None:
    rows = select_records(conn, collection, {"id": record_id}, limit=1)
    return rows[0] if rows else None


def delete_record(conn: Any, collection: str, record_id: str) -> bool:
    _columns(collection)
    cursor = conn.execute(f"DELETE FROM {collection} WHERE id = ?", (record_id,))
    conn.commit()
    return cursor.rowcount == 1


def get_current_principal(conn: Any) -> str | None:
    principal = os.environ.get("ND_PRINCIPAL_ID", "").strip()
    if principal:
        return principal
    value = get_setting(conn, PRINCIPAL_SETTING_KEY, None)
    return str(value) if value else None


def agent_from_row(row: dict[str, Any]) -> AgentDefinition:
    return AgentDefinition(
        id=str(row["id"]),
        name=str(row.get("name") or ""),
        niche=str(row.get("niche") or ""),
        category=str(row.get("category") or "General"),
        schedule=str(row.get("schedule") or "24h"),
        status=str(row.get("status") or "paused"),
        last_run=row.get("last_run"),
        perspective=int(row.get("perspective") or 0),
        use_current_events=bool(row.get("use_current_events")),
        category_id=row.get("category_id"),
        age=int(row["age"]) if row.get("age") is not None else None,
        gender=row.get("gender"),
        avatar_url=row.get("avatar_url"),
    )


def list_agents(conn: Any, active_only: bool = False) -> list[AgentDefinition]:
    filters = {"status": "active"} if active_only else None
    rows = select_records(conn, "journalists", filters, order_by="created_at")
    return [agent_from_row(row) for row in rows]


def claim_agent_run(
    conn: Any,
    agent_id: str,
    expected_last_run: str | None,
    token: str,
    stale_before: str,
) -> bool:
    now = utc_now_iso()
    params: list[Any] = [token, now, agent_id]
    if expected_last_run is None:
        last_run_clause = "last_run IS NULL"
    else:
        last_run_clause = "last_run = ?"
        params.append(expected_last_run)
    params.append(stale_before)
    cursor = conn.execute(
        f"""
        UPDATE journalists
        SET claim_token = ?, claimed_at = ?
        WHERE id = ? AND status = 'active' AND {last_run_clause}
          AND (claim_token IS NULL OR claimed_at < ?)
        """,
        tuple(params),
    )
    conn.commit()
    return cursor.rowcount == 1


def release_agent_claim(conn: Any, agent_id: str, token: str) -> bool:
    cursor = conn.execute(
        """
        UPDATE journalists
        SET claim_token = NULL, claimed_at = NULL
        WHERE id = ? AND claim_token = ?
        """,
        (agent_id, token),
    )
    conn.commit()
    return cursor.rowcount == 1


def mark_agent_run(conn: Any, agent_id: str, ran_at: str) -> bool:
    cursor = conn.execute(
        """
        UPDATE journalists
        SET last_run = ?, claim_token = NULL, claimed_at = NULL, updated_at = ?
        WHERE id = ?
        """,
        (ran_at, utc_now_iso(), agent_id),
    )
    conn.commit()
    return cursor.rowcount == 1


def count_table(conn: Any, table: str) -> int:
    _columns(table)
    row = conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
    return int(row[0]) if row else 0


def _columns(collection: str) -> tuple[str, ...]:
    columns = COLLECTIONS.get(collection)
    if columns is None:
        raise ValueError(f"unknown_collection: {collection}")
    return columns

