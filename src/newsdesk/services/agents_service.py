from __future__ import annotations

from datetime import datetime
from typing import Any

from ..agents.scheduler import SCHEDULE_FREQUENCIES, countdown, next_run_at
from ..storage import (
    agent_from_row,
    delete_record,
    get_record,
    insert_record,
    list_agents,
    select_records,
    update_record,
)
from ..utils import utc_now

AGENT_STATUSES = ("active", "paused")
PERSPECTIVE_RANGE = (-3, 3)

_PUBLIC_FIELDS = (
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
    "created_at",
    "updated_at",
)


def list_journalists(conn: Any) -> list[dict[str, Any]]:
    rows = select_records(conn, "journalists", order_by="created_at")
    return [_public(row) for row in rows]


def get_journalist(conn: Any, agent_id: str) -> dict[str, Any] | None:
    row = get_record(conn, "journalists", agent_id)
    return _public(row) if row else None


def create_journalist(conn: Any, payload: dict[str, Any]) -> dict[str, Any]:
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ValueError("name is required")
    niche = str(payload.get("niche") or "").strip()
    if not niche:
        raise ValueError("niche is required")
    fields = {
        "name": name,
        "niche": niche,
        "category": str(payload.get("category") or "General").strip() or "General",
        "category_id": payload.get("category_id") or None,
        "schedule": _schedule(payload.get("schedule", "24h")),
        "status": _status(payload.get("status", "active")),
        "perspective": _perspective(payload.get("perspective", 0)),
        "use_current_events": 1 if payload.get("use_current_events") else 0,
        "age": _age(payload.get("age")),
        "gender": payload.get("gender") or None,
        "avatar_url": payload.get("avatar_url") or None,
    }
    agent_id = insert_record(conn, "journalists", fields)
    return get_journalist(conn, agent_id) or {}


def update_journalist(conn: Any, agent_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    if get_record(conn, "journalists", agent_id) is None:
        raise ValueError("agent_not_found")
    fields: dict[str, Any] = {}
    for key in ("name", "niche"):
        if key in payload:
            value = str(payload.get(key) or "").strip()
            if not value:
                raise ValueError(f"{key} is required")
            fields[key] = value
    if "category" in payload:
        fields["category"] = str(payload.get("category") or "General").strip() or "General"
    if "category_id" in payload:
        fields["category_id"] = payload.get("category_id") or None
    if "schedule" in payload:
        fields["schedule"] = _schedule(payload.get("schedule"))
    if "status" in payload:
        fields["status"] = _status(payload.get("status"))
    if "perspective" in payload:
        fields["perspective"] = _perspective(payload.get("perspective"))
    if "use_current_events" in payload:
        fields["use_current_events"] = 1 if payload.get("use_current_events") else 0
    if "age" in payload:
        fields["age"] = _age(payload.get("age"))
    for key in ("gender", "avatar_url"):
        if key in payload:
            fields[key] = payload.get(key) or None
    if fields:
        update_record(conn, "journalists", agent_id, fields)
    return get_journalist(conn, agent_id) or {}


def delete_journalist(conn: Any, agent_id: str) -> None:
    if not delete_record(conn, "journalists", agent_id):
        raise ValueError("agent_not_found")


def schedule_overview(
    conn: Any,
    now: datetime | None = None,
    default_hours: int = 24,
) -> list[dict[str, Any]]:
    now = now or utc_now()
    overview = []
    for agent in list_agents(conn):
        overview.append(
            {
                "id": agent.id,
                "name": agent.name,
                "status": agent.status,
                "schedule": agent.schedule,
                "last_run": agent.last_run,
                "next_run_at": next_run_at(agent, now, default_hours).isoformat(),
                "countdown": countdown(agent, now, default_hours) if agent.is_active else None,
            }
        )
    return overview


def _public(row: dict[str, Any]) -> dict[str, Any]:
    data = {key: row.get(key) for key in _PUBLIC_FIELDS}
    agent = agent_from_row(row)
    data["use_current_events"] = agent.use_current_events
    data["perspective"] = agent.perspective
    return data


def _schedule(value: Any) -> str:
    token = str(value or "").strip()
    if token not in SCHEDULE_FREQUENCIES:
        raise ValueError(f"schedule must be one of: {', '.join(SCHEDULE_FREQUENCIES)}")
    return token


def _status(value: Any) -> str:
    status = str(value or "").strip().lower()
    if status not in AGENT_STATUSES:
        raise ValueError("status must be active or paused")
    return status


def _perspective(value: Any) -> int:
    try:
        perspective = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError("perspective must be an integer") from exc
    low, high = PERSPECTIVE_RANGE
    if perspective < low or perspective > high:
        raise ValueError(f"perspective must be between {low} and {high}")
    return perspective


def _age(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        age = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError("age must be an integer") from exc
    if age <= 0:
        raise ValueError("age must be positive")
    return age
