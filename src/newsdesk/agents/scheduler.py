from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable

from ..models import AgentDefinition
from ..utils import parse_iso

SCHEDULE_FREQUENCIES: dict[str, int] = {
    "6h": 6,
    "24h": 24,
    "2w": 84,
    "1w": 168,
    "2m": 360,
    "1m": 720,
}

DEFAULT_INTERVAL_HOURS = 24
DUE = "DUE"


def schedule_interval(token: str | None, default_hours: int = DEFAULT_INTERVAL_HOURS) -> timedelta:
    hours = SCHEDULE_FREQUENCIES.get((token or "").strip(), default_hours)
    return timedelta(hours=hours)


def next_run_at(
    agent: AgentDefinition,
    now: datetime,
    default_hours: int = DEFAULT_INTERVAL_HOURS,
) -> datetime:
    last_run = parse_iso(agent.last_run)
    if last_run is None:
        return now
    return last_run + schedule_interval(agent.schedule, default_hours)


def is_due(agent: AgentDefinition, now: datetime, default_hours: int = DEFAULT_INTERVAL_HOURS) -> bool:
    return agent.is_active and next_run_at(agent, now, default_hours) <= now


def select_due_agent(
    agents: Iterable[AgentDefinition],
    now: datetime,
    forced_id: str | None = None,
    default_hours: int = DEFAULT_INTERVAL_HOURS,
) -> AgentDefinition | None:
    active = [agent for agent in agents if agent.is_active]
    if forced_id:
        for agent in active:
            if agent.id == forced_id:
                return agent
        return None
    for agent in active:
        if is_due(agent, now, default_hours):
            return agent
    return None


def countdown(agent: AgentDefinition, now: datetime, default_hours: int = DEFAULT_INTERVAL_HOURS) -> str:
    remaining = next_run_at(agent, now, default_hours) - now
    seconds = int(remaining.total_seconds())
    if seconds <= 0:
        return DUE
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
