from datetime import datetime, timedelta, timezone

from newsdesk.agents.scheduler import (
    countdown,
    next_run_at,
    schedule_interval,
    select_due_agent,
)
from newsdesk.models import AgentDefinition

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _agent(agent_id, last_run=None, schedule="24h", status="active"):
    return AgentDefinition(
        id=agent_id,
        name=f"Agent {agent_id}",
        niche="markets",
        category="Finance",
        schedule=schedule,
        status=status,
        last_run=last_run.isoformat() if last_run else None,
        perspective=0,
        use_current_events=False,
    )


def test_schedule_intervals():
    assert schedule_interval("6h") == timedelta(hours=6)
    assert schedule_interval("2w") == timedelta(hours=84)
    assert schedule_interval("1m") == timedelta(hours=720)
    assert schedule_interval("bogus") == timedelta(hours=24)
    assert schedule_interval(None) == timedelta(hours=24)


def test_never_run_agent_is_due():
    assert select_due_agent([_agent("a")], NOW).id == "a"


def test_due_boundaries():
    interval = timedelta(hours=24)
    overdue = _agent("late", NOW - interval - timedelta(hours=1))
    exact = _agent("exact", NOW - interval)
    recent = _agent("recent", NOW - interval + timedelta(hours=1))

    assert select_due_agent([recent], NOW) is None
    assert select_due_agent([exact], NOW).id == "exact"
    assert select_due_agent([recent, overdue], NOW).id == "late"


def test_paused_agents_are_never_selected():
    paused = _agent("p", status="paused")
    assert select_due_agent([paused], NOW) is None
    assert select_due_agent([paused], NOW, forced_id="p") is None


def test_forced_id_bypasses_schedule():
    recent = _agent("r", NOW - timedelta(minutes=5))
    assert select_due_agent([recent], NOW) is None
    assert select_due_agent([recent], NOW, forced_id="r").id == "r"
    assert select_due_agent([recent], NOW, forced_id="missing") is None


def test_first_due_agent_wins():
    agents = [_agent("a", NOW), _agent("b"), _agent("c")]
    assert select_due_agent(agents, NOW).id == "b"


def test_next_run_and_countdown():
    agent = _agent("a", NOW - timedelta(hours=5), schedule="6h")
    assert next_run_at(agent, NOW) == NOW + timedelta(hours=1)
    assert countdown(agent, NOW) == "01:00:00"
    assert countdown(_agent("b"), NOW) == "DUE"
