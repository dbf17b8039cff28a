from __future__ import annotations

import argparse
import json
import logging

from .agents.pipeline import run_agent
from .ai.gateway import handle_gemini_request
from .ai.registry import PROVIDERS
from .ai.research import perform_research
from .config import ConfigError, get_runtime_config, load_runtime_config
from .db import get_db_url, get_state_db_path
from .migrations import get_schema_version
from .services.agents_service import schedule_overview
from .services.key_store import key_status
from .storage import init_db
from .utils import configure_logging, log_event


def _setup_logging() -> logging.Logger:
    return configure_logging("newsdesk.cli")


def _cmd_agents_list(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db()
    try:
        config = load_runtime_config(conn)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    overview = schedule_overview(conn, default_hours=config.agents.default_interval_hours)
    if not overview:
        log_event(logger, logging.WARNING, "no_agents", hint="Create journalists via /admin/agents")
        return 1
    for agent in overview:
        log_event(
            logger,
            logging.INFO,
            "agent",
            agent_id=agent["id"],
            name=agent["name"],
            status=agent["status"],
            schedule=agent["schedule"],
            next_run_at=agent["next_run_at"],
            countdown=agent["countdown"],
        )
    log_event(logger, logging.INFO, "agents_listed", count=len(overview))
    return 0


def _cmd_agents_run(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db()
    try:
        config = load_runtime_config(conn)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1

    def progress(step: str, percent: int) -> None:
        log_event(logger, logging.INFO, "agent_progress", step=step, percent=percent)

    result = run_agent(
        conn,
        forced_id=args.agent_id,
        on_progress=progress,
        config=config,
        logger=logger,
    )
    print(json.dumps(result.to_dict(), indent=2))
    return 1 if result.status == "failed" else 0


def _cmd_research(args: argparse.Namespace, logger: logging.Logger) -> int:
    results = perform_research(args.query)
    if not results:
        log_event(logger, logging.WARNING, "research_empty", query=args.query)
        return 1
    print(json.dumps([item.to_dict() for item in results], indent=2))
    return 0


def _cmd_diagnostics(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db()
    for provider_id in PROVIDERS:
        status = key_status(conn, provider_id)
        log_event(
            logger,
            logging.INFO,
            "key_status",
            provider=provider_id.value,
            status=status["status"],
            message=status["message"],
        )
    status_code, body = handle_gemini_request({"operation": "validate"}, conn=conn)
    log_event(
        logger,
        logging.INFO if body.get("ok") else logging.ERROR,
        "gemini_validate",
        status=status_code,
        model=body.get("model"),
        error=body.get("error"),
        attempts=len(body.get("attempts") or []),
    )
    return 0 if body.get("ok") else 1


def _cmd_db_migrate(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db()
    target = get_db_url() or get_state_db_path()
    log_event(logger, logging.INFO, "db_migrated", target=target, version=get_schema_version(conn))
    return 0


def _cmd_config_show(args: argparse.Namespace, logger: logging.Logger) -> int:
    conn = init_db()
    try:
        cfg = get_runtime_config(conn)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    print(json.dumps(cfg, indent=2, sort_keys=True))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="newsdesk", description="Newsdesk CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    agents_parser = subparsers.add_parser("agents", help="Inspect and run journalist agents")
    agents_subparsers = agents_parser.add_subparsers(dest="agents_command", required=True)
    agents_list = agents_subparsers.add_parser("list", help="List agents with their next run")
    agents_list.set_defaults(func=_cmd_agents_list)
    agents_run = agents_subparsers.add_parser("run", help="Run the first due agent")
    agents_run.add_argument("--agent-id", default=None, help="Force a specific agent")
    agents_run.set_defaults(func=_cmd_agents_run)

    research_parser = subparsers.add_parser("research", help="Run one research query")
    research_parser.add_argument("query", help="Topic to research")
    research_parser.set_defaults(func=_cmd_research)

    diagnostics_parser = subparsers.add_parser("diagnostics", help="Check keys and Gemini reachability")
    diagnostics_parser.set_defaults(func=_cmd_diagnostics)

    db_parser = subparsers.add_parser("db", help="Database utilities")
    db_subparsers = db_parser.add_subparsers(dest="db_command", required=True)
    db_migrate = db_subparsers.add_parser("migrate", help="Apply pending migrations")
    db_migrate.set_defaults(func=_cmd_db_migrate)

    config_parser = subparsers.add_parser("config", help="Runtime configuration")
    config_subparsers = config_parser.add_subparsers(dest="config_command", required=True)
    config_show = config_subparsers.add_parser("show", help="Print config.runtime")
    config_show.set_defaults(func=_cmd_config_show)

    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    logger = _setup_logging()
    return args.func(args, logger)


if __name__ == "__main__":
    raise SystemExit(main())
