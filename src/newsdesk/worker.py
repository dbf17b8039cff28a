from __future__ import annotations

import argparse
import logging
import time

from .agents.pipeline import run_agent
from .config import ConfigError, bootstrap_runtime_config, load_runtime_config
from .storage import init_db
from .utils import configure_logging, log_event


def _setup_logging() -> logging.Logger:
    return configure_logging("newsdesk.worker")


def run_once(agent_id: str | None = None) -> int:
    logger = _setup_logging()
    try:
        conn = init_db()
        bootstrap_runtime_config(conn)
        config = load_runtime_config(conn)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1

    try:
        result = run_agent(conn, forced_id=agent_id, config=config, logger=logger)
    finally:
        conn.close()
    log_event(
        logger,
        logging.INFO,
        "worker_tick",
        status=result.status,
        agent_id=result.agent_id,
        reason=result.reason,
    )
    return 1 if result.status == "failed" else 0


def run_loop(sleep_seconds: int | None = None) -> int:
    logger = _setup_logging()
    while True:
        try:
            run_once()
        except Exception as exc:  # noqa: BLE001
            log_event(logger, logging.ERROR, "worker_tick_error", error=str(exc))
        time.sleep(sleep_seconds or _configured_sleep(logger))


def _configured_sleep(logger: logging.Logger) -> int:
    try:
        conn = init_db()
        try:
            return load_runtime_config(conn).worker.sleep_seconds
        finally:
            conn.close()
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 300


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="newsdesk-worker")
    parser.add_argument("--once", action="store_true", help="Run a single scheduler tick and exit")
    parser.add_argument(
        "--sleep",
        type=int,
        default=None,
        help="Sleep seconds between ticks (defaults to worker.sleep_seconds)",
    )
    parser.add_argument("--agent-id", default=None, help="Force a specific journalist (with --once)")
    return parser


def main() -> int:
    parser = build_parser()
    args = parser.parse_args()
    if args.once:
        return run_once(args.agent_id)
    return run_loop(args.sleep)


if __name__ == "__main__":
    raise SystemExit(main())
