from __future__ import annotations

import logging
import os
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from .agents.pipeline import run_agent
from .ai.gateway import handle_gemini_request, handle_proxy_research
from .ai.registry import PROVIDERS
from .ai.research import perform_research
from .config import (
    ConfigError,
    bootstrap_runtime_config,
    get_runtime_config,
    load_runtime_config,
    set_runtime_config,
)
from .db import DBConn
from .services.agents_service import (
    create_journalist,
    delete_journalist,
    get_journalist,
    list_journalists,
    schedule_overview,
    update_journalist,
)
from .services.key_store import (
    clear_provider_secret,
    key_status,
    list_provider_status,
    set_provider_secret,
)
from .storage import count_table, init_db
from .utils import configure_logging, log_event

app = FastAPI(title="Newsdesk API")

CORS_HEADERS = {
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,OPTIONS,PATCH,DELETE,POST,PUT",
    "Access-Control-Allow-Headers": (
        "X-CSRF-Token, X-Requested-With, Accept, Accept-Version, Content-Length, "
        "Content-MD5, Content-Type, Date, X-Api-Version"
    ),
}

logger = logging.getLogger("newsdesk.admin")


def _require_admin_token(request: Request) -> None:
    token = os.environ.get("ND_ADMIN_TOKEN")
    if not token:
        return
    if request.headers.get("X-Admin-Token") != token:
        raise HTTPException(status_code=401, detail="unauthorized")


@app.middleware("http")
async def _cors_middleware(request: Request, call_next):
    response = await call_next(request)
    for name, value in CORS_HEADERS.items():
        response.headers[name] = value
    return response


class RuntimeConfigRequest(BaseModel):
    config: dict


class AgentRequest(BaseModel):
    name: str | None = None
    niche: str | None = None
    category: str | None = None
    category_id: str | None = None
    schedule: str | None = None
    status: str | None = None
    perspective: int | None = None
    use_current_events: bool | None = None
    age: int | None = None
    gender: str | None = None
    avatar_url: str | None = None


class ResearchRequest(BaseModel):
    query: str


class ProviderSecretRequest(BaseModel):
    api_key: str


@app.get("/")
def root() -> dict[str, str]:
    return {"service": "Newsdesk API"}


@app.get("/health")
def health() -> dict[str, object]:
    return {
        "ok": True,
        "version": _get_version(),
        "time": datetime.now(tz=timezone.utc).isoformat(),
    }


@app.post("/api/gemini")
async def api_gemini(request: Request) -> JSONResponse:
    payload = await _read_json(request)
    conn = _get_conn()
    status, body = handle_gemini_request(
        payload,
        conn=conn,
        timeout_seconds=_request_timeout(conn),
    )
    return JSONResponse(status_code=status, content=body)


@app.options("/api/proxy-research")
def api_proxy_research_options() -> Response:
    return Response(status_code=200)


@app.post("/api/proxy-research")
async def api_proxy_research(request: Request) -> JSONResponse:
    payload = await _read_json(request)
    conn = _get_conn()
    cfg = load_runtime_config(conn)
    status, body = handle_proxy_research(
        payload,
        conn=conn,
        timeout_seconds=cfg.ai.request_timeout_seconds,
        research_model=cfg.ai.research_model,
    )
    return JSONResponse(status_code=status, content=body)


@app.get("/admin/config/runtime", dependencies=[Depends(_require_admin_token)])
def runtime_config_get() -> dict[str, object]:
    conn = _get_conn()
    try:
        cfg = get_runtime_config(conn)
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"config": cfg}


@app.put("/admin/config/runtime", dependencies=[Depends(_require_admin_token)])
def runtime_config_set(payload: RuntimeConfigRequest) -> dict[str, object]:
    conn = _get_conn()
    try:
        set_runtime_config(conn, payload.config)
    except ConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"status": "ok"}


agents_router = APIRouter(prefix="/admin/agents", dependencies=[Depends(_require_admin_token)])


@agents_router.get("")
def agents_list() -> list[dict[str, object]]:
    conn = _get_conn()
    return list_journalists(conn)


@agents_router.post("")
def agents_create(payload: AgentRequest) -> dict[str, object]:
    conn = _get_conn()
    try:
        return create_journalist(conn, payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@agents_router.get("/schedule")
def agents_schedule() -> list[dict[str, object]]:
    conn = _get_conn()
    cfg = load_runtime_config(conn)
    return schedule_overview(conn, default_hours=cfg.agents.default_interval_hours)


@agents_router.post("/run-due")
def agents_run_due() -> dict[str, object]:
    conn = _get_conn()
    result = run_agent(conn, logger=logger)
    return result.to_dict()


@agents_router.get("/{agent_id}")
def agents_get(agent_id: str) -> dict[str, object]:
    conn = _get_conn()
    agent = get_journalist(conn, agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="agent_not_found")
    return agent


@agents_router.put("/{agent_id}")
def agents_update(agent_id: str, payload: AgentRequest) -> dict[str, object]:
    conn = _get_conn()
    try:
        return update_journalist(conn, agent_id, payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        status = 404 if str(exc) == "agent_not_found" else 400
        raise HTTPException(status_code=status, detail=str(exc)) from exc


@agents_router.delete("/{agent_id}")
def agents_delete(agent_id: str) -> dict[str, str]:
    conn = _get_conn()
    try:
        delete_journalist(conn, agent_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"status": "deleted"}


@agents_router.post("/{agent_id}/deploy")
def agents_deploy(agent_id: str) -> dict[str, object]:
    conn = _get_conn()
    agent = get_journalist(conn, agent_id)
    if not agent:
        raise HTTPException(status_code=404, detail="agent_not_found")
    if agent.get("status") != "active":
        raise HTTPException(status_code=409, detail="agent_paused")
    result = run_agent(conn, forced_id=agent_id, logger=logger)
    return result.to_dict()


@app.post("/admin/research", dependencies=[Depends(_require_admin_token)])
def admin_research(payload: ResearchRequest) -> dict[str, object]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="query is required")
    conn = _get_conn()
    cfg = load_runtime_config(conn)

    def proxy(request_payload: dict) -> tuple[int, dict]:
        return handle_proxy_research(
            request_payload,
            conn=conn,
            timeout_seconds=cfg.ai.request_timeout_seconds,
            research_model=cfg.ai.research_model,
        )

    results = perform_research(query, proxy=proxy)
    return {"query": query, "results": [item.to_dict() for item in results]}


@app.get("/admin/diagnostics", dependencies=[Depends(_require_admin_token)])
def admin_diagnostics() -> dict[str, object]:
    conn = _get_conn()
    database = _database_check(conn)
    keys = {provider_id.value: key_status(conn, provider_id) for provider_id in PROVIDERS}
    status, gemini = handle_gemini_request(
        {"operation": "validate"},
        conn=conn,
        timeout_seconds=_request_timeout(conn),
    )
    log_event(
        logger,
        logging.INFO,
        "diagnostics_run",
        database=database["status"],
        gemini_status=status,
    )
    return {
        "database": database,
        "keys": keys,
        "gemini": {"status_code": status, **gemini},
    }


ai_router = APIRouter(prefix="/admin/ai", dependencies=[Depends(_require_admin_token)])


@ai_router.get("/providers")
def ai_providers_list() -> list[dict[str, object]]:
    conn = _get_conn()
    return list_provider_status(conn)


@ai_router.post("/providers/{provider_id}/secret")
def ai_providers_set_secret(provider_id: str, payload: ProviderSecretRequest) -> dict[str, object]:
    conn = _get_conn()
    try:
        return set_provider_secret(conn, provider_id, payload.api_key)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@ai_router.delete("/providers/{provider_id}/secret")
def ai_providers_clear_secret(provider_id: str) -> dict[str, str]:
    conn = _get_conn()
    try:
        clear_provider_secret(conn, provider_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"status": "cleared"}


app.include_router(agents_router)
app.include_router(ai_router)


def _get_version() -> str:
    try:
        from importlib.metadata import version

        return version("newsdesk")
    except Exception:  # noqa: BLE001
        return "unknown"


def _get_conn() -> DBConn:
    conn = init_db()
    bootstrap_runtime_config(conn)
    return conn


async def _read_json(request: Request) -> object:
    try:
        return await request.json()
    except ValueError:
        return None


def _request_timeout(conn: DBConn) -> int:
    try:
        return load_runtime_config(conn).ai.request_timeout_seconds
    except ConfigError:
        return 30


def _database_check(conn: DBConn) -> dict[str, object]:
    try:
        posts = count_table(conn, "posts")
        journalists = count_table(conn, "journalists")
    except Exception as exc:  # noqa: BLE001
        log_event(logger, logging.ERROR, "diagnostics_db_failed", error=str(exc))
        return {"status": "error", "message": str(exc)}
    return {"status": "ok", "posts": posts, "journalists": journalists}


def _setup_logging() -> None:
    configure_logging("newsdesk.admin")


_setup_logging()
