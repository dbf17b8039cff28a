from __future__ import annotations

import logging
import re
import secrets
import uuid
from dataclasses import replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable

from ..ai.gateway import generate_content
from ..ai.normalize import extract_inline_image_b64, extract_text, strip_code_fence, to_data_uri
from ..ai.registry import ProviderId, get_provider
from ..ai.resolver import candidate_keys
from ..config import Config, load_runtime_config
from ..models import AgentDefinition, GeneratedArticle, PipelineResult
from ..security.html import clean_slug, sanitize_html, strip_all_html
from ..services.key_store import stored_keys
from ..storage import (
    claim_agent_run,
    get_current_principal,
    insert_record,
    list_agents,
    mark_agent_run,
    release_agent_claim,
)
from ..utils import log_event, utc_now, utc_now_iso_offset
from .scheduler import select_due_agent

SPECTRUM_LABELS: dict[int, str] = {
    -3: "Far Left (Anarchism)",
    -2: "Left (Communist)",
    -1: "Center Left (Socialist)",
    0: "Center (Moderate)",
    1: "Center Right (Liberal)",
    2: "Right (Conservative)",
    3: "Far Right (Full Fascism)",
}

SEARCH_INSTRUCTION = (
    "CRITICAL: You MUST use Google Search to find real-time events and data for this "
    "topic before writing. Address the latest developments explicitly."
)

# Kimi only covers text; images always need a Gemini key.
TEXT_PROVIDERS = (ProviderId.GEMINI, ProviderId.KIMI)

EXCERPT_CHARS = 280
SLUG_SUFFIX_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"

_TITLE = re.compile(r"<h1>(.*?)</h1>", re.IGNORECASE | re.DOTALL)

Generator = Callable[[dict[str, Any], str], Any]
ProgressCallback = Callable[[str, int], None]

_LOG = logging.getLogger("newsdesk.agents.pipeline")


class Stage(str, Enum):
    INIT = "init"
    CLAIM = "claim"
    SCOPE = "scope"
    DRAFT = "draft"
    IMAGE = "image"
    PUBLISH = "publish"
    UPDATE_LAST_RUN = "update_last_run"
    DONE = "done"


class PipelineError(RuntimeError):
    def __init__(self, stage: Stage, message: str) -> None:
        super().__init__(message)
        self.stage = stage


def spectrum_label(perspective: int | None) -> str:
    return SPECTRUM_LABELS.get(perspective or 0, SPECTRUM_LABELS[0])


def build_system_instruction(agent: AgentDefinition) -> str:
    stance = spectrum_label(agent.perspective)
    age = agent.age if agent.age is not None else "seasoned"
    lines = [
        f"You are {agent.name}, a {age}-year-old professional journalist.",
        f"Expertise: {agent.category}.",
        f"Editorial Beat: {agent.niche}.",
        f"Political Stance: {stance}.",
        f"Narrative Style: Your age ({age}) influences your vocabulary, depth of historical "
        "knowledge, and cynicism/optimism levels.",
    ]
    if agent.use_current_events:
        lines.append(SEARCH_INSTRUCTION)
    return "\n".join(lines)


def build_article_prompt(agent: AgentDefinition, words: int = 750) -> str:
    return (
        f"Write a {words}-word investigative article regarding: {agent.niche}.\n"
        f"Ensure your {spectrum_label(agent.perspective)} perspective is clear but well-reasoned.\n"
        "Format: Return ONLY valid HTML (<h1>, <h2>, <p>, <blockquote>). No markdown wrappers."
    )


def build_article_request(agent: AgentDefinition, words: int = 750) -> dict[str, Any]:
    body: dict[str, Any] = {
        "systemInstruction": {"parts": [{"text": build_system_instruction(agent)}]},
        "contents": [{"role": "user", "parts": [{"text": build_article_prompt(agent, words)}]}],
    }
    if agent.use_current_events:
        body["tools"] = [{"googleSearch": {}}]
    return body


def build_image_request(title: str) -> dict[str, Any]:
    prompt = f"A professional editorial news photo about: {title}. High-end journalism aesthetic."
    return {
        "contents": [{"parts": [{"text": prompt}]}],
        "generationConfig": {
            "responseModalities": ["TEXT", "IMAGE"],
            "imageConfig": {"aspectRatio": "16:9"},
        },
    }


def split_title(html: str, niche: str) -> tuple[str, str]:
    match = _TITLE.search(html)
    if not match:
        return f"{niche} Update", html.strip()
    title = strip_all_html(match.group(1)) or f"{niche} Update"
    body = (html[: match.start()] + html[match.end():]).strip()
    return title, body


def make_slug(title: str) -> str:
    suffix = "".join(secrets.choice(SLUG_SUFFIX_ALPHABET) for _ in range(4))
    base = clean_slug(title)
    return f"{base}-{suffix}" if base else suffix


def has_text_key(conn) -> bool:
    for provider_id in TEXT_PROVIDERS:
        provider = get_provider(provider_id)
        if candidate_keys(provider, None, stored_keys(conn, provider.id)):
            return True
    return False


def run_agent(
    conn,
    *,
    forced_id: str | None = None,
    now: datetime | None = None,
    generate: Generator | None = None,
    on_progress: ProgressCallback | None = None,
    config: Config | None = None,
    logger: logging.Logger | None = None,
) -> PipelineResult:
    """Run at most one journalist agent through the publishing pipeline.

    Picks ``forced_id`` or the first due active agent, claims it, drafts the
    article, attempts a featured image, publishes the post and records the
    run. Image failures only drop the image; any other failure leaves
    ``last_run`` untouched so the agent stays due.
    """
    log = logger or _LOG
    config = config or load_runtime_config(conn)
    now = now or utc_now()
    steps: list[dict[str, Any]] = []

    def report(stage: Stage, message: str, percent: int) -> None:
        steps.append({"stage": stage.value, "message": message, "percent": percent})
        if on_progress is None:
            return
        try:
            on_progress(message, percent)
        except Exception as exc:  # noqa: BLE001
            log_event(log, logging.DEBUG, "agent_progress_callback_failed", error=str(exc))

    if generate is None:
        if not has_text_key(conn):
            log_event(log, logging.WARNING, "agent_run_skipped", reason="no_text_key")
            return PipelineResult(status="skipped", reason="no_text_key", steps=steps)
        generate = _default_generator(conn, config)

    agents = list_agents(conn, active_only=True)
    agent = select_due_agent(
        agents,
        now,
        forced_id=forced_id,
        default_hours=config.agents.default_interval_hours,
    )
    if agent is None:
        log_event(log, logging.INFO, "agent_run_idle", forced_id=forced_id, active=len(agents))
        return PipelineResult(status="idle", reason="no_due_agent", steps=steps)

    token = uuid.uuid4().hex
    stale_before = utc_now_iso_offset(seconds=-config.agents.claim_timeout_seconds)
    if not claim_agent_run(conn, agent.id, agent.last_run, token, stale_before):
        log_event(
            log,
            logging.INFO,
            "agent_run_skipped",
            agent_id=agent.id,
            stage=Stage.CLAIM.value,
            reason="claimed_elsewhere",
        )
        return PipelineResult(
            status="skipped",
            agent_id=agent.id,
            reason="claimed_elsewhere",
            steps=steps,
        )

    log_event(log, logging.INFO, "agent_run_start", agent_id=agent.id, name=agent.name, forced=bool(forced_id))
    report(Stage.INIT, f"Initializing {agent.name}...", 5)
    try:
        article = _draft_article(agent, generate, config, report)
        image_uri = _generate_image(agent, article.title, generate, config, log, report)
        article = replace(
            article,
            author_id=get_current_principal(conn) or config.agents.author_id or None,
            featured_image_data_uri=image_uri,
        )
        report(Stage.PUBLISH, "Finalizing publication to registry...", 90)
        post_id = _publish(conn, article)
    except Exception as exc:  # noqa: BLE001
        stage = exc.stage if isinstance(exc, PipelineError) else Stage.PUBLISH
        release_agent_claim(conn, agent.id, token)
        log_event(
            log,
            logging.ERROR,
            "agent_run_failed",
            agent_id=agent.id,
            stage=stage.value,
            error=str(exc),
        )
        report(stage, f"Error: {str(exc) or 'Operation failed'}", 0)
        return PipelineResult(
            status="failed",
            agent_id=agent.id,
            error=str(exc),
            reason=stage.value,
            steps=steps,
        )

    try:
        recorded = mark_agent_run(conn, agent.id, now.isoformat())
    except Exception as exc:  # noqa: BLE001
        # The post exists; the claim stays until it goes stale.
        log_event(
            log,
            logging.ERROR,
            "agent_run_failed",
            agent_id=agent.id,
            stage=Stage.UPDATE_LAST_RUN.value,
            post_id=post_id,
            error=str(exc),
        )
        report(Stage.UPDATE_LAST_RUN, f"Error: {str(exc) or 'Operation failed'}", 0)
        return PipelineResult(
            status="failed",
            agent_id=agent.id,
            post_id=post_id,
            slug=article.slug,
            image_attached=bool(article.featured_image_data_uri),
            error=str(exc),
            reason=Stage.UPDATE_LAST_RUN.value,
            steps=steps,
        )
    if not recorded:
        log_event(log, logging.WARNING, "agent_run_unrecorded", agent_id=agent.id, stage=Stage.UPDATE_LAST_RUN.value)
    report(Stage.DONE, "Successfully dispatched.", 100)
    log_event(
        log,
        logging.INFO,
        "agent_run_published",
        agent_id=agent.id,
        post_id=post_id,
        slug=article.slug,
        image=bool(article.featured_image_data_uri),
    )
    return PipelineResult(
        status="published",
        agent_id=agent.id,
        post_id=post_id,
        slug=article.slug,
        image_attached=bool(article.featured_image_data_uri),
        steps=steps,
    )


def _draft_article(
    agent: AgentDefinition,
    generate: Generator,
    config: Config,
    report: Callable[[Stage, str, int], None],
) -> GeneratedArticle:
    report(Stage.SCOPE, f"Scouting intelligence for {agent.category}...", 15)
    request = build_article_request(agent, config.agents.article_words)
    report(Stage.DRAFT, "Investigating & Drafting Article...", 35)
    try:
        payload = generate(request, config.ai.text_model)
    except Exception as exc:  # noqa: BLE001
        raise PipelineError(Stage.DRAFT, str(exc)) from exc
    text = strip_code_fence(extract_text(payload))
    if not text:
        raise PipelineError(Stage.DRAFT, "empty draft returned by model")
    title, body = split_title(text, agent.niche)
    return GeneratedArticle(
        title=title,
        html_body=sanitize_html(body),
        status="publish",
        author_id=None,
        agent_id=agent.id,
        category_id=agent.category_id,
        featured_image_data_uri=None,
        slug=make_slug(title),
    )


def _generate_image(
    agent: AgentDefinition,
    title: str,
    generate: Generator,
    config: Config,
    log: logging.Logger,
    report: Callable[[Stage, str, int], None],
) -> str | None:
    report(Stage.IMAGE, "Capturing editorial photography...", 70)
    try:
        payload = generate(build_image_request(title), config.ai.image_model)
    except Exception as exc:  # noqa: BLE001
        log_event(log, logging.WARNING, "agent_image_failed", agent_id=agent.id, error=str(exc))
        return None
    found = extract_inline_image_b64(payload)
    if found is None:
        log_event(log, logging.WARNING, "agent_image_missing", agent_id=agent.id)
        return None
    data, mime = found
    return to_data_uri(data, mime)


def _publish(conn, article: GeneratedArticle) -> str:
    excerpt = strip_all_html(article.html_body)[:EXCERPT_CHARS]
    return insert_record(
        conn,
        "posts",
        {
            "title": article.title,
            "slug": article.slug,
            "content": article.html_body,
            "excerpt": excerpt,
            "status": article.status,
            "type": "post",
            "author_id": article.author_id,
            "journalist_id": article.agent_id,
            "category_id": article.category_id,
            "featured_image": article.featured_image_data_uri,
        },
    )


def _default_generator(conn, config: Config) -> Generator:
    def generate(body: dict[str, Any], model: str) -> Any:
        result = generate_content(
            body,
            model_candidates=[model],
            conn=conn,
            timeout_seconds=config.ai.request_timeout_seconds,
        )
        return result.payload

    return generate
