from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

import yaml

from .storage import get_setting, set_setting


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class AppConfig:
    name: str
    timezone: str


@dataclass(frozen=True)
class AIConfig:
    request_timeout_seconds: int
    gemini_model_candidates: list[str]
    text_model: str
    image_model: str
    research_model: str


@dataclass(frozen=True)
class AgentsConfig:
    default_interval_hours: int
    article_words: int
    claim_timeout_seconds: int
    author_id: str


@dataclass(frozen=True)
class WorkerConfig:
    sleep_seconds: int


@dataclass(frozen=True)
class Config:
    app: AppConfig
    ai: AIConfig
    agents: AgentsConfig
    worker: WorkerConfig


DEFAULT_CONFIG: dict[str, Any] = {
    "app": {
        "name": "Newsdesk",
        "timezone": "UTC",
    },
    "ai": {
        "request_timeout_seconds": 30,
        "gemini_model_candidates": [
            "gemini-2.0-flash",
            "gemini-2.5-flash",
            "gemini-2.5-pro",
        ],
        "text_model": "gemini-3-pro-preview",
        "image_model": "gemini-2.5-flash-image",
        "research_model": "gemini-3-flash-preview",
    },
    "agents": {
        "default_interval_hours": 24,
        "article_words": 750,
        "claim_timeout_seconds": 900,
        "author_id": "",
    },
    "worker": {
        "sleep_seconds": 300,
    },
}

CONFIG_KEY = "config.runtime"


def bootstrap_runtime_config(conn) -> dict[str, Any]:
    cfg = get_setting(conn, CONFIG_KEY, None)
    if cfg is None:
        set_setting(conn, CONFIG_KEY, _initial_config())
        cfg = get_setting(conn, CONFIG_KEY, None)
    if not isinstance(cfg, dict):
        raise ConfigError("config.runtime must be a JSON object")
    return cfg


def get_runtime_config(conn) -> dict[str, Any]:
    cfg = bootstrap_runtime_config(conn)
    errors = validate_runtime_config(cfg)
    if errors:
        raise ConfigError("Invalid config.runtime: " + "; ".join(errors))
    return cfg


def set_runtime_config(conn, cfg: dict[str, Any]) -> None:
    errors = validate_runtime_config(cfg)
    if errors:
        raise ConfigError("Invalid config.runtime: " + "; ".join(errors))
    set_setting(conn, CONFIG_KEY, _deep_copy(cfg))


def load_runtime_config(conn) -> Config:
    cfg = get_runtime_config(conn)
    return build_config(cfg)


def default_config() -> Config:
    return build_config(_deep_copy(DEFAULT_CONFIG))


def load_config_file(path: str) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
    except OSError as exc:
        raise ConfigError(f"Unable to read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping")
    merged = _merge(_deep_copy(DEFAULT_CONFIG), raw)
    errors = validate_runtime_config(merged)
    if errors:
        raise ConfigError(f"Invalid config file {path}: " + "; ".join(errors))
    return merged


def validate_runtime_config(cfg: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    _validate_dict(cfg, DEFAULT_CONFIG, "config.runtime", errors)
    if not errors:
        ai_cfg = cfg["ai"]
        if ai_cfg["request_timeout_seconds"] <= 0:
            errors.append("config.runtime.ai.request_timeout_seconds must be positive")
        if not ai_cfg["gemini_model_candidates"]:
            errors.append("config.runtime.ai.gemini_model_candidates must not be empty")
        if cfg["agents"]["default_interval_hours"] <= 0:
            errors.append("config.runtime.agents.default_interval_hours must be positive")
    return errors


def _initial_config() -> dict[str, Any]:
    path = os.environ.get("ND_CONFIG_PATH", "").strip()
    if path:
        return load_config_file(path)
    return _deep_copy(DEFAULT_CONFIG)


def _validate_dict(value: dict[str, Any], schema: dict[str, Any], path: str, errors: list[str]) -> None:
    if not isinstance(value, dict):
        errors.append(f"{path} must be an object")
        return
    for key in schema.keys():
        if key not in value:
            errors.append(f"missing {path}.{key}")
    for key in value.keys():
        if key not in schema:
            errors.append(f"unknown {path}.{key}")
    for key, default in schema.items():
        if key not in value:
            continue
        _validate_value(value[key], default, f"{path}.{key}", errors)


def _validate_value(value: Any, default: Any, path: str, errors: list[str]) -> None:
    if isinstance(default, dict):
        _validate_dict(value, default, path, errors)
        return
    if isinstance(default, list):
        if not isinstance(value, list):
            errors.append(f"{path} must be a list")
            return
        for item in value:
            if not isinstance(item, str):
                errors.append(f"{path} must be a list of strings")
                break
        return
    if isinstance(default, bool):
        if not isinstance(value, bool):
            errors.append(f"{path} must be a boolean")
        return
    if isinstance(default, int):
        if not isinstance(value, int) or isinstance(value, bool):
            errors.append(f"{path} must be an integer")
        return
    if isinstance(default, str):
        if not isinstance(value, str):
            errors.append(f"{path} must be a string")
        return


def build_config(cfg: dict[str, Any]) -> Config:
    app_cfg = cfg.get("app") or {}
    ai_cfg = cfg.get("ai") or {}
    agents_cfg = cfg.get("agents") or {}
    worker_cfg = cfg.get("worker") or {}

    app = AppConfig(
        name=str(app_cfg.get("name")),
        timezone=str(app_cfg.get("timezone")),
    )
    ai = AIConfig(
        request_timeout_seconds=int(ai_cfg.get("request_timeout_seconds")),
        gemini_model_candidates=list(ai_cfg.get("gemini_model_candidates")),
        text_model=str(ai_cfg.get("text_model")),
        image_model=str(ai_cfg.get("image_model")),
        research_model=str(ai_cfg.get("research_model")),
    )
    agents = AgentsConfig(
        default_interval_hours=int(agents_cfg.get("default_interval_hours")),
        article_words=int(agents_cfg.get("article_words")),
        claim_timeout_seconds=int(agents_cfg.get("claim_timeout_seconds")),
        author_id=str(agents_cfg.get("author_id") or ""),
    )
    worker = WorkerConfig(sleep_seconds=int(worker_cfg.get("sleep_seconds")))
    return Config(app=app, ai=ai, agents=agents, worker=worker)


def _merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _merge(base[key], value)
        else:
            base[key] = value
    return base


def _deep_copy(value: dict[str, Any]) -> dict[str, Any]:
    return json.loads(json.dumps(value))
