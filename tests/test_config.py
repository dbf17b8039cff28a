import copy

import pytest
import yaml

from newsdesk.config import (
    DEFAULT_CONFIG,
    ConfigError,
    bootstrap_runtime_config,
    get_runtime_config,
    load_config_file,
    load_runtime_config,
    set_runtime_config,
)
from newsdesk.storage import init_db


def test_bootstrap_creates_runtime_config():
    conn = init_db()
    cfg = bootstrap_runtime_config(conn)
    assert cfg == DEFAULT_CONFIG


def test_get_runtime_config_after_set():
    conn = init_db()
    custom = copy.deepcopy(DEFAULT_CONFIG)
    custom["app"]["name"] = "Test"
    set_runtime_config(conn, custom)
    assert get_runtime_config(conn)["app"]["name"] == "Test"


def test_set_runtime_config_rejects_invalid():
    conn = init_db()
    with pytest.raises(ConfigError, match="Invalid config.runtime"):
        set_runtime_config(conn, {"app": {"name": "Bad"}})


def test_rejects_non_positive_timeout():
    conn = init_db()
    custom = copy.deepcopy(DEFAULT_CONFIG)
    custom["ai"]["request_timeout_seconds"] = 0
    with pytest.raises(ConfigError, match="request_timeout_seconds"):
        set_runtime_config(conn, custom)


def test_yaml_file_seeds_runtime_config(tmp_path, monkeypatch):
    path = tmp_path / "newsdesk.yml"
    path.write_text(yaml.safe_dump({"agents": {"article_words": 500}}), encoding="utf-8")
    monkeypatch.setenv("ND_CONFIG_PATH", str(path))

    conn = init_db()
    config = load_runtime_config(conn)

    assert config.agents.article_words == 500
    assert config.ai.text_model == DEFAULT_CONFIG["ai"]["text_model"]


def test_load_config_file_errors(tmp_path):
    missing = tmp_path / "missing.yml"
    with pytest.raises(ConfigError, match="Unable to read"):
        load_config_file(str(missing))
    bad = tmp_path / "bad.yml"
    bad.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config_file(str(bad))
