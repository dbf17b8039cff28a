from __future__ import annotations

import pytest

from newsdesk.ai.registry import PROVIDERS

_ENV_NAMES = [
    "ND_DB_URL",
    "ND_ADMIN_TOKEN",
    "ND_CONFIG_PATH",
    "ND_PRINCIPAL_ID",
    "NEWSDESK_MASTER_KEY",
    "NEWSDESK_KEY_ID",
    "KIMI_BASE_URL",
    "KIMI_MODEL",
]


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("ND_DATA_DIR", str(tmp_path / "data"))
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    for provider in PROVIDERS.values():
        for name in provider.key_env_names:
            monkeypatch.delenv(name, raising=False)
