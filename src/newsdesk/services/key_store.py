from __future__ import annotations

import logging
from typing import Any

from cryptography.exceptions import InvalidTag

from ..ai.registry import PROVIDERS, ProviderId, get_provider, read_env_keys
from ..security.secrets import decrypt_secret, encrypt_secret, has_master_key
from ..utils import log_event, utc_now_iso

MIN_KEY_LENGTH = 10

logger = logging.getLogger("newsdesk.key_store")


def set_provider_secret(conn, provider_id: str, api_key: str) -> dict[str, Any]:
    provider = get_provider(provider_id)
    api_key = (api_key or "").strip()
    if not api_key:
        raise ValueError("api_key is required")
    key_id, api_key_enc = encrypt_secret(api_key, _provider_aad(provider.id))
    last4 = api_key[-4:] if len(api_key) >= 4 else api_key
    now = utc_now_iso()
    conn.execute(
        """
        INSERT INTO provider_secrets
            (provider_id, key_id, api_key_enc, api_key_last4, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT(provider_id) DO UPDATE SET
            key_id=excluded.key_id,
            api_key_enc=excluded.api_key_enc,
            api_key_last4=excluded.api_key_last4,
            updated_at=excluded.updated_at
        """,
        (provider.id.value, key_id, api_key_enc, last4, now, now),
    )
    conn.commit()
    return describe_provider(conn, provider.id)


def clear_provider_secret(conn, provider_id: str) -> None:
    provider = get_provider(provider_id)
    conn.execute("DELETE FROM provider_secrets WHERE provider_id = ?", (provider.id.value,))
    conn.commit()


def load_provider_secret(conn, provider_id: str | ProviderId) -> str | None:
    provider = get_provider(provider_id)
    row = conn.execute(
        "SELECT api_key_enc FROM provider_secrets WHERE provider_id = ?",
        (provider.id.value,),
    ).fetchone()
    if not row:
        return None
    if not has_master_key():
        log_event(logger, logging.WARNING, "provider_secret_locked", provider=provider.id.value)
        return None
    try:
        return decrypt_secret(row[0], _provider_aad(provider.id))
    except (InvalidTag, ValueError) as exc:
        log_event(
            logger,
            logging.WARNING,
            "provider_secret_unreadable",
            provider=provider.id.value,
            error=type(exc).__name__,
        )
        return None


def stored_keys(conn, provider_id: str | ProviderId) -> list[str]:
    if conn is None:
        return []
    secret = load_provider_secret(conn, provider_id)
    return [secret] if secret else []


def key_status(conn, provider_id: str | ProviderId) -> dict[str, str]:
    provider = get_provider(provider_id)
    keys = read_env_keys(provider) + stored_keys(conn, provider.id)
    if not keys:
        return {"status": "error", "message": "Key missing in environment"}
    if len(keys[0]) < MIN_KEY_LENGTH:
        return {"status": "error", "message": "Key appears invalid (too short)"}
    return {"status": "ok", "message": "Key present and formatted"}


def describe_provider(conn, provider_id: str | ProviderId) -> dict[str, Any]:
    provider = get_provider(provider_id)
    row = conn.execute(
        "SELECT api_key_last4, updated_at FROM provider_secrets WHERE provider_id = ?",
        (provider.id.value,),
    ).fetchone()
    status = key_status(conn, provider.id)
    return {
        "id": provider.id.value,
        "name": provider.display_name,
        "endpoint": provider.fixed_endpoint,
        "default_model": provider.default_model,
        "env_keys": list(provider.key_env_names),
        "env_configured": bool(read_env_keys(provider)),
        "stored_key_last4": row[0] if row else "",
        "stored_key_updated_at": row[1] if row else None,
        "key_status": status["status"],
        "key_message": status["message"],
    }


def list_provider_status(conn) -> list[dict[str, Any]]:
    return [describe_provider(conn, provider_id) for provider_id in PROVIDERS]


def _provider_aad(provider_id: ProviderId) -> bytes:
    return f"provider:{provider_id.value}".encode("utf-8")
