from __future__ import annotations

import logging
from typing import Any, Callable

from .utils import utc_now_iso

Migration = Callable[[Any], None]


def apply_migrations(conn) -> None:
    logger = logging.getLogger("newsdesk.migrations")
    if conn.backend == "sqlite":
        conn.execute("BEGIN IMMEDIATE")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version TEXT PRIMARY KEY,
            applied_at TEXT NOT NULL
        )
        """
    )
    applied = {
        row[0]
        for row in conn.execute("SELECT version FROM schema_migrations").fetchall()
    }
    try:
        for version, migration in _get_migrations():
            if version in applied:
                logger.debug("migration_skipped version=%s", version)
                continue
            migration(conn)
            conn.execute(
                "INSERT OR IGNORE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                (version, utc_now_iso()),
            )
            logger.info("migration_applied version=%s", version)
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def get_schema_version(conn) -> str | None:
    row = conn.execute(
        "SELECT version FROM schema_migrations ORDER BY version DESC LIMIT 1"
    ).fetchone()
    return row[0] if row else None


def _migration_initial_schema(conn) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS categories (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            created_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS journalists (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            niche TEXT NOT NULL,
            category TEXT NOT NULL DEFAULT 'General',
            category_id TEXT NULL REFERENCES categories(id),
            schedule TEXT NOT NULL DEFAULT '24h',
            status TEXT NOT NULL DEFAULT 'active',
            last_run TEXT NULL,
            perspective INTEGER NOT NULL DEFAULT 0,
            use_current_events INTEGER NOT NULL DEFAULT 0,
            age INTEGER NULL,
            gender TEXT NULL,
            avatar_url TEXT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS posts (
            id TEXT PRIMARY KEY,
            title TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            content TEXT NOT NULL,
            excerpt TEXT NULL,
            status TEXT NOT NULL DEFAULT 'draft',
            type TEXT NOT NULL DEFAULT 'post',
            author_id TEXT NULL,
            journalist_id TEXT NULL REFERENCES journalists(id),
            category_id TEXT NULL REFERENCES categories(id),
            featured_image TEXT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_posts_journalist ON posts(journalist_id)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_journalists_status ON journalists(status)"
    )


def _migration_journalist_claims(conn) -> None:
    conn.execute("ALTER TABLE journalists ADD COLUMN claim_token TEXT NULL")
    conn.execute("ALTER TABLE journalists ADD COLUMN claimed_at TEXT NULL")


def _migration_provider_secrets(conn) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS provider_secrets (
            provider_id TEXT PRIMARY KEY,
            key_id TEXT NOT NULL,
            api_key_enc TEXT NOT NULL,
            api_key_last4 TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """
    )


def _get_migrations() -> list[tuple[str, Migration]]:
    return [
        ("001_initial_schema", _migration_initial_schema),
        ("002_journalist_claims", _migration_journalist_claims),
        ("003_provider_secrets", _migration_provider_secrets),
    ]
