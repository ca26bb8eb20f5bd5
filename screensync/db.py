import os
from datetime import datetime, timezone

from sqlalchemy import create_engine
from sqlalchemy import text
from sqlalchemy.orm import declarative_base, sessionmaker

DATABASE_URL = os.getenv("SCREENSYNC_DATABASE_URL", "sqlite:///./screensync.db")

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def utcnow() -> datetime:
    # Naive UTC, matching what SQLite hands back for DateTime columns.
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _add_missing_columns(conn, table: str, columns: dict[str, str]) -> None:
    if not _table_exists(conn, table):
        return
    rows = conn.execute(text(f"PRAGMA table_info({table})")).fetchall()
    col_names = {row[1] for row in rows}  # (cid, name, type, notnull, dflt_value, pk)
    for name, ddl in columns.items():
        if name not in col_names:
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {name} {ddl}"))


def ensure_sqlite_schema(bind=None) -> None:
    """
    Lightweight runtime schema patching for SQLite.

    `Base.metadata.create_all()` won't add new columns to existing tables.
    This keeps local/dev installs working without requiring Alembic.
    """
    bind = bind or engine
    if not str(bind.url).startswith("sqlite"):
        return

    with bind.begin() as conn:
        _add_missing_columns(
            conn,
            "screen",
            {
                "is_active": "INTEGER DEFAULT 1",
                "playlist_id": "VARCHAR",
                "last_push_at": "DATETIME",
                "last_push_result": "VARCHAR",
                "last_push_error": "TEXT",
                "last_verify_at": "DATETIME",
                "last_verify_result": "VARCHAR",
                "last_verify_error": "TEXT",
                "screenshot_url": "TEXT",
                "screenshot_byte_size": "INTEGER",
                "screenshot_hash": "VARCHAR",
                "screenshot_last_ok_at": "DATETIME",
            },
        )
        if _table_exists(conn, "screen"):
            conn.execute(text("UPDATE screen SET is_active=1 WHERE is_active IS NULL"))

        _add_missing_columns(
            conn,
            "location",
            {
                "combined_playlist_id": "VARCHAR",
                "layout_mode": "VARCHAR DEFAULT 'FALLBACK_SCHEDULE'",
                "layout_id": "VARCHAR",
                "legacy_playlist_id": "VARCHAR",
            },
        )

        _add_missing_columns(
            conn,
            "screen_sync_state",
            {
                "proof_status": "VARCHAR",
                "proof_reason": "VARCHAR",
                "proof_checked_at": "DATETIME",
            },
        )


def _table_exists(conn, table: str) -> bool:
    row = conn.execute(
        text("SELECT name FROM sqlite_master WHERE type='table' AND name=:name"),
        {"name": table},
    ).fetchone()
    return row is not None
