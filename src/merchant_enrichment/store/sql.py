"""SQLAlchemy metadata and engine helpers for the merchant directory table."""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from sqlalchemy import Engine
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import URL
from sqlalchemy.orm import sessionmaker

from merchant_enrichment.settings import Settings, get_settings

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")
TIMESTAMP = sa.DateTime(timezone=True)
UUID_TYPE = sa.String(length=64)

METADATA = sa.MetaData()

merchant_directory = sa.Table(
    "merchant_directory",
    METADATA,
    sa.Column("id", UUID_TYPE, primary_key=True),
    sa.Column("scope", sa.Text(), nullable=False),
    sa.Column("family_id", sa.Text(), nullable=True),
    sa.Column("normalized_key", sa.Text(), nullable=False),
    sa.Column("merchant_name_display", sa.Text(), nullable=True),
    sa.Column("legal_name", sa.Text(), nullable=True),
    sa.Column("cnpj", sa.Text(), nullable=True),
    sa.Column("category_id_suggested", sa.Text(), nullable=True),
    sa.Column("subcategory_id_suggested", sa.Text(), nullable=True),
    sa.Column("confidence_default", sa.Numeric(5, 4), nullable=False, server_default="0.5"),
    sa.Column("evidence_summary", sa.Text(), nullable=True),
    sa.Column("source", sa.Text(), nullable=False),
    sa.Column("detected_platform", sa.Text(), nullable=True),
    sa.Column("is_intermediary", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("sample_descriptors", JSON_TYPE, nullable=True),
    sa.Column("match_count", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("last_matched_at", TIMESTAMP, nullable=True),
    sa.Column("created_at", TIMESTAMP, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    sa.Column("updated_at", TIMESTAMP, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    sa.UniqueConstraint("scope", "family_id", "normalized_key", name="uq_merchant_directory_scope_family_key"),
    sa.CheckConstraint("scope IN ('global', 'family')", name="ck_merchant_directory_scope"),
    sa.CheckConstraint(
        "confidence_default >= 0 AND confidence_default <= 1", name="ck_merchant_directory_confidence_range"
    ),
)
sa.Index("idx_merchant_directory_key", merchant_directory.c.normalized_key)
sa.Index("idx_merchant_directory_family", merchant_directory.c.family_id, merchant_directory.c.normalized_key)


def _resolve_database_url(settings: Settings | None = None) -> str:
    """Return the SQLAlchemy URL considering overrides and configured backend."""

    resolved = settings or get_settings()
    if resolved.storage.database_url:
        return resolved.storage.database_url

    backend = resolved.storage.structured_backend
    if backend == "sqlite":
        sqlite_path = resolved.storage.sqlite_path
        sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        return URL.create("sqlite", database=sqlite_path.as_posix()).render_as_string(hide_password=False)

    if backend == "postgres":
        raise NotImplementedError("Postgres backend requires storage.database_url to be set")

    raise NotImplementedError(f"Unsupported structured backend '{backend}' for SQL engine creation")


def build_engine(*, echo: bool | None = None, settings: Settings | None = None) -> Engine:
    """Instantiate a SQLAlchemy engine aligned with project settings."""

    resolved = settings or get_settings()
    url = _resolve_database_url(resolved)
    connect_args: dict[str, Any] = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    echo_sql = resolved.storage.echo_sql if echo is None else echo
    return sa.create_engine(url, echo=echo_sql, future=True, pool_pre_ping=True, connect_args=connect_args)


def session_factory(*, settings: Settings | None = None) -> sessionmaker:
    """Return a configured sessionmaker bound to the active engine."""

    engine = build_engine(settings=settings)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
