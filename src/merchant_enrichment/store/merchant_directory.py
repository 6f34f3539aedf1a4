"""SQL-backed merchant directory: the resolver's persisted suggestion cache."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterator, List, Mapping, Sequence

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from merchant_enrichment.store import sql as sql_schema
from merchant_enrichment.store.schema import (
    DirectorySource,
    FamilyScope,
    GlobalScope,
    MerchantDirectoryEntry,
    Scope,
    scope_from_row,
)
from merchant_enrichment.store.sql import session_factory as default_session_factory

LOGGER = logging.getLogger(__name__)

UPSERT_FIELDS = frozenset(
    {
        "merchant_name_display",
        "legal_name",
        "cnpj",
        "category_id_suggested",
        "subcategory_id_suggested",
        "confidence_default",
        "evidence_summary",
        "source",
        "detected_platform",
        "is_intermediary",
        "sample_descriptors",
        "match_count",
        "last_matched_at",
    }
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _quantize_confidence(value: float | Decimal | None) -> Decimal:
    if value is None:
        value = 0.0
    decimal_value = value if isinstance(value, Decimal) else Decimal(str(value))
    return decimal_value.quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)


class MerchantDirectoryStore:
    """Read and upsert merchant directory rows keyed by ``(scope, family_id, normalized_key)``."""

    def __init__(self, session_factory: sessionmaker | None = None) -> None:
        self._session_factory = session_factory or default_session_factory()

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_schema(self) -> None:
        """Create the directory table (and indexes) when missing."""

        with self._session_scope() as session:
            sql_schema.METADATA.create_all(session.get_bind())

    def find_by_keys(self, keys: Sequence[str], *, family_id: str | None = None) -> List[MerchantDirectoryEntry]:
        """Return rows whose key is in ``keys`` and that are visible to ``family_id``.

        Args:
            keys: Candidate normalized keys, typically from ``generate_matching_keys``.
            family_id: Family on whose behalf the lookup runs. ``None`` limits the
                result to global rows.

        Returns:
            Entries ordered family rows first, then by descending confidence.
        """

        normalized_keys = [key for key in dict.fromkeys(keys) if key]
        if not normalized_keys:
            return []

        table = sql_schema.merchant_directory
        visibility = table.c.scope == "global"
        if family_id:
            visibility = sa.or_(visibility, sa.and_(table.c.scope == "family", table.c.family_id == family_id))

        stmt = (
            sa.select(table)
            .where(table.c.normalized_key.in_(normalized_keys))
            .where(visibility)
            .order_by(table.c.scope.asc(), table.c.confidence_default.desc(), table.c.updated_at.desc())
        )
        with self._session_scope() as session:
            rows = session.execute(stmt).mappings().all()
        return [_row_to_entry(row) for row in rows]

    def get(self, scope: Scope, normalized_key: str) -> MerchantDirectoryEntry | None:
        """Return the row stored under the natural key, if any."""

        stmt = sa.select(sql_schema.merchant_directory).where(*_natural_key_predicate(scope, normalized_key))
        with self._session_scope() as session:
            row = session.execute(stmt).mappings().first()
        return _row_to_entry(row) if row else None

    def list_by_key(self, normalized_key: str) -> List[MerchantDirectoryEntry]:
        """Return every row stored for ``normalized_key`` regardless of scope."""

        table = sql_schema.merchant_directory
        stmt = sa.select(table).where(table.c.normalized_key == normalized_key).order_by(table.c.created_at.asc())
        with self._session_scope() as session:
            rows = session.execute(stmt).mappings().all()
        return [_row_to_entry(row) for row in rows]

    def upsert_by_natural_key(self, scope: Scope, normalized_key: str, fields: Mapping[str, Any]) -> str:
        """Insert or overwrite the row identified by ``(scope, normalized_key)``.

        Args:
            scope: Global or family visibility of the row.
            normalized_key: Matching key of the merchant.
            fields: Column values to write. Unknown column names are rejected.

        Returns:
            The identifier of the inserted or updated row.

        Raises:
            ValueError: If ``normalized_key`` is empty or ``fields`` names an unknown column.
        """

        if not normalized_key:
            raise ValueError("normalized_key must be non-empty")
        unknown = set(fields) - UPSERT_FIELDS
        if unknown:
            raise ValueError(f"Unsupported merchant directory fields: {sorted(unknown)}")

        values = _prepare_values(fields)
        values["updated_at"] = _utcnow()
        try:
            return self._update_or_insert(scope, normalized_key, values)
        except IntegrityError:
            # A concurrent writer inserted the same natural key first; overwrite it.
            LOGGER.debug("Upsert race on key=%s scope=%s; retrying as update", normalized_key, scope.kind)
            return self._update_or_insert(scope, normalized_key, values)

    def _update_or_insert(self, scope: Scope, normalized_key: str, values: Dict[str, Any]) -> str:
        table = sql_schema.merchant_directory
        predicate = _natural_key_predicate(scope, normalized_key)
        with self._session_scope() as session:
            existing_id = session.execute(sa.select(table.c.id).where(*predicate)).scalar_one_or_none()
            if existing_id is not None:
                session.execute(sa.update(table).where(table.c.id == existing_id).values(**values))
                return existing_id

            entry_id = str(uuid.uuid4())
            insert_values = {
                "id": entry_id,
                "scope": scope.kind,
                "family_id": scope.family_id,
                "normalized_key": normalized_key,
                "source": DirectorySource.CACHE.value,
                **values,
                "created_at": values["updated_at"],
            }
            session.execute(sa.insert(table).values(**insert_values))
        LOGGER.info("Inserted merchant directory row id=%s key=%s scope=%s", entry_id, normalized_key, scope.kind)
        return entry_id


def _natural_key_predicate(scope: Scope, normalized_key: str) -> List[sa.ColumnElement[bool]]:
    table = sql_schema.merchant_directory
    predicate = [table.c.normalized_key == normalized_key, table.c.scope == scope.kind]
    if isinstance(scope, FamilyScope):
        predicate.append(table.c.family_id == scope.family_id)
    else:
        predicate.append(table.c.family_id.is_(None))
    return predicate


def _prepare_values(fields: Mapping[str, Any]) -> Dict[str, Any]:
    values = dict(fields)
    if "confidence_default" in values:
        values["confidence_default"] = _quantize_confidence(values["confidence_default"])
    if "source" in values:
        values["source"] = DirectorySource.parse(values["source"]).value
    if "sample_descriptors" in values and values["sample_descriptors"] is not None:
        values["sample_descriptors"] = [str(item) for item in values["sample_descriptors"]]
    return values


def _row_to_entry(row: Mapping[str, Any]) -> MerchantDirectoryEntry:
    confidence = row["confidence_default"]
    return MerchantDirectoryEntry(
        entry_id=row["id"],
        scope=scope_from_row(row["scope"], row["family_id"]),
        normalized_key=row["normalized_key"],
        merchant_name_display=row["merchant_name_display"],
        legal_name=row["legal_name"],
        cnpj=row["cnpj"],
        category_id_suggested=row["category_id_suggested"],
        subcategory_id_suggested=row["subcategory_id_suggested"],
        confidence_default=float(confidence) if confidence is not None else 0.0,
        evidence_summary=row["evidence_summary"],
        source=DirectorySource.parse(row["source"]),
        detected_platform=row["detected_platform"],
        is_intermediary=bool(row["is_intermediary"]),
        sample_descriptors=list(row["sample_descriptors"] or []),
        match_count=int(row["match_count"] or 0),
        last_matched_at=row["last_matched_at"],
    )


__all__ = ["MerchantDirectoryStore", "UPSERT_FIELDS", "GlobalScope", "FamilyScope"]
