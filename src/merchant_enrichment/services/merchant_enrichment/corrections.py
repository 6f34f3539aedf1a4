"""Persist user corrections so later resolutions for the family reuse them."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

import anyio

from merchant_enrichment.normalization.normalizer import normalize_descriptor
from merchant_enrichment.observability import Observability, get_observability
from merchant_enrichment.settings import Settings, get_settings
from merchant_enrichment.store.merchant_directory import MerchantDirectoryStore
from merchant_enrichment.store.schema import DirectorySource, FamilyScope

from .resolver import get_default_resolver

LOGGER = logging.getLogger(__name__)

USER_CONFIRMED_SUMMARY = "Confirmado pelo usuário"


async def record_merchant_correction(
    family_id: str,
    raw_descriptor: str,
    merchant_label: Optional[str],
    category_id: str,
    subcategory_id: Optional[str] = None,
    *,
    store: MerchantDirectoryStore | None = None,
    settings: Settings | None = None,
    observability: Observability | None = None,
) -> bool:
    """Record the category a family chose for ``raw_descriptor``.

    The row is keyed by ``(family, normalized_key)``; recording the same
    correction again overwrites it rather than adding a duplicate.

    Returns:
        ``True`` when the correction was stored, ``False`` when the input was
        unusable or the write failed.
    """

    if not family_id or not category_id:
        LOGGER.warning("Ignoring merchant correction without family or category")
        return False

    descriptor = normalize_descriptor(raw_descriptor)
    if not descriptor.normalized_key:
        LOGGER.warning("Ignoring merchant correction for descriptor with empty key: %r", raw_descriptor)
        return False

    resolved_settings = settings or get_settings()
    obs = observability or get_observability(component="corrections", settings=resolved_settings)

    fields = {
        "merchant_name_display": merchant_label,
        "category_id_suggested": category_id,
        "subcategory_id_suggested": subcategory_id,
        "confidence_default": resolved_settings.resolver.user_confirmed_confidence,
        "evidence_summary": USER_CONFIRMED_SUMMARY,
        "source": DirectorySource.USER_CONFIRMED,
        "sample_descriptors": [raw_descriptor],
        "match_count": 1,
        "last_matched_at": datetime.now(timezone.utc),
    }
    scope = FamilyScope(family_id)
    try:
        directory = store if store is not None else get_default_resolver().store
        entry_id = await anyio.to_thread.run_sync(
            lambda: directory.upsert_by_natural_key(scope, descriptor.normalized_key, fields)
        )
    except Exception:
        LOGGER.exception("Failed to record merchant correction for key=%s", descriptor.normalized_key)
        obs.increment("merchant.correction_failed")
        return False

    obs.emit_event(
        "merchant_correction_recorded",
        entry_id=entry_id,
        normalized_key=descriptor.normalized_key,
        category_id=category_id,
        subcategory_id=subcategory_id,
    )
    obs.increment("merchant.correction_recorded")
    return True


__all__ = ["USER_CONFIRMED_SUMMARY", "record_merchant_correction"]
