"""Batch resolution used by statement import flows."""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

import anyio

from merchant_enrichment.normalization.normalizer import normalize_descriptor
from merchant_enrichment.observability import Observability, get_observability
from merchant_enrichment.settings import Settings, get_settings

from .models import MerchantResolution
from .resolver import MerchantResolver, get_default_resolver

LOGGER = logging.getLogger(__name__)

ResolveCallable = Callable[[str, Optional[str]], Awaitable[MerchantResolution]]


def chunk_descriptors(descriptors: Iterable[str], size: int) -> List[List[str]]:
    """Split ``descriptors`` into consecutive chunks of at most ``size`` items."""

    if size < 1:
        raise ValueError("size must be >= 1")
    items = list(descriptors)
    return [items[start : start + size] for start in range(0, len(items), size)]


async def batch_resolve_merchants(
    descriptors: Iterable[str],
    family_id: str | None = None,
    *,
    resolver: MerchantResolver | None = None,
    resolve: ResolveCallable | None = None,
    settings: Settings | None = None,
    observability: Observability | None = None,
) -> Dict[str, MerchantResolution]:
    """Resolve many descriptors, keyed by the raw descriptor string.

    Chunks run one after another; the descriptors inside a chunk are resolved
    concurrently. Duplicate descriptors collapse into one entry. A descriptor
    whose resolution fails is reported as ``UNKNOWN`` and the batch goes on.

    Args:
        descriptors: Raw statement lines.
        family_id: Family on whose behalf the lookups run.
        resolver: Resolver to use; defaults to the process-wide resolver.
        resolve: Alternative resolve coroutine, mainly for tests.
        settings: Settings providing ``resolver.batch_size``.
        observability: Event sink for the batch summary.
    """

    resolved_settings = settings or get_settings()
    if resolve is None:
        active = resolver or get_default_resolver()
        resolve = active.resolve
    obs = observability or get_observability(component="batch", settings=resolved_settings)

    unique = list(dict.fromkeys(descriptors))
    results: Dict[str, MerchantResolution] = {}
    chunks = chunk_descriptors(unique, resolved_settings.resolver.batch_size)
    started = time.perf_counter()
    failures = 0

    async def _resolve_one(raw: str) -> None:
        nonlocal failures
        try:
            results[raw] = await resolve(raw, family_id)
        except Exception:
            failures += 1
            LOGGER.exception("Merchant resolution failed inside batch for descriptor=%r", raw)
            results[raw] = MerchantResolution.unknown(normalize_descriptor(raw).normalized_key)

    for chunk in chunks:
        async with anyio.create_task_group() as tg:
            for raw in chunk:
                tg.start_soon(_resolve_one, raw)

    elapsed_ms = (time.perf_counter() - started) * 1000
    obs.emit_event(
        "merchant_batch_resolved",
        descriptor_count=len(unique),
        chunk_count=len(chunks),
        failures=failures,
        duration_ms=round(elapsed_ms, 2),
    )
    obs.record_timing("merchant.batch_duration", elapsed_ms)

    # Preserve input order in the returned mapping.
    return {raw: results[raw] for raw in unique}


__all__ = ["ResolveCallable", "batch_resolve_merchants", "chunk_descriptors"]
