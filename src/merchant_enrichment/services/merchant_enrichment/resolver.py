"""Tiered merchant resolution for bank and card statement descriptors.

A descriptor is resolved by the first tier that produces an answer:

1. a confident hit in the merchant directory (family rows before global rows),
2. the bank-fee heuristic,
3. the known-platform table,
4. a weak directory hit,
5. an ``UNKNOWN`` resolution that asks the user to confirm.

The directory is read-only from here; only corrections write to it.
"""

from __future__ import annotations

import logging
import threading
from typing import List, Optional, Sequence

import anyio

from merchant_enrichment.normalization.normalizer import (
    generate_matching_keys,
    is_bank_fee_pattern,
    normalize_descriptor,
)
from merchant_enrichment.normalization.reference_data import (
    CONTEXT_PATTERNS,
    COURSE_PLATFORMS,
    DEFAULT_FEE_LABEL,
    DEFAULT_FEE_SUBCATEGORY,
    FEE_SUBCATEGORY_RULES,
    FINANCIAL_EXPENSES_CATEGORY,
    GATEWAY_PLATFORMS,
    MARKETPLACE_PLATFORMS,
    PLATFORMS_BY_NAME,
    TELECOM_PLATFORMS,
)
from merchant_enrichment.normalization.schema import NormalizedDescriptor
from merchant_enrichment.observability import Observability, get_observability
from merchant_enrichment.settings import Settings, get_settings
from merchant_enrichment.store.merchant_directory import MerchantDirectoryStore
from merchant_enrichment.store.schema import DirectorySource, MerchantDirectoryEntry
from merchant_enrichment.store.sql import session_factory

from .models import EvidenceItem, EvidenceType, MerchantResolution, ResolutionSource

LOGGER = logging.getLogger(__name__)

INTERMEDIARY_WARNING = "Este é um intermediador - o lojista real pode ser diferente"


class MerchantResolver:
    """Resolve raw descriptors into merchant suggestions."""

    def __init__(
        self,
        *,
        store: MerchantDirectoryStore | None = None,
        settings: Settings | None = None,
        observability: Observability | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store or MerchantDirectoryStore(session_factory(settings=self.settings))
        self.observability = observability or get_observability(component="resolver", settings=self.settings)

    async def resolve(self, raw_descriptor: Optional[str], family_id: str | None = None) -> MerchantResolution:
        """Return the best available resolution for ``raw_descriptor``.

        Args:
            raw_descriptor: Statement line as produced by the bank.
            family_id: Family on whose behalf the lookup runs. Family-scoped
                directory rows are only visible to the same family.

        Returns:
            A :class:`MerchantResolution`. Directory failures degrade to the
            next tier, so this method does not raise for lookup errors.
        """

        descriptor = normalize_descriptor(raw_descriptor)
        keys = generate_matching_keys(descriptor)
        thresholds = self.settings.resolver

        cached = await self._lookup_cache(keys, descriptor, family_id)
        if cached is not None and cached.confidence >= thresholds.cache_hit_threshold:
            return self._finish(cached, family_id)

        if is_bank_fee_pattern(descriptor):
            return self._finish(self._bank_fee_resolution(descriptor), family_id)

        if descriptor.entities.platform:
            return self._finish(self._platform_resolution(descriptor), family_id)

        if cached is not None:
            return self._finish(cached, family_id)

        return self._finish(MerchantResolution.unknown(descriptor.normalized_key), family_id)

    async def _lookup_cache(
        self, keys: Sequence[str], descriptor: NormalizedDescriptor, family_id: str | None
    ) -> MerchantResolution | None:
        if not keys:
            return None
        try:
            entries = await anyio.to_thread.run_sync(lambda: self.store.find_by_keys(keys, family_id=family_id))
            best = _pick_best_entry(entries, family_id)
            if best is None:
                return None
            return _cache_resolution(best, descriptor)
        except Exception:
            LOGGER.exception("Merchant directory lookup failed for key=%s", descriptor.normalized_key)
            return None

    def _bank_fee_resolution(self, descriptor: NormalizedDescriptor) -> MerchantResolution:
        subcategory = DEFAULT_FEE_SUBCATEGORY
        label = DEFAULT_FEE_LABEL
        for rule in FEE_SUBCATEGORY_RULES:
            if rule.pattern.search(descriptor.cleaned):
                subcategory = rule.subcategory_id
                label = rule.label
                break

        confidence = self.settings.resolver.bank_fee_confidence
        return MerchantResolution(
            merchant_label=label,
            suggested_category_id=FINANCIAL_EXPENSES_CATEGORY,
            suggested_subcategory_id=subcategory,
            confidence=confidence,
            evidence=[
                EvidenceItem(
                    type=EvidenceType.BANK_FEE,
                    detail=f"Padrão de cobrança bancária: {label}",
                    confidence=confidence,
                )
            ],
            is_intermediary=False,
            normalized_key=descriptor.normalized_key,
            source=ResolutionSource.HEURISTIC,
        )

    def _platform_resolution(self, descriptor: NormalizedDescriptor) -> MerchantResolution:
        platform = descriptor.entities.platform or ""
        is_intermediary = bool(descriptor.entities.is_intermediary)
        rule = PLATFORMS_BY_NAME.get(platform)
        category = rule.category_hint if rule else None
        subcategory = rule.subcategory_hint if rule else None
        category, subcategory = _refine_by_context(platform, descriptor.original.upper(), category, subcategory)

        resolver_settings = self.settings.resolver
        confidence = (
            resolver_settings.intermediary_confidence if is_intermediary else resolver_settings.platform_confidence
        )
        evidence = [
            EvidenceItem(
                type=EvidenceType.PLATFORM_DETECTED,
                detail=f"Plataforma identificada: {platform}",
                confidence=confidence,
            )
        ]
        if is_intermediary:
            evidence.append(EvidenceItem(type=EvidenceType.INTERMEDIARY_WARNING, detail=INTERMEDIARY_WARNING))

        return MerchantResolution(
            merchant_label=platform,
            cnpj=descriptor.entities.cnpj,
            suggested_category_id=category,
            suggested_subcategory_id=subcategory,
            confidence=confidence,
            evidence=evidence,
            is_intermediary=is_intermediary,
            detected_platform=platform,
            normalized_key=descriptor.normalized_key,
            source=ResolutionSource.PLATFORM,
        )

    def _finish(self, resolution: MerchantResolution, family_id: str | None) -> MerchantResolution:
        self.observability.emit_event(
            "merchant_resolved",
            source=resolution.source.value,
            confidence=resolution.confidence,
            normalized_key=resolution.normalized_key,
            matched_key=resolution.matched_key,
            detected_platform=resolution.detected_platform,
            family_scoped=bool(family_id),
        )
        self.observability.increment("merchant.resolved", tags={"source": resolution.source.value})
        return resolution


def _pick_best_entry(
    entries: Sequence[MerchantDirectoryEntry], family_id: str | None
) -> MerchantDirectoryEntry | None:
    """Return the most confident entry visible to ``family_id``.

    Ties keep the first entry seen, so the store's family-first ordering wins.
    """

    best: MerchantDirectoryEntry | None = None
    for entry in entries:
        if not entry.scope.matches(family_id):
            continue
        if best is None or entry.confidence_default > best.confidence_default:
            best = entry
    return best


def _cache_resolution(entry: MerchantDirectoryEntry, descriptor: NormalizedDescriptor) -> MerchantResolution:
    evidence: List[EvidenceItem] = [_cache_evidence(entry)]
    if entry.is_intermediary:
        evidence.append(EvidenceItem(type=EvidenceType.INTERMEDIARY_WARNING, detail=INTERMEDIARY_WARNING))

    return MerchantResolution(
        merchant_label=entry.merchant_name_display,
        legal_name=entry.legal_name,
        cnpj=entry.cnpj,
        suggested_category_id=entry.category_id_suggested,
        suggested_subcategory_id=entry.subcategory_id_suggested,
        confidence=entry.confidence_default,
        evidence=evidence,
        is_intermediary=entry.is_intermediary,
        detected_platform=entry.detected_platform,
        normalized_key=descriptor.normalized_key,
        source=ResolutionSource.CACHE,
        matched_key=entry.normalized_key,
    )


def _cache_evidence(entry: MerchantDirectoryEntry) -> EvidenceItem:
    confidence = entry.confidence_default
    if entry.source == DirectorySource.USER_CONFIRMED:
        return EvidenceItem(
            type=EvidenceType.USER_CONFIRMED,
            detail="Você já categorizou esta transação anteriormente",
            confidence=confidence,
        )
    if entry.source == DirectorySource.PLATFORM_DETECTED:
        fallback = (
            f"Plataforma identificada: {entry.detected_platform}" if entry.detected_platform else "Plataforma conhecida"
        )
        return EvidenceItem(
            type=EvidenceType.PLATFORM_DETECTED,
            detail=entry.evidence_summary or fallback,
            confidence=confidence,
        )
    if entry.source == DirectorySource.HEURISTIC:
        return EvidenceItem(
            type=EvidenceType.HEURISTIC,
            detail=entry.evidence_summary or "Padrão conhecido",
            confidence=confidence,
        )
    return EvidenceItem(
        type=EvidenceType.CACHE_MATCH,
        detail=entry.evidence_summary or "Encontrado no histórico",
        confidence=confidence,
    )


def _refine_by_context(
    platform: str, text: str, category: str | None, subcategory: str | None
) -> tuple[str | None, str | None]:
    """Adjust platform category hints using the words around the platform name."""

    if platform in COURSE_PLATFORMS:
        if CONTEXT_PATTERNS["certification"].search(text):
            subcategory = "educacao-certificacoes"
    elif platform in MARKETPLACE_PLATFORMS:
        if CONTEXT_PATTERNS["clothing"].search(text):
            category, subcategory = "roupa-estetica", "roupa-estetica-roupas"
        elif CONTEXT_PATTERNS["electronics"].search(text):
            category, subcategory = "diversos", "diversos-equipamentos-eletronicos"
    elif platform in GATEWAY_PLATFORMS:
        if CONTEXT_PATTERNS["fee"].search(text):
            category, subcategory = FINANCIAL_EXPENSES_CATEGORY, DEFAULT_FEE_SUBCATEGORY
    elif platform in TELECOM_PLATFORMS:
        if CONTEXT_PATTERNS["internet"].search(text):
            subcategory = "casa-internet---tv---streamings"
        else:
            subcategory = "casa-telefone-celular"
    return category, subcategory


class _UnavailableDirectory:
    """Directory stand-in with no rows, used when the configured store cannot be built."""

    def find_by_keys(self, keys, *, family_id=None):
        return []


_DEFAULT_RESOLVER: MerchantResolver | None = None
_DEFAULT_RESOLVER_LOCK = threading.Lock()


def get_default_resolver() -> MerchantResolver:
    """Return the process-wide resolver, building it on first use."""

    global _DEFAULT_RESOLVER
    with _DEFAULT_RESOLVER_LOCK:
        if _DEFAULT_RESOLVER is None:
            _DEFAULT_RESOLVER = MerchantResolver()
        return _DEFAULT_RESOLVER


def reset_default_resolver() -> None:
    """Drop the cached default resolver (used in tests and after settings reloads)."""

    global _DEFAULT_RESOLVER
    with _DEFAULT_RESOLVER_LOCK:
        _DEFAULT_RESOLVER = None


async def resolve_merchant(raw_descriptor: Optional[str], family_id: str | None = None) -> MerchantResolution:
    """Resolve ``raw_descriptor`` with the default resolver.

    When the directory cannot be opened the heuristic and platform tiers still run.
    """

    try:
        resolver = get_default_resolver()
    except Exception:
        LOGGER.exception("Merchant directory unavailable; resolving without it")
        resolver = MerchantResolver(store=_UnavailableDirectory())
    return await resolver.resolve(raw_descriptor, family_id)


__all__ = [
    "MerchantResolver",
    "get_default_resolver",
    "reset_default_resolver",
    "resolve_merchant",
]
