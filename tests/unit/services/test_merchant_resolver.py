"""Tests for the tiered MerchantResolver."""

from __future__ import annotations

from typing import Any, List, Sequence

import pytest
import sqlalchemy as sa
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from merchant_enrichment.services.merchant_enrichment import (
    EvidenceType,
    MerchantResolver,
    ResolutionSource,
    record_merchant_correction,
)
from merchant_enrichment.settings import Settings
from merchant_enrichment.store import sql as sql_schema
from merchant_enrichment.store.merchant_directory import MerchantDirectoryStore
from merchant_enrichment.store.schema import DirectorySource, FamilyScope, GlobalScope, MerchantDirectoryEntry


class _RecordingObservability:
    def __init__(self) -> None:
        self.events: List[tuple[str, dict[str, Any]]] = []
        self.counters: List[str] = []

    def emit_event(self, event: str, **fields: Any) -> None:
        self.events.append((event, fields))

    def increment(self, metric: str, **_: Any) -> None:
        self.counters.append(metric)

    def record_timing(self, metric: str, value_ms: float, **_: Any) -> None:
        self.counters.append(metric)


class _StubStore:
    def __init__(self, entries: Sequence[MerchantDirectoryEntry] = (), error: Exception | None = None) -> None:
        self.entries = list(entries)
        self.error = error
        self.calls: List[tuple[tuple[str, ...], str | None]] = []

    def find_by_keys(self, keys, *, family_id=None):
        self.calls.append((tuple(keys), family_id))
        if self.error:
            raise self.error
        return [entry for entry in self.entries if entry.normalized_key in keys]


def _settings() -> Settings:
    return Settings()


def _resolver(store, observability=None) -> MerchantResolver:
    return MerchantResolver(store=store, settings=_settings(), observability=observability or _RecordingObservability())


def _entry(key: str, **overrides: Any) -> MerchantDirectoryEntry:
    values = {
        "scope": GlobalScope(),
        "normalized_key": key,
        "merchant_name_display": "Padaria Real",
        "category_id_suggested": "alimentacao",
        "subcategory_id_suggested": "alimentacao-padaria",
        "confidence_default": 0.9,
        "source": DirectorySource.CACHE,
    }
    values.update(overrides)
    return MerchantDirectoryEntry(**values)


@pytest.mark.anyio
async def test_bank_fee_descriptor_resolves_by_heuristic():
    resolution = await _resolver(_StubStore()).resolve("TARIFA MANUTENCAO CONTA")

    assert resolution.source is ResolutionSource.HEURISTIC
    assert resolution.confidence == pytest.approx(0.9)
    assert resolution.suggested_category_id == "despesas-financeiras"
    assert resolution.suggested_subcategory_id == "despesas-financeiras-manutencao-de-conta"
    assert resolution.evidence[0].type is EvidenceType.BANK_FEE
    assert resolution.requires_confirmation is False


@pytest.mark.parametrize(
    "raw,subcategory",
    [
        ("IOF COMPRA INTERNACIONAL", "despesas-financeiras-iof"),
        ("ANUIDADE DIFERENCIADA", "despesas-financeiras-anuidade-cartao"),
        ("JUROS ROTATIVO", "despesas-financeiras-juros"),
        ("TARIFA TED ENVIADA", "despesas-financeiras-ted"),
        ("MULTA ATRASO", "despesas-financeiras-outras"),
    ],
)
@pytest.mark.anyio
async def test_bank_fee_subcategories(raw, subcategory):
    resolution = await _resolver(_StubStore()).resolve(raw)
    assert resolution.suggested_subcategory_id == subcategory


@pytest.mark.anyio
async def test_platform_hit_for_non_intermediary():
    resolution = await _resolver(_StubStore()).resolve("UBER *TRIP 12/03/2024 SAO PAULO")

    assert resolution.source is ResolutionSource.PLATFORM
    assert resolution.confidence == pytest.approx(0.8)
    assert resolution.is_intermediary is False
    assert resolution.detected_platform == "UBER"
    assert resolution.suggested_category_id == "transporte"
    assert [item.type for item in resolution.evidence] == [EvidenceType.PLATFORM_DETECTED]
    assert resolution.requires_confirmation is False


@pytest.mark.anyio
async def test_intermediary_platform_carries_warning():
    resolution = await _resolver(_StubStore()).resolve("MERCADOPAGO *LOJAXYZ")

    assert resolution.source is ResolutionSource.PLATFORM
    assert resolution.confidence == pytest.approx(0.5)
    assert resolution.is_intermediary is True
    assert [item.type for item in resolution.evidence] == [
        EvidenceType.PLATFORM_DETECTED,
        EvidenceType.INTERMEDIARY_WARNING,
    ]
    assert resolution.requires_confirmation is True


@pytest.mark.anyio
async def test_context_refines_category_but_not_confidence():
    resolver = _resolver(_StubStore())

    clothing = await resolver.resolve("AMAZON MARKETPLACE ROUPA")
    assert clothing.suggested_category_id == "roupa-estetica"
    assert clothing.confidence == pytest.approx(0.5)

    gateway_fee = await resolver.resolve("PAGSEGURO COMISSAO VENDA")
    assert gateway_fee.source is ResolutionSource.PLATFORM
    assert gateway_fee.suggested_category_id == "despesas-financeiras"

    internet = await resolver.resolve("VIVO FIBRA")
    assert internet.suggested_subcategory_id == "casa-internet---tv---streamings"
    assert internet.confidence == pytest.approx(0.8)


@pytest.mark.anyio
async def test_confident_cache_hit_short_circuits_other_tiers():
    store = _StubStore([_entry("tarifamanutencaoconta", category_id_suggested="moradia", confidence_default=0.95)])
    resolution = await _resolver(store).resolve("TARIFA MANUTENCAO CONTA")

    assert resolution.source is ResolutionSource.CACHE
    assert resolution.suggested_category_id == "moradia"
    assert resolution.matched_key == "tarifamanutencaoconta"
    assert resolution.evidence[0].type is EvidenceType.CACHE_MATCH


@pytest.mark.anyio
async def test_weak_cache_hit_loses_to_platform_but_beats_unknown():
    weak_uber = _StubStore([_entry("uber", confidence_default=0.3)])
    platform = await _resolver(weak_uber).resolve("UBER TRIP")
    assert platform.source is ResolutionSource.PLATFORM

    weak_bakery = _StubStore([_entry("padariareal", confidence_default=0.3)])
    cached = await _resolver(weak_bakery).resolve("PADARIA REAL 123456")
    assert cached.source is ResolutionSource.CACHE
    assert cached.confidence == pytest.approx(0.3)
    assert cached.requires_confirmation is True


@pytest.mark.anyio
async def test_cache_evidence_by_source():
    store = _StubStore(
        [
            _entry(
                "padariareal",
                scope=FamilyScope("fam-1"),
                source=DirectorySource.USER_CONFIRMED,
                confidence_default=0.95,
                is_intermediary=True,
            )
        ]
    )
    resolution = await _resolver(store).resolve("PADARIA REAL", family_id="fam-1")

    assert [item.type for item in resolution.evidence] == [
        EvidenceType.USER_CONFIRMED,
        EvidenceType.INTERMEDIARY_WARNING,
    ]


@pytest.mark.anyio
async def test_family_rows_are_invisible_to_other_families():
    store = _StubStore([_entry("padariareal", scope=FamilyScope("fam-1"), confidence_default=0.95)])
    resolver = _resolver(store)

    other = await resolver.resolve("PADARIA REAL", family_id="fam-2")
    anonymous = await resolver.resolve("PADARIA REAL")
    owner = await resolver.resolve("PADARIA REAL", family_id="fam-1")

    assert other.source is ResolutionSource.UNKNOWN
    assert anonymous.source is ResolutionSource.UNKNOWN
    assert owner.source is ResolutionSource.CACHE


@pytest.mark.anyio
async def test_ties_keep_first_entry():
    store = _StubStore(
        [
            _entry("padariareal", scope=FamilyScope("fam-1"), category_id_suggested="familia"),
            _entry("padariareal", category_id_suggested="global"),
        ]
    )
    resolution = await _resolver(store).resolve("PADARIA REAL", family_id="fam-1")
    assert resolution.suggested_category_id == "familia"


@pytest.mark.anyio
async def test_lookup_failure_is_treated_as_miss():
    store = _StubStore(error=RuntimeError("database unavailable"))
    resolution = await _resolver(store).resolve("UBER TRIP")

    assert store.calls
    assert resolution.source is ResolutionSource.PLATFORM


@pytest.mark.anyio
async def test_unknown_resolution():
    observability = _RecordingObservability()
    resolution = await _resolver(_StubStore(), observability).resolve("LOJA DESCONHECIDA QUALQUER")

    assert resolution.source is ResolutionSource.UNKNOWN
    assert resolution.confidence == 0
    assert resolution.suggested_category_id is None
    assert resolution.evidence == []
    assert resolution.requires_confirmation is True
    assert resolution.normalized_key == "desconhecidaqualquer"
    assert observability.events[0][0] == "merchant_resolved"
    assert observability.events[0][1]["source"] == "UNKNOWN"


@pytest.mark.anyio
async def test_empty_descriptor_skips_lookup():
    store = _StubStore()
    resolution = await _resolver(store).resolve("")

    assert store.calls == []
    assert resolution.source is ResolutionSource.UNKNOWN


@pytest.mark.anyio
async def test_correction_is_used_by_later_resolutions():
    engine = sa.create_engine(
        "sqlite://", future=True, connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    sql_schema.METADATA.create_all(engine)
    store = MerchantDirectoryStore(session_factory=sessionmaker(bind=engine, future=True))
    store.upsert_by_natural_key(GlobalScope(), "uber", {"category_id_suggested": "transporte", "confidence_default": 0.4})
    settings = _settings()
    observability = _RecordingObservability()

    recorded = await record_merchant_correction(
        "fam-1", "UBER *TRIP 12/03", "Uber trabalho", "trabalho", None,
        store=store, settings=settings, observability=observability,
    )
    resolver = MerchantResolver(store=store, settings=settings, observability=observability)
    owner = await resolver.resolve("UBER *TRIP 15/04", family_id="fam-1")
    neighbour = await resolver.resolve("UBER *TRIP 15/04", family_id="fam-2")

    assert recorded is True
    assert owner.source is ResolutionSource.CACHE
    assert owner.suggested_category_id == "trabalho"
    assert owner.confidence == pytest.approx(0.95)
    assert neighbour.source is ResolutionSource.PLATFORM


@pytest.mark.anyio
async def test_out_of_range_directory_row_is_treated_as_miss():
    store = _StubStore([_entry("padariareal", confidence_default=1.2), _entry("uber", confidence_default=1.2)])
    resolver = _resolver(store)

    bakery = await resolver.resolve("PADARIA REAL")
    uber = await resolver.resolve("UBER TRIP")

    assert bakery.source is ResolutionSource.UNKNOWN
    assert uber.source is ResolutionSource.PLATFORM


@pytest.mark.anyio
async def test_bank_fee_tier_runs_before_platform_tier():
    resolution = await _resolver(_StubStore()).resolve("TARIFA PAGSEGURO")

    assert resolution.source is ResolutionSource.HEURISTIC
    assert resolution.suggested_category_id == "despesas-financeiras"


@pytest.mark.parametrize(
    "raw,source,confidence,subcategory,intermediary",
    [
        (
            "TARIFA MANUTENCAO CONTA CORRENTE 03/2024",
            ResolutionSource.HEURISTIC,
            0.9,
            "despesas-financeiras-manutencao-de-conta",
            False,
        ),
        ("UBER *TRIP 123456 SP BR", ResolutionSource.PLATFORM, 0.8, "transporte-taxi-uber", False),
        ("MERCADOPAGO*LOJA ABC", ResolutionSource.PLATFORM, 0.5, None, True),
    ],
)
@pytest.mark.anyio
async def test_statement_line_examples(raw, source, confidence, subcategory, intermediary):
    resolution = await _resolver(_StubStore()).resolve(raw)

    assert resolution.source is source
    assert resolution.confidence == pytest.approx(confidence)
    assert resolution.suggested_subcategory_id == subcategory
    assert resolution.is_intermediary is intermediary
    assert (EvidenceType.INTERMEDIARY_WARNING in [item.type for item in resolution.evidence]) is intermediary


@pytest.mark.anyio
async def test_resolve_merchant_degrades_when_directory_cannot_be_built(monkeypatch):
    from merchant_enrichment.services.merchant_enrichment import resolver as resolver_module

    def _broken_session_factory(*, settings=None):
        raise RuntimeError("no such database driver")

    monkeypatch.setattr(resolver_module, "session_factory", _broken_session_factory)
    resolver_module.reset_default_resolver()
    try:
        fee = await resolver_module.resolve_merchant("TARIFA MANUTENCAO CONTA")
        unknown = await resolver_module.resolve_merchant("PADARIA REAL")
    finally:
        resolver_module.reset_default_resolver()

    assert fee.source is ResolutionSource.HEURISTIC
    assert unknown.source is ResolutionSource.UNKNOWN
