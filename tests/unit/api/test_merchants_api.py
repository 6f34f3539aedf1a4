"""Tests for the merchants API router."""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from merchant_enrichment.api.app import create_app
from merchant_enrichment.api.merchants import get_merchant_resolver
from merchant_enrichment.services.merchant_enrichment import MerchantResolver
from merchant_enrichment.settings import Settings
from merchant_enrichment.store import sql as sql_schema
from merchant_enrichment.store.merchant_directory import MerchantDirectoryStore


class _QuietObservability:
    def emit_event(self, event: str, **_: Any) -> None:
        pass

    def increment(self, metric: str, **_: Any) -> None:
        pass

    def record_timing(self, metric: str, value_ms: float, **_: Any) -> None:
        pass


def _client() -> TestClient:
    engine = sa.create_engine(
        "sqlite://", future=True, connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    sql_schema.METADATA.create_all(engine)
    store = MerchantDirectoryStore(session_factory=sessionmaker(bind=engine, future=True))
    resolver = MerchantResolver(store=store, settings=Settings(), observability=_QuietObservability())

    app = create_app()
    app.dependency_overrides[get_merchant_resolver] = lambda: resolver
    return TestClient(app)


def test_resolve_platform_descriptor():
    client = _client()
    response = client.post("/merchants/resolve", json={"descriptor": "UBER *TRIP 12/03/2024"})

    assert response.status_code == 200
    body = response.json()
    assert body["source"] == "PLATFORM"
    assert body["detected_platform"] == "UBER"
    assert body["confidence"] == 0.8
    assert body["requires_confirmation"] is False


def test_resolve_requires_descriptor():
    client = _client()
    response = client.post("/merchants/resolve", json={"family_id": "fam-1"})
    assert response.status_code == 422


def test_batch_endpoint_returns_results_keyed_by_descriptor():
    client = _client()
    response = client.post(
        "/merchants/resolve/batch",
        json={"descriptors": ["TARIFA MANUTENCAO CONTA", "MERCADOPAGO *LOJA", "TARIFA MANUTENCAO CONTA"]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert body["results"]["TARIFA MANUTENCAO CONTA"]["source"] == "HEURISTIC"
    assert body["results"]["MERCADOPAGO *LOJA"]["is_intermediary"] is True


def test_correction_then_resolve_uses_family_row():
    client = _client()
    correction = client.post(
        "/merchants/corrections",
        json={
            "family_id": "fam-1",
            "descriptor": "PADARIA REAL 123456",
            "merchant_label": "Padaria Real",
            "category_id": "alimentacao",
        },
    )
    assert correction.status_code == 200
    assert correction.json() == {"recorded": True}

    owner = client.post("/merchants/resolve", json={"descriptor": "PADARIA REAL 999999", "family_id": "fam-1"})
    other = client.post("/merchants/resolve", json={"descriptor": "PADARIA REAL 999999", "family_id": "fam-2"})

    assert owner.json()["source"] == "CACHE"
    assert owner.json()["merchant_label"] == "Padaria Real"
    assert other.json()["source"] == "UNKNOWN"


def test_correction_rejects_empty_category():
    client = _client()
    response = client.post(
        "/merchants/corrections",
        json={"family_id": "fam-1", "descriptor": "PADARIA REAL", "category_id": ""},
    )
    assert response.status_code == 422


def test_normalize_endpoint():
    client = _client()
    response = client.get("/merchants/normalize", params={"descriptor": "PIX ENVIADO joao@example.com"})

    assert response.status_code == 200
    body = response.json()
    assert body["pix"] == {"is_pix": True, "pix_key": "joao@example.com", "key_type": "email"}
    assert body["entities"]["email"] == "joao@example.com"
    assert body["is_bank_fee"] is False
    assert body["matching_keys"][0] == body["normalized_key"]
