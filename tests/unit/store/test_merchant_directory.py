"""Unit tests for the SQL-backed MerchantDirectoryStore."""

from __future__ import annotations

import pytest
import sqlalchemy as sa
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from merchant_enrichment.store import sql as sql_schema
from merchant_enrichment.store.merchant_directory import MerchantDirectoryStore
from merchant_enrichment.store.schema import DirectorySource, FamilyScope, GlobalScope


def _session_factory() -> sessionmaker:
    engine = sa.create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    sql_schema.METADATA.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def store() -> MerchantDirectoryStore:
    return MerchantDirectoryStore(session_factory=_session_factory())


def test_upsert_inserts_then_updates_in_place(store):
    scope = FamilyScope("fam-1")
    first_id = store.upsert_by_natural_key(
        scope,
        "padariareal",
        {"category_id_suggested": "alimentacao", "confidence_default": 0.95, "source": "USER_CONFIRMED"},
    )
    second_id = store.upsert_by_natural_key(
        scope,
        "padariareal",
        {"category_id_suggested": "lazer", "confidence_default": 0.95, "source": DirectorySource.USER_CONFIRMED},
    )

    assert first_id == second_id
    rows = store.list_by_key("padariareal")
    assert len(rows) == 1
    assert rows[0].category_id_suggested == "lazer"
    assert rows[0].source is DirectorySource.USER_CONFIRMED
    assert rows[0].confidence_default == pytest.approx(0.95)


def test_global_and_family_rows_coexist(store):
    store.upsert_by_natural_key(GlobalScope(), "uber", {"category_id_suggested": "transporte"})
    store.upsert_by_natural_key(GlobalScope(), "uber", {"category_id_suggested": "transporte"})
    store.upsert_by_natural_key(FamilyScope("fam-1"), "uber", {"category_id_suggested": "trabalho"})

    rows = store.list_by_key("uber")
    assert len(rows) == 2
    assert store.get(GlobalScope(), "uber").category_id_suggested == "transporte"
    assert store.get(FamilyScope("fam-1"), "uber").category_id_suggested == "trabalho"
    assert store.get(FamilyScope("fam-2"), "uber") is None


def test_find_by_keys_filters_by_family(store):
    store.upsert_by_natural_key(GlobalScope(), "uber", {"confidence_default": 0.8})
    store.upsert_by_natural_key(FamilyScope("fam-1"), "uber", {"confidence_default": 0.95})
    store.upsert_by_natural_key(FamilyScope("fam-2"), "uber", {"confidence_default": 0.95})

    anonymous = store.find_by_keys(["uber"])
    assert [entry.scope for entry in anonymous] == [GlobalScope()]

    visible = store.find_by_keys(["uber", "ubertrip"], family_id="fam-1")
    assert [entry.scope for entry in visible] == [FamilyScope("fam-1"), GlobalScope()]


def test_find_by_keys_ignores_empty_keys(store):
    assert store.find_by_keys([]) == []
    assert store.find_by_keys(["", ""]) == []


def test_upsert_rejects_bad_input(store):
    with pytest.raises(ValueError):
        store.upsert_by_natural_key(GlobalScope(), "", {})
    with pytest.raises(ValueError):
        store.upsert_by_natural_key(GlobalScope(), "uber", {"scope": "family"})


def test_entry_round_trips_json_columns(store):
    store.upsert_by_natural_key(
        FamilyScope("fam-1"),
        "padariareal",
        {"sample_descriptors": ["PADARIA REAL 123456"], "match_count": 1, "is_intermediary": False},
    )
    entry = store.get(FamilyScope("fam-1"), "padariareal")
    assert entry.sample_descriptors == ["PADARIA REAL 123456"]
    assert entry.match_count == 1
    assert entry.to_dict()["family_id"] == "fam-1"
    assert entry.to_dict()["scope"] == "family"
