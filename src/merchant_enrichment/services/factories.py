"""Factory helpers that instantiate core services based on configuration.

These helpers centralize the logic for honoring the settings declared in
:mod:`merchant_enrichment.settings`. Unsupported storage backends surface as
``NotImplementedError`` from the engine factory.
"""

from __future__ import annotations

from merchant_enrichment.services.merchant_enrichment import MerchantResolver
from merchant_enrichment.settings import Settings, get_settings
from merchant_enrichment.store.merchant_directory import MerchantDirectoryStore
from merchant_enrichment.store.sql import session_factory as build_sql_session_factory


def build_merchant_directory_store(settings: Settings | None = None) -> MerchantDirectoryStore:
    """Instantiate a :class:`MerchantDirectoryStore` backed by the configured SQL engine."""

    resolved = settings or get_settings()
    return MerchantDirectoryStore(session_factory=build_sql_session_factory(settings=resolved))


def build_merchant_resolver(settings: Settings | None = None) -> MerchantResolver:
    """Return a resolver wired to a freshly built directory store."""

    resolved = settings or get_settings()
    return MerchantResolver(store=build_merchant_directory_store(resolved), settings=resolved)


__all__ = ["build_merchant_directory_store", "build_merchant_resolver"]
