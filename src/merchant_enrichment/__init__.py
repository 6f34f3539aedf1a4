"""Merchant enrichment: resolve bank statement descriptors into merchants and categories.

The public entry points are re-exported here::

    from merchant_enrichment import resolve_merchant

    resolution = await resolve_merchant("UBER *TRIP 12/03 SAO PAULO")
"""

from merchant_enrichment.services.merchant_enrichment import (
    MerchantResolution,
    batch_resolve_merchants,
    record_merchant_correction,
    resolve_merchant,
)

__all__ = [
    "MerchantResolution",
    "batch_resolve_merchants",
    "record_merchant_correction",
    "resolve_merchant",
]
