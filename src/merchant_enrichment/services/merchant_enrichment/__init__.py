"""Merchant enrichment service primitives."""

from .batch import batch_resolve_merchants, chunk_descriptors
from .corrections import record_merchant_correction
from .models import EvidenceItem, EvidenceType, MerchantResolution, ResolutionSource
from .resolver import MerchantResolver, get_default_resolver, reset_default_resolver, resolve_merchant

__all__ = [
    "EvidenceItem",
    "EvidenceType",
    "MerchantResolution",
    "MerchantResolver",
    "ResolutionSource",
    "batch_resolve_merchants",
    "chunk_descriptors",
    "get_default_resolver",
    "record_merchant_correction",
    "reset_default_resolver",
    "resolve_merchant",
]
