"""Merchant enrichment API router."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from merchant_enrichment.normalization.normalizer import (
    detect_pix_info,
    generate_matching_keys,
    is_bank_fee_pattern,
    normalize_descriptor,
)
from merchant_enrichment.services.merchant_enrichment import (
    MerchantResolution,
    MerchantResolver,
    batch_resolve_merchants,
    get_default_resolver,
    record_merchant_correction,
)
from merchant_enrichment.settings import Settings, get_settings

router = APIRouter(prefix="/merchants", tags=["merchants"])
LOGGER = logging.getLogger(__name__)


class ResolveRequest(BaseModel):
    """Single descriptor resolution request."""

    descriptor: str
    family_id: str | None = None


class BatchResolveRequest(BaseModel):
    """Bulk resolution request used by statement imports."""

    descriptors: List[str] = Field(default_factory=list, max_length=1000)
    family_id: str | None = None


class BatchResolveResponse(BaseModel):
    """Envelope returned by the batch endpoint, keyed by raw descriptor."""

    results: Dict[str, MerchantResolution]
    count: int


class CorrectionRequest(BaseModel):
    """Category chosen by a family for a descriptor."""

    family_id: str = Field(min_length=1)
    descriptor: str = Field(min_length=1)
    merchant_label: str | None = None
    category_id: str = Field(min_length=1)
    subcategory_id: str | None = None


class CorrectionResponse(BaseModel):
    recorded: bool


def get_merchant_resolver() -> MerchantResolver:
    """Dependency provider returning the shared MerchantResolver instance."""

    return get_default_resolver()


@router.post("/resolve", response_model=MerchantResolution, summary="Resolve a statement descriptor")
async def resolve_descriptor(
    payload: ResolveRequest,
    resolver: MerchantResolver = Depends(get_merchant_resolver),
) -> MerchantResolution:
    return await resolver.resolve(payload.descriptor, payload.family_id)


@router.post("/resolve/batch", response_model=BatchResolveResponse, summary="Resolve many descriptors")
async def resolve_batch(
    payload: BatchResolveRequest,
    resolver: MerchantResolver = Depends(get_merchant_resolver),
    settings: Settings = Depends(get_settings),
) -> BatchResolveResponse:
    """Resolve descriptors in bounded chunks; failures come back as ``UNKNOWN``."""

    results = await batch_resolve_merchants(
        payload.descriptors,
        payload.family_id,
        resolver=resolver,
        settings=settings,
    )
    LOGGER.info("Batch resolution returned %s results for %s descriptors", len(results), len(payload.descriptors))
    return BatchResolveResponse(results=results, count=len(results))


@router.post("/corrections", response_model=CorrectionResponse, summary="Record a user correction")
async def record_correction(
    payload: CorrectionRequest,
    resolver: MerchantResolver = Depends(get_merchant_resolver),
    settings: Settings = Depends(get_settings),
) -> CorrectionResponse:
    recorded = await record_merchant_correction(
        payload.family_id,
        payload.descriptor,
        payload.merchant_label,
        payload.category_id,
        payload.subcategory_id,
        store=resolver.store,
        settings=settings,
    )
    return CorrectionResponse(recorded=recorded)


@router.get("/normalize", summary="Inspect how a descriptor is normalized")
def normalize(descriptor: str = Query(..., description="Raw statement descriptor")) -> Dict[str, Any]:
    """Return the normalized view, lookup keys, fee flag and PIX details."""

    normalized = normalize_descriptor(descriptor)
    pix = detect_pix_info(descriptor)
    return {
        **normalized.to_dict(),
        "matching_keys": list(generate_matching_keys(normalized)),
        "is_bank_fee": is_bank_fee_pattern(normalized),
        "pix": {"is_pix": pix.is_pix, "pix_key": pix.pix_key, "key_type": pix.key_type},
    }
