"""Pydantic models returned by the merchant enrichment pipeline."""

from __future__ import annotations

from enum import Enum
from typing import List

from pydantic import BaseModel, Field, model_validator

# Resolutions at or above this confidence are applied without asking the user.
CONFIRMATION_THRESHOLD = 0.55


class EvidenceType(str, Enum):
    """Kinds of justification attached to a resolution."""

    CACHE_MATCH = "CACHE_MATCH"
    PLATFORM_DETECTED = "PLATFORM_DETECTED"
    HEURISTIC = "HEURISTIC"
    USER_CONFIRMED = "USER_CONFIRMED"
    BANK_FEE = "BANK_FEE"
    INTERMEDIARY_WARNING = "INTERMEDIARY_WARNING"


class ResolutionSource(str, Enum):
    """Pipeline tier that produced a resolution."""

    CACHE = "CACHE"
    PLATFORM = "PLATFORM"
    HEURISTIC = "HEURISTIC"
    UNKNOWN = "UNKNOWN"


class EvidenceItem(BaseModel):
    """Single piece of evidence shown next to a suggestion."""

    type: EvidenceType
    detail: str
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class MerchantResolution(BaseModel):
    """Best-effort identification of the merchant behind a descriptor.

    ``evidence`` is ordered: the primary reason comes first and warnings are
    appended after it.
    """

    merchant_label: str | None = None
    legal_name: str | None = None
    cnpj: str | None = None
    suggested_category_id: str | None = None
    suggested_subcategory_id: str | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    evidence: List[EvidenceItem] = Field(default_factory=list)
    is_intermediary: bool = False
    detected_platform: str | None = None
    normalized_key: str = ""
    source: ResolutionSource = ResolutionSource.UNKNOWN
    matched_key: str | None = None
    requires_confirmation: bool = True

    @model_validator(mode="after")
    def _derive_confirmation(self) -> "MerchantResolution":
        needs_user = (
            self.source == ResolutionSource.UNKNOWN
            or self.confidence < CONFIRMATION_THRESHOLD
            or (self.source == ResolutionSource.PLATFORM and self.is_intermediary)
        )
        self.requires_confirmation = needs_user
        return self

    @classmethod
    def unknown(cls, normalized_key: str = "", *, merchant_label: str | None = None) -> "MerchantResolution":
        """Terminal resolution used when no tier matched."""

        return cls(
            merchant_label=merchant_label or None,
            confidence=0.0,
            normalized_key=normalized_key,
            source=ResolutionSource.UNKNOWN,
        )


__all__ = [
    "CONFIRMATION_THRESHOLD",
    "EvidenceItem",
    "EvidenceType",
    "MerchantResolution",
    "ResolutionSource",
]
