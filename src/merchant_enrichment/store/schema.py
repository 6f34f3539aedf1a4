"""Schema definitions for the merchant directory store.

Defines the in-memory representation of directory rows and the scope variant
that decides which requests may see a row. A ``NULL`` ``family_id`` in the
database means "global"; the rest of the code only ever sees
:class:`GlobalScope` or :class:`FamilyScope`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class DirectorySource(str, Enum):
    """Provenance of a directory row."""

    USER_CONFIRMED = "USER_CONFIRMED"
    PLATFORM_DETECTED = "PLATFORM_DETECTED"
    HEURISTIC = "HEURISTIC"
    CACHE = "CACHE"

    @classmethod
    def parse(cls, value: Any) -> "DirectorySource":
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.CACHE


@dataclass(frozen=True, slots=True)
class GlobalScope:
    """Row shared by every family."""

    kind = "global"

    @property
    def family_id(self) -> None:
        return None

    def matches(self, family_id: str | None) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class FamilyScope:
    """Row visible only to requests made on behalf of ``family_id``."""

    family_id: str
    kind = "family"

    def matches(self, family_id: str | None) -> bool:
        return family_id is not None and family_id == self.family_id


Scope = Union[GlobalScope, FamilyScope]


def scope_from_row(scope: str | None, family_id: str | None) -> Scope:
    """Rebuild a scope variant from the persisted ``(scope, family_id)`` pair.

    A ``family`` row without a family id cannot match any request, so it is
    returned as a family scope keyed by the empty string.
    """

    if (scope or "").strip().lower() == "family":
        return FamilyScope(family_id or "")
    return GlobalScope()


@dataclass(slots=True)
class MerchantDirectoryEntry:
    """Previously resolved merchant persisted in the directory.

    Attributes:
        scope: Visibility of the row (global or a single family).
        normalized_key: Matching key produced by the normalizer.
        merchant_name_display: Human-readable merchant label.
        legal_name: Registered company name when known.
        cnpj: Company registry number, digits only.
        category_id_suggested: Suggested spending category id.
        subcategory_id_suggested: Suggested subcategory id.
        confidence_default: Confidence attached to the suggestion, in [0, 1].
        evidence_summary: Short justification displayed alongside the suggestion.
        source: Provenance of the row.
        detected_platform: Platform name when the row came from platform detection.
        is_intermediary: Whether the merchant is a payment intermediary.
        sample_descriptors: Raw descriptors that produced or confirmed the row.
        match_count: Number of confirmations recorded for the row.
        last_matched_at: Timestamp of the latest confirmation.
        entry_id: Primary key of the row, once persisted.
    """

    scope: Scope
    normalized_key: str
    merchant_name_display: Optional[str] = None
    legal_name: Optional[str] = None
    cnpj: Optional[str] = None
    category_id_suggested: Optional[str] = None
    subcategory_id_suggested: Optional[str] = None
    confidence_default: float = 0.5
    evidence_summary: Optional[str] = None
    source: DirectorySource = DirectorySource.CACHE
    detected_platform: Optional[str] = None
    is_intermediary: bool = False
    sample_descriptors: List[str] = field(default_factory=list)
    match_count: int = 0
    last_matched_at: Optional[datetime] = None
    entry_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the entry to a JSON-safe dictionary."""

        return {
            "id": self.entry_id,
            "scope": self.scope.kind,
            "family_id": self.scope.family_id,
            "normalized_key": self.normalized_key,
            "merchant_name_display": self.merchant_name_display,
            "legal_name": self.legal_name,
            "cnpj": self.cnpj,
            "category_id_suggested": self.category_id_suggested,
            "subcategory_id_suggested": self.subcategory_id_suggested,
            "confidence_default": self.confidence_default,
            "evidence_summary": self.evidence_summary,
            "source": self.source.value,
            "detected_platform": self.detected_platform,
            "is_intermediary": self.is_intermediary,
            "sample_descriptors": list(self.sample_descriptors),
            "match_count": self.match_count,
            "last_matched_at": self.last_matched_at.isoformat() if self.last_matched_at else None,
        }
