"""Canonical schema definitions for normalized descriptors.

Defines the immutable dataclasses produced by the descriptor normalizer and
consumed by the resolver pipeline. Instances are recomputed on every call and
never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional, Tuple

PixKeyType = Literal["phone", "email", "cpf", "cnpj", "random"]


@dataclass(frozen=True, slots=True)
class DetectedEntities:
    """Structured entities found in a raw descriptor.

    Attributes:
        cnpj: Company registry number (digits only). Takes precedence over ``cpf``.
        cpf: Individual taxpayer number (digits only), set only when no CNPJ was found.
        email: Lower-cased e-mail address.
        domain: Lower-cased bare domain (``loja.com.br``).
        platform: Canonical name of the first knowledge-base platform matched.
        is_intermediary: Intermediary flag of ``platform``; ``None`` when no platform matched.
    """

    cnpj: Optional[str] = None
    cpf: Optional[str] = None
    email: Optional[str] = None
    domain: Optional[str] = None
    platform: Optional[str] = None
    is_intermediary: Optional[bool] = None


@dataclass(frozen=True, slots=True)
class NormalizedDescriptor:
    """Noise-stripped view of a statement descriptor.

    Attributes:
        original: Raw input string, untouched.
        normalized: Space-joined surviving tokens (display form).
        normalized_key: Lower-case alphanumeric key with no spaces (matching form).
        tokens: Ordered surviving tokens.
        entities: Entities detected before destructive cleanup.
        cleaned: Upper-cased text after date/time/ID/punctuation stripping,
            before noise-token filtering.
    """

    original: str
    normalized: str
    normalized_key: str
    tokens: Tuple[str, ...] = ()
    entities: DetectedEntities = field(default_factory=DetectedEntities)
    cleaned: str = ""

    def to_dict(self) -> dict:
        return {
            "original": self.original,
            "normalized": self.normalized,
            "normalized_key": self.normalized_key,
            "tokens": list(self.tokens),
            "cleaned": self.cleaned,
            "entities": {
                "cnpj": self.entities.cnpj,
                "cpf": self.entities.cpf,
                "email": self.entities.email,
                "domain": self.entities.domain,
                "platform": self.entities.platform,
                "is_intermediary": self.entities.is_intermediary,
            },
        }


@dataclass(frozen=True, slots=True)
class PixInfo:
    """Result of PIX detection on a raw descriptor."""

    is_pix: bool
    pix_key: Optional[str] = None
    key_type: Optional[PixKeyType] = None
