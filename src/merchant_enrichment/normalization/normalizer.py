"""Descriptor normalization module.

Turns raw bank/card statement lines into a stable matching key plus the
entities needed by the resolver. Every function here is pure: no I/O, no
shared state, and no failure mode for odd input.

The cleanup runs in a fixed order because each step works on the output of
the previous one: entities are captured first (a CNPJ would otherwise be
erased by the digit-run filter), then dates, times and long identifiers are
removed, punctuation is flattened, and finally noise tokens are dropped.
"""

from __future__ import annotations

import re
import unicodedata
from typing import Optional, Sequence, Tuple

from merchant_enrichment.extraction.ner_rules import extract_entities
from merchant_enrichment.normalization.reference_data import BANK_FEE_PATTERNS, NOISE_TOKENS
from merchant_enrichment.normalization.schema import NormalizedDescriptor, PixInfo, PixKeyType

_DATE_PATTERN = re.compile(r"\d{1,2}[/.\-]\d{1,2}[/.\-]\d{2,4}")
_TIME_PATTERN = re.compile(r"\d{1,2}:\d{2}(?::\d{2})?")
_LONG_DIGITS_PATTERN = re.compile(r"\b\d{5,}\b")
_SYMBOL_PATTERN = re.compile(r"[^\w\s]|_")
_WHITESPACE_PATTERN = re.compile(r"\s+")
_NON_KEY_CHARS = re.compile(r"[^a-z0-9]")
_PIX_MARKER = re.compile(r"PIX")

# Tried in order; the first structural match is reported as the PIX key.
_PIX_KEY_PATTERNS: Tuple[Tuple[PixKeyType, re.Pattern[str]], ...] = (
    ("phone", re.compile(r"(?<![\d.])\+?(?:55)?\d{10,11}(?![\d./-])")),
    ("email", re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")),
    ("cpf", re.compile(r"(?<!\d)\d{3}\.?\d{3}\.?\d{3}-?\d{2}(?![\d/])")),
    ("cnpj", re.compile(r"(?<!\d)\d{2}\.?\d{3}\.?\d{3}/?\d{4}-?\d{2}(?!\d)")),
    ("random", re.compile(r"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}", re.IGNORECASE)),
)


def normalize_descriptor(raw_descriptor: Optional[str]) -> NormalizedDescriptor:
    """Normalize a descriptor for directory matching.

    Args:
        raw_descriptor: Statement line exactly as the bank produced it.
            ``None`` is treated as an empty string.

    Returns:
        :class:`NormalizedDescriptor` with the cleaned tokens, the display form,
        the matching key and the entities detected before cleanup.
    """

    original = raw_descriptor or ""
    text = original.upper().strip()

    entities = extract_entities(text)

    text = _DATE_PATTERN.sub(" ", text)
    text = _TIME_PATTERN.sub(" ", text)
    text = _LONG_DIGITS_PATTERN.sub(" ", text)
    text = _SYMBOL_PATTERN.sub(" ", text)
    cleaned = _WHITESPACE_PATTERN.sub(" ", text).strip()

    tokens = tuple(token for token in cleaned.split(" ") if token and _keep_token(token))

    return NormalizedDescriptor(
        original=original,
        normalized=" ".join(tokens),
        normalized_key=build_key(tokens),
        tokens=tokens,
        entities=entities,
        cleaned=cleaned,
    )


def _keep_token(token: str) -> bool:
    if token in NOISE_TOKENS:
        return False
    if token.isdigit():
        return False
    return len(token) > 2


def build_key(parts: Sequence[str]) -> str:
    """Collapse ``parts`` into a lower-case ASCII alphanumeric key."""

    joined = "".join(parts).lower()
    folded = unicodedata.normalize("NFKD", joined)
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    return _NON_KEY_CHARS.sub("", folded)


def generate_matching_keys(descriptor: NormalizedDescriptor) -> Tuple[str, ...]:
    """Return directory lookup keys in decreasing order of precision.

    Order: the full normalized key, the detected platform, the first token,
    then the first two tokens combined. Empty and duplicate keys are dropped.
    """

    candidates = [descriptor.normalized_key]
    if descriptor.entities.platform:
        candidates.append(build_key([descriptor.entities.platform]))
    if descriptor.tokens:
        candidates.append(build_key(descriptor.tokens[:1]))
    if len(descriptor.tokens) >= 2:
        candidates.append(build_key(descriptor.tokens[:2]))

    keys: list[str] = []
    for key in candidates:
        if key and key not in keys:
            keys.append(key)
    return tuple(keys)


def is_bank_fee_pattern(descriptor: NormalizedDescriptor) -> bool:
    """Return True when the normalized text reads like a bank charge."""

    return any(pattern.search(descriptor.normalized) for pattern in BANK_FEE_PATTERNS)


def detect_pix_info(raw_descriptor: Optional[str]) -> PixInfo:
    """Detect a PIX transfer and, when present, the PIX key it names.

    Runs on the raw string rather than the normalized tokens because phone
    numbers, e-mails and taxpayer ids are exactly what normalization strips.
    """

    raw = raw_descriptor or ""
    if not _PIX_MARKER.search(raw.upper()):
        return PixInfo(is_pix=False)

    for key_type, pattern in _PIX_KEY_PATTERNS:
        match = pattern.search(raw)
        if match:
            return PixInfo(is_pix=True, pix_key=match.group(0), key_type=key_type)
    return PixInfo(is_pix=True)


__all__ = [
    "build_key",
    "detect_pix_info",
    "generate_matching_keys",
    "is_bank_fee_pattern",
    "normalize_descriptor",
]
