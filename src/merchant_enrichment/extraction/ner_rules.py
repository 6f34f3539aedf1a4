"""
Rule-based entity extraction for bank and card statement descriptors.

Simple regex heuristics pick out Brazilian taxpayer ids (CNPJ/CPF), contact
handles and the known payment platform behind a descriptor.
"""

import re
from typing import Optional, Tuple

from merchant_enrichment.normalization.reference_data import KNOWN_PLATFORMS, PlatformRule
from merchant_enrichment.normalization.schema import DetectedEntities

CNPJ_PATTERN = re.compile(r"\d{2}\.?\d{3}\.?\d{3}/?\d{4}-?\d{2}")
CPF_PATTERN = re.compile(r"\d{3}\.?\d{3}\.?\d{3}-?\d{2}")
EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
DOMAIN_PATTERN = re.compile(r"(?:www\.)?([a-zA-Z0-9-]+(?:\.[a-zA-Z]{2,})+)", re.IGNORECASE)
_NON_DIGIT = re.compile(r"\D")


def extract_cnpj(text: str) -> Optional[str]:
    """Return the first CNPJ-shaped number, digits only."""
    match = CNPJ_PATTERN.search(text)
    return _NON_DIGIT.sub("", match.group(0)) if match else None


def extract_cpf(text: str) -> Optional[str]:
    """Return the first CPF-shaped number, digits only."""
    match = CPF_PATTERN.search(text)
    return _NON_DIGIT.sub("", match.group(0)) if match else None


def extract_email(text: str) -> Optional[str]:
    match = EMAIL_PATTERN.search(text)
    return match.group(0).lower() if match else None


def extract_domain(text: str) -> Optional[str]:
    """Find a bare domain such as ``loja.com.br`` (without the ``www.`` prefix)."""
    match = DOMAIN_PATTERN.search(text)
    return match.group(1).lower() if match else None


def detect_platform(text: str, rules: Tuple[PlatformRule, ...] = KNOWN_PLATFORMS) -> Optional[PlatformRule]:
    """
    Return the first rule whose pattern matches ``text``.

    Iteration stops at the first hit; a later, more specific rule never
    replaces an earlier one.
    """
    for rule in rules:
        if rule.matches(text):
            return rule
    return None


def extract_entities(text: str) -> DetectedEntities:
    """
    Aggregate all extraction results for an upper-cased descriptor.
    """
    cnpj = extract_cnpj(text)
    cpf = None if cnpj else extract_cpf(text)
    platform = detect_platform(text)
    return DetectedEntities(
        cnpj=cnpj,
        cpf=cpf,
        email=extract_email(text),
        domain=extract_domain(text),
        platform=platform.platform if platform else None,
        is_intermediary=platform.is_intermediary if platform else None,
    )
