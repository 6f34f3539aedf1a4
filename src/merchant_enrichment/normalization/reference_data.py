"""Reference data for descriptor normalization and merchant resolution.

This module holds the static knowledge base consulted by the normalizer and
the resolver: noise words stripped from statement lines, the ordered table of
known payment platforms and merchants, and the banking-fee vocabulary.

``KNOWN_PLATFORMS`` is evaluated first-match-wins. Its order is part of the
contract (``UBER`` shadows ``UBER_EATS``, ``AMAZON_PRIME`` must stay ahead of
``AMAZON``), so new rules are appended rather than sorted in.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Pattern, Tuple

FINANCIAL_EXPENSES_CATEGORY = "despesas-financeiras"

# Tokens that carry no merchant identity on Brazilian statements.
NOISE_TOKENS = frozenset(
    {
        # Payment jargon
        "PGTO", "PAGTO", "PAG", "COMPRA", "DEBITO", "DEB", "CREDITO", "CRED",
        "PARCELADO", "PARC", "PARCELA", "AVISTA",
        # Terminal / rail identifiers
        "POS", "CARD", "CARTAO", "CC", "CD", "TERMINAL", "TID", "NSU",
        "DOC", "TED", "PIX", "BOLETO", "TRANSF", "TRANSFERENCIA",
        # Country and state abbreviations
        "BR", "BRA", "BRASIL", "SP", "RJ", "MG", "RS", "PR", "SC", "BA", "PE",
        "DF", "GO", "CE", "PA", "MA", "PB", "RN", "PI", "SE", "AL", "AM", "MT",
        "MS", "ES", "RO", "AC", "AP", "RR", "TO",
        # Corporate suffixes and generic store words
        "LTDA", "ME", "EIRELI", "EPP", "SA", "SS", "CIA", "COMERCIO", "COM",
        "SERVICOS", "SERV", "LOJA", "FILIAL", "MATRIZ",
        # Month abbreviations
        "JAN", "FEV", "MAR", "ABR", "MAI", "JUN", "JUL", "AGO", "SET", "OUT", "NOV", "DEZ",
        # Invoice words
        "FATURA", "FAT", "REF", "REFERENTE", "NF", "NFE", "NOTA",
    }
)


@dataclass(frozen=True, slots=True)
class PlatformRule:
    """Known platform or merchant recognised by a descriptor pattern.

    Attributes:
        pattern: Compiled, case-insensitive pattern tested against the
            upper-cased descriptor.
        platform: Canonical platform name reported in resolutions.
        is_intermediary: Whether the platform processes payments on behalf of
            another merchant (gateways, marketplaces, course platforms).
        category_hint: Suggested category id, when the platform implies one.
        subcategory_hint: Suggested subcategory id, when known.
    """

    pattern: Pattern[str]
    platform: str
    is_intermediary: bool
    category_hint: str | None = None
    subcategory_hint: str | None = None

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


def _rule(
    pattern: str,
    platform: str,
    is_intermediary: bool,
    category_hint: str | None = None,
    subcategory_hint: str | None = None,
) -> PlatformRule:
    return PlatformRule(re.compile(pattern, re.IGNORECASE), platform, is_intermediary, category_hint, subcategory_hint)


KNOWN_PLATFORMS: Tuple[PlatformRule, ...] = (
    # Payment gateways
    _rule(r"MERCADO\s*PAGO|MERCADOPAGO|MP\s*\*", "MERCADOPAGO", True),
    _rule(r"MERCADO\s*LIVRE|MERCADOLIVRE|ML\s*\*", "MERCADOLIVRE", True),
    _rule(r"PAGSEGURO|PAG\s*SEGURO|UOLPAG", "PAGSEGURO", True),
    _rule(r"PAYPAL", "PAYPAL", True),
    _rule(r"PICPAY", "PICPAY", True),
    _rule(r"\bSTONE\b", "STONE", True),
    _rule(r"\bCIELO\b", "CIELO", True),
    _rule(r"\bGETNET\b", "GETNET", True),
    _rule(r"\bREDE\b(?!\s*CELULAR)", "REDE", True),
    # Digital course platforms
    _rule(r"HOTMART", "HOTMART", True, "educacao", "educacao-cursos-online"),
    _rule(r"EDUZZ", "EDUZZ", True, "educacao", "educacao-cursos-online"),
    _rule(r"MONETIZZE", "MONETIZZE", True, "educacao", "educacao-cursos-online"),
    _rule(r"KIWIFY", "KIWIFY", True, "educacao", "educacao-cursos-online"),
    # Transport
    _rule(r"\bUBER\b", "UBER", False, "transporte", "transporte-taxi-uber"),
    _rule(r"UBER\s*EATS", "UBER_EATS", False, "alimentacao", "alimentacao-delivery"),
    _rule(r"\b99\b|99\s*APP|99\s*POP|99\s*TAXI", "99", False, "transporte", "transporte-taxi-uber"),
    _rule(r"CABIFY", "CABIFY", False, "transporte", "transporte-taxi-uber"),
    # Food delivery
    _rule(r"IFOOD|I\s*FOOD", "IFOOD", True, "alimentacao", "alimentacao-delivery"),
    _rule(r"RAPPI", "RAPPI", True, "alimentacao", "alimentacao-delivery"),
    _rule(r"ZE\s*DELIVERY|ZDELIVERY", "ZEDELIVERY", False, "alimentacao", "alimentacao-delivery"),
    # Streaming
    _rule(r"NETFLIX", "NETFLIX", False, "casa", "casa-internet---tv---streamings"),
    _rule(r"SPOTIFY", "SPOTIFY", False, "casa", "casa-internet---tv---streamings"),
    _rule(r"AMAZON\s*PRIME|PRIME\s*VIDEO|PRIMEVIDEO", "AMAZON_PRIME", False, "casa", "casa-internet---tv---streamings"),
    _rule(r"DISNEY\s*\+|DISNEY\s*PLUS|DISNEYPLUS", "DISNEY", False, "casa", "casa-internet---tv---streamings"),
    _rule(r"HBO\s*MAX|HBOMAX|\bMAX\b", "HBO", False, "casa", "casa-internet---tv---streamings"),
    _rule(r"GLOBOPLAY|GLOBO\s*PLAY", "GLOBOPLAY", False, "casa", "casa-internet---tv---streamings"),
    _rule(r"DEEZER", "DEEZER", False, "casa", "casa-internet---tv---streamings"),
    _rule(r"YOUTUBE|YOU\s*TUBE", "YOUTUBE", False, "casa", "casa-internet---tv---streamings"),
    # Marketplaces
    _rule(r"\bAMAZON\b(?!\s*PRIME)", "AMAZON", True),
    _rule(r"SHOPEE", "SHOPEE", True),
    _rule(r"ALIEXPRESS|ALI\s*EXPRESS", "ALIEXPRESS", True),
    _rule(r"MAGALU|MAGAZINE\s*LUIZA", "MAGALU", True),
    _rule(r"AMERICANAS", "AMERICANAS", True),
    _rule(r"\bSHEIN\b", "SHEIN", False, "roupa-estetica", "roupa-estetica-roupas"),
    # Fuel
    _rule(r"\bSHELL\b", "SHELL", False, "transporte", "transporte-combustivel"),
    _rule(r"IPIRANGA", "IPIRANGA", False, "transporte", "transporte-combustivel"),
    _rule(r"PETROBRAS|BR\s*DISTRIBUIDORA", "PETROBRAS", False, "transporte", "transporte-combustivel"),
    # Pharmacies
    _rule(r"DROGASIL", "DROGASIL", False, "vida-saude", "vida-saude-medicamentos"),
    _rule(r"DROGA\s*RAIA|DROGARAIA", "DROGARAIA", False, "vida-saude", "vida-saude-medicamentos"),
    _rule(r"PANVEL", "PANVEL", False, "vida-saude", "vida-saude-medicamentos"),
    # Supermarkets
    _rule(r"CARREFOUR", "CARREFOUR", False, "alimentacao", "alimentacao-supermercado"),
    _rule(r"P[ÃA]O\s*DE\s*A[CÇ]UCAR", "PAODEACUCAR", False, "alimentacao", "alimentacao-supermercado"),
    _rule(r"ASSA[IÍ]", "ASSAI", False, "alimentacao", "alimentacao-supermercado"),
    _rule(r"ATACAD[ÃA]O", "ATACADAO", False, "alimentacao", "alimentacao-supermercado"),
    # Telecom
    _rule(r"\bVIVO\b", "VIVO", False, "casa", "casa-telefone-celular"),
    _rule(r"\bCLARO\b", "CLARO", False, "casa", "casa-telefone-celular"),
    _rule(r"\bTIM\b", "TIM", False, "casa", "casa-telefone-celular"),
    _rule(r"\bOI\b", "OI", False, "casa", "casa-telefone-celular"),
)

PLATFORMS_BY_NAME = {rule.platform: rule for rule in KNOWN_PLATFORMS}

# Platform families that get context-aware category refinement.
COURSE_PLATFORMS = frozenset({"HOTMART", "EDUZZ", "MONETIZZE", "KIWIFY"})
MARKETPLACE_PLATFORMS = frozenset({"AMAZON", "MERCADOLIVRE", "SHOPEE", "ALIEXPRESS", "MAGALU", "AMERICANAS"})
GATEWAY_PLATFORMS = frozenset({"MERCADOPAGO", "PAGSEGURO", "STONE", "CIELO", "GETNET", "REDE", "PAYPAL", "PICPAY"})
TELECOM_PLATFORMS = frozenset({"VIVO", "CLARO", "TIM", "OI"})

CONTEXT_PATTERNS = {
    "certification": re.compile(r"MBA|CERT|CERTIF|EXAME|PROVA|CERTIFICACAO", re.IGNORECASE),
    "clothing": re.compile(r"ROUPA|ROPA|SHOES|MODA|VESTUARIO|CALCA|CAMISA|VESTIDO|TENIS|SAPATO", re.IGNORECASE),
    "electronics": re.compile(
        r"ELETR|INFO|NOTE|NOTEBOOK|IPHONE|\bTV\b|TABLET|CELULAR|SMARTPHONE|COMPUTER|\bPC\b", re.IGNORECASE
    ),
    "fee": re.compile(r"TARIFA|TAXA|\bFEE\b|COMISSAO|\bMDR\b", re.IGNORECASE),
    "internet": re.compile(r"INTERNET|FIBRA|BANDA\s*LARGA|WIFI|WI-FI", re.IGNORECASE),
}

# Banking-fee vocabulary, matched at word start on normalized text so that
# words such as "DOCERIA" do not read as fees. TED and DOC are noise tokens and
# never reach this text; a transfer only counts as a fee next to TARIFA or TAXA.
BANK_FEE_PATTERNS: Tuple[Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bTARIFA",
        r"\bIOF\b",
        r"\bANUIDADE",
        r"\bJUROS?\b",
        r"\bMULTA",
        r"\bMANUTENCAO",
        r"\bTAXA",
        r"\bCOBRANCA",
    )
)


@dataclass(frozen=True, slots=True)
class FeeRule:
    """Bank-fee sub-pattern mapped to a financial-expenses subcategory."""

    pattern: Pattern[str]
    subcategory_id: str
    label: str


# Evaluated in order; the first match decides the subcategory.
FEE_SUBCATEGORY_RULES: Tuple[FeeRule, ...] = (
    FeeRule(re.compile(r"\bIOF\b", re.IGNORECASE), "despesas-financeiras-iof", "IOF"),
    FeeRule(re.compile(r"\bANUIDADE", re.IGNORECASE), "despesas-financeiras-anuidade-cartao", "Anuidade de cartão"),
    FeeRule(re.compile(r"\bJUROS?\b", re.IGNORECASE), "despesas-financeiras-juros", "Cobrança de juros"),
    FeeRule(re.compile(r"\bTED\b|\bDOC\b", re.IGNORECASE), "despesas-financeiras-ted", "Tarifa de transferência"),
    FeeRule(
        re.compile(r"\bTARIFA|\bMANUTENCAO", re.IGNORECASE),
        "despesas-financeiras-manutencao-de-conta",
        "Tarifa de manutenção",
    ),
)

DEFAULT_FEE_SUBCATEGORY = "despesas-financeiras-outras"
DEFAULT_FEE_LABEL = "Tarifa bancária"
