"""Tests for rule-based entity extraction on statement descriptors."""

from merchant_enrichment.extraction.ner_rules import (
    detect_platform,
    extract_cnpj,
    extract_domain,
    extract_email,
    extract_entities,
)
from merchant_enrichment.normalization.reference_data import KNOWN_PLATFORMS, PLATFORMS_BY_NAME


def test_extract_cnpj_returns_digits_only():
    assert extract_cnpj("EMPRESA 12.345.678/0001-90") == "12345678000190"
    assert extract_cnpj("EMPRESA 12345678000190") == "12345678000190"
    assert extract_cnpj("SEM DOCUMENTO") is None


def test_contact_handles_are_lower_cased():
    assert extract_email("PIX CONTATO@LOJA.COM.BR") == "contato@loja.com.br"
    assert extract_domain("NETFLIX.COM ASSINATURA") == "netflix.com"
    assert extract_domain("WWW.LOJA.COM.BR") == "loja.com.br"


def test_detect_platform_respects_table_order():
    rule = detect_platform("UBER EATS")
    assert rule is PLATFORMS_BY_NAME["UBER"]

    reordered = (PLATFORMS_BY_NAME["UBER_EATS"], PLATFORMS_BY_NAME["UBER"])
    assert detect_platform("UBER EATS", reordered).platform == "UBER_EATS"


def test_platform_names_are_unique():
    names = [rule.platform for rule in KNOWN_PLATFORMS]
    assert len(names) == len(set(names))


def test_extract_entities_aggregates_results():
    entities = extract_entities("MERCADOPAGO *LOJA 12.345.678/0001-90 CONTATO@LOJA.COM")
    assert entities.platform == "MERCADOPAGO"
    assert entities.is_intermediary is True
    assert entities.cnpj == "12345678000190"
    assert entities.cpf is None
    assert entities.email == "contato@loja.com"
