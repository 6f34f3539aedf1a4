"""Extraction package for merchant enrichment.

This package contains the rule-based extractors that pull structured entities
(taxpayer ids, e-mail addresses, domains, payment platforms) out of raw
statement descriptors before the normalizer strips them as noise.
"""
