"""Normalization package for merchant enrichment.

Holds the descriptor normalizer, its output schema and the static knowledge
base of noise words, payment platforms and banking-fee terms.
"""
