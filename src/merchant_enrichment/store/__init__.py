"""Data store package for merchant enrichment.

This package provides the persistence layer for the merchant directory, the
cache of previously resolved merchants that the resolver reads and the
correction recorder writes. It abstracts the SQL schema, engine wiring and the
scope rules that decide which rows a family may see.
"""
