"""Service layer for merchant enrichment."""
