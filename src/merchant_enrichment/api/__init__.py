"""HTTP API for merchant enrichment."""
