"""Post-retrieval enrichment: Crossref metadata and translation."""
