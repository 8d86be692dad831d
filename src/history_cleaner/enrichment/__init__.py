"""Spotify catalog enrichment for ranked collections."""

from history_cleaner.enrichment.enricher import CatalogClient, MetadataEnricher, TokenProvider

__all__ = ["CatalogClient", "MetadataEnricher", "TokenProvider"]
