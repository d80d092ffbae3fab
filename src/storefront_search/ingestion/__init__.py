"""Catalog import and embedding backfill."""

from .pipeline import CatalogImportPipeline, ImportResult

__all__ = [
    "CatalogImportPipeline",
    "ImportResult",
]
