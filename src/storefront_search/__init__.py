"""
Storefront Search - hybrid product search for a multi-vendor catalog.

This package embeds products with a deterministic hashed lexical embedding,
stores them in DuckDB, and answers queries by running vector, weighted-text
and fuzzy retrieval in parallel and max-merging the results.

Example usage:
    >>> from storefront_search import DuckDBCatalog, HybridSearchEngine
    >>> catalog = DuckDBCatalog("catalog.duckdb")
    >>> engine = HybridSearchEngine(catalog)
    >>> for entry in engine.search("wireless headphones"):
    ...     print(entry.product.name, entry.score, entry.provenance)
"""

from .config import SearchSettings, configure_logging, resolve_db_path
from .embeddings import LexicalEmbedder, generate_embedding, string_hash
from .ingestion import CatalogImportPipeline, ImportResult
from .models import ExtractedKeyword, ProductDraft, ProductUpdate
from .products import CreatedProduct, ProductService
from .search import (
    EmptyQueryError,
    HybridSearchEngine,
    KeywordExtractor,
    SearchFailedError,
    SearchResultEntry,
    SmartFilter,
    parse_smart_filter,
)
from .storage import CatalogItem, DuckDBCatalog, ProductNotFoundError

__all__ = [
    # Configuration
    "SearchSettings",
    "configure_logging",
    "resolve_db_path",
    # Embeddings
    "LexicalEmbedder",
    "generate_embedding",
    "string_hash",
    # Catalog
    "CatalogItem",
    "DuckDBCatalog",
    "ProductNotFoundError",
    "ProductDraft",
    "ProductUpdate",
    "CreatedProduct",
    "ProductService",
    "CatalogImportPipeline",
    "ImportResult",
    # Search
    "EmptyQueryError",
    "HybridSearchEngine",
    "SearchFailedError",
    "SearchResultEntry",
    "SmartFilter",
    "parse_smart_filter",
    "KeywordExtractor",
    "ExtractedKeyword",
]
