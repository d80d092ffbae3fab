"""Catalog storage backends for storefront search."""

from .base import (
    BlendedHit,
    CatalogBackend,
    CatalogHit,
    CatalogItem,
    FilterOptions,
    NewProduct,
    PLACEHOLDER_IMAGE_URL,
    ProductNotFoundError,
    ProductStatus,
    split_tags,
)
from .duckdb import DuckDBCatalog

__all__ = [
    "BlendedHit",
    "CatalogBackend",
    "CatalogHit",
    "CatalogItem",
    "FilterOptions",
    "NewProduct",
    "PLACEHOLDER_IMAGE_URL",
    "ProductNotFoundError",
    "ProductStatus",
    "split_tags",
    "DuckDBCatalog",
]
