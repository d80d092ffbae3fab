"""
Hybrid product search over the catalog.

Runs vector, weighted-text and fuzzy retrieval concurrently, each on its own
catalog handle, and merges the three result sets into one ranked list.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable

from ..config import SearchSettings
from ..embeddings import LexicalEmbedder
from ..storage import (
    BlendedHit,
    CatalogBackend,
    CatalogHit,
    CatalogItem,
    ProductNotFoundError,
)
from .filters import SmartFilter
from .ranker import SearchResultEntry, merge_results

logger = logging.getLogger(__name__)


class EmptyQueryError(ValueError):
    """Raised when a search query is empty or whitespace."""


class SearchFailedError(RuntimeError):
    """Raised when every retrieval strategy failed or the merge failed."""


class HybridSearchEngine:
    """Parallel retrieval engine for vector + text + fuzzy query paths."""

    def __init__(
        self,
        catalog: CatalogBackend,
        *,
        embedder: LexicalEmbedder | None = None,
        settings: SearchSettings | None = None,
    ) -> None:
        self.catalog = catalog
        self.embedder = embedder or LexicalEmbedder()
        self.settings = settings or SearchSettings.from_env()

    def search(self, query: str) -> list[SearchResultEntry]:
        """Return up to ``settings.result_limit`` entries, best first."""
        normalized = self._normalize_query(query)

        with ThreadPoolExecutor(max_workers=3) as executor:
            vector_future = executor.submit(
                self._run_strategy, "vector", self._vector_query, normalized
            )
            text_future = executor.submit(
                self._run_strategy, "text", self._text_query, normalized
            )
            fuzzy_future = executor.submit(
                self._run_strategy, "fuzzy", self._fuzzy_query, normalized
            )
            vector_hits = vector_future.result()
            text_hits = text_future.result()
            fuzzy_hits = fuzzy_future.result()

        outcomes = (vector_hits, text_hits, fuzzy_hits)
        if all(hits is None for hits in outcomes):
            raise SearchFailedError(f"All search strategies failed for query {normalized!r}")

        try:
            entries = merge_results(
                vector_hits=vector_hits or [],
                text_hits=text_hits or [],
                fuzzy_hits=fuzzy_hits or [],
                vector_multiplier=self.settings.vector_score_multiplier,
                limit=self.settings.result_limit,
            )
        except Exception as exc:
            raise SearchFailedError(f"Failed to merge search results: {exc}") from exc

        logger.info(
            "Search %r returned %d products (vector: %d, text: %d, fuzzy: %d)",
            normalized,
            len(entries),
            len(vector_hits or []),
            len(text_hits or []),
            len(fuzzy_hits or []),
        )
        return entries

    def vector_search(self, query: str, *, limit: int = 10) -> list[BlendedHit]:
        """Rank embedded products by 70% vector similarity and 30% text score."""
        normalized = self._normalize_query(query)
        query_embedding = self.embedder.embed_query(normalized)
        return self.catalog.search_products_blended(
            query=normalized,
            query_embedding=query_embedding,
            limit=limit,
        )

    def recommend(self, product_id: int, *, limit: int = 8) -> list[CatalogHit]:
        """Return products similar to *product_id*.

        Uses embedding neighbours when the product has an embedding, otherwise
        the best-rated products of the same category (scored by rating).
        """
        product = self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        if product.has_embedding:
            return self.catalog.similar_products(product_id, limit=limit)
        fallback = self.catalog.products_in_category(
            product.category, exclude_id=product_id, limit=limit
        )
        return [CatalogHit(item=item, score=item.rating) for item in fallback]

    def filter(self, smart_filter: SmartFilter) -> list[CatalogItem]:
        """Return active products matching every facet in *smart_filter*."""
        clauses, params = smart_filter.to_sql()
        return self.catalog.filter_products(clauses=clauses, params=params)

    @staticmethod
    def _normalize_query(query: str | None) -> str:
        normalized = (query or "").strip()
        if not normalized:
            raise EmptyQueryError("Search query is required")
        return normalized

    def _run_strategy(
        self,
        name: str,
        strategy: Callable[[CatalogBackend, str], list[CatalogHit]],
        query: str,
    ) -> list[CatalogHit] | None:
        cleanup: Callable[[], None] | None = None
        try:
            scoped_catalog, cleanup = self._acquire_query_catalog()
            hits = strategy(scoped_catalog, query)
        except Exception:
            logger.warning("%s search failed for %r", name.capitalize(), query, exc_info=True)
            return None
        finally:
            if cleanup is not None:
                cleanup()
        logger.debug("%s search found %d products", name.capitalize(), len(hits))
        return hits

    def _vector_query(self, catalog: CatalogBackend, query: str) -> list[CatalogHit]:
        if not catalog.has_embeddings():
            logger.debug("No embeddings found, skipping vector search")
            return []
        query_embedding = self.embedder.embed_query(query)
        if not any(query_embedding):
            # Zero vectors have no direction, so cosine distance is undefined.
            return []
        return catalog.search_products_vector(
            query_embedding=query_embedding,
            max_distance=self.settings.vector_distance_threshold,
            limit=self.settings.vector_limit,
        )

    def _text_query(self, catalog: CatalogBackend, query: str) -> list[CatalogHit]:
        return catalog.search_products_text(query=query, limit=self.settings.text_limit)

    def _fuzzy_query(self, catalog: CatalogBackend, query: str) -> list[CatalogHit]:
        return catalog.search_products_fuzzy(query=query, limit=self.settings.fuzzy_limit)

    def _acquire_query_catalog(self) -> tuple[CatalogBackend, Callable[[], None]]:
        fork = getattr(self.catalog, "fork", None)
        if fork is None:
            return self.catalog, lambda: None
        clone = fork()
        return clone, clone.close
