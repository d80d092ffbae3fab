"""
Product lifecycle: vendor submission, edits and admin moderation.

New products are stored inactive with an embedding computed up front; edits
that touch an embedded field recompute it. Only approved (active) products
are visible to search.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .embeddings import LexicalEmbedder
from .models import ProductDraft, ProductUpdate
from .storage import CatalogBackend, CatalogItem, ProductNotFoundError, ProductStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreatedProduct:
    """Summary returned after a vendor submits a product."""

    id: int
    name: str
    status: ProductStatus
    embedding_generated: bool

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status,
            "embedding_generated": self.embedding_generated,
        }


class ProductService:
    """Create, edit and moderate catalog products."""

    def __init__(
        self,
        catalog: CatalogBackend,
        embedder: LexicalEmbedder | None = None,
    ) -> None:
        self.catalog = catalog
        self.embedder = embedder or LexicalEmbedder()

    def create(self, draft: ProductDraft) -> CreatedProduct:
        product = draft.to_new_product()
        embedding: list[float] | None
        try:
            embedding = self.embedder.embed_product(
                name=product.name,
                description=product.description,
                category=product.category,
                tags=product.tag_list,
            )
        except Exception:
            logger.warning(
                "Embedding failed for %r; storing product without one",
                product.name,
                exc_info=True,
            )
            embedding = None

        product_id = self.catalog.create_product(product, embedding=embedding)
        logger.info("Created product %d (%s), pending approval", product_id, product.name)
        return CreatedProduct(
            id=product_id,
            name=product.name,
            status="inactive",
            embedding_generated=embedding is not None,
        )

    def update(self, product_id: int, changes: ProductUpdate) -> CatalogItem:
        self.catalog.update_product(product_id, changes.changed_fields())
        if changes.touches_embedding():
            self.refresh_embedding(product_id)
        return self._require(product_id)

    def refresh_embedding(self, product_id: int) -> None:
        """Recompute and store the embedding from the product's current fields."""
        item = self._require(product_id)
        embedding = self.embedder.embed_product(
            name=item.name,
            description=item.description,
            category=item.category,
            tags=item.tags,
        )
        self.catalog.store_product_embedding(product_id, embedding)
        logger.debug("Refreshed embedding for product %d", product_id)

    def approve(self, product_id: int) -> CatalogItem:
        return self._set_status(product_id, "active")

    def reject(self, product_id: int) -> CatalogItem:
        return self._set_status(product_id, "inactive")

    def pending(self) -> list[CatalogItem]:
        return self.catalog.list_pending_products()

    def _set_status(self, product_id: int, status: ProductStatus) -> CatalogItem:
        self.catalog.set_product_status(product_id, status)
        logger.info("Product %d is now %s", product_id, status)
        return self._require(product_id)

    def _require(self, product_id: int) -> CatalogItem:
        item = self.catalog.get_product(product_id)
        if item is None:
            raise ProductNotFoundError(f"Product {product_id} not found")
        return item
