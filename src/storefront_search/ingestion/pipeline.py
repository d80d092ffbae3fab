"""
Catalog import pipeline orchestration.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..embeddings import LexicalEmbedder
from ..models import ProductDraft
from ..products import ProductService
from ..storage import CatalogBackend

logger = logging.getLogger(__name__)

_IMPORT_REVIEWER = "Catalog import"


@dataclass(frozen=True)
class ImportResult:
    """Summary output for an import run."""

    imported_products: int
    skipped_rows: int
    approved_products: int
    embeddings_written: int
    reviews_written: int
    vendors: int


class CatalogImportPipeline:
    """Load products from JSON files and keep their embeddings current."""

    def __init__(
        self,
        catalog: CatalogBackend,
        embedder: LexicalEmbedder | None = None,
    ) -> None:
        self.catalog = catalog
        self.embedder = embedder or LexicalEmbedder()
        self.products = ProductService(catalog, self.embedder)
        self._reviewer_id: int | None = None

    def import_file(self, path: str, *, approve: bool = False) -> ImportResult:
        """Import a JSON array of products (or ``{"products": [...]}``).

        Each row carries a ``vendor`` name, the product draft fields and an
        optional ``reviews`` list of ratings or ``{"rating", "comment"}``
        objects. Invalid rows are skipped.
        """
        source = Path(path)
        if not source.is_file():
            raise ValueError(f"No such file: {source}")

        rows = self._load_rows(source)

        # Pass 1: validate every row before touching the catalog
        vendor_ids: dict[str, int] = {}
        accepted: list[tuple[ProductDraft, list[Any]]] = []
        skipped_rows = 0
        for position, row in enumerate(rows):
            parsed = self._parse_row(row, position=position, vendor_ids=vendor_ids)
            if parsed is None:
                skipped_rows += 1
                continue
            accepted.append(parsed)

        # Pass 2: write products, reviews and statuses sequentially
        imported = 0
        approved = 0
        embeddings_written = 0
        reviews_written = 0
        for draft, reviews in accepted:
            created = self.products.create(draft)
            imported += 1
            if created.embedding_generated:
                embeddings_written += 1
            reviews_written += self._store_reviews(created.id, reviews)
            if approve:
                self.products.approve(created.id)
                approved += 1

        logger.info(
            "Imported %d products from %s (%d skipped)", imported, source, skipped_rows
        )
        return ImportResult(
            imported_products=imported,
            skipped_rows=skipped_rows,
            approved_products=approved,
            embeddings_written=embeddings_written,
            reviews_written=reviews_written,
            vendors=len(vendor_ids),
        )

    def backfill_embeddings(self, *, force: bool = False) -> int:
        """Compute embeddings for products lacking one (all products with *force*).

        Returns the number of embeddings written.
        """
        items = self.catalog.products_for_embedding(missing_only=not force)
        written = 0
        for item in items:
            embedding = self.embedder.embed_product(
                name=item.name,
                description=item.description,
                category=item.category,
                tags=item.tags,
            )
            self.catalog.store_product_embedding(item.id, embedding)
            written += 1
        logger.info("Backfilled %d product embeddings", written)
        return written

    def _parse_row(
        self,
        row: Any,
        *,
        position: int,
        vendor_ids: dict[str, int],
    ) -> tuple[ProductDraft, list[Any]] | None:
        if not isinstance(row, dict):
            logger.warning("Skipping row %d: expected an object", position)
            return None

        fields = dict(row)
        vendor = fields.pop("vendor", None)
        reviews = fields.pop("reviews", None) or []
        if not isinstance(vendor, str) or not vendor.strip():
            logger.warning("Skipping row %d: missing vendor name", position)
            return None
        if not isinstance(reviews, list):
            logger.warning("Skipping row %d: reviews must be a list", position)
            return None

        vendor_name = vendor.strip()
        if vendor_name not in vendor_ids:
            vendor_ids[vendor_name] = self.catalog.get_or_create_vendor(vendor_name)
        fields["vendor_id"] = vendor_ids[vendor_name]

        try:
            draft = ProductDraft.model_validate(fields)
        except ValidationError as exc:
            logger.warning(
                "Skipping row %d: %d invalid field(s)", position, exc.error_count()
            )
            return None
        return draft, reviews

    def _store_reviews(self, product_id: int, reviews: list[Any]) -> int:
        written = 0
        for review in reviews:
            if isinstance(review, dict):
                rating = review.get("rating")
                comment = str(review.get("comment") or "")
            else:
                rating, comment = review, ""
            if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
                logger.warning(
                    "Ignoring review with rating %r for product %d", rating, product_id
                )
                continue
            self.catalog.add_review(
                product_id=product_id,
                user_id=self._reviewer(),
                rating=rating,
                comment=comment,
            )
            written += 1
        return written

    def _reviewer(self) -> int:
        if self._reviewer_id is None:
            self._reviewer_id = self.catalog.create_user(
                name=_IMPORT_REVIEWER, email=None, role="customer"
            )
        return self._reviewer_id

    @staticmethod
    def _load_rows(source: Path) -> list[Any]:
        try:
            payload = json.loads(source.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in {source}: {exc}") from exc
        if isinstance(payload, dict):
            payload = payload.get("products")
        if not isinstance(payload, list):
            raise ValueError(f"Expected a JSON array of products in {source}")
        return payload
