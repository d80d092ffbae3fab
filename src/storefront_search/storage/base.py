"""
Storage interfaces and data models for the product catalog.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Protocol, TypeAlias

ProductStatus: TypeAlias = Literal["inactive", "active"]
UserRole: TypeAlias = Literal["customer", "vendor", "admin"]

PLACEHOLDER_IMAGE_URL = "/placeholder.svg?height=400&width=400"


class ProductNotFoundError(LookupError):
    """Raised when a product id does not exist in the catalog."""


def split_tags(raw_tags: str | None) -> list[str]:
    """Split a stored comma-separated tag string into trimmed tags."""
    if not raw_tags:
        return []
    return [tag.strip() for tag in raw_tags.split(",") if tag.strip()]


@dataclass(frozen=True)
class NewProduct:
    """A validated product ready to be written to the catalog."""

    vendor_id: int
    name: str
    description: str
    category: str
    price: float
    stock_quantity: int
    tags: str = ""
    image_url: str | None = PLACEHOLDER_IMAGE_URL

    @property
    def tag_list(self) -> list[str]:
        return split_tags(self.tags)


@dataclass(frozen=True)
class CatalogItem:
    """A product as seen by search, filtering and recommendations."""

    id: int
    name: str
    category: str
    description: str
    tags: list[str]
    vendor_name: str
    price: float
    image_url: str | None
    rating: float
    stock_quantity: int
    status: ProductStatus
    has_embedding: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "tags": list(self.tags),
            "vendor_name": self.vendor_name,
            "price": self.price,
            "image_url": self.image_url,
            "rating": self.rating,
            "stock_quantity": self.stock_quantity,
            "status": self.status,
        }


@dataclass(frozen=True)
class CatalogHit:
    """A catalog item with the raw score one retrieval strategy gave it."""

    item: CatalogItem
    score: float


@dataclass(frozen=True)
class BlendedHit:
    """A vector-similarity hit blended with its weighted text score."""

    item: CatalogItem
    similarity: float
    text_score: int

    @property
    def combined_score(self) -> float:
        return self.similarity * 0.7 + (self.text_score / 100) * 0.3


@dataclass(frozen=True)
class FilterOptions:
    """Facet values available to the smart filter."""

    categories: list[str]
    tags: list[str]
    price_min: int | None
    price_max: int | None


class CatalogBackend(Protocol):
    """Protocol for the catalog operations used by search, ingestion and the API."""

    def initialize(self) -> None:
        """Initialize required tables/sequences."""

    def close(self) -> None:
        """Release the underlying connection."""

    def fork(self) -> CatalogBackend:
        """Return an independent handle on the same catalog for another thread."""

    def create_user(
        self, *, name: str, email: str | None, role: UserRole = "customer"
    ) -> int:
        """Create a user and return its id."""

    def get_or_create_vendor(self, name: str) -> int:
        """Return the vendor id for *name*, creating a vendor user if needed."""

    def create_product(
        self, product: NewProduct, *, embedding: list[float] | None = None
    ) -> int:
        """Insert a product (always inactive) and return its id."""

    def update_product(self, product_id: int, fields: dict[str, Any]) -> None:
        """Update editable product columns."""

    def set_product_status(self, product_id: int, status: ProductStatus) -> None:
        """Approve or reject a product."""

    def get_product(self, product_id: int, *, active_only: bool = False) -> CatalogItem | None:
        """Fetch one product by id."""

    def list_pending_products(self) -> list[CatalogItem]:
        """List products awaiting approval."""

    def add_review(
        self, *, product_id: int, user_id: int, rating: int, comment: str = ""
    ) -> int:
        """Store a review and return its id."""

    def has_embeddings(self) -> bool:
        """Return True if any active product has a stored embedding."""

    def store_product_embedding(self, product_id: int, embedding: list[float] | None) -> None:
        """Persist (or clear) the embedding for a product."""

    def products_for_embedding(self, *, missing_only: bool = True) -> list[CatalogItem]:
        """List products whose embedding should be (re)computed."""

    def search_products_vector(
        self,
        *,
        query_embedding: list[float],
        max_distance: float,
        limit: int = 30,
    ) -> list[CatalogHit]:
        """Active products closer than *max_distance*, nearest first."""

    def search_products_text(self, *, query: str, limit: int = 30) -> list[CatalogHit]:
        """Active products scored by the weighted text-match ladder."""

    def search_products_fuzzy(self, *, query: str, limit: int = 20) -> list[CatalogHit]:
        """Active products containing the whole query in name/category/description."""

    def search_products_blended(
        self,
        *,
        query: str,
        query_embedding: list[float],
        limit: int = 10,
    ) -> list[BlendedHit]:
        """Embedded active products ordered by blended vector and text score."""

    def similar_products(self, product_id: int, *, limit: int = 8) -> list[CatalogHit]:
        """Active products nearest to a product's stored embedding."""

    def products_in_category(
        self, category: str, *, exclude_id: int | None = None, limit: int = 8
    ) -> list[CatalogItem]:
        """Active products in a category, best rated first."""

    def filter_products(
        self, *, clauses: list[str], params: list[Any]
    ) -> list[CatalogItem]:
        """Active products matching a conjunction of smart-filter clauses."""

    def filter_options(self) -> FilterOptions:
        """Return available categories, tags and price range."""
