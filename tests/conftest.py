from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from google.genai.types import (
    Candidate,
    Content,
    GenerateContentResponse,
    Part,
)

from storefront_search.embeddings import LexicalEmbedder
from storefront_search.models import ExtractedKeyword
from storefront_search.storage import DuckDBCatalog, NewProduct

# (key, vendor, name, category, description, tags, price, active, ratings)
CATALOG_ROWS: list[tuple[str, str, str, str, str, str, float, bool, list[int]]] = [
    (
        "headphones",
        "Acme Audio",
        "Wireless Headphones",
        "Electronics",
        "Over-ear noise cancelling headphones with a 30 hour battery",
        "audio, bluetooth",
        199.99,
        True,
        [4],
    ),
    (
        "iphone",
        "Acme Audio",
        "iPhone 15",
        "Electronics",
        "Latest Apple smartphone with USB-C",
        "apple, smartphone",
        799.0,
        True,
        [5, 5],
    ),
    (
        "shoes",
        "Stride Athletics",
        "Running Shoes",
        "Fashion",
        "Lightweight shoes for daily training",
        "sport, running",
        89.5,
        True,
        [3, 4],
    ),
    (
        "espresso",
        "Casa Goods",
        "Espresso Machine",
        "Home & Kitchen",
        "Breville machine for cafe style coffee",
        "coffee, kitchen",
        349.0,
        True,
        [],
    ),
    (
        "studio",
        "Acme Audio",
        "Studio Headphones",
        "Electronics",
        "Closed-back monitor headphones",
        "audio, studio",
        149.0,
        False,
        [],
    ),
]


def seed_catalog(catalog: DuckDBCatalog, *, with_embeddings: bool = False) -> dict[str, int]:
    """Populate *catalog* with a small storefront and return product ids by key."""
    embedder = LexicalEmbedder(dim=catalog.embedding_dim)
    reviewer = catalog.create_user(name="Dana", email="dana@example.com")
    ids: dict[str, int] = {}
    for key, vendor, name, category, description, tags, price, active, ratings in CATALOG_ROWS:
        product = NewProduct(
            vendor_id=catalog.get_or_create_vendor(vendor),
            name=name,
            description=description,
            category=category,
            price=price,
            stock_quantity=5,
            tags=tags,
        )
        embedding = None
        if with_embeddings:
            embedding = embedder.embed_product(
                name=name,
                description=description,
                category=category,
                tags=product.tag_list,
            )
        product_id = catalog.create_product(product, embedding=embedding)
        if active:
            catalog.set_product_status(product_id, "active")
        for rating in ratings:
            catalog.add_review(product_id=product_id, user_id=reviewer, rating=rating)
        ids[key] = product_id
    return ids


@pytest.fixture()
def catalog(tmp_path: Path) -> Iterator[DuckDBCatalog]:
    catalog = DuckDBCatalog(str(tmp_path / "catalog.duckdb"))
    yield catalog
    catalog.close()


@pytest.fixture()
def seeded(catalog: DuckDBCatalog) -> dict[str, int]:
    """Seeded catalog without embeddings."""
    return seed_catalog(catalog)


@pytest.fixture()
def embedded(catalog: DuckDBCatalog) -> dict[str, int]:
    """Seeded catalog where every product carries an embedding."""
    return seed_catalog(catalog, with_embeddings=True)


@pytest.fixture()
def db_path(tmp_path: Path) -> str:
    """Path of a closed, seeded and embedded catalog database."""
    path = str(tmp_path / "store.duckdb")
    catalog = DuckDBCatalog(path)
    seed_catalog(catalog, with_embeddings=True)
    catalog.close()
    return path


class MockModels:
    def __init__(self, keyword: str) -> None:
        self.keyword = keyword
        self.calls: list[dict[str, Any]] = []

    def generate_content(self, *, model: str, contents: list[Any], config: dict) -> GenerateContentResponse:
        self.calls.append({"model": model, "contents": contents, "config": config})
        return GenerateContentResponse(
            candidates=[
                Candidate(
                    content=Content(
                        role="model",
                        parts=[
                            Part.from_text(
                                text=ExtractedKeyword(keyword=self.keyword).model_dump_json()
                            )
                        ],
                    )
                )
            ]
        )


class MockGenAIClient:
    def __init__(self, keyword: str = "headphones") -> None:
        self.models = MockModels(keyword)
