"""
DuckDB storage backend for the product catalog.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any

import duckdb

from ..embeddings import DEFAULT_DIM
from .base import (
    BlendedHit,
    CatalogHit,
    CatalogItem,
    FilterOptions,
    NewProduct,
    ProductNotFoundError,
    ProductStatus,
    UserRole,
    split_tags,
)

logger = logging.getLogger(__name__)

_EDITABLE_COLUMNS: frozenset[str] = frozenset(
    {"name", "description", "price", "category", "tags", "image_url", "stock_quantity"}
)
_MAX_FILTER_TAGS = 30

_RATINGS_CTE = """
    ratings AS (
        SELECT product_id, AVG(rating) AS avg_rating
        FROM reviews
        GROUP BY product_id
    )
"""

_ITEM_COLUMNS = """
    p.id,
    p.name,
    p.category,
    p.description,
    p.tags,
    u.name AS vendor_name,
    p.price,
    p.image_url,
    COALESCE(r.avg_rating, 0) AS avg_rating,
    p.stock_quantity,
    p.status,
    e.product_id IS NOT NULL AS has_embedding
"""
_ITEM_COLUMN_COUNT = 12


def _catalog_from(embedding_join: str = "LEFT JOIN") -> str:
    return f"""
        FROM products p
        JOIN users u ON u.id = p.vendor_id
        LEFT JOIN ratings r ON r.product_id = p.id
        {embedding_join} product_embeddings e ON e.product_id = p.id
    """


def _text_score_sql(query: str) -> tuple[str, list[Any]]:
    """Build the weighted text-match CASE ladder; the first matching rule wins."""
    terms = tokenize_query(query)
    term_clause = " OR ".join(
        [
            "(contains(lower(p.name), ?) OR contains(lower(p.description), ?)"
            " OR contains(lower(p.category), ?))"
        ]
        * len(terms)
    )
    sql = f"""
        CASE
            WHEN lower(p.name) = lower(?) THEN 100
            WHEN starts_with(lower(p.name), lower(?)) THEN 95
            WHEN contains(lower(p.name), lower(?)) THEN 85
            WHEN lower(p.category) = lower(?) THEN 80
            WHEN contains(lower(p.category), lower(?)) THEN 75
            WHEN contains(lower(p.description), lower(?)) THEN 70
            WHEN contains(lower(p.tags), lower(?)) THEN 65
            WHEN contains(lower(u.name), lower(?)) THEN 60
            WHEN {term_clause or "FALSE"} THEN 50
            ELSE 0
        END
    """
    params: list[Any] = [query] * 8
    for term in terms:
        params.extend([term, term, term])
    return sql, params


def tokenize_query(query: str) -> list[str]:
    """Split a query on whitespace, keeping lowercased terms longer than one char."""
    return [term for term in query.lower().split() if len(term) > 1]


class DuckDBCatalog:
    """DuckDB-backed persistence for users, products, reviews and embeddings."""

    def __init__(
        self,
        db_path: str,
        *,
        embedding_dim: int = DEFAULT_DIM,
        read_only: bool = False,
        initialize: bool = True,
        connection: duckdb.DuckDBPyConnection | None = None,
    ) -> None:
        if db_path == ":memory:":
            self.db_path = db_path
        else:
            self.db_path = str(Path(db_path).expanduser().resolve())
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.embedding_dim = embedding_dim
        self.read_only = read_only
        self._conn = connection or duckdb.connect(self.db_path, read_only=read_only)
        if initialize and not read_only:
            self.initialize()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self._conn.close()

    def fork(self) -> DuckDBCatalog:
        """Return a catalog on a new cursor so another thread can query safely."""
        return DuckDBCatalog(
            self.db_path,
            embedding_dim=self.embedding_dim,
            read_only=self.read_only,
            initialize=False,
            connection=self._conn.cursor(),
        )

    def initialize(self) -> None:
        self._conn.execute("CREATE SEQUENCE IF NOT EXISTS users_id_seq START 1")
        self._conn.execute("CREATE SEQUENCE IF NOT EXISTS products_id_seq START 1")
        self._conn.execute("CREATE SEQUENCE IF NOT EXISTS reviews_id_seq START 1")
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY DEFAULT nextval('users_id_seq'),
                name VARCHAR NOT NULL,
                email VARCHAR UNIQUE,
                role VARCHAR NOT NULL DEFAULT 'customer'
                    CHECK (role IN ('customer', 'vendor', 'admin')),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS products (
                id INTEGER PRIMARY KEY DEFAULT nextval('products_id_seq'),
                vendor_id INTEGER NOT NULL REFERENCES users(id),
                name VARCHAR NOT NULL,
                description VARCHAR NOT NULL,
                price DOUBLE NOT NULL CHECK (price >= 0),
                category VARCHAR NOT NULL,
                tags VARCHAR NOT NULL DEFAULT '',
                image_url VARCHAR,
                stock_quantity INTEGER NOT NULL DEFAULT 0 CHECK (stock_quantity >= 0),
                status VARCHAR NOT NULL DEFAULT 'inactive'
                    CHECK (status IN ('inactive', 'active')),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        # Embeddings live beside products and are replaced with delete+insert,
        # so array columns are never updated in place.
        self._conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS product_embeddings (
                product_id INTEGER NOT NULL,
                embedding FLOAT[{self.embedding_dim}] NOT NULL
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS reviews (
                id INTEGER PRIMARY KEY DEFAULT nextval('reviews_id_seq'),
                product_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                rating INTEGER NOT NULL CHECK (rating BETWEEN 1 AND 5),
                comment VARCHAR NOT NULL DEFAULT '',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        logger.debug(
            "Catalog schema ready at %s (embedding dim %d)",
            self.db_path,
            self.embedding_dim,
        )

    # ------------------------------------------------------------------
    # Users and products
    # ------------------------------------------------------------------

    def create_user(self, *, name: str, email: str | None, role: UserRole = "customer") -> int:
        row = self._conn.execute(
            "INSERT INTO users (name, email, role) VALUES (?, ?, ?) RETURNING id",
            [name, email, role],
        ).fetchone()
        if row is None:
            raise RuntimeError(f"Failed to create user: {name}")
        return int(row[0])

    def get_or_create_vendor(self, name: str) -> int:
        row = self._conn.execute(
            "SELECT id FROM users WHERE name = ? AND role = 'vendor' ORDER BY id LIMIT 1",
            [name],
        ).fetchone()
        if row is not None:
            return int(row[0])
        return self.create_user(name=name, email=None, role="vendor")

    def create_product(
        self, product: NewProduct, *, embedding: list[float] | None = None
    ) -> int:
        row = self._conn.execute(
            """
            INSERT INTO products (
                vendor_id, name, description, price, category, tags, image_url,
                stock_quantity, status
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'inactive')
            RETURNING id
            """,
            [
                product.vendor_id,
                product.name,
                product.description,
                product.price,
                product.category,
                product.tags,
                product.image_url,
                product.stock_quantity,
            ],
        ).fetchone()
        if row is None:
            raise RuntimeError(f"Failed to create product: {product.name}")
        product_id = int(row[0])
        if embedding is not None:
            self.store_product_embedding(product_id, embedding)
        return product_id

    def update_product(self, product_id: int, fields: dict[str, Any]) -> None:
        unknown = set(fields) - _EDITABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update product fields: {', '.join(sorted(unknown))}")
        self._require_product(product_id)
        if not fields:
            return

        columns = sorted(fields)
        assignments = ", ".join(f"{column} = ?" for column in columns)
        params: list[Any] = [fields[column] for column in columns]
        params.append(product_id)
        self._conn.execute(
            f"UPDATE products SET {assignments}, updated_at = now() WHERE id = ?",
            params,
        )

    def set_product_status(self, product_id: int, status: ProductStatus) -> None:
        self._require_product(product_id)
        self._conn.execute(
            "UPDATE products SET status = ?, updated_at = now() WHERE id = ?",
            [status, product_id],
        )

    def get_product(self, product_id: int, *, active_only: bool = False) -> CatalogItem | None:
        sql = f"""
            WITH {_RATINGS_CTE}
            SELECT {_ITEM_COLUMNS}
            {_catalog_from()}
            WHERE p.id = ?
        """
        if active_only:
            sql += " AND p.status = 'active'"
        row = self._conn.execute(sql, [product_id]).fetchone()
        if row is None:
            return None
        return self._row_to_item(row)

    def list_pending_products(self) -> list[CatalogItem]:
        rows = self._conn.execute(
            f"""
            WITH {_RATINGS_CTE}
            SELECT {_ITEM_COLUMNS}
            {_catalog_from()}
            WHERE p.status = 'inactive'
            ORDER BY p.id
            """
        ).fetchall()
        return [self._row_to_item(row) for row in rows]

    def add_review(
        self, *, product_id: int, user_id: int, rating: int, comment: str = ""
    ) -> int:
        if not 1 <= rating <= 5:
            raise ValueError(f"Rating must be between 1 and 5, got {rating}.")
        self._require_product(product_id)
        row = self._conn.execute(
            """
            INSERT INTO reviews (product_id, user_id, rating, comment)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            [product_id, user_id, rating, comment],
        ).fetchone()
        if row is None:
            raise RuntimeError(f"Failed to store review for product {product_id}")
        return int(row[0])

    # ------------------------------------------------------------------
    # Embeddings
    # ------------------------------------------------------------------

    def has_embeddings(self) -> bool:
        row = self._conn.execute(
            """
            SELECT COUNT(*)
            FROM product_embeddings e
            JOIN products p ON p.id = e.product_id
            WHERE p.status = 'active'
            """
        ).fetchone()
        return bool(row and int(row[0]) > 0)

    def store_product_embedding(self, product_id: int, embedding: list[float] | None) -> None:
        if embedding is not None and len(embedding) != self.embedding_dim:
            raise ValueError(
                f"Embedding has {len(embedding)} dimensions; "
                f"catalog expects {self.embedding_dim}."
            )
        self._conn.execute(
            "DELETE FROM product_embeddings WHERE product_id = ?", [product_id]
        )
        if embedding is None:
            return
        self._conn.execute(
            f"""
            INSERT INTO product_embeddings (product_id, embedding)
            VALUES (?, CAST(? AS FLOAT[{self.embedding_dim}]))
            """,
            [product_id, embedding],
        )

    def get_product_embedding(self, product_id: int) -> list[float] | None:
        row = self._conn.execute(
            "SELECT embedding FROM product_embeddings WHERE product_id = ?",
            [product_id],
        ).fetchone()
        if row is None:
            return None
        return [float(value) for value in row[0]]

    def products_for_embedding(self, *, missing_only: bool = True) -> list[CatalogItem]:
        sql = f"""
            WITH {_RATINGS_CTE}
            SELECT {_ITEM_COLUMNS}
            {_catalog_from()}
        """
        if missing_only:
            sql += " WHERE e.product_id IS NULL"
        sql += " ORDER BY p.id"
        rows = self._conn.execute(sql).fetchall()
        return [self._row_to_item(row) for row in rows]

    # ------------------------------------------------------------------
    # Retrieval strategies
    # ------------------------------------------------------------------

    def search_products_vector(
        self,
        *,
        query_embedding: list[float],
        max_distance: float,
        limit: int = 30,
    ) -> list[CatalogHit]:
        sql = f"""
            WITH {_RATINGS_CTE}
            SELECT * FROM (
                SELECT
                    {_ITEM_COLUMNS},
                    1 - array_cosine_similarity(
                        e.embedding, CAST(? AS FLOAT[{self.embedding_dim}])
                    ) AS distance
                {_catalog_from("JOIN")}
                WHERE p.status = 'active'
            ) nearest
            WHERE distance < ?
            ORDER BY distance ASC, id ASC
            LIMIT ?
        """
        rows = self._conn.execute(sql, [query_embedding, max_distance, limit]).fetchall()
        return [
            CatalogHit(item=self._row_to_item(row), score=1.0 - float(row[_ITEM_COLUMN_COUNT]))
            for row in rows
        ]

    def search_products_text(self, *, query: str, limit: int = 30) -> list[CatalogHit]:
        score_sql, score_params = _text_score_sql(query)
        sql = f"""
            WITH {_RATINGS_CTE}
            SELECT * FROM (
                SELECT {_ITEM_COLUMNS}, ({score_sql}) AS score
                {_catalog_from()}
                WHERE p.status = 'active'
            ) ranked
            WHERE score > 0
            ORDER BY score DESC, avg_rating DESC, id ASC
            LIMIT ?
        """
        params = [*score_params, limit]
        rows = self._conn.execute(sql, params).fetchall()
        return [
            CatalogHit(item=self._row_to_item(row), score=float(row[_ITEM_COLUMN_COUNT]))
            for row in rows
        ]

    def search_products_fuzzy(self, *, query: str, limit: int = 20) -> list[CatalogHit]:
        sql = f"""
            WITH {_RATINGS_CTE}
            SELECT {_ITEM_COLUMNS}
            {_catalog_from()}
            WHERE p.status = 'active'
              AND (
                contains(lower(p.name), lower(?))
                OR contains(lower(p.category), lower(?))
                OR contains(lower(p.description), lower(?))
              )
            ORDER BY avg_rating DESC, p.id ASC
            LIMIT ?
        """
        rows = self._conn.execute(sql, [query, query, query, limit]).fetchall()
        return [CatalogHit(item=self._row_to_item(row), score=40.0) for row in rows]

    def search_products_blended(
        self,
        *,
        query: str,
        query_embedding: list[float],
        limit: int = 10,
    ) -> list[BlendedHit]:
        score_sql, score_params = _text_score_sql(query)
        sql = f"""
            WITH {_RATINGS_CTE}
            SELECT * FROM (
                SELECT
                    {_ITEM_COLUMNS},
                    array_cosine_similarity(
                        e.embedding, CAST(? AS FLOAT[{self.embedding_dim}])
                    ) AS similarity,
                    ({score_sql}) AS text_score
                {_catalog_from("JOIN")}
                WHERE p.status = 'active'
            ) blended
            WHERE NOT isnan(similarity)
            ORDER BY similarity * 0.7 + (text_score / 100.0) * 0.3 DESC, id ASC
            LIMIT ?
        """
        params = [query_embedding, *score_params, limit]
        rows = self._conn.execute(sql, params).fetchall()
        return [
            BlendedHit(
                item=self._row_to_item(row),
                similarity=float(row[_ITEM_COLUMN_COUNT]),
                text_score=int(row[_ITEM_COLUMN_COUNT + 1]),
            )
            for row in rows
        ]

    def similar_products(self, product_id: int, *, limit: int = 8) -> list[CatalogHit]:
        sql = f"""
            WITH {_RATINGS_CTE},
            target AS (
                SELECT embedding FROM product_embeddings WHERE product_id = ?
            )
            SELECT * FROM (
                SELECT
                    {_ITEM_COLUMNS},
                    1 - array_cosine_similarity(
                        e.embedding, (SELECT embedding FROM target)
                    ) AS distance
                {_catalog_from("JOIN")}
                WHERE p.status = 'active' AND p.id <> ?
            ) nearest
            WHERE NOT isnan(distance)
            ORDER BY distance ASC, id ASC
            LIMIT ?
        """
        rows = self._conn.execute(sql, [product_id, product_id, limit]).fetchall()
        return [
            CatalogHit(item=self._row_to_item(row), score=1.0 - float(row[_ITEM_COLUMN_COUNT]))
            for row in rows
        ]

    def products_in_category(
        self, category: str, *, exclude_id: int | None = None, limit: int = 8
    ) -> list[CatalogItem]:
        sql = f"""
            WITH {_RATINGS_CTE}
            SELECT {_ITEM_COLUMNS}
            {_catalog_from()}
            WHERE p.status = 'active' AND p.category = ?
        """
        params: list[Any] = [category]
        if exclude_id is not None:
            sql += " AND p.id <> ?"
            params.append(exclude_id)
        sql += " ORDER BY avg_rating DESC, p.id ASC LIMIT ?"
        params.append(limit)
        rows = self._conn.execute(sql, params).fetchall()
        return [self._row_to_item(row) for row in rows]

    # ------------------------------------------------------------------
    # Smart filter
    # ------------------------------------------------------------------

    def filter_products(
        self, *, clauses: list[str], params: list[Any]
    ) -> list[CatalogItem]:
        sql = f"""
            WITH {_RATINGS_CTE}
            SELECT * FROM (
                SELECT {_ITEM_COLUMNS}, p.created_at
                {_catalog_from()}
                WHERE p.status = 'active'
            ) filtered
        """
        if clauses:
            sql += "WHERE " + "\n  AND ".join(clauses)
        sql += "\nORDER BY avg_rating DESC, created_at DESC, id DESC"
        rows = self._conn.execute(sql, params).fetchall()
        return [self._row_to_item(row) for row in rows]

    def filter_options(self) -> FilterOptions:
        category_rows = self._conn.execute(
            """
            SELECT DISTINCT category FROM products
            WHERE status = 'active'
            ORDER BY category
            """
        ).fetchall()
        tag_rows = self._conn.execute(
            """
            SELECT tags FROM products
            WHERE status = 'active' AND tags <> ''
            ORDER BY id
            """
        ).fetchall()
        price_row = self._conn.execute(
            "SELECT MIN(price), MAX(price) FROM products WHERE status = 'active'"
        ).fetchone()

        tags: dict[str, None] = {}
        for (raw_tags,) in tag_rows:
            for tag in split_tags(raw_tags):
                tags.setdefault(tag, None)

        price_min: int | None = None
        price_max: int | None = None
        if price_row is not None and price_row[0] is not None:
            price_min = math.floor(float(price_row[0]))
            price_max = math.ceil(float(price_row[1]))

        return FilterOptions(
            categories=[str(row[0]) for row in category_rows],
            tags=list(tags)[:_MAX_FILTER_TAGS],
            price_min=price_min,
            price_max=price_max,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_product(self, product_id: int) -> None:
        row = self._conn.execute(
            "SELECT 1 FROM products WHERE id = ?", [product_id]
        ).fetchone()
        if row is None:
            raise ProductNotFoundError(f"Product {product_id} not found")

    @staticmethod
    def _row_to_item(row: tuple[Any, ...]) -> CatalogItem:
        return CatalogItem(
            id=int(row[0]),
            name=str(row[1]),
            category=str(row[2]),
            description=str(row[3]),
            tags=split_tags(row[4]),
            vendor_name=str(row[5]),
            price=float(row[6]),
            image_url=str(row[7]) if row[7] is not None else None,
            rating=float(row[8]),
            stock_quantity=int(row[9]),
            status=row[10],
            has_embedding=bool(row[11]),
        )
