"""
FastAPI server for storefront product search.

Exposes hybrid, vector, smart-filter and media search plus the vendor and
admin product lifecycle endpoints over a DuckDB catalog.
"""

import asyncio
import base64
import binascii
import logging
from typing import Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import SearchSettings, resolve_db_path
from .embeddings import LexicalEmbedder
from .models import ProductDraft, ProductUpdate
from .products import ProductService
from .search import (
    EmptyQueryError,
    HybridSearchEngine,
    KeywordExtractionError,
    KeywordExtractor,
    SearchResultEntry,
    SmartFilter,
)
from .storage import BlendedHit, CatalogHit, DuckDBCatalog, ProductNotFoundError

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Storefront Search",
    description="Hybrid vector and text search for a multi-vendor product catalog",
)


class VectorSearchRequest(BaseModel):
    """Request model for blended vector search."""

    query: str
    limit: int = Field(default=10, ge=1, le=100)
    db_path: str | None = None


class SmartFilterRequest(BaseModel):
    """Request model for smart filtering."""

    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    price_range: tuple[float, float] | None = None
    min_rating: float = Field(default=0.0, ge=0, le=5)
    db_path: str | None = None


class MediaSearchRequest(BaseModel):
    """Request model for image and voice search (base64 payload)."""

    data: str
    mime_type: str
    db_path: str | None = None


class CreateProductRequest(ProductDraft):
    """Request model for vendor product submission."""

    db_path: str | None = None


class UpdateProductRequest(ProductUpdate):
    """Request model for vendor product edits."""

    db_path: str | None = None


def _open_catalog(db_path: str | None) -> tuple[DuckDBCatalog, LexicalEmbedder]:
    embedder = LexicalEmbedder()
    catalog = DuckDBCatalog(resolve_db_path(db_path), embedding_dim=embedder.dim)
    return catalog, embedder


def _search_entry(entry: SearchResultEntry) -> dict[str, Any]:
    return {
        **entry.product.to_dict(),
        "search_score": entry.score,
        "search_type": entry.provenance,
    }


def _blended_hit(hit: BlendedHit) -> dict[str, Any]:
    return {
        **hit.item.to_dict(),
        "similarity_score": hit.similarity,
        "text_score": hit.text_score,
        "combined_score": hit.combined_score,
    }


def _recommendation(hit: CatalogHit) -> dict[str, Any]:
    return {**hit.item.to_dict(), "similarity": hit.score}


def _run_search(db_path: str | None, query: str) -> list[dict[str, Any]]:
    catalog, embedder = _open_catalog(db_path)
    try:
        engine = HybridSearchEngine(
            catalog, embedder=embedder, settings=SearchSettings.from_env()
        )
        return [_search_entry(entry) for entry in engine.search(query)]
    finally:
        catalog.close()


@app.get("/api/products/search")
async def search_products(q: str = "", db_path: str | None = None):
    """Hybrid vector + text + fuzzy product search."""
    try:
        return _run_search(db_path, q)
    except EmptyQueryError:
        return JSONResponse({"error": "Search query is required"}, status_code=400)
    except Exception:
        logger.exception("Error in product search")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.post("/api/products/vector-search")
async def vector_search(request: VectorSearchRequest):
    """Blend embedding similarity with the weighted text score."""
    try:
        catalog, embedder = _open_catalog(request.db_path)
        try:
            engine = HybridSearchEngine(catalog, embedder=embedder)
            hits = engine.vector_search(request.query, limit=request.limit)
        finally:
            catalog.close()
        return [_blended_hit(hit) for hit in hits]
    except EmptyQueryError:
        return JSONResponse({"error": "Query is required"}, status_code=400)
    except Exception:
        logger.exception("Error in vector search")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.post("/api/products/smart-filter")
async def smart_filter(request: SmartFilterRequest):
    """Narrow active products by category, tags, price and rating."""
    try:
        price_min, price_max = request.price_range or (None, None)
        if price_min is not None and price_max is not None and price_min > price_max:
            return JSONResponse(
                {"error": "Price range lower bound exceeds upper bound"}, status_code=400
            )
        facets = SmartFilter(
            categories=request.categories,
            tags=request.tags,
            price_min=price_min,
            price_max=price_max,
            min_rating=request.min_rating,
        )
        catalog, embedder = _open_catalog(request.db_path)
        try:
            items = HybridSearchEngine(catalog, embedder=embedder).filter(facets)
        finally:
            catalog.close()
        return [item.to_dict() for item in items]
    except Exception:
        logger.exception("Error applying smart filters")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.get("/api/products/filter-options")
async def filter_options(db_path: str | None = None):
    """Return the categories, tags and price range the smart filter offers."""
    try:
        catalog, _ = _open_catalog(db_path)
        try:
            options = catalog.filter_options()
        finally:
            catalog.close()
        return {
            "categories": options.categories,
            "tags": options.tags,
            "price_range": {"min": options.price_min, "max": options.price_max},
        }
    except Exception:
        logger.exception("Error fetching filter options")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.post("/api/products/image-search")
async def image_search(request: MediaSearchRequest):
    """Search by the product keyword recognised in an uploaded image."""
    return await _media_search(request, kind="image")


@app.post("/api/products/voice-search")
async def voice_search(request: MediaSearchRequest):
    """Search by the product keyword recognised in a voice recording."""
    return await _media_search(request, kind="audio")


async def _media_search(request: MediaSearchRequest, *, kind: str):
    label = "image" if kind == "image" else "voice"
    try:
        payload = base64.b64decode(request.data, validate=True)
    except (binascii.Error, ValueError):
        payload = b""
    if not payload:
        noun = "image" if kind == "image" else "audio"
        return JSONResponse({"error": f"No {noun} file provided"}, status_code=400)

    try:
        extractor = KeywordExtractor()
        if kind == "image":
            keyword = await asyncio.to_thread(
                extractor.from_image, payload, request.mime_type
            )
        else:
            keyword = await asyncio.to_thread(
                extractor.from_audio, payload, request.mime_type
            )
    except KeywordExtractionError:
        return JSONResponse({"error": "No valid keyword extracted"}, status_code=400)
    except Exception:
        logger.exception("Keyword extraction failed for %s search", label)
        return JSONResponse({"error": f"Failed {label} search"}, status_code=500)

    try:
        results = _run_search(request.db_path, keyword)
    except Exception:
        logger.exception("Error in %s search", label)
        return JSONResponse({"error": f"Failed {label} search"}, status_code=500)
    return {"keyword": keyword, "results": results}


@app.get("/api/products/{product_id}")
async def get_product(product_id: int, db_path: str | None = None):
    """Fetch one active product."""
    try:
        catalog, _ = _open_catalog(db_path)
        try:
            item = catalog.get_product(product_id, active_only=True)
        finally:
            catalog.close()
        if item is None:
            return JSONResponse({"error": "Product not found"}, status_code=404)
        return item.to_dict()
    except Exception:
        logger.exception("Error fetching product %d", product_id)
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.get("/api/products/{product_id}/recommendations")
async def recommendations(product_id: int, limit: int = 8, db_path: str | None = None):
    """Products similar to *product_id* by embedding, or by category."""
    try:
        catalog, embedder = _open_catalog(db_path)
        try:
            hits = HybridSearchEngine(catalog, embedder=embedder).recommend(
                product_id, limit=limit
            )
        finally:
            catalog.close()
        return [_recommendation(hit) for hit in hits]
    except ProductNotFoundError:
        return JSONResponse({"error": "Product not found"}, status_code=404)
    except Exception:
        logger.exception("Error fetching recommendations for %d", product_id)
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.post("/api/vendor/products")
async def create_product(request: CreateProductRequest):
    """Submit a product; it stays inactive until an admin approves it."""
    try:
        draft = ProductDraft.model_validate(request.model_dump(exclude={"db_path"}))
        catalog, embedder = _open_catalog(request.db_path)
        try:
            created = ProductService(catalog, embedder).create(draft)
        finally:
            catalog.close()
        return {
            "success": True,
            "message": "Product created successfully and is pending approval",
            "product": created.to_dict(),
        }
    except ValueError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    except Exception:
        logger.exception("Error creating product")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.patch("/api/vendor/products/{product_id}")
async def update_product(product_id: int, request: UpdateProductRequest):
    """Edit a product, recomputing its embedding when searchable text changes."""
    try:
        changes = ProductUpdate.model_validate(
            request.model_dump(exclude={"db_path"}, exclude_unset=True)
        )
        catalog, embedder = _open_catalog(request.db_path)
        try:
            item = ProductService(catalog, embedder).update(product_id, changes)
        finally:
            catalog.close()
        return {"success": True, "product": item.to_dict()}
    except ProductNotFoundError:
        return JSONResponse({"error": "Product not found"}, status_code=404)
    except ValueError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    except Exception:
        logger.exception("Error updating product %d", product_id)
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.get("/api/admin/products/pending")
async def pending_products(db_path: str | None = None):
    """List products awaiting approval."""
    try:
        catalog, embedder = _open_catalog(db_path)
        try:
            items = ProductService(catalog, embedder).pending()
        finally:
            catalog.close()
        return [item.to_dict() for item in items]
    except Exception:
        logger.exception("Error fetching pending products")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@app.post("/api/admin/products/{product_id}/approve")
async def approve_product(product_id: int, db_path: str | None = None):
    """Make a product searchable."""
    return _moderate(product_id, db_path, approve=True)


@app.post("/api/admin/products/{product_id}/reject")
async def reject_product(product_id: int, db_path: str | None = None):
    """Hide a product from search."""
    return _moderate(product_id, db_path, approve=False)


def _moderate(product_id: int, db_path: str | None, *, approve: bool):
    try:
        catalog, embedder = _open_catalog(db_path)
        try:
            service = ProductService(catalog, embedder)
            item = service.approve(product_id) if approve else service.reject(product_id)
        finally:
            catalog.close()
        return {"success": True, "product": item.to_dict()}
    except ProductNotFoundError:
        return JSONResponse({"error": "Product not found"}, status_code=404)
    except Exception:
        logger.exception("Error moderating product %d", product_id)
        return JSONResponse({"error": "Internal server error"}, status_code=500)


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the FastAPI server."""
    import uvicorn

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
