"""
Ranking helpers for merging retrieval result sets.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, TypeAlias

from ..storage import CatalogHit, CatalogItem

Provenance: TypeAlias = Literal["vector", "text", "fuzzy", "combined"]


@dataclass(frozen=True)
class SearchResultEntry:
    """Merged retrieval candidate for a product."""

    product_id: int
    score: float
    provenance: Provenance
    product: CatalogItem


def merge_results(
    *,
    vector_hits: list[CatalogHit],
    text_hits: list[CatalogHit],
    fuzzy_hits: list[CatalogHit],
    vector_multiplier: float = 100.0,
    limit: int = 50,
) -> list[SearchResultEntry]:
    """Merge strategy results by product id and return the top *limit* entries.

    Vector scores are rescaled by *vector_multiplier*. A text hit on a product
    already found by vector search keeps the larger of the two scores and is
    marked ``combined``; fuzzy hits only fill in products nobody else found.
    """
    merged: dict[int, SearchResultEntry] = {}

    for hit in vector_hits:
        merged[hit.item.id] = SearchResultEntry(
            product_id=hit.item.id,
            score=hit.score * vector_multiplier,
            provenance="vector",
            product=hit.item,
        )

    for hit in text_hits:
        existing = merged.get(hit.item.id)
        if existing is not None:
            merged[hit.item.id] = SearchResultEntry(
                product_id=hit.item.id,
                score=max(existing.score, hit.score),
                provenance="combined",
                product=existing.product,
            )
        else:
            merged[hit.item.id] = SearchResultEntry(
                product_id=hit.item.id,
                score=hit.score,
                provenance="text",
                product=hit.item,
            )

    for hit in fuzzy_hits:
        if hit.item.id not in merged:
            merged[hit.item.id] = SearchResultEntry(
                product_id=hit.item.id,
                score=hit.score,
                provenance="fuzzy",
                product=hit.item,
            )

    return rank_entries(list(merged.values()), limit=limit)


def rank_entries(
    entries: list[SearchResultEntry], *, limit: int
) -> list[SearchResultEntry]:
    """Sort merged entries by score (stable for ties) and apply limit."""
    ordered = sorted(entries, key=lambda entry: -entry.score)
    return ordered[: max(limit, 0)]
