"""Tests for hybrid retrieval, result merging and ranking."""

from __future__ import annotations

import threading
import time

import pytest

from storefront_search.config import SearchSettings
from storefront_search.embeddings import LexicalEmbedder
from storefront_search.search import (
    EmptyQueryError,
    HybridSearchEngine,
    SearchFailedError,
    merge_results,
)
from storefront_search.storage import CatalogHit, CatalogItem, ProductNotFoundError


def _item(product_id: int, name: str = "", *, has_embedding: bool = True) -> CatalogItem:
    return CatalogItem(
        id=product_id,
        name=name or f"Product {product_id}",
        category="Electronics",
        description="",
        tags=[],
        vendor_name="Acme",
        price=10.0,
        image_url=None,
        rating=0.0,
        stock_quantity=1,
        status="active",
        has_embedding=has_embedding,
    )


def _hit(product_id: int, score: float) -> CatalogHit:
    return CatalogHit(item=_item(product_id), score=score)


class _FakeCatalog:
    """Strategy collaborator returning canned hits; ``None`` makes a strategy raise."""

    def __init__(
        self,
        *,
        vector: list[CatalogHit] | None = None,
        text: list[CatalogHit] | None = None,
        fuzzy: list[CatalogHit] | None = None,
        embeddings: bool = True,
        delay: float = 0.0,
    ) -> None:
        self.vector = vector
        self.text = text
        self.fuzzy = fuzzy
        self.embeddings = embeddings
        self.delay = delay
        self.calls: list[tuple[str, dict]] = []

    def has_embeddings(self) -> bool:
        return self.embeddings

    def search_products_vector(self, **kwargs):
        return self._answer("vector", self.vector, kwargs)

    def search_products_text(self, **kwargs):
        return self._answer("text", self.text, kwargs)

    def search_products_fuzzy(self, **kwargs):
        return self._answer("fuzzy", self.fuzzy, kwargs)

    def _answer(self, name: str, hits: list[CatalogHit] | None, kwargs: dict):
        self.calls.append((name, kwargs))
        time.sleep(self.delay)
        if hits is None:
            raise RuntimeError(f"{name} backend unavailable")
        return hits


def _engine(catalog) -> HybridSearchEngine:
    return HybridSearchEngine(catalog, embedder=LexicalEmbedder(dim=32), settings=SearchSettings())


# ---------------------------------------------------------------------------
# merge_results
# ---------------------------------------------------------------------------


def test_merge_results_max_merges_vector_and_text() -> None:
    entries = merge_results(
        vector_hits=[_hit(1, 0.9), _hit(2, 0.5)],
        text_hits=[_hit(1, 85), _hit(2, 85), _hit(3, 70)],
        fuzzy_hits=[_hit(1, 40), _hit(4, 40)],
    )

    assert [(e.product_id, e.score, e.provenance) for e in entries] == [
        (1, pytest.approx(90.0), "combined"),
        (2, 85, "combined"),
        (3, 70, "text"),
        (4, 40, "fuzzy"),
    ]


def test_merge_results_fuzzy_never_overrides_existing_entries() -> None:
    entries = merge_results(
        vector_hits=[_hit(1, 0.2)],
        text_hits=[],
        fuzzy_hits=[_hit(1, 40)],
    )

    assert len(entries) == 1
    assert entries[0].provenance == "vector"
    assert entries[0].score == pytest.approx(20.0)


def test_merge_results_keeps_ties_in_insertion_order_and_truncates() -> None:
    text_hits = [_hit(product_id, 50) for product_id in range(1, 81)]

    entries = merge_results(vector_hits=[], text_hits=text_hits, fuzzy_hits=[], limit=50)

    assert len(entries) == 50
    assert [e.product_id for e in entries] == list(range(1, 51))


def test_merge_results_uses_vector_multiplier() -> None:
    entries = merge_results(
        vector_hits=[_hit(7, 0.5)],
        text_hits=[],
        fuzzy_hits=[],
        vector_multiplier=10.0,
    )

    assert entries[0].score == pytest.approx(5.0)


# ---------------------------------------------------------------------------
# HybridSearchEngine.search
# ---------------------------------------------------------------------------


def test_search_rejects_empty_query() -> None:
    catalog = _FakeCatalog(vector=[], text=[], fuzzy=[])

    with pytest.raises(EmptyQueryError):
        _engine(catalog).search("   ")
    assert catalog.calls == []


def test_search_trims_query_before_strategies() -> None:
    catalog = _FakeCatalog(vector=[], text=[], fuzzy=[])

    _engine(catalog).search("  headphones  ")

    queries = {name: kwargs.get("query") for name, kwargs in catalog.calls}
    assert queries["text"] == "headphones"
    assert queries["fuzzy"] == "headphones"


def test_search_merges_all_strategies() -> None:
    catalog = _FakeCatalog(
        vector=[_hit(1, 0.9), _hit(2, 0.3)],
        text=[_hit(2, 85), _hit(3, 60)],
        fuzzy=[_hit(3, 40), _hit(4, 40)],
    )

    entries = _engine(catalog).search("headphones")

    ids = [e.product_id for e in entries]
    assert ids == [1, 2, 3, 4]
    assert len(set(ids)) == len(ids)
    scores = [e.score for e in entries]
    assert scores == sorted(scores, reverse=True)
    assert entries[1].provenance == "combined"
    assert entries[1].score == 85


def test_search_returns_fuzzy_hit_when_text_strategy_fails() -> None:
    catalog = _FakeCatalog(vector=[], text=None, fuzzy=[_hit(5, 40)])

    entries = _engine(catalog).search("usb hub")

    assert len(entries) == 1
    assert entries[0].product_id == 5
    assert entries[0].score == 40
    assert entries[0].provenance == "fuzzy"


def test_search_fails_only_when_every_strategy_fails() -> None:
    with pytest.raises(SearchFailedError):
        _engine(_FakeCatalog(vector=None, text=None, fuzzy=None)).search("anything")

    entries = _engine(_FakeCatalog(vector=None, text=None, fuzzy=[])).search("anything")
    assert entries == []


class _FlakyForkCatalog(_FakeCatalog):
    """Forks share the parent's answers; the first ``fork()`` raises."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._lock = threading.Lock()
        self.forks = 0
        self.closed = 0

    def fork(self) -> _FlakyForkCatalog:
        with self._lock:
            self.forks += 1
            if self.forks == 1:
                raise RuntimeError("connection pool exhausted")
        return self

    def close(self) -> None:
        with self._lock:
            self.closed += 1


def test_search_survives_failure_to_acquire_a_catalog_handle() -> None:
    catalog = _FlakyForkCatalog(
        vector=[_hit(1, 0.9)], text=[_hit(1, 85)], fuzzy=[_hit(1, 40)]
    )

    entries = _engine(catalog).search("headphones")

    assert [e.product_id for e in entries] == [1]
    assert catalog.forks == 3
    assert catalog.closed == 2


def test_search_skips_vector_strategy_without_embeddings() -> None:
    catalog = _FakeCatalog(vector=[_hit(1, 0.99)], text=[], fuzzy=[], embeddings=False)

    entries = _engine(catalog).search("headphones")

    assert entries == []
    assert "vector" not in [name for name, _ in catalog.calls]


def test_search_skips_vector_strategy_for_zero_query_vector() -> None:
    catalog = _FakeCatalog(vector=[_hit(1, 0.99)], text=[], fuzzy=[])

    entries = _engine(catalog).search("a !")

    assert entries == []
    assert "vector" not in [name for name, _ in catalog.calls]


def test_search_passes_settings_to_strategies() -> None:
    catalog = _FakeCatalog(vector=[], text=[], fuzzy=[])
    settings = SearchSettings(
        vector_distance_threshold=0.5, vector_limit=3, text_limit=4, fuzzy_limit=5
    )

    HybridSearchEngine(catalog, embedder=LexicalEmbedder(dim=32), settings=settings).search(
        "headphones"
    )

    calls = dict(catalog.calls)
    assert calls["vector"]["max_distance"] == 0.5
    assert calls["vector"]["limit"] == 3
    assert len(calls["vector"]["query_embedding"]) == 32
    assert calls["text"]["limit"] == 4
    assert calls["fuzzy"]["limit"] == 5


def test_search_result_limit_comes_from_settings() -> None:
    catalog = _FakeCatalog(
        vector=[], text=[_hit(i, 50) for i in range(1, 21)], fuzzy=[]
    )
    engine = HybridSearchEngine(
        catalog, embedder=LexicalEmbedder(dim=32), settings=SearchSettings(result_limit=5)
    )

    assert len(engine.search("gadget")) == 5


def test_search_runs_strategies_in_parallel() -> None:
    catalog = _FakeCatalog(
        vector=[_hit(1, 0.9)], text=[_hit(2, 85)], fuzzy=[_hit(3, 40)], delay=0.3
    )

    start = time.perf_counter()
    entries = _engine(catalog).search("headphones")
    elapsed = time.perf_counter() - start

    assert len(entries) == 3
    assert elapsed < 0.75


def test_search_settings_from_env(monkeypatch) -> None:
    monkeypatch.setenv("STOREFRONT_VECTOR_DISTANCE_THRESHOLD", "0.6")
    monkeypatch.setenv("STOREFRONT_VECTOR_SCORE_MULTIPLIER", "50")
    monkeypatch.setenv("STOREFRONT_SEARCH_RESULT_LIMIT", "10")

    settings = SearchSettings.from_env()

    assert settings.vector_distance_threshold == 0.6
    assert settings.vector_score_multiplier == 50.0
    assert settings.result_limit == 10
    assert settings.text_limit == 30


# ---------------------------------------------------------------------------
# Against a DuckDB catalog
# ---------------------------------------------------------------------------


def test_search_name_substring_scores_85(catalog, seeded) -> None:
    entries = HybridSearchEngine(catalog, settings=SearchSettings()).search("headphones")

    assert len(entries) == 1
    assert entries[0].product_id == seeded["headphones"]
    assert entries[0].score == 85
    assert entries[0].provenance == "text"


def test_search_exact_name_scores_100(catalog, seeded) -> None:
    entries = HybridSearchEngine(catalog, settings=SearchSettings()).search("iPhone 15")

    assert entries[0].product_id == seeded["iphone"]
    assert entries[0].score == 100
    assert entries[0].provenance == "text"


def test_search_excludes_inactive_products(catalog, embedded) -> None:
    entries = HybridSearchEngine(catalog, settings=SearchSettings()).search("studio")

    assert embedded["studio"] not in [e.product_id for e in entries]


def test_search_with_embeddings_combines_strategies(catalog, embedded) -> None:
    entries = HybridSearchEngine(catalog, settings=SearchSettings()).search(
        "Wireless Headphones"
    )

    top = entries[0]
    assert top.product_id == embedded["headphones"]
    assert top.provenance == "combined"
    assert top.score == pytest.approx(100.0, abs=1e-3)
    assert len({e.product_id for e in entries}) == len(entries)


# ---------------------------------------------------------------------------
# vector_search / recommend / filter
# ---------------------------------------------------------------------------


def test_vector_search_blends_similarity_and_text(catalog, embedded) -> None:
    hits = HybridSearchEngine(catalog).vector_search("Wireless Headphones")

    assert hits[0].item.id == embedded["headphones"]
    assert hits[0].text_score == 100
    assert hits[0].combined_score == pytest.approx(
        hits[0].similarity * 0.7 + 0.3
    )
    combined = [hit.combined_score for hit in hits]
    assert combined == sorted(combined, reverse=True)
    assert embedded["studio"] not in [hit.item.id for hit in hits]


def test_vector_search_rejects_empty_query(catalog, embedded) -> None:
    with pytest.raises(EmptyQueryError):
        HybridSearchEngine(catalog).vector_search(" ")


def test_recommend_uses_embedding_neighbours(catalog, embedded) -> None:
    hits = HybridSearchEngine(catalog).recommend(embedded["headphones"])

    ids = [hit.item.id for hit in hits]
    assert embedded["headphones"] not in ids
    assert embedded["studio"] not in ids
    assert sorted(ids) == sorted(
        [embedded["iphone"], embedded["shoes"], embedded["espresso"]]
    )
    scores = [hit.score for hit in hits]
    assert scores == sorted(scores, reverse=True)


def test_recommend_falls_back_to_category_by_rating(catalog, seeded) -> None:
    hits = HybridSearchEngine(catalog).recommend(seeded["headphones"])

    assert [hit.item.id for hit in hits] == [seeded["iphone"]]
    assert hits[0].score == 5.0


def test_recommend_unknown_product(catalog, seeded) -> None:
    with pytest.raises(ProductNotFoundError):
        HybridSearchEngine(catalog).recommend(9999)
