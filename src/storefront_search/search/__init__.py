"""Search helpers for the product catalog."""

from .filters import (
    SmartFilter,
    SmartFilterParseError,
    parse_smart_filter,
    supported_filter_syntax,
)
from .keywords import KeywordExtractionError, KeywordExtractor
from .query import EmptyQueryError, HybridSearchEngine, SearchFailedError
from .ranker import Provenance, SearchResultEntry, merge_results, rank_entries

__all__ = [
    "SmartFilter",
    "SmartFilterParseError",
    "parse_smart_filter",
    "supported_filter_syntax",
    "KeywordExtractionError",
    "KeywordExtractor",
    "EmptyQueryError",
    "HybridSearchEngine",
    "SearchFailedError",
    "Provenance",
    "SearchResultEntry",
    "merge_results",
    "rank_entries",
]
