"""
Configuration helpers for the catalog database, search tuning and logging.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from rich.logging import RichHandler


DEFAULT_DB_PATH = "~/.storefront_search/catalog.duckdb"
ENV_DB_PATH = "STOREFRONT_DB_PATH"
ENV_LOG_LEVEL = "STOREFRONT_LOG_LEVEL"


def resolve_db_path(override_path: str | None = None) -> str:
    """
    Resolve the DuckDB path from CLI/API override, env var, or default.

    Precedence:
    1) explicit override_path
    2) STOREFRONT_DB_PATH
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_DB_PATH) or DEFAULT_DB_PATH
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


@dataclass(frozen=True)
class SearchSettings:
    """Tuning knobs for the hybrid search strategies and merge."""

    # Cosine distance on a [0, 2] scale; hits at or above it are dropped.
    vector_distance_threshold: float = 0.8
    # Rescales vector similarity (0..1] onto the text-score range.
    vector_score_multiplier: float = 100.0
    vector_limit: int = 30
    text_limit: int = 30
    fuzzy_limit: int = 20
    result_limit: int = 50

    @classmethod
    def from_env(cls) -> SearchSettings:
        return cls(
            vector_distance_threshold=_env_float(
                "STOREFRONT_VECTOR_DISTANCE_THRESHOLD", cls.vector_distance_threshold
            ),
            vector_score_multiplier=_env_float(
                "STOREFRONT_VECTOR_SCORE_MULTIPLIER", cls.vector_score_multiplier
            ),
            vector_limit=_env_int("STOREFRONT_VECTOR_LIMIT", cls.vector_limit),
            text_limit=_env_int("STOREFRONT_TEXT_LIMIT", cls.text_limit),
            fuzzy_limit=_env_int("STOREFRONT_FUZZY_LIMIT", cls.fuzzy_limit),
            result_limit=_env_int("STOREFRONT_SEARCH_RESULT_LIMIT", cls.result_limit),
        )


def configure_logging(level: str | None = None) -> None:
    """Route package logs through Rich at the requested level."""
    resolved_level = (level or os.getenv(ENV_LOG_LEVEL) or "WARNING").upper()
    logging.basicConfig(
        level=resolved_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
