"""
Smart-filter facets and their text syntax.

A smart filter narrows the active catalog by categories, tag substrings,
price bounds and a minimum average rating. It produces a SQL predicate
conjunction; it does not score products.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any


class SmartFilterParseError(ValueError):
    """Raised when smart-filter syntax is invalid."""


_FIELD_ALIASES: dict[str, str] = {
    "category": "category",
    "categories": "category",
    "tag": "tags",
    "tags": "tags",
    "price": "price",
    "rating": "rating",
}
_NUMBER_RE = re.compile(r"^-?\d+(?:\.\d+)?$")


@dataclass(frozen=True)
class SmartFilter:
    """Facet constraints applied to active catalog products."""

    categories: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    price_min: float | None = None
    price_max: float | None = None
    min_rating: float = 0.0

    def is_empty(self) -> bool:
        return (
            not self.categories
            and not self.tags
            and self.price_min is None
            and self.price_max is None
            and self.min_rating <= 0
        )

    def to_sql(self) -> tuple[list[str], list[Any]]:
        """Return ``(clauses, params)`` to be AND-ed together.

        Clauses reference the catalog columns ``category``, ``price``,
        ``tags`` and ``avg_rating``.
        """
        clauses: list[str] = []
        params: list[Any] = []

        if self.categories:
            placeholders = ", ".join(["?"] * len(self.categories))
            clauses.append(f"category IN ({placeholders})")
            params.extend(self.categories)

        if self.price_min is not None:
            clauses.append("price >= ?")
            params.append(float(self.price_min))
        if self.price_max is not None:
            clauses.append("price <= ?")
            params.append(float(self.price_max))

        if self.tags:
            tag_conditions = ["contains(lower(tags), lower(?))"] * len(self.tags)
            clauses.append("(" + " OR ".join(tag_conditions) + ")")
            params.extend(self.tags)

        if self.min_rating > 0:
            clauses.append("avg_rating >= ?")
            params.append(float(self.min_rating))

        return clauses, params


def supported_filter_syntax() -> str:
    """Return a short help text for filter syntax."""
    return (
        "Supported filter syntax: "
        "`category=Books`, `category in (Books, Gaming)`, `tags~wireless`, "
        "`tags in (usb, bluetooth)`, `price>=10`, `price<=250`, `price=99`, "
        "`rating>=4`; combine with comma or `and`."
    )


def parse_smart_filter(raw_filters: str | None) -> SmartFilter:
    """Parse a raw filter string into a :class:`SmartFilter`."""
    if raw_filters is None or not raw_filters.strip():
        return SmartFilter()

    categories: list[str] = []
    tags: list[str] = []
    price_min: float | None = None
    price_max: float | None = None
    min_rating = 0.0

    for condition in _split_conditions(raw_filters):
        field_name, operator, value = _parse_condition(condition)
        if field_name == "category":
            if operator not in {"eq", "in"}:
                raise SmartFilterParseError(
                    f"`category` supports `=` and `in` only: {condition!r}"
                )
            categories.extend(str(item) for item in _as_list(value))
        elif field_name == "tags":
            if operator not in {"eq", "contains", "in"}:
                raise SmartFilterParseError(
                    f"`tags` supports `~`, `=` and `in` only: {condition!r}"
                )
            tags.extend(str(item) for item in _as_list(value))
        elif field_name == "price":
            number = _require_number(value, condition)
            if operator == "gte":
                price_min = number
            elif operator == "lte":
                price_max = number
            elif operator == "eq":
                price_min = price_max = number
            else:
                raise SmartFilterParseError(
                    f"`price` supports `>=`, `<=` and `=` only: {condition!r}"
                )
        else:
            if operator != "gte":
                raise SmartFilterParseError(
                    f"`rating` supports `>=` only: {condition!r}"
                )
            min_rating = _require_number(value, condition)

    if price_min is not None and price_max is not None and price_min > price_max:
        raise SmartFilterParseError(
            f"Price lower bound {price_min} exceeds upper bound {price_max}."
        )

    return SmartFilter(
        categories=categories,
        tags=tags,
        price_min=price_min,
        price_max=price_max,
        min_rating=min_rating,
    )


def _parse_condition(condition: str) -> tuple[str, str, Any]:
    text = condition.strip()
    if not text:
        raise SmartFilterParseError("Empty filter condition.")

    in_match = re.match(r"^\s*([A-Za-z_]+)\s+in\s+(.+)\s*$", text, flags=re.IGNORECASE)
    if in_match:
        field_name = _resolve_field(in_match.group(1))
        values = _parse_list_value(in_match.group(2))
        if not values:
            raise SmartFilterParseError(f"`in` filter has no values: {text!r}")
        return field_name, "in", values

    op_match = re.match(r"^\s*([A-Za-z_]+)\s*(<=|>=|!=|=|<|>|~|:)\s*(.+)\s*$", text)
    if not op_match:
        raise SmartFilterParseError(f"Invalid filter syntax: {text!r}")

    field_name = _resolve_field(op_match.group(1))
    operator_map: dict[str, str] = {
        "=": "eq",
        ":": "eq",
        "!=": "ne",
        ">": "gt",
        ">=": "gte",
        "<": "lt",
        "<=": "lte",
        "~": "contains",
    }
    return field_name, operator_map[op_match.group(2)], _parse_scalar_value(op_match.group(3))


def _resolve_field(raw_field: str) -> str:
    resolved = _FIELD_ALIASES.get(raw_field.lower())
    if resolved is None:
        allowed = ", ".join(sorted(set(_FIELD_ALIASES.values())))
        raise SmartFilterParseError(
            f"Unknown filter field {raw_field!r}. Allowed fields: {allowed}"
        )
    return resolved


def _require_number(value: Any, condition: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SmartFilterParseError(f"Expected a numeric value: {condition!r}")
    return float(value)


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else [value]


def _split_conditions(raw: str) -> list[str]:
    parts: list[str] = []
    current: list[str] = []
    quote: str | None = None
    depth = 0
    i = 0
    while i < len(raw):
        ch = raw[i]

        if quote is not None:
            current.append(ch)
            if ch == quote:
                quote = None
            i += 1
            continue

        if ch in {"'", '"'}:
            quote = ch
        elif ch in {"(", "["}:
            depth += 1
        elif ch in {")", "]"}:
            depth = max(depth - 1, 0)
        elif depth == 0 and ch == ",":
            _flush_part(parts, current)
            i += 1
            continue
        elif (
            depth == 0
            and raw[i : i + 3].lower() == "and"
            and (i == 0 or raw[i - 1].isspace())
            and (i + 3 == len(raw) or raw[i + 3].isspace())
        ):
            _flush_part(parts, current)
            i += 3
            continue

        current.append(ch)
        i += 1

    _flush_part(parts, current)
    return parts


def _flush_part(parts: list[str], current: list[str]) -> None:
    text = "".join(current).strip()
    if text:
        parts.append(text)
    current.clear()


def _parse_list_value(raw_value: str) -> list[str | int | float]:
    text = raw_value.strip()
    if (text.startswith("(") and text.endswith(")")) or (
        text.startswith("[") and text.endswith("]")
    ):
        text = text[1:-1]

    if not text.strip():
        return []

    return [_parse_scalar_value(item) for item in _split_conditions(text)]


def _parse_scalar_value(raw_value: str) -> str | int | float:
    text = raw_value.strip()
    if not text:
        raise SmartFilterParseError("Missing filter value.")

    if (text.startswith("'") and text.endswith("'")) or (
        text.startswith('"') and text.endswith('"')
    ):
        return text[1:-1]

    if _NUMBER_RE.match(text):
        if "." in text:
            return float(text)
        return int(text)
    return text
