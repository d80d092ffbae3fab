"""
Local lexical embeddings for vector-based product search.

Maps text to a fixed-length, L2-normalized vector by hashing tokens,
token prefixes and adjacent-token bigrams into a small number of dimensions.
Vectors computed at different times stay comparable because the hash is a
fixed 32-bit rolling hash, reproduced exactly.
"""

from __future__ import annotations

import math
import os
import re
from collections.abc import Iterable, Iterator


DEFAULT_DIM = 384

_NON_WORD_RE = re.compile(r"[^A-Za-z0-9_\s]")
_WHITESPACE_RE = re.compile(r"\s+")

# (suffix, weight) applied per token, scaled by the position weight.
_TOKEN_FEATURES: tuple[tuple[str, float], ...] = (
    ("", 2.0),
    ("_semantic", 1.5),
    ("_context", 1.0),
)
_PREFIX_WEIGHT = 0.5
_LENGTH_WEIGHT = 0.3
_BIGRAM_WEIGHT = 0.8

_BRAND_TERMS: dict[str, tuple[str, ...]] = {
    "apple": ("apple", "iphone", "ipad", "macbook", "mac", "ios"),
    "samsung": ("samsung", "galaxy", "note"),
    "nike": ("nike", "air", "jordan", "swoosh"),
    "sony": ("sony", "playstation", "bravia"),
    "google": ("google", "pixel", "android"),
    "microsoft": ("microsoft", "xbox", "surface", "windows"),
    "tesla": ("tesla", "model", "electric"),
    "gucci": ("gucci", "luxury", "designer"),
    "dyson": ("dyson", "vacuum", "cyclone"),
    "herman": ("herman", "miller", "aeron"),
    "kitchenaid": ("kitchenaid", "mixer", "kitchen"),
    "vitamix": ("vitamix", "blender", "smoothie"),
    "breville": ("breville", "espresso", "coffee"),
    "levis": ("levis", "levi", "denim", "jeans"),
    "patagonia": ("patagonia", "outdoor", "jacket"),
}

_CATEGORY_TERMS: dict[str, tuple[str, ...]] = {
    "electronics": (
        "electronics", "electronic", "gadget", "device", "tech",
        "technology", "smart", "digital", "wireless",
    ),
    "computers": (
        "computer", "computers", "pc", "laptop", "notebook", "desktop",
        "tech", "technology", "portable", "work", "business",
    ),
    "fashion": (
        "fashion", "clothing", "clothes", "apparel", "wear", "style",
        "designer", "trendy", "outfit",
    ),
    "home & garden": (
        "home", "house", "garden", "furniture", "kitchen", "appliance",
        "household", "domestic",
    ),
    "books": ("book", "books", "read", "reading", "literature", "novel", "text"),
    "gaming": ("gaming", "game", "games", "play", "console", "video", "entertainment"),
}

_PRODUCT_PATTERNS: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (
        ("phone", "iphone", "smartphone"),
        ("phone", "mobile", "smartphone", "cell", "cellular", "communication", "call", "device"),
    ),
    (
        ("laptop", "macbook", "notebook"),
        ("laptop", "computer", "notebook", "portable", "work", "productivity", "business"),
    ),
    (
        ("shoe", "shoes", "sneaker", "boot"),
        ("shoes", "footwear", "sneakers", "running", "walking", "sport", "athletic"),
    ),
    (
        ("chair", "seat", "stool"),
        ("chair", "seat", "seating", "furniture", "office", "desk", "ergonomic", "comfort"),
    ),
    (
        ("headphone", "earphone", "earbud"),
        ("headphones", "audio", "music", "sound", "wireless", "bluetooth", "listening"),
    ),
    (
        ("tv", "television", "monitor"),
        ("tv", "television", "screen", "display", "entertainment", "viewing", "smart"),
    ),
    (
        ("coffee", "espresso", "brew"),
        ("coffee", "espresso", "brew", "brewing", "cafe", "barista", "drink"),
    ),
    (("vacuum", "cleaner"), ("vacuum", "cleaning", "cleaner", "suction", "floor", "carpet")),
    (("mixer", "blend"), ("mixer", "mixing", "kitchen", "cooking", "baking", "food")),
    (("jacket", "coat"), ("jacket", "coat", "outerwear", "clothing", "warm", "weather")),
)


def _utf16_code_units(text: str) -> Iterator[int]:
    for char in text:
        code_point = ord(char)
        if code_point > 0xFFFF:
            code_point -= 0x10000
            yield 0xD800 + (code_point >> 10)
            yield 0xDC00 + (code_point & 0x3FF)
        else:
            yield code_point


def string_hash(text: str) -> int:
    """Return the absolute value of the 32-bit ``h*31 + c`` rolling hash.

    Arithmetic wraps to a signed 32-bit integer after every step, so
    ``string_hash("polygenelubricants") == 2**31``.
    """
    value = 0
    for unit in _utf16_code_units(text):
        value = (value * 31 + unit) & 0xFFFFFFFF
        if value >= 0x80000000:
            value -= 0x100000000
    return abs(value)


def tokenize(text: str) -> list[str]:
    """Normalize text and return tokens longer than one character."""
    cleaned = _NON_WORD_RE.sub(" ", text.lower())
    cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
    return [token for token in cleaned.split(" ") if len(token) > 1]


def generate_embedding(text: str, dim: int = DEFAULT_DIM) -> list[float]:
    """Embed *text* into a unit-length vector of *dim* floats.

    Text without usable tokens yields the all-zero vector.
    """
    tokens = tokenize(text)
    vector = [0.0] * dim
    if not tokens:
        return vector

    for index, token in enumerate(tokens):
        position_weight = 1.0 / math.sqrt(index + 1)
        for suffix, weight in _TOKEN_FEATURES:
            vector[string_hash(token + suffix) % dim] += position_weight * weight
        vector[string_hash(token[:3]) % dim] += position_weight * _PREFIX_WEIGHT
        vector[string_hash(f"{token}_len_{len(token)}") % dim] += _LENGTH_WEIGHT

    for first, second in zip(tokens, tokens[1:]):
        vector[string_hash(f"{first}_{second}") % dim] += _BIGRAM_WEIGHT

    magnitude = math.sqrt(sum(value * value for value in vector))
    if magnitude > 0:
        vector = [value / magnitude for value in vector]
    return vector


def expand_search_terms(name: str, category: str, description: str = "") -> str:
    """Return synonym terms for a product's brand, category and product type."""
    name_lower = name.lower()
    category_lower = category.lower()
    description_lower = description.lower()

    # dict keeps insertion order; token order feeds the position weights
    terms: dict[str, None] = dict.fromkeys([name_lower, category_lower])

    for brand, variations in _BRAND_TERMS.items():
        if brand in name_lower or brand in description_lower:
            terms.update(dict.fromkeys(variations))

    for category_key, category_terms in _CATEGORY_TERMS.items():
        if category_key in category_lower:
            terms.update(dict.fromkeys(category_terms))

    for patterns, product_terms in _PRODUCT_PATTERNS:
        if any(p in name_lower or p in description_lower for p in patterns):
            terms.update(dict.fromkeys(product_terms))

    for word in _WHITESPACE_RE.split(name_lower):
        if len(word) > 3:
            terms[word[:3]] = None
            terms[word[:4]] = None

    return " ".join(terms)


def product_embedding_text(
    *,
    name: str,
    description: str,
    category: str,
    tags: Iterable[str] | None = None,
) -> str:
    """Assemble the text that is embedded for a catalog product."""
    parts = [
        name,
        description,
        category,
        *(tags or []),
        expand_search_terms(name, category, description),
    ]
    return " ".join(part for part in parts if part)


class LexicalEmbedder:
    """Generate hashed lexical embeddings without a trained model."""

    def __init__(self, *, dim: int | None = None) -> None:
        if dim is None:
            dim = int(os.getenv("STOREFRONT_EMBEDDING_DIM", str(DEFAULT_DIM)))
        self.dim = dim
        if self.dim <= 0:
            raise ValueError(f"Embedding dimension must be positive, got {self.dim}.")

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a list of texts, preserving order."""
        return [generate_embedding(text, self.dim) for text in texts]

    def embed_query(self, query: str) -> list[float]:
        """Embed a single search query."""
        return generate_embedding(query, self.dim)

    def embed_product(
        self,
        *,
        name: str,
        description: str,
        category: str,
        tags: Iterable[str] | None = None,
    ) -> list[float]:
        """Embed a product from its searchable fields plus expanded terms."""
        text = product_embedding_text(
            name=name,
            description=description,
            category=category,
            tags=tags,
        )
        return generate_embedding(text, self.dim)
