"""
Keyword extraction for image and voice product search.

A multimodal Google GenAI model reduces a photo or a voice clip to one
product keyword, which is then run through the ordinary hybrid search.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from google.genai import Client as GenAIClient
from google.genai.types import Part
from pydantic import ValidationError

from ..models import ExtractedKeyword

logger = logging.getLogger(__name__)

_DEFAULT_MODEL = "gemini-2.0-flash"

IMAGE_PROMPT = """
Identify the main product shown in this image.
Answer with the single most relevant product keyword (one or two words), such as
"headphones", "laptop", "running shoes" or "coffee maker".
"""

AUDIO_PROMPT = """
Listen to this voice message from a shopper.
Answer with the single most relevant product keyword (one or two words) for what
they are looking for, such as "headphones" or "running shoes".
"""

UTTERANCE_PROMPT = """
A shopper said: "{utterance}"
Answer with the single most relevant product keyword (one or two words) for what
they are looking for, such as "headphones" or "running shoes".
"""


class KeywordExtractionError(ValueError):
    """Raised when the model does not return a usable keyword."""


class KeywordExtractor:
    """Turn images, audio and free text into a product search keyword."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        client: Any | None = None,
    ) -> None:
        self.model = model or os.getenv("STOREFRONT_KEYWORD_MODEL", _DEFAULT_MODEL)

        if client is not None:
            self._client = client
        else:
            resolved_key = api_key or os.getenv("GOOGLE_API_KEY")
            if resolved_key is None:
                raise ValueError(
                    "GOOGLE_API_KEY not found. "
                    "Provide api_key or set the environment variable."
                )
            self._client = GenAIClient(api_key=resolved_key)

    def from_image(self, data: bytes, mime_type: str) -> str:
        """Return the product keyword for an image."""
        part = Part.from_bytes(data=data, mime_type=mime_type)
        return self._extract([part, IMAGE_PROMPT])

    def from_audio(self, data: bytes, mime_type: str) -> str:
        """Return the product keyword for a recorded voice query."""
        part = Part.from_bytes(data=data, mime_type=mime_type)
        return self._extract([part, AUDIO_PROMPT])

    def from_utterance(self, text: str) -> str:
        """Return the product keyword for a transcribed voice query."""
        if not text.strip():
            raise KeywordExtractionError("Utterance is empty")
        return self._extract([UTTERANCE_PROMPT.format(utterance=text.strip())])

    def _extract(self, contents: list[Any]) -> str:
        response = self._client.models.generate_content(
            model=self.model,
            contents=contents,
            config={
                "response_mime_type": "application/json",
                "response_json_schema": ExtractedKeyword.model_json_schema(),
                "temperature": 0.5,
            },
        )
        if response.text is None:
            raise KeywordExtractionError("Model returned no keyword")
        try:
            extracted = ExtractedKeyword.model_validate_json(response.text)
        except ValidationError as exc:
            raise KeywordExtractionError(f"Model returned malformed keyword: {exc}") from exc

        keyword = extracted.keyword.strip()
        if not keyword:
            raise KeywordExtractionError("Model returned an empty keyword")
        logger.info("Extracted keyword %r", keyword)
        return keyword
