"""Tests for media keyword extraction (mock GenAI client, no API key needed)."""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest
from google.genai import Client as GenAIClient

from conftest import MockGenAIClient
from storefront_search.models import ExtractedKeyword
from storefront_search.search import KeywordExtractionError, KeywordExtractor


def test_from_image_sends_bytes_and_schema() -> None:
    client = MockGenAIClient(keyword="  running shoes ")
    extractor = KeywordExtractor(client=client, model="test-model")

    keyword = extractor.from_image(b"\x89PNG fake", "image/png")

    assert keyword == "running shoes"
    call = client.models.calls[0]
    assert call["model"] == "test-model"
    assert call["config"]["response_mime_type"] == "application/json"
    assert call["config"]["response_json_schema"] == ExtractedKeyword.model_json_schema()
    image_part = call["contents"][0]
    assert image_part.inline_data.data == b"\x89PNG fake"
    assert image_part.inline_data.mime_type == "image/png"


def test_from_audio_uses_audio_prompt() -> None:
    client = MockGenAIClient(keyword="headphones")
    extractor = KeywordExtractor(client=client)

    assert extractor.from_audio(b"RIFF fake", "audio/wav") == "headphones"
    assert "voice message" in client.models.calls[0]["contents"][1]


def test_from_utterance_includes_text() -> None:
    client = MockGenAIClient(keyword="laptop")
    extractor = KeywordExtractor(client=client)

    assert extractor.from_utterance("I need a new laptop for work") == "laptop"
    assert "I need a new laptop for work" in client.models.calls[0]["contents"][0]
    with pytest.raises(KeywordExtractionError):
        extractor.from_utterance("   ")


def test_blank_keyword_is_an_error() -> None:
    extractor = KeywordExtractor(client=MockGenAIClient(keyword="   "))

    with pytest.raises(KeywordExtractionError):
        extractor.from_image(b"data", "image/jpeg")


def test_model_from_env(monkeypatch) -> None:
    monkeypatch.setenv("STOREFRONT_KEYWORD_MODEL", "env-model")

    assert KeywordExtractor(client=MockGenAIClient()).model == "env-model"


@patch.dict(os.environ, {"GOOGLE_API_KEY": "test-api-key"})
def test_extractor_init_requires_api_key() -> None:
    extractor = KeywordExtractor()
    assert isinstance(extractor._client, GenAIClient)
    del os.environ["GOOGLE_API_KEY"]
    with pytest.raises(ValueError):
        KeywordExtractor()
