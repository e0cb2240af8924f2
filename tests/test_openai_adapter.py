"""Tests for the OpenAI vision adapter, with a stand-in client."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from gmatrix.adapters.openai_vision import OpenAIVisionClient
from gmatrix.core.config import Settings
from gmatrix.core.errors import ExternalServiceFailure
from gmatrix.core.interfaces import VisionClient

DATA_URI = "data:image/png;base64,iVBORw0KGgo="


def _make_client(content: str | None, calls: list[dict]) -> SimpleNamespace:
    def create(**kwargs):
        calls.append(kwargs)
        message = SimpleNamespace(content=content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def test_extracts_name_from_completion() -> None:
    calls: list[dict] = []
    adapter = OpenAIVisionClient(model="gpt-4o-mini", client=_make_client("  Kind Bar \n", calls))

    assert isinstance(adapter, VisionClient)
    assert adapter.extract_product_name(DATA_URI) == "Kind Bar"

    request = calls[0]
    assert request["model"] == "gpt-4o-mini"
    assert request["temperature"] == 0
    parts = request["messages"][1]["content"]
    assert parts[1] == {"type": "image_url", "image_url": {"url": DATA_URI}}


def test_empty_completion_is_a_service_failure() -> None:
    adapter = OpenAIVisionClient(client=_make_client(None, []))
    with pytest.raises(ExternalServiceFailure):
        adapter.extract_product_name(DATA_URI)


def test_rejects_non_data_uri() -> None:
    calls: list[dict] = []
    adapter = OpenAIVisionClient(client=_make_client("Kind Bar", calls))
    with pytest.raises(ValueError):
        adapter.extract_product_name("https://img.example/kind.jpg")
    assert calls == []


def test_from_settings() -> None:
    settings = Settings(vision_api_key="sk-test", vision_model="gpt-4o", vision_timeout_seconds=5.0)
    adapter = OpenAIVisionClient.from_settings(settings)
    assert adapter.model == "gpt-4o"
