"""Tests for the image analysis gateway."""

from __future__ import annotations

import threading

import pytest

from gmatrix.core.config import Settings
from gmatrix.core.errors import ExternalServiceFailure, ValidationError
from gmatrix.core.gateway import ImageAnalysisGateway, canonical_image_type, clean_product_name
from gmatrix.core.models import UNNAMED_PRODUCT

PHOTO = b"\xff\xd8\xff\xe0fake-jpeg-bytes"


class _FakeVisionClient:
    def __init__(self, reply: str = "", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.calls: list[str] = []

    def extract_product_name(self, photo_data_uri: str) -> str:
        self.calls.append(photo_data_uri)
        if self.error is not None:
            raise self.error
        return self.reply


class _HangingVisionClient:
    def __init__(self) -> None:
        self.release = threading.Event()

    def extract_product_name(self, photo_data_uri: str) -> str:
        self.release.wait(5)
        return "Too Late Crackers"


def _make_gateway(client, **overrides) -> ImageAnalysisGateway:
    return ImageAnalysisGateway(client, Settings(**overrides))


def test_identifies_product_name() -> None:
    client = _FakeVisionClient(reply="Udi's Gluten Free Bread\n")
    result = _make_gateway(client).identify_product(PHOTO, "image/JPG")

    assert result.product_name == "Udi's Gluten Free Bread"
    assert result.is_unnamed is False
    assert result.source_image == PHOTO
    assert result.mime_type == "image/jpeg"
    assert client.calls[0].startswith("data:image/jpeg;base64,")


def test_client_error_falls_back_to_unnamed() -> None:
    client = _FakeVisionClient(error=ConnectionError("connection reset"))
    result = _make_gateway(client).identify_product(PHOTO, "png")

    assert result.product_name == UNNAMED_PRODUCT
    assert result.is_unnamed is True
    assert result.source_image == PHOTO


def test_empty_reply_falls_back_to_unnamed() -> None:
    result = _make_gateway(_FakeVisionClient(reply="  \n ")).identify_product(PHOTO, "webp")
    assert result.product_name == UNNAMED_PRODUCT


def test_timeout_falls_back_to_unnamed() -> None:
    client = _HangingVisionClient()
    gateway = _make_gateway(client, vision_timeout_seconds=0.05)
    try:
        result = gateway.identify_product(PHOTO, "jpeg")
    finally:
        client.release.set()
        gateway.close()
    assert result.product_name == UNNAMED_PRODUCT


@pytest.mark.parametrize(
    "photo,mime_type",
    [
        (b"", "jpeg"),
        (b"x" * 11, "jpeg"),
        (PHOTO[:10], "image/gif"),
        (PHOTO[:10], ""),
    ],
)
def test_invalid_images_rejected_before_call(photo: bytes, mime_type: str) -> None:
    client = _FakeVisionClient(reply="Should Not Be Asked")
    with pytest.raises(ValidationError):
        _make_gateway(client, max_image_bytes=10).identify_product(photo, mime_type)
    assert client.calls == []


def test_canonical_image_type() -> None:
    allowed = Settings().allowed_image_types
    assert canonical_image_type("jpg", allowed) == "image/jpeg"
    assert canonical_image_type("image/PNG", allowed) == "image/png"
    with pytest.raises(ValidationError):
        canonical_image_type("image/heic", allowed)


def test_clean_product_name() -> None:
    assert clean_product_name('"Banza Chickpea Pasta"') == "Banza Chickpea Pasta"
    assert clean_product_name("**Kind Bar**\nDark chocolate") == "Kind Bar"
    with pytest.raises(ExternalServiceFailure):
        clean_product_name(None)
    with pytest.raises(ExternalServiceFailure):
        clean_product_name("x" * 500)
