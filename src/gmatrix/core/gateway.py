"""Image analysis gateway: photo in, best-effort product name out."""

from __future__ import annotations

import base64
import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

from gmatrix.core.config import Settings
from gmatrix.core.errors import ExternalServiceFailure, ValidationError
from gmatrix.core.interfaces import VisionClient
from gmatrix.core.models import UNNAMED_PRODUCT, IdentifiedProduct

logger = logging.getLogger(__name__)

MAX_PRODUCT_NAME_LENGTH = 200


def canonical_image_type(mime_type: str, allowed: tuple[str, ...]) -> str:
    """
    Normalize 'image/JPEG', 'jpeg', 'jpg' and friends to a MIME type.

    Raises:
        ValidationError: If the type is not an accepted image format
    """
    subtype = (mime_type or "").strip().lower()
    if subtype.startswith("image/"):
        subtype = subtype[len("image/") :]
    if subtype not in allowed:
        raise ValidationError(f"Unsupported image type {mime_type!r}; expected one of {', '.join(allowed)}")
    if subtype == "jpg":
        subtype = "jpeg"
    return f"image/{subtype}"


def to_data_uri(photo: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(photo).decode('ascii')}"


def clean_product_name(text: str | None) -> str:
    """
    Reduce a model reply to a single product name.

    Raises:
        ExternalServiceFailure: If nothing usable is left
    """
    if text is None:
        raise ExternalServiceFailure("Vision service returned no text")
    lines = [line.strip() for line in text.strip().splitlines() if line.strip()]
    if not lines:
        raise ExternalServiceFailure("Vision service returned an empty product name")
    name = lines[0].strip("\"'`*").strip()
    if not name or len(name) > MAX_PRODUCT_NAME_LENGTH:
        raise ExternalServiceFailure(f"Vision service returned an unusable product name: {text[:80]!r}")
    return name


class ImageAnalysisGateway:
    """
    One attempt at naming a photographed product, then graceful fallback.

    Invalid images raise. Any failure after validation degrades to
    UNNAMED_PRODUCT so the user can type the name instead.
    """

    def __init__(self, client: VisionClient, settings: Settings | None = None) -> None:
        self.client = client
        self.settings = settings or Settings()
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="gmatrix-vision")

    def validate(self, photo: bytes, mime_type: str) -> str:
        if not photo:
            raise ValidationError("No image provided")
        if len(photo) > self.settings.max_image_bytes:
            raise ValidationError(
                f"Image is {len(photo)} bytes; the limit is {self.settings.max_image_bytes} bytes"
            )
        return canonical_image_type(mime_type, self.settings.allowed_image_types)

    def identify_product(self, photo: bytes, mime_type: str) -> IdentifiedProduct:
        canonical_type = self.validate(photo, mime_type)
        data_uri = to_data_uri(photo, canonical_type)
        try:
            name = self._call(data_uri)
        except Exception as exc:
            logger.warning("vision_fallback reason=%s: %s", type(exc).__name__, exc)
            name = UNNAMED_PRODUCT
        return IdentifiedProduct(product_name=name, source_image=photo, mime_type=canonical_type)

    def _call(self, data_uri: str) -> str:
        future = self._executor.submit(self.client.extract_product_name, data_uri)
        try:
            text = future.result(timeout=self.settings.vision_timeout_seconds)
        except FutureTimeout as exc:
            future.cancel()
            raise ExternalServiceFailure(
                f"Vision service timed out after {self.settings.vision_timeout_seconds}s"
            ) from exc
        return clean_product_name(text)

    def close(self) -> None:
        self._executor.shutdown(wait=False)
