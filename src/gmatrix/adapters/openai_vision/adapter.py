"""OpenAI vision adapter for product name extraction."""

from __future__ import annotations

from typing import Any

from openai import OpenAI

from gmatrix.core.config import Settings
from gmatrix.core.errors import ExternalServiceFailure

SYSTEM_PROMPT = "You read product packaging. Reply with the product name only, no commentary."

USER_PROMPT = (
    "Extract the name of the packaged food product in this photo, including the brand "
    "if it is visible. Only return the product name. If you cannot read it, return an empty reply."
)


class OpenAIVisionClient:
    """
    Vision client backed by the OpenAI chat completions API.

    The photo travels inline as a base64 data URI in an image_url content part.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o-mini",
        timeout: float = 20.0,
        client: Any | None = None,
    ) -> None:
        self.model = model
        self._client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenAIVisionClient:
        return cls(
            api_key=settings.vision_api_key,
            model=settings.vision_model,
            timeout=settings.vision_timeout_seconds,
        )

    def extract_product_name(self, photo_data_uri: str) -> str:
        if not photo_data_uri.startswith("data:"):
            raise ValueError("photo_data_uri must be a data: URI")
        resp = self._client.chat.completions.create(
            model=self.model,
            temperature=0,
            max_tokens=50,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": USER_PROMPT},
                        {"type": "image_url", "image_url": {"url": photo_data_uri}},
                    ],
                },
            ],
        )
        content = resp.choices[0].message.content if resp.choices else None
        if not content:
            raise ExternalServiceFailure("OpenAI returned no content")
        return content.strip()
