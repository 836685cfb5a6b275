from __future__ import annotations

import base64
import logging
from typing import Any

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from src.amazongen.domain.exceptions import ProviderError
from src.amazongen.domain.models.generated_image import GeneratedImage
from src.amazongen.domain.models.model_ref import ModelRef
from src.amazongen.domain.repositories import GenerationBackend
from src.amazongen.infrastructure.providers.images import decode_image, is_remote

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_MIME_TYPE = "image/png"


def extract_image(response: Any) -> str:
    """Return the first inline image of a ``generate_content`` response as a data URL."""
    candidates = getattr(response, "candidates", None) or []
    if candidates:
        content = getattr(candidates[0], "content", None)
        for part in getattr(content, "parts", None) or []:
            inline_data = getattr(part, "inline_data", None)
            if inline_data is None or not inline_data.data:
                continue
            data = inline_data.data
            encoded = base64.b64encode(data).decode("ascii") if isinstance(data, bytes) else data
            mime_type = inline_data.mime_type or DEFAULT_OUTPUT_MIME_TYPE
            return f"data:{mime_type};base64,{encoded}"
    raise ProviderError("No image data found in response")


class GeminiBackend(GenerationBackend):
    """Google Gemini image models through the ``google-genai`` async client."""

    def __init__(
        self,
        api_key: str,
        *,
        client: genai.Client | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._client = client
        self._http = http_client or httpx.AsyncClient(timeout=60.0)

    def _genai(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise ProviderError("Google API key is missing.")
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def _load_image(self, image: str) -> tuple[str, bytes]:
        if not is_remote(image):
            return decode_image(image)
        response = await self._http.get(image)
        response.raise_for_status()
        mime_type = response.headers.get("content-type", "image/jpeg").split(";")[0]
        return mime_type, response.content

    async def generate(self, source_image: str, prompt: str, model: ModelRef) -> GeneratedImage:
        client = self._genai()
        mime_type, data = await self._load_image(source_image)
        try:
            response = await client.aio.models.generate_content(
                model=model.name,
                contents=[
                    types.Part.from_text(text=prompt),
                    types.Part.from_bytes(data=data, mime_type=mime_type),
                ],
            )
        except genai_errors.APIError as exc:
            logger.error("Gemini image generation error", extra={"model": model.name, "error": str(exc)})
            raise ProviderError(f"Gemini API Error: {exc}") from exc
        return GeneratedImage(image_url=extract_image(response), model=model)

    async def aclose(self) -> None:
        await self._http.aclose()
