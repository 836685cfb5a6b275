from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from src.amazongen.domain.exceptions import ProviderError
from src.amazongen.domain.models.generated_image import GeneratedImage
from src.amazongen.domain.models.model_ref import ModelRef
from src.amazongen.domain.repositories import GenerationBackend
from src.amazongen.infrastructure.providers.images import as_image_url

logger = logging.getLogger(__name__)

_IMAGE_URL = re.compile(r"https?://[^\s\"')]+\.(?:png|jpg|jpeg|webp)", re.IGNORECASE)
_MARKDOWN_IMAGE = re.compile(r"!\[.*?\]\((.*?)\)")


def extract_image_from_message(message: dict[str, Any] | None) -> str:
    """Find the generated image in a chat completion message.

    Image-output models put it in ``images``; others answer with a plain or
    markdown image link in ``content``.
    """
    if not message:
        raise ProviderError("OpenRouter response contained no message.")
    images = message.get("images") or []
    if images:
        url = (images[0].get("image_url") or {}).get("url")
        if url:
            return url
    content = message.get("content")
    if isinstance(content, str) and content:
        match = _IMAGE_URL.search(content)
        if match:
            return match.group(0)
        markdown = _MARKDOWN_IMAGE.search(content)
        if markdown:
            return markdown.group(1)
    raise ProviderError(
        "OpenRouter did not return an image. It might have returned text description instead."
    )


class OpenRouterBackend(GenerationBackend):
    """Image models served through OpenRouter's chat completions endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://openrouter.ai/api/v1",
        referer: str = "https://amazongen.local",
        title: str = "AmazonGen",
        timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._headers = {
            "Content-Type": "application/json",
            "HTTP-Referer": referer,
            "X-Title": title,
        }
        self._http = http_client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    def _build_payload(self, source_image: str, prompt: str, model: ModelRef) -> dict[str, Any]:
        return {
            "model": model.name,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": as_image_url(source_image)}},
                    ],
                }
            ],
            "modalities": ["image", "text"],
        }

    async def generate(self, source_image: str, prompt: str, model: ModelRef) -> GeneratedImage:
        if not self._api_key:
            raise ProviderError("OpenRouter API key is missing.")
        headers = {**self._headers, "Authorization": f"Bearer {self._api_key}"}
        try:
            response = await self._http.post(
                "/chat/completions",
                json=self._build_payload(source_image, prompt, model),
                headers=headers,
            )
        except httpx.RequestError as exc:
            raise ProviderError(f"OpenRouter request failed: {exc}") from exc

        if response.is_error:
            logger.error(
                "OpenRouter image generation error",
                extra={"model": model.name, "status": response.status_code},
            )
            raise ProviderError(f"OpenRouter API Error: {response.status_code} - {response.text}")

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError("OpenRouter returned a malformed response.") from exc
        choices = data.get("choices") or [{}]
        image_url = extract_image_from_message(choices[0].get("message"))
        return GeneratedImage(image_url=image_url, model=model)

    async def aclose(self) -> None:
        await self._http.aclose()
