from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

import inject
from pydantic import BaseModel, Field

from src.amazongen.domain.models.model_ref import ModelRef
from src.amazongen.domain.repositories import BackendRouter
from src.setup.orchestrator_config import get_orchestrator_settings
from src.setup.provider_config import get_provider_settings

logger = logging.getLogger(__name__)

BACKGROUND_REMOVAL_PROMPT = (
    "Strictly copy the product from the image and place it on a pure solid white "
    "background (Hex #FFFFFF). Do not alter the product's angle, color, or shape. "
    "Output only the image."
)


class PreparedImage(BaseModel):
    image: str = Field(description="Image to use as the batch source.")
    background_removed: bool = Field(description="False when the original was kept.")


class SourceImageService:
    """Puts uploaded product photos on a white background before generation.

    Background removal is best effort: any failure keeps the upload as is.
    """

    def __init__(
        self,
        router: BackendRouter | None = None,
        model: ModelRef | None = None,
        timeout: float | None = None,
    ) -> None:
        self._router = router or inject.instance(BackendRouter)
        self._model = model or get_provider_settings().background_removal_model
        self._timeout = timeout or get_orchestrator_settings().GENERATION_TIMEOUT_SEC

    async def remove_background(self, image: str) -> str:
        backend = self._router.backend_for(self._model)
        generated = await asyncio.wait_for(
            backend.generate(image, BACKGROUND_REMOVAL_PROMPT, self._model),
            timeout=self._timeout,
        )
        return generated.image_url

    async def prepare(self, image: str) -> PreparedImage:
        try:
            processed = await self.remove_background(image)
        except Exception as exc:
            logger.warning(
                "Background removal failed, using original image",
                extra={"model": str(self._model), "error": str(exc) or type(exc).__name__},
            )
            return PreparedImage(image=image, background_removed=False)
        return PreparedImage(image=processed, background_removed=True)

    async def prepare_many(self, images: Sequence[str]) -> list[PreparedImage]:
        prepared = []
        for image in images:
            prepared.append(await self.prepare(image))
        return prepared
