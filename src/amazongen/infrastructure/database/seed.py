from __future__ import annotations

import logging

from src.amazongen.domain.models.mask import ProductMask, SceneDefinition
from src.amazongen.domain.repositories import MaskRepository

logger = logging.getLogger(__name__)

DEFAULT_MASKS: tuple[ProductMask, ...] = (
    ProductMask(
        id="default-1",
        name="General product - standard set",
        definitions=[
            SceneDefinition(
                id="def-1",
                name="White background main image",
                prompt=(
                    "Professional e-commerce image on a white background, showing the "
                    "whole product with natural lighting."
                ),
                sort_order=0,
            ),
            SceneDefinition(
                id="def-2",
                name="Lifestyle - tabletop display",
                prompt=(
                    "Placed on a warm, bright wooden tabletop with green plants in the "
                    "background, lifestyle scene."
                ),
                sort_order=1,
            ),
        ],
    ),
)


async def seed_default_masks(masks: MaskRepository) -> int:
    """Insert the default masks when the store holds none. Returns how many were added."""
    if await masks.list_masks(public_only=False):
        return 0
    for mask in DEFAULT_MASKS:
        await masks.create_mask(mask)
    logger.info("Seeded default product masks", extra={"count": len(DEFAULT_MASKS)})
    return len(DEFAULT_MASKS)
