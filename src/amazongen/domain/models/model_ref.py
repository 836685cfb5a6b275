from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Provider(str, Enum):
    GOOGLE = "google"
    OPENROUTER = "openrouter"


class ModelRef(BaseModel):
    """Generation model tagged with the provider that serves it."""

    model_config = ConfigDict(frozen=True)

    provider: Provider = Field(description="Provider routing tag.")
    name: str = Field(min_length=1, description="Provider-specific model identifier.")

    def __str__(self) -> str:
        return f"{self.provider.value}:{self.name}"


class ModelOption(BaseModel):
    """Catalogue entry shown in the model selector."""

    label: str
    model: ModelRef


GEMINI_FLASH_IMAGE = ModelRef(provider=Provider.GOOGLE, name="gemini-2.5-flash-image")
OR_GEMINI_3_PRO_IMAGE = ModelRef(
    provider=Provider.OPENROUTER, name="google/gemini-3-pro-image-preview"
)
OR_GEMINI_2_5_FLASH_IMAGE = ModelRef(
    provider=Provider.OPENROUTER, name="google/gemini-2.5-flash-image"
)

MODEL_CATALOGUE: tuple[ModelOption, ...] = (
    ModelOption(label="Gemini 2.5 Flash Image", model=GEMINI_FLASH_IMAGE),
    ModelOption(label="Gemini 3.0 Pro Image", model=OR_GEMINI_3_PRO_IMAGE),
    ModelOption(label="Gemini 2.5 Flash (OR)", model=OR_GEMINI_2_5_FLASH_IMAGE),
)


def route_for_model(model: ModelRef) -> Provider:
    """Return the provider that must serve ``model``."""
    return model.provider
