from pydantic import BaseModel, Field

from src.amazongen.domain.models.model_ref import ModelRef


class GeneratedImage(BaseModel):
    image_url: str = Field(description="Generated image as data URL or remote URL.")
    model: ModelRef = Field(description="Model that produced the image.")
