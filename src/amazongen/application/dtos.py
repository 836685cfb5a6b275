from __future__ import annotations

from pydantic import BaseModel, Field

from src.amazongen.domain.models.generation_task import GenerationTask
from src.amazongen.domain.models.model_ref import ModelOption, ModelRef
from src.amazongen.domain.models.product_spec import ProductSpecification


class DefinitionInput(BaseModel):
    name: str = Field(description="Scene definition display name.")
    prompt: str = Field(description="Scene prompt template.")


class CreateMaskRequest(BaseModel):
    name: str
    definitions: list[DefinitionInput] = Field(default_factory=list)


class UpdateMaskRequest(BaseModel):
    name: str


class BatchRequest(BaseModel):
    mask_id: str = Field(description="Mask whose definitions are generated.")
    definition_ids: list[str] | None = Field(
        default=None, description="Subset of the mask's definitions; all when omitted."
    )
    source_images: list[str] = Field(description="Encoded source images, one batch each.")
    model: ModelRef | None = Field(default=None, description="Model; server default when omitted.")
    spec: ProductSpecification = Field(default_factory=ProductSpecification)


class RegenerateRequest(BaseModel):
    refine_text: str | None = Field(default=None, description="Refinement instruction.")
    model: ModelRef | None = Field(default=None, description="Switch to another model.")


class BatchResponse(BaseModel):
    batch_id: str
    tasks: list[GenerationTask]


class BatchListResponse(BaseModel):
    batches: list[BatchResponse]


class CancelResponse(BaseModel):
    batch_id: str
    cancelled: int


class SyncResponse(BaseModel):
    written: int


class PreparedImageResponse(BaseModel):
    image: str
    background_removed: bool


class ModelsResponse(BaseModel):
    default: ModelRef
    models: list[ModelOption]
