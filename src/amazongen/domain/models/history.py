from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, computed_field

from src.amazongen.domain.models.generation_task import GenerationTask
from src.amazongen.domain.models.model_ref import ModelRef


class HistoryEntry(BaseModel):
    """Durable snapshot of a succeeded generation task."""

    id: str | None = Field(default=None, description="History entry identifier.")
    user_id: str = Field(description="Owner of the entry.")
    task_id: str = Field(description="Session task that produced the image.")
    mask_id: str | None = Field(default=None, description="Mask of the definition.")
    definition_id: str = Field(description="Scene definition identifier.")
    definition_name: str = Field(description="Scene definition display name.")
    source_image: str = Field(description="Input image used for the generation.")
    image_result: str = Field(description="Generated image.")
    prompt: str | None = Field(default=None, description="Prompt sent to the backend.")
    model: ModelRef = Field(description="Model that produced the image.")
    created_at: datetime = Field(description="When the task was created.")

    @classmethod
    def from_task(cls, task: GenerationTask) -> HistoryEntry:
        if task.image_result is None:
            raise ValueError(f"Task '{task.id}' has no image result to record.")
        return cls(
            user_id=task.user_id,
            task_id=task.id,
            mask_id=task.mask_id,
            definition_id=task.definition_id,
            definition_name=task.definition_name,
            source_image=task.source_image,
            image_result=task.image_result,
            prompt=task.built_prompt,
            model=task.model,
            created_at=task.created_at,
        )


class HistoryPage(BaseModel):
    items: list[HistoryEntry] = Field(default_factory=list)
    page: int = Field(description="1-based page number.")
    limit: int = Field(description="Page size.")
    total: int = Field(description="Total number of entries for the user.")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return -(-self.total // self.limit)
