from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class SceneDefinition(BaseModel):
    id: str = Field(description="Unique definition identifier.")
    name: str = Field(description="Display name, e.g. 'White background main image'.")
    prompt: str = Field(description="Scene prompt template.")
    sort_order: int = Field(default=0, description="Position inside the mask.")


class ProductMask(BaseModel):
    """Named, reusable collection of scene definitions for one product line."""

    id: str = Field(description="Unique mask identifier.")
    name: str = Field(description="Mask display name.")
    is_public: bool = Field(default=True, description="Visible to every user.")
    created_by: str | None = Field(default=None, description="Admin who created it.")
    definitions: list[SceneDefinition] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
