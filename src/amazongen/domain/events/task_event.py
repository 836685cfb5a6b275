from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field

from src.amazongen.domain.models.generation_task import GenerationTask

# Source images can be several MB of base64; listeners already have them.
_STATUS_EXCLUDE = {"source_image", "definition_prompt"}


class EventType(str, Enum):
    TASK_STATUS = "task.status"
    TASK_SUCCEEDED = "task.succeeded"


class TaskEvent(BaseModel):
    event_id: str = Field(default_factory=lambda: uuid4().hex)
    type: EventType
    task_id: str
    user_id: str
    ts: datetime = Field(default_factory=lambda: datetime.now(UTC))
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def status(cls, task: GenerationTask) -> TaskEvent:
        return cls(
            type=EventType.TASK_STATUS,
            task_id=task.id,
            user_id=task.user_id,
            payload={"task": task.model_dump(mode="json", exclude=_STATUS_EXCLUDE)},
        )

    @classmethod
    def succeeded(cls, task: GenerationTask) -> TaskEvent:
        return cls(
            type=EventType.TASK_SUCCEEDED,
            task_id=task.id,
            user_id=task.user_id,
            payload={"batch_id": task.batch_id},
        )
