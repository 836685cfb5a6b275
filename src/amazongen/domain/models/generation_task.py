from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from src.amazongen.domain.exceptions import InvalidTransitionError
from src.amazongen.domain.models.model_ref import ModelRef
from src.amazongen.domain.models.product_spec import ProductSpecification
from src.amazongen.domain.models.task_state import TaskState

CANCELLED_MESSAGE = "Cancelled"

_ALLOWED_TRANSITIONS: dict[TaskState, frozenset[TaskState]] = {
    TaskState.QUEUED: frozenset({TaskState.GENERATING, TaskState.CANCELLED}),
    TaskState.GENERATING: frozenset(
        {TaskState.SUCCEEDED, TaskState.FAILED, TaskState.CANCELLED}
    ),
}


def _utc_now() -> datetime:
    return datetime.now(UTC)


def new_task_id() -> str:
    return uuid4().hex


class GenerationTask(BaseModel):
    """One image generation for one scene definition and one source image.

    The record is created ``queued`` and only ever moves forward through
    ``generating`` to a terminal state. Retry and regenerate never touch a
    terminal task; they create a new one carrying ``parent_id``.
    """

    id: str = Field(default_factory=new_task_id, description="Unique task identifier.")
    user_id: str = Field(description="Owner of the task.")
    batch_id: str = Field(description="Batch that created the task.")
    parent_id: str | None = Field(
        default=None, description="Task this one was retried or regenerated from."
    )
    mask_id: str | None = Field(default=None, description="Mask the definition belongs to.")
    definition_id: str = Field(description="Scene definition identifier.")
    definition_name: str = Field(description="Scene definition display name.")
    definition_prompt: str = Field(description="Scene prompt text used for this task.")
    spec: ProductSpecification = Field(default_factory=ProductSpecification)
    refine_text: str | None = Field(default=None, description="User refinement instruction.")
    source_image: str = Field(description="Encoded input image (data URL or URL).")
    built_prompt: str | None = Field(default=None, description="Prompt sent to the backend.")
    model: ModelRef = Field(description="Generation model, fixed at creation.")
    state: TaskState = Field(default=TaskState.QUEUED)
    image_result: str | None = Field(default=None, description="Generated image.")
    error_message: str | None = Field(default=None, description="Failure description.")
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    persisted: bool = Field(default=False, description="Recorded in the history store.")
    history_id: str | None = Field(default=None, description="History entry identifier.")

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def awaiting_persistence(self) -> bool:
        return self.state is TaskState.SUCCEEDED and not self.persisted

    def mark_generating(self, built_prompt: str) -> None:
        self._advance(TaskState.GENERATING)
        self.built_prompt = built_prompt

    def mark_succeeded(self, image_result: str) -> None:
        self._advance(TaskState.SUCCEEDED)
        self.image_result = image_result
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self._advance(TaskState.FAILED)
        self.error_message = error_message
        self.image_result = None

    def mark_cancelled(self) -> None:
        self._advance(TaskState.CANCELLED)
        self.error_message = CANCELLED_MESSAGE
        self.image_result = None

    def mark_persisted(self, history_id: str) -> None:
        if self.state is not TaskState.SUCCEEDED:
            raise InvalidTransitionError(self.id, self.state.value, "persisted")
        self.persisted = True
        self.history_id = history_id

    def _advance(self, target: TaskState) -> None:
        if target not in _ALLOWED_TRANSITIONS.get(self.state, frozenset()):
            raise InvalidTransitionError(self.id, self.state.value, target.value)
        self.state = target
        self.updated_at = _utc_now()
