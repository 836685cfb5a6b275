from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from functools import partial
from uuid import uuid4

import inject

from src.amazongen.application.prompt_builder import build_prompt
from src.amazongen.application.task_board import TaskBoard
from src.amazongen.domain.events.task_event import TaskEvent
from src.amazongen.domain.exceptions import BatchValidationError, InvalidTaskOperationError
from src.amazongen.domain.models.generation_task import GenerationTask
from src.amazongen.domain.models.mask import SceneDefinition
from src.amazongen.domain.models.model_ref import ModelRef
from src.amazongen.domain.models.product_spec import ProductSpecification
from src.amazongen.domain.models.task_state import TaskState
from src.amazongen.domain.repositories import BackendRouter, TaskEventPublisherRepository
from src.setup.orchestrator_config import OrchestratorSettings, get_orchestrator_settings

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Generation failed"
_UPLOADED_IMAGE = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,\S")


@dataclass
class BatchHandle:
    """Tasks created by one generate, retry or regenerate action.

    ``tasks`` holds the records as they were at creation time, all queued.
    The live records are on the task board.
    """

    id: str
    tasks: list[GenerationTask]
    _runners: list[asyncio.Task[None]] = field(default_factory=list, repr=False)

    @property
    def task_ids(self) -> list[str]:
        return [task.id for task in self.tasks]

    @property
    def done(self) -> bool:
        return all(runner.done() for runner in self._runners)

    async def wait(self) -> None:
        """Wait until every task of the batch reached a terminal state."""
        if self._runners:
            await asyncio.gather(*self._runners, return_exceptions=True)

    def cancel(self) -> int:
        """Cancel unfinished tasks; each of them ends in ``cancelled``."""
        cancelled = 0
        for runner in self._runners:
            if not runner.done():
                runner.cancel()
                cancelled += 1
        return cancelled


class GenerationOrchestrator:
    """Creates generation tasks, runs them concurrently and reports transitions."""

    def __init__(
        self,
        registry: BackendRouter | None = None,
        board: TaskBoard | None = None,
        publisher: TaskEventPublisherRepository | None = None,
        settings: OrchestratorSettings | None = None,
    ) -> None:
        self._registry = registry or inject.instance(BackendRouter)
        self._board = board or inject.instance(TaskBoard)
        self._publisher = publisher or inject.instance(TaskEventPublisherRepository)
        self._settings = settings or get_orchestrator_settings()
        self._batches: dict[str, BatchHandle] = {}

    @property
    def board(self) -> TaskBoard:
        return self._board

    @property
    def default_model(self) -> ModelRef:
        return self._settings.default_model

    def run_batch(
        self,
        user_id: str,
        definitions: Sequence[SceneDefinition],
        source_image: str,
        model: ModelRef,
        spec: ProductSpecification | None = None,
        *,
        mask_id: str | None = None,
    ) -> BatchHandle:
        """Create one queued task per definition and dispatch them all.

        Returns before any backend call completes. Only validation errors are
        raised; backend failures end up on the tasks themselves.
        """
        self._validate(user_id, definitions, [source_image])
        spec = spec or ProductSpecification()
        batch_id = uuid4().hex
        tasks = [
            GenerationTask(
                user_id=user_id,
                batch_id=batch_id,
                mask_id=mask_id,
                definition_id=definition.id,
                definition_name=definition.name,
                definition_prompt=definition.prompt,
                spec=spec.model_copy(),
                source_image=source_image,
                model=model,
            )
            for definition in definitions
        ]
        logger.info(
            "Dispatching generation batch",
            extra={"batch_id": batch_id, "user_id": user_id, "tasks": len(tasks), "model": str(model)},
        )
        return self._dispatch(batch_id, tasks)

    def run_batches(
        self,
        user_id: str,
        definitions: Sequence[SceneDefinition],
        source_images: Sequence[str],
        model: ModelRef,
        spec: ProductSpecification | None = None,
        *,
        mask_id: str | None = None,
    ) -> list[BatchHandle]:
        """Start one batch per source image, or none if any image is rejected."""
        if not source_images:
            raise BatchValidationError("Upload at least one source image.")
        self._validate(user_id, definitions, source_images)
        return [
            self.run_batch(user_id, definitions, image, model, spec, mask_id=mask_id)
            for image in source_images
        ]

    def retry(self, user_id: str, task_id: str) -> BatchHandle:
        """Start a new task from the original inputs of a failed task."""
        original = self._board.get(task_id, user_id)
        if original.state not in {TaskState.FAILED, TaskState.CANCELLED}:
            raise InvalidTaskOperationError(task_id, "retry", original.state.value)
        task = self._derive(
            original,
            source_image=original.source_image,
            model=original.model,
            refine_text=original.refine_text,
        )
        logger.info("Retrying task", extra={"task_id": task_id, "new_task_id": task.id})
        return self._dispatch(task.batch_id, [task])

    def regenerate(
        self,
        user_id: str,
        task_id: str,
        refine_text: str | None = None,
        model: ModelRef | None = None,
    ) -> BatchHandle:
        """Start a new task that refines the output of a succeeded task."""
        original = self._board.get(task_id, user_id)
        if original.state is not TaskState.SUCCEEDED:
            raise InvalidTaskOperationError(task_id, "regenerate", original.state.value)
        task = self._derive(
            original,
            source_image=original.image_result or original.source_image,
            model=model or original.model,
            refine_text=refine_text,
        )
        logger.info(
            "Regenerating task",
            extra={"task_id": task_id, "new_task_id": task.id, "model": str(task.model)},
        )
        return self._dispatch(task.batch_id, [task])

    def get_batch(self, batch_id: str) -> BatchHandle | None:
        """Handle of a batch that still has unfinished tasks."""
        return self._batches.get(batch_id)

    def cancel_batch(self, batch_id: str) -> int:
        handle = self._batches.get(batch_id)
        if handle is None:
            return 0
        return handle.cancel()

    async def shutdown(self) -> None:
        """Cancel everything still running and wait for the tasks to settle."""
        handles = list(self._batches.values())
        for handle in handles:
            handle.cancel()
        await asyncio.gather(*(handle.wait() for handle in handles))

    @staticmethod
    def _validate(
        user_id: str, definitions: Sequence[SceneDefinition], source_images: Sequence[str]
    ) -> None:
        if not user_id:
            raise BatchValidationError("A user id is required.")
        if not definitions:
            raise BatchValidationError("Select at least one scene definition.")
        for position, image in enumerate(source_images, start=1):
            if not image or not image.strip():
                raise BatchValidationError(f"Source image {position} is empty.")
            # Uploads arrive inline; the server never fetches client-chosen URLs.
            if not _UPLOADED_IMAGE.match(image):
                raise BatchValidationError(
                    f"Source image {position} must be a base64 image data URL."
                )

    def _derive(
        self,
        original: GenerationTask,
        *,
        source_image: str,
        model: ModelRef,
        refine_text: str | None,
    ) -> GenerationTask:
        return GenerationTask(
            user_id=original.user_id,
            batch_id=uuid4().hex,
            parent_id=original.id,
            mask_id=original.mask_id,
            definition_id=original.definition_id,
            definition_name=original.definition_name,
            definition_prompt=original.definition_prompt,
            spec=original.spec.model_copy(),
            refine_text=refine_text,
            source_image=source_image,
            model=model,
        )

    def _dispatch(self, batch_id: str, tasks: list[GenerationTask]) -> BatchHandle:
        loop = asyncio.get_running_loop()
        handle = BatchHandle(id=batch_id, tasks=[task.model_copy(deep=True) for task in tasks])
        for task in tasks:
            self._board.add(task)
            self._publish(TaskEvent.status(task))
        for task in tasks:
            runner = loop.create_task(self._execute(task), name=f"generation-{task.id}")
            runner.add_done_callback(partial(self._settle, task))
            runner.add_done_callback(partial(self._forget, handle))
            handle._runners.append(runner)
        self._batches[batch_id] = handle
        return handle

    def _forget(self, handle: BatchHandle, _: asyncio.Task[None]) -> None:
        # Finished batches live on only as tasks on the board.
        if handle.done:
            self._batches.pop(handle.id, None)

    async def _execute(self, task: GenerationTask) -> None:
        try:
            definition = SceneDefinition(
                id=task.definition_id,
                name=task.definition_name,
                prompt=task.definition_prompt,
            )
            task.mark_generating(build_prompt(definition, task.spec, task.refine_text))
            self._publish(TaskEvent.status(task))

            backend = self._registry.backend_for(task.model)
            timeout = self._settings.GENERATION_TIMEOUT_SEC
            generated = await asyncio.wait_for(
                backend.generate(task.source_image, task.built_prompt or "", task.model),
                timeout=timeout,
            )
        except asyncio.CancelledError:
            task.mark_cancelled()
            self._publish(TaskEvent.status(task))
            raise
        except asyncio.TimeoutError:
            logger.warning(
                "Generation timed out",
                extra={"task_id": task.id, "timeout": self._settings.GENERATION_TIMEOUT_SEC},
            )
            task.mark_failed(f"Generation timed out after {self._settings.GENERATION_TIMEOUT_SEC:g}s")
            self._publish(TaskEvent.status(task))
            return
        except Exception as exc:
            logger.warning(
                "Generation failed",
                extra={"task_id": task.id, "definition": task.definition_name, "error": str(exc)},
            )
            task.mark_failed(str(exc) or GENERIC_FAILURE_MESSAGE)
            self._publish(TaskEvent.status(task))
            return

        task.mark_succeeded(generated.image_url)
        logger.info(
            "Generation succeeded",
            extra={"task_id": task.id, "definition": task.definition_name},
        )
        self._publish(TaskEvent.status(task))
        self._publish(TaskEvent.succeeded(task))

    def _settle(self, task: GenerationTask, runner: asyncio.Task[None]) -> None:
        # A runner cancelled before its first step never enters _execute.
        if task.is_terminal:
            return
        if runner.cancelled():
            task.mark_cancelled()
        else:
            if task.state is TaskState.QUEUED:
                task.mark_generating(task.built_prompt or "")
            task.mark_failed(GENERIC_FAILURE_MESSAGE)
        self._publish(TaskEvent.status(task))

    def _publish(self, event: TaskEvent) -> None:
        try:
            self._publisher.publish(event)
        except Exception:
            logger.exception(
                "Failed to publish task event",
                extra={"task_id": event.task_id, "type": event.type.value},
            )
