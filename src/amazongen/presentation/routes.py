from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status

from src.amazongen.application.dtos import (
    BatchListResponse,
    BatchRequest,
    BatchResponse,
    CancelResponse,
    ModelsResponse,
    PreparedImageResponse,
    RegenerateRequest,
    SyncResponse,
)
from src.amazongen.application.history_sync import HistorySynchronizer
from src.amazongen.application.orchestrator import BatchHandle, GenerationOrchestrator
from src.amazongen.application.services import HistoryService, MaskService
from src.amazongen.application.source_images import SourceImageService
from src.amazongen.domain.exceptions import BatchValidationError
from src.amazongen.domain.models.generation_task import GenerationTask
from src.amazongen.domain.models.history import HistoryPage
from src.amazongen.domain.models.model_ref import MODEL_CATALOGUE
from src.amazongen.infrastructure.providers.images import to_data_url
from src.amazongen.presentation.dependencies import (
    DOMAIN_ERRORS,
    CurrentUser,
    get_current_user,
    get_history_service,
    get_mask_service,
    get_orchestrator,
    get_source_image_service,
    get_synchronizer,
    http_error,
)
from src.setup.api_config import get_api_settings

router = APIRouter(tags=["generation"])
logger = logging.getLogger(__name__)

_settings = get_api_settings()
ALLOWED_UPLOAD_TYPES = frozenset({"image/jpeg", "image/png", "image/webp", "image/gif"})


def _batch_response(handle: BatchHandle) -> BatchResponse:
    return BatchResponse(batch_id=handle.id, tasks=handle.tasks)


@router.get("/health", tags=["health"], summary="Liveness probe")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/models", response_model=ModelsResponse, summary="List generation models")
async def list_models(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> ModelsResponse:
    return ModelsResponse(default=orchestrator.default_model, models=list(MODEL_CATALOGUE))


@router.post(
    "/images/prepare",
    response_model=PreparedImageResponse,
    summary="Prepare a source image",
    description=(
        "Encodes an uploaded product photo as a data URL and, unless disabled, "
        "puts the product on a pure white background. Background removal is "
        "best effort and falls back to the original image."
    ),
)
async def prepare_image(
    file: UploadFile = File(..., description="jpeg, png, webp or gif, 10 MB max."),
    remove_background: bool = Query(True),
    user: CurrentUser = Depends(get_current_user),
    service: SourceImageService = Depends(get_source_image_service),
) -> PreparedImageResponse:
    if file.content_type not in ALLOWED_UPLOAD_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only JPEG, PNG, WebP and GIF images are allowed.",
        )
    data = await file.read()
    if len(data) > _settings.MAX_UPLOAD_MB * 1024 * 1024:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Images are limited to {_settings.MAX_UPLOAD_MB} MB.",
        )
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Empty upload.")

    image = to_data_url(data, file.content_type)
    if not remove_background:
        return PreparedImageResponse(image=image, background_removed=False)
    prepared = await service.prepare(image)
    logger.info(
        "Prepared source image",
        extra={"user_id": user.id, "background_removed": prepared.background_removed},
    )
    return PreparedImageResponse(image=prepared.image, background_removed=prepared.background_removed)


@router.post(
    "/batches",
    response_model=BatchListResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start generation",
    description=(
        "Starts one batch per source image with one task per selected scene "
        "definition. Returns the queued tasks immediately; poll /tasks or "
        "subscribe to the task websocket for progress."
    ),
)
async def create_batches(
    body: BatchRequest,
    user: CurrentUser = Depends(get_current_user),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
    masks: MaskService = Depends(get_mask_service),
) -> BatchListResponse:
    try:
        if not body.source_images:
            raise BatchValidationError("Upload at least one source image.")
        definitions = await masks.select_definitions(body.mask_id, body.definition_ids)
        handles = orchestrator.run_batches(
            user.id,
            definitions,
            body.source_images,
            body.model or orchestrator.default_model,
            body.spec,
            mask_id=body.mask_id,
        )
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return BatchListResponse(batches=[_batch_response(handle) for handle in handles])


@router.post("/batches/{batch_id}/cancel", response_model=CancelResponse, summary="Cancel a batch")
async def cancel_batch(
    batch_id: str,
    user: CurrentUser = Depends(get_current_user),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> CancelResponse:
    handle = orchestrator.get_batch(batch_id)
    if handle is None:
        # Already finished: nothing left to cancel if the caller owns it.
        if any(task.batch_id == batch_id for task in orchestrator.board.list(user.id)):
            return CancelResponse(batch_id=batch_id, cancelled=0)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Batch not found.")
    if any(task.user_id != user.id for task in handle.tasks):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Batch not found.")
    return CancelResponse(batch_id=batch_id, cancelled=orchestrator.cancel_batch(batch_id))


@router.get("/tasks", response_model=list[GenerationTask], summary="List session tasks")
async def list_tasks(
    user: CurrentUser = Depends(get_current_user),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> list[GenerationTask]:
    """Current session tasks of the caller, newest first."""
    return orchestrator.board.list(user.id)


@router.get("/tasks/{task_id}", response_model=GenerationTask, summary="Get a session task")
async def get_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> GenerationTask:
    try:
        return orchestrator.board.get(task_id, user.id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.post(
    "/tasks/{task_id}/retry",
    response_model=BatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Retry a failed task",
)
async def retry_task(
    task_id: str,
    user: CurrentUser = Depends(get_current_user),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> BatchResponse:
    try:
        return _batch_response(orchestrator.retry(user.id, task_id))
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.post(
    "/tasks/{task_id}/regenerate",
    response_model=BatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Refine a succeeded task",
    description="Starts a new task that uses the task's generated image as its source.",
)
async def regenerate_task(
    task_id: str,
    body: RegenerateRequest | None = None,
    user: CurrentUser = Depends(get_current_user),
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> BatchResponse:
    body = body or RegenerateRequest()
    try:
        handle = orchestrator.regenerate(user.id, task_id, body.refine_text, body.model)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
    return _batch_response(handle)


@router.get("/history", response_model=HistoryPage, tags=["history"], summary="List history")
async def list_history(
    page: int = Query(1, ge=1),
    limit: int = Query(_settings.HISTORY_PAGE_SIZE, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    history: HistoryService = Depends(get_history_service),
) -> HistoryPage:
    return await history.list_history(user.id, page, limit)


@router.delete(
    "/history/{history_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["history"],
    summary="Delete a history entry",
)
async def delete_history(
    history_id: str,
    user: CurrentUser = Depends(get_current_user),
    history: HistoryService = Depends(get_history_service),
) -> None:
    try:
        await history.delete_history(user.id, history_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.post(
    "/history/sync",
    response_model=SyncResponse,
    tags=["history"],
    summary="Persist unsaved results",
    description="Writes every succeeded, not yet persisted session task of the caller to history.",
)
async def sync_history(
    user: CurrentUser = Depends(get_current_user),
    synchronizer: HistorySynchronizer = Depends(get_synchronizer),
) -> SyncResponse:
    return SyncResponse(written=await synchronizer.scan_and_submit(user.id))
