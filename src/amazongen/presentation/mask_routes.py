from __future__ import annotations

from fastapi import APIRouter, Depends, status

from src.amazongen.application.dtos import CreateMaskRequest, DefinitionInput, UpdateMaskRequest
from src.amazongen.application.services import MaskService
from src.amazongen.domain.models.mask import ProductMask, SceneDefinition
from src.amazongen.presentation.dependencies import (
    DOMAIN_ERRORS,
    CurrentUser,
    get_current_user,
    get_mask_service,
    http_error,
    require_admin,
)

router = APIRouter(prefix="/masks", tags=["masks"])


@router.get("", response_model=list[ProductMask], summary="List public masks")
async def list_masks(
    _: CurrentUser = Depends(get_current_user),
    masks: MaskService = Depends(get_mask_service),
) -> list[ProductMask]:
    return await masks.list_masks()


@router.get("/{mask_id}", response_model=ProductMask, summary="Get a mask")
async def get_mask(
    mask_id: str,
    _: CurrentUser = Depends(get_current_user),
    masks: MaskService = Depends(get_mask_service),
) -> ProductMask:
    try:
        return await masks.get_mask(mask_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.post(
    "",
    response_model=ProductMask,
    status_code=status.HTTP_201_CREATED,
    summary="Create a mask",
)
async def create_mask(
    body: CreateMaskRequest,
    admin: CurrentUser = Depends(require_admin),
    masks: MaskService = Depends(get_mask_service),
) -> ProductMask:
    try:
        return await masks.create_mask(body.name, body.definitions, created_by=admin.id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.put("/{mask_id}", response_model=ProductMask, summary="Rename a mask")
async def update_mask(
    mask_id: str,
    body: UpdateMaskRequest,
    _: CurrentUser = Depends(require_admin),
    masks: MaskService = Depends(get_mask_service),
) -> ProductMask:
    try:
        return await masks.update_mask(mask_id, body.name)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.delete("/{mask_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a mask")
async def delete_mask(
    mask_id: str,
    _: CurrentUser = Depends(require_admin),
    masks: MaskService = Depends(get_mask_service),
) -> None:
    try:
        await masks.delete_mask(mask_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.post(
    "/{mask_id}/definitions",
    response_model=SceneDefinition,
    status_code=status.HTTP_201_CREATED,
    summary="Append a scene definition",
)
async def add_definition(
    mask_id: str,
    body: DefinitionInput,
    _: CurrentUser = Depends(require_admin),
    masks: MaskService = Depends(get_mask_service),
) -> SceneDefinition:
    try:
        return await masks.add_definition(mask_id, body.name, body.prompt)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.put(
    "/definitions/{definition_id}",
    response_model=SceneDefinition,
    summary="Update a scene definition",
)
async def update_definition(
    definition_id: str,
    body: DefinitionInput,
    _: CurrentUser = Depends(require_admin),
    masks: MaskService = Depends(get_mask_service),
) -> SceneDefinition:
    try:
        return await masks.update_definition(definition_id, body.name, body.prompt)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc


@router.delete(
    "/definitions/{definition_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a scene definition",
)
async def delete_definition(
    definition_id: str,
    _: CurrentUser = Depends(require_admin),
    masks: MaskService = Depends(get_mask_service),
) -> None:
    try:
        await masks.delete_definition(definition_id)
    except DOMAIN_ERRORS as exc:
        raise http_error(exc) from exc
