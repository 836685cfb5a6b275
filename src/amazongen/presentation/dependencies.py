from __future__ import annotations

from enum import Enum

import inject
from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel

from src.amazongen.application.history_sync import HistorySynchronizer
from src.amazongen.application.orchestrator import GenerationOrchestrator
from src.amazongen.application.services import HistoryService, MaskService
from src.amazongen.application.source_images import SourceImageService
from src.amazongen.domain.exceptions import (
    BatchValidationError,
    DefinitionNotFoundError,
    HistoryAccessDeniedError,
    HistoryNotFoundError,
    InvalidTaskOperationError,
    InvalidTransitionError,
    MaskNotFoundError,
    MaskValidationError,
    TaskNotFoundError,
    UnknownProviderError,
)

_STATUS_BY_ERROR: dict[type[Exception], int] = {
    BatchValidationError: status.HTTP_400_BAD_REQUEST,
    MaskValidationError: status.HTTP_400_BAD_REQUEST,
    UnknownProviderError: status.HTTP_400_BAD_REQUEST,
    HistoryAccessDeniedError: status.HTTP_403_FORBIDDEN,
    TaskNotFoundError: status.HTTP_404_NOT_FOUND,
    MaskNotFoundError: status.HTTP_404_NOT_FOUND,
    DefinitionNotFoundError: status.HTTP_404_NOT_FOUND,
    HistoryNotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidTaskOperationError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
}

DOMAIN_ERRORS: tuple[type[Exception], ...] = tuple(_STATUS_BY_ERROR)


def http_error(exc: Exception) -> HTTPException:
    """Translate a domain exception into the matching HTTP error."""
    for error_type, status_code in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class CurrentUser(BaseModel):
    id: str
    role: UserRole = UserRole.USER

    @property
    def is_admin(self) -> bool:
        return self.role is UserRole.ADMIN


def get_current_user(
    x_user_id: str | None = Header(default=None, description="Authenticated user id."),
    x_user_role: str = Header(default=UserRole.USER.value, description="'user' or 'admin'."),
) -> CurrentUser:
    """Identity forwarded by the authenticating proxy."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user id.")
    try:
        role = UserRole(x_user_role.strip().lower())
    except ValueError:
        raise HTTPException(  # noqa: B904
            status_code=status.HTTP_403_FORBIDDEN, detail=f"Unknown role '{x_user_role}'."
        )
    return CurrentUser(id=x_user_id.strip(), role=role)


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required.")
    return user


def get_orchestrator() -> GenerationOrchestrator:
    return inject.instance(GenerationOrchestrator)


def get_synchronizer() -> HistorySynchronizer:
    return inject.instance(HistorySynchronizer)


def get_mask_service() -> MaskService:
    return MaskService()


def get_history_service() -> HistoryService:
    return HistoryService()


def get_source_image_service() -> SourceImageService:
    return SourceImageService()
