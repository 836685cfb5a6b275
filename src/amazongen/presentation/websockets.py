from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect, status

from src.amazongen.application.broadcaster import TaskStatusBroadcaster
from src.amazongen.domain.events.task_event import TaskEvent
from src.amazongen.presentation.dependencies import CurrentUser, UserRole, get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ws"])


class UserConnectionManager:
    """Task-status subscribers keyed by the user whose tasks they watch.

    Sockets are registered only after the caller's identity matched the
    stream owner; a socket that fails a send is dropped.
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, set[WebSocket]] = {}

    async def subscribe(self, owner: CurrentUser, websocket: WebSocket) -> None:
        await websocket.accept()
        self._subscribers.setdefault(owner.id, set()).add(websocket)
        await websocket.send_json({"type": "subscribed", "user_id": owner.id})

    def unsubscribe(self, user_id: str, websocket: WebSocket) -> None:
        sockets = self._subscribers.get(user_id)
        if sockets is None:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._subscribers[user_id]

    def connection_count(self, user_id: str) -> int:
        return len(self._subscribers.get(user_id, ()))

    async def send_to_user(self, user_id: str, message: dict[str, object]) -> None:
        for websocket in list(self._subscribers.get(user_id, ())):
            try:
                await websocket.send_json(message)
            except (RuntimeError, WebSocketDisconnect):
                self.unsubscribe(user_id, websocket)


class WebSocketStatusBroadcaster(TaskStatusBroadcaster):
    def __init__(self, manager: UserConnectionManager) -> None:
        self._manager = manager

    async def broadcast_status(self, event: TaskEvent) -> None:
        await self._manager.send_to_user(
            event.user_id,
            {"type": event.type.value, "task_id": event.task_id, "payload": event.payload},
        )


connection_manager = UserConnectionManager()


def _stream_owner(websocket: WebSocket, user_id: str) -> CurrentUser:
    """Identity of the handshake, which must own the requested stream."""
    caller = get_current_user(
        websocket.headers.get("x-user-id"),
        websocket.headers.get("x-user-role", UserRole.USER.value),
    )
    if caller.id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Stream belongs to another user."
        )
    return caller


@router.websocket("/ws/users/{user_id}/tasks")
async def task_updates(websocket: WebSocket, user_id: str) -> None:
    try:
        owner = _stream_owner(websocket, user_id)
    except HTTPException as exc:
        logger.warning(
            "Rejected task stream subscription",
            extra={"user_id": user_id, "reason": exc.detail},
        )
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(exc.detail))
        return

    try:
        await connection_manager.subscribe(owner, websocket)
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Task stream closed", extra={"user_id": owner.id})
    finally:
        connection_manager.unsubscribe(owner.id, websocket)
