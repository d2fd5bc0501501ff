"""WebSocket streams of live store snapshots.

Endpoints:
- ``/ws/collaborations/{collaboration_id}``: the collaboration document after every change
  (``{"collaboration": null}`` once deleted).
- ``/ws/users/{user_id}/invitations``: the user's pending invitations.

Store listeners may fire on any thread, so each frame is handed to the event loop with
``call_soon_threadsafe`` and sent from the connection's own task. The subscription is
released when the client disconnects.

Auth: a Firebase ID token in the ``token`` query parameter, or the ``X-User-Id`` header /
``user_id`` query parameter when ``AUTH_DISABLED``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

import orjson
from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.store import Subscription, get_store
from app.oauth2 import verify_firebase_token
from app.services.collaboration import CollaborationService, InvitationWorkflow

router = APIRouter()
logger = logging.getLogger(__name__)

POLICY_VIOLATION = 4401
FORBIDDEN = 4403

Push = Callable[[Dict[str, Any]], None]


async def _authenticate_websocket(
    websocket: WebSocket, token: Optional[str]
) -> Optional[str]:
    """Return the caller uid, or close the socket and return None."""
    if settings.auth_disabled:
        uid = websocket.headers.get("X-User-Id") or websocket.query_params.get("user_id")
        if uid:
            return uid
        await _safe_close(websocket, code=POLICY_VIOLATION, reason="Missing user id")
        return None
    if not token:
        await _safe_close(
            websocket, code=POLICY_VIOLATION, reason="Missing authentication token"
        )
        return None
    try:
        identity = await run_in_threadpool(verify_firebase_token, token)
        return identity.uid
    except HTTPException:
        await _safe_close(
            websocket, code=POLICY_VIOLATION, reason="Invalid authentication token"
        )
        return None


async def _safe_close(websocket: WebSocket, code: int, reason: str) -> None:
    try:
        await websocket.close(code=code, reason=reason)
    except RuntimeError as exc:
        logger.debug(f"WebSocket already closed: {exc}")


async def _drain(websocket: WebSocket) -> None:
    """Consume client frames until the client goes away."""
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


async def _stream(websocket: WebSocket, subscribe: Callable[[Push], Subscription]) -> None:
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def push(frame: Dict[str, Any]) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, frame)

    subscription = subscribe(push)
    receiver = asyncio.create_task(_drain(websocket))
    try:
        while True:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait(
                {getter, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            if getter not in done:
                getter.cancel()
                break
            frame = getter.result()
            await websocket.send_text(orjson.dumps(frame).decode())
    except WebSocketDisconnect:
        pass
    finally:
        subscription.unsubscribe()
        receiver.cancel()
        logger.debug("WebSocket stream closed")


@router.websocket("/ws/collaborations/{collaboration_id}")
async def collaboration_stream(
    websocket: WebSocket, collaboration_id: str, token: Optional[str] = None
):
    await websocket.accept()
    if await _authenticate_websocket(websocket, token) is None:
        return
    service = CollaborationService(get_store())

    def subscribe(push: Push) -> Subscription:
        return service.watch(
            collaboration_id,
            lambda collaboration: push(
                {
                    "collaboration": collaboration.model_dump(mode="json", by_alias=True)
                    if collaboration
                    else None
                }
            ),
        )

    await _stream(websocket, subscribe)


@router.websocket("/ws/users/{user_id}/invitations")
async def invitation_stream(
    websocket: WebSocket, user_id: str, token: Optional[str] = None
):
    await websocket.accept()
    uid = await _authenticate_websocket(websocket, token)
    if uid is None:
        return
    if uid != user_id:
        await _safe_close(websocket, code=FORBIDDEN, reason="Not your invitations")
        return
    workflow = InvitationWorkflow(get_store())

    def subscribe(push: Push) -> Subscription:
        return workflow.watch_pending_for_user(
            user_id,
            lambda invitations: push(
                {
                    "invitations": [
                        i.model_dump(mode="json", by_alias=True) for i in invitations
                    ]
                }
            ),
        )

    await _stream(websocket, subscribe)
