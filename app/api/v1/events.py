import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from app.api.deps import resolve_user_from_token
from app.core.broadcast import channel_hub
from app.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    try:
        while True:
            # client frames carry no meaning, reading only detects the disconnect
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/ws")
async def booking_events(
    websocket: WebSocket,
    token: str = Query(...),
    db: Session = Depends(get_db),
) -> None:
    user = await asyncio.to_thread(resolve_user_from_token, token, db)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    user_id = user.id
    # no database access past this point
    db.close()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def deliver(event: dict[str, Any]) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, event)

    # subscribe before accepting so nothing published after the handshake is missed
    subscription = channel_hub.subscribe(owner_id=user_id, deliver=deliver)
    disconnect_watch: asyncio.Task | None = None
    try:
        await websocket.accept()
        await websocket.send_json({"event": "connected", "user_id": user_id})
        logger.info("push_client_connected user_id=%s", user_id)

        disconnect_watch = asyncio.create_task(_wait_for_disconnect(websocket))
        while True:
            next_event = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait(
                {next_event, disconnect_watch},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if disconnect_watch in done:
                next_event.cancel()
                break
            await websocket.send_json(next_event.result())
    except WebSocketDisconnect:
        pass
    finally:
        channel_hub.unsubscribe(subscription)
        if disconnect_watch is not None:
            disconnect_watch.cancel()
        logger.info("push_client_disconnected user_id=%s", user_id)
