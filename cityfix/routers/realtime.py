# File: cityfix/routers/realtime.py
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

router = APIRouter(tags=["realtime"])
logger = logging.getLogger(__name__)


async def _serve_pings(websocket: WebSocket) -> None:
    while True:
        msg = await websocket.receive_text()
        if msg == "ping":
            await websocket.send_json({"type": "pong"})


@router.websocket("/reports/ws")
async def reports_ws(websocket: WebSocket):
    manager = websocket.app.state.ws_manager
    await manager.connect(websocket)
    try:
        await _serve_pings(websocket)
    except WebSocketDisconnect:
        pass
    finally:
        manager.disconnect(websocket)
        logger.debug("websocket client left, %d remaining", manager.client_count)


@router.websocket("/reports/{report_id}/comments/ws")
async def report_comments_ws(websocket: WebSocket, report_id: str):
    """Pushes comment inserts for a single report."""
    backend = websocket.app.state.issue_backend
    await websocket.accept()
    subscription = backend.subscribe_comments(
        report_id, lambda event: websocket.send_json(event.as_message())
    )
    try:
        await _serve_pings(websocket)
    except WebSocketDisconnect:
        pass
    finally:
        subscription.unsubscribe()
