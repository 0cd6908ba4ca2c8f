import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from intake.services.event_bus import event_bus
from intake.store import get_store

logger = logging.getLogger(__name__)
router = APIRouter()

PING_INTERVAL = 10.0


@router.websocket("/ws/sessions/{session_id}")
async def session_events_ws(websocket: WebSocket, session_id: str):
    """WebSocket for live updates to one intake session.

    Events include: surgeries_loaded, record_added, record_deleted, record_merged.
    """
    await websocket.accept()
    if get_store().get(session_id) is None:
        await websocket.send_json({"type": "error", "message": f"Session {session_id} not found"})
        await websocket.close()
        return

    queue = event_bus.subscribe(session_id)
    await websocket.send_json({"type": "subscribed", "session_id": session_id})
    logger.info("Client subscribed to session %s", session_id)

    try:
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=PING_INTERVAL)
            except asyncio.TimeoutError:
                event = {"type": "ping"}

            try:
                await websocket.send_json(event)
            except Exception:
                logger.debug("Failed to send event to session client")
                break
    except WebSocketDisconnect:
        logger.info("Session %s client disconnected", session_id)
    except asyncio.CancelledError:
        pass
    finally:
        event_bus.unsubscribe(session_id, queue)
