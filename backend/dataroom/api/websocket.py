from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from dataroom.api.deps import get_coordinator
from dataroom.services.event_bus import event_bus

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Stream workspace events; the current sync status is sent on connect."""
    await event_bus.connect(websocket)
    await websocket.send_json({"type": "sync_status_changed", "data": get_coordinator().status_dict()})
    try:
        while True:
            # Client messages are ignored; receiving detects the disconnect
            await websocket.receive_text()
    except WebSocketDisconnect:
        await event_bus.disconnect(websocket)
