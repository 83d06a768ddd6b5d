# modman/api/events_ws.py
from __future__ import annotations

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from modman.core.jsonutils import safeJsonDumps
from modman.events.bus import eventToDict

router = APIRouter()



@router.websocket("/ws/events")
async def eventsWebSocket(ws: WebSocket) -> None:
    await ws.accept()
    bus = ws.app.state.ctx.bus
    queue = bus.subscribe()

    try:
        # Current busy set first so a fresh client doesn't wait for the next change
        await ws.send_text(safeJsonDumps({"kind": "MOD_BUSY", "data": {"busy": list(ws.app.state.ctx.busy.snapshot())}}))
        while True:
            event = await queue.get()
            await ws.send_text(safeJsonDumps(eventToDict(event)))
    except WebSocketDisconnect:
        # Normal disconnect from the UI.
        pass
    finally:
        bus.unsubscribe(queue)
