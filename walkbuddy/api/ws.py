"""WebSocket: real-time updates channel for walk requests and matches."""
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from walkbuddy.auth.jwt import user_id_from_token
from walkbuddy.services.ws_updates import updates_manager

router = APIRouter(tags=["ws"])


@router.websocket("/ws/updates")
async def updates_ws(websocket: WebSocket):
    """Connect with ?token=JWT. Server pushes { type: 'walk_requests' | 'matches', ... } when data changes."""
    await websocket.accept()
    token = websocket.query_params.get("token")
    if not token:
        await websocket.close(code=4000)
        return
    user_id = user_id_from_token(token)
    if user_id is None:
        await websocket.close(code=4001)
        return
    updates_manager.connect(user_id, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        updates_manager.disconnect(user_id, websocket)
