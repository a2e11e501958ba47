from fastapi import APIRouter, WebSocket

from flappy_versus.core.config import settings
from flappy_versus.game.registry import MatchRegistry
from flappy_versus.realtime import Broadcaster, ConnectionHandler

router = APIRouter()


@router.websocket(settings.websocket_path)
async def match_socket(websocket: WebSocket) -> None:
    registry: MatchRegistry = websocket.app.state.match_registry
    broadcaster: Broadcaster = websocket.app.state.broadcaster
    handler = ConnectionHandler(websocket, registry, broadcaster, settings)
    if not await handler.admit(websocket.query_params):
        return

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes")
            if raw is None:
                continue
            await handler.handle_message(raw)
    finally:
        await handler.disconnect()
