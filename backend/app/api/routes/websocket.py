"""
WebSocket Routes

Real-time communication for:
- The player's own action results (private events)
- Public activity (who moved, that someone buried loot)
- Actions and state requests sent over the socket
"""

import asyncio
import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from backend.app.core import (
    ActionRequest, ActionType, Coordinate, GameEngine, GameError, GameEvent,
)
from .game import get_engine

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Connection Manager
# =============================================================================

class EventStream:
    """
    Engine listener feeding one connection.

    Events may be emitted from another thread or event loop, so they are
    handed over with call_soon_threadsafe.
    """

    def __init__(self, identity: str, loop: asyncio.AbstractEventLoop):
        self.identity = identity
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue()

    def __call__(self, event: GameEvent):
        if event.visible_to(self.identity):
            self.loop.call_soon_threadsafe(self.queue.put_nowait, event)


class ConnectionManager:
    """Manages WebSocket connections for real-time updates"""

    def __init__(self):
        self.streams: Dict[WebSocket, EventStream] = {}

    async def connect(self, websocket: WebSocket, engine: GameEngine, wallet: str) -> EventStream:
        """Accept a new connection and subscribe it to the engine"""
        await websocket.accept()

        stream = EventStream(wallet, asyncio.get_running_loop())
        engine.add_event_listener(None, stream)
        self.streams[websocket] = stream

        await websocket.send_json({
            "type": "connected",
            "gameId": engine.game_id,
            "message": "Connected to game",
        })
        return stream

    def disconnect(self, websocket: WebSocket, engine: GameEngine):
        """Remove a connection"""
        stream = self.streams.pop(websocket, None)
        if stream is not None:
            engine.remove_event_listener(None, stream)


# Global connection manager
manager = ConnectionManager()


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@router.websocket("/game")
async def game_websocket(
    websocket: WebSocket,
    wallet: str = Query(..., description="Player wallet address"),
    engine: GameEngine = Depends(get_engine),
):
    """
    WebSocket connection for one player.

    Clients receive:
    - Their own events and public events
    - Replies to ping, request_state and action messages
    """
    if not wallet.strip():
        await websocket.close(code=1008)
        return

    stream = await manager.connect(websocket, engine, wallet)
    forwarder = asyncio.create_task(forward_events(websocket, stream))

    try:
        while True:
            data = await websocket.receive_text()

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await websocket.send_json({
                    "type": "error",
                    "message": "Invalid JSON"
                })
                continue
            await handle_game_message(websocket, engine, wallet, message)

    except WebSocketDisconnect:
        pass
    finally:
        forwarder.cancel()
        manager.disconnect(websocket, engine)


async def forward_events(websocket: WebSocket, stream: EventStream):
    """Push queued engine events to the client"""
    while True:
        event = await stream.queue.get()
        await websocket.send_json({
            "type": "event",
            "event": event.to_dict(),
        })


async def handle_game_message(websocket: WebSocket, engine: GameEngine, wallet: str,
                              message: Dict[str, Any]):
    """Handle incoming WebSocket messages"""
    msg_type = message.get("type", "") if isinstance(message, dict) else ""

    if msg_type == "ping":
        # Keep-alive
        await websocket.send_json({"type": "pong"})

    elif msg_type == "request_state":
        try:
            state = engine.get_state(wallet)
        except GameError as e:
            await websocket.send_json({"type": "error", "message": e.reason})
            return
        await websocket.send_json({
            "type": "state",
            "state": state.to_dict(),
        })

    elif msg_type == "action":
        try:
            action_type = ActionType[str(message.get("action", "")).upper()]
        except KeyError:
            await websocket.send_json({
                "type": "error",
                "message": f"Unknown action: {message.get('action')}"
            })
            return

        request = ActionRequest(
            action_type=action_type,
            identity=wallet,
            target=Coordinate(message.get("targetX"), message.get("targetY")),
            amount=message.get("amount"),
        )
        outcome = await engine.perform(request)
        await websocket.send_json({
            "type": "action_result",
            "result": outcome.to_dict(),
        })

    else:
        await websocket.send_json({
            "type": "error",
            "message": f"Unknown message type: {msg_type}"
        })
