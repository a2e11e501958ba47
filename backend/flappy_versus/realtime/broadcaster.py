from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, Sequence

from starlette.websockets import WebSocketDisconnect

from flappy_versus.game.state import MatchState
from flappy_versus.schemas.common import APIModel
from flappy_versus.schemas.match import SyncMessage

logger = logging.getLogger(__name__)


class Socket(Protocol):
    async def accept(self) -> None: ...

    async def send_json(self, data: Any) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class Broadcaster:
    """Fans full match snapshots out to every socket in a room.

    Payloads are rendered before the first await, and delivery per room runs
    under one lock, so clients see snapshots in the order the state changed.
    """

    def __init__(self) -> None:
        self._sockets: dict[str, Socket] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def attach(self, connection_id: str, socket: Socket) -> None:
        self._sockets[connection_id] = socket

    def detach(self, connection_id: str) -> None:
        self._sockets.pop(connection_id, None)

    def forget_room(self, room_code: str) -> None:
        self._locks.pop(room_code, None)

    async def send_private(self, connection_id: str, socket: Socket, message: APIModel) -> bool:
        return await self._deliver(connection_id, socket, message.to_wire())

    async def publish(
        self,
        match: MatchState,
        snapshots: Sequence[SyncMessage],
        *,
        preface: tuple[str, APIModel] | None = None,
    ) -> None:
        """Deliver ``snapshots`` to the whole room, optionally preceded by one private message."""

        if not snapshots and preface is None:
            return
        payloads = [snapshot.to_wire() for snapshot in snapshots]
        recipients = [
            (connection_id, self._sockets[connection_id])
            for connection_id in match.players
            if connection_id in self._sockets
        ]
        private = None
        if preface is not None and preface[0] in self._sockets:
            private = (preface[0], self._sockets[preface[0]], preface[1].to_wire())

        lock = self._locks.setdefault(match.room_code, asyncio.Lock())
        async with lock:
            if private is not None:
                await self._deliver(*private)
            for payload in payloads:
                for connection_id, socket in recipients:
                    await self._deliver(connection_id, socket, payload)

    async def _deliver(self, connection_id: str, socket: Socket, payload: dict[str, Any]) -> bool:
        try:
            await socket.send_json(payload)
        except (RuntimeError, OSError, WebSocketDisconnect) as exc:
            # Socket is closing; its own disconnect path repairs the room.
            logger.debug("Dropped %s message for %s: %s", payload.get("type"), connection_id, exc)
            return False
        return True
