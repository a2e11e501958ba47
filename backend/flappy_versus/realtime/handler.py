from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Mapping
from uuid import uuid4

from starlette import status

from flappy_versus.core.config import Settings, settings as default_settings
from flappy_versus.game.registry import MatchRegistry
from flappy_versus.game.state import MatchState, PlayerState
from flappy_versus.realtime.broadcaster import Broadcaster, Socket
from flappy_versus.schemas.match import (
    NICK_TAKEN,
    ROOM_FULL,
    ClientMessage,
    ErrorMessage,
    ReportDead,
    RestartRound,
    SetReady,
    StartRound,
    SyncMessage,
    UpdatePosition,
    WelcomeMessage,
    parse_client_message,
)

logger = logging.getLogger(__name__)

_REJECTIONS = {
    NICK_TAKEN: "That nickname is already in use in this room. Pick another one.",
    ROOM_FULL: "This room is full.",
}


@dataclass(frozen=True)
class JoinParams:
    room_code: str
    nickname: str
    character: str

    @classmethod
    def from_query(cls, query: Mapping[str, str], config: Settings) -> JoinParams | None:
        room_code = (query.get("code") or "").strip()
        if not room_code:
            return None
        nickname = (query.get("nick") or "").strip()[: config.nickname_max_length].strip()
        character = (query.get("char") or "").strip()[: config.character_max_length]
        return cls(
            room_code=room_code,
            nickname=nickname or config.default_nickname,
            character=character or config.default_character,
        )


class ConnectionHandler:
    """Admission, message dispatch and departure for one WebSocket."""

    def __init__(
        self,
        socket: Socket,
        registry: MatchRegistry,
        broadcaster: Broadcaster,
        config: Settings | None = None,
    ) -> None:
        self.socket = socket
        self.registry = registry
        self.broadcaster = broadcaster
        self.config = config or default_settings
        self.connection_id = uuid4().hex
        self.match: MatchState | None = None
        self.player: PlayerState | None = None
        self._dispatch: dict[str, Callable[[ClientMessage], list[SyncMessage]]] = {
            "update_position": self._on_update_position,
            "start": self._on_start,
            "ready": self._on_ready,
            "dead": self._on_dead,
            "restart": self._on_restart,
        }

    @property
    def room_code(self) -> str | None:
        return self.match.room_code if self.match else None

    async def admit(self, query: Mapping[str, str]) -> bool:
        """Run the join handshake; returns ``False`` when the socket was turned away."""

        params = JoinParams.from_query(query, self.config)
        if params is None:
            logger.info("Rejected connection %s without room code", self.connection_id)
            await self.socket.close(code=status.WS_1008_POLICY_VIOLATION)
            return False

        await self.socket.accept()

        match = self.registry.get_or_create(params.room_code, self.connection_id)
        reason = self._admission_error(match, params.nickname)
        if reason is not None:
            self.registry.discard_if_empty(match)
            logger.info("Rejected %r from room %s: %s", params.nickname, params.room_code, reason)
            await self.broadcaster.send_private(
                self.connection_id, self.socket, ErrorMessage(reason=reason, message=_REJECTIONS[reason])
            )
            await self.socket.close(code=status.WS_1008_POLICY_VIOLATION)
            return False

        player = match.add_player(self.connection_id, params.nickname, params.character)
        self.match = match
        self.player = player
        self.broadcaster.attach(self.connection_id, self.socket)
        logger.info("Player %s (%s) joined room %s in slot %d", player.id, player.nickname, match.room_code, player.slot)

        welcome = WelcomeMessage(player_id=player.id, slot=player.slot, room_code=match.room_code)
        await self.broadcaster.publish(match, [match.snapshot()], preface=(self.connection_id, welcome))
        return True

    async def handle_message(self, raw: str | bytes) -> None:
        if self.match is None:
            return
        try:
            message = parse_client_message(raw)
            action = self._dispatch.get(message.type, self._ignore) if message is not None else self._ignore
            snapshots = action(message)
            await self.broadcaster.publish(self.match, snapshots)
        except Exception:
            logger.exception("Dropped message from %s in room %s", self.connection_id, self.room_code)

    async def disconnect(self) -> None:
        match = self.match
        if match is None:
            return
        self.match = None
        self.broadcaster.detach(self.connection_id)
        removed = match.remove_player(self.connection_id)
        if removed is None:
            return
        logger.info("Player %s left room %s", removed.id, match.room_code)
        if self.registry.discard_if_empty(match):
            self.broadcaster.forget_room(match.room_code)
            return
        await self.broadcaster.publish(match, [match.snapshot()])

    def _admission_error(self, match: MatchState, nickname: str) -> str | None:
        if match.nickname_taken(nickname):
            return NICK_TAKEN
        if match.is_full():
            return ROOM_FULL
        return None

    # Dispatch table entries. Each runs without awaiting and returns the
    # snapshots to broadcast, one per state change.

    def _ignore(self, message: ClientMessage | None) -> list[SyncMessage]:
        return []

    def _on_update_position(self, message: UpdatePosition) -> list[SyncMessage]:
        if not self.match.update_position(self.connection_id, message.y):
            return []
        return [self.match.snapshot()]

    def _on_start(self, message: StartRound) -> list[SyncMessage]:
        if not self.match.arm_round(self.connection_id):
            return []
        return [self.match.snapshot()]

    def _on_restart(self, message: RestartRound) -> list[SyncMessage]:
        if not self.match.restart_round(self.connection_id):
            return []
        return [self.match.snapshot()]

    def _on_ready(self, message: SetReady) -> list[SyncMessage]:
        if not self.match.set_ready(self.connection_id, message.ready):
            return []
        snapshots = [self.match.snapshot()]
        if self.match.begin_round_if_all_ready():
            snapshots.append(self.match.snapshot())
        return snapshots

    def _on_dead(self, message: ReportDead) -> list[SyncMessage]:
        if not self.match.mark_dead(self.connection_id):
            return []
        return [self.match.snapshot()]
