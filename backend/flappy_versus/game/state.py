from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable
from uuid import uuid4

from flappy_versus.schemas.match import SyncMessage, SyncPlayer

logger = logging.getLogger(__name__)

SEED_BITS = 31
MAX_SLOTS = 4
DEFAULT_SPAWN_Y = 320.0
DEFAULT_COUNTDOWN_MS = 3000

Clock = Callable[[], int]


def epoch_ms() -> int:
    return int(time.time() * 1000)


def normalize_nickname(nickname: str) -> str:
    return nickname.strip().lower()


@dataclass(frozen=True)
class Lobby:
    name = "lobby"


@dataclass(frozen=True)
class Starting:
    name = "starting"


@dataclass(frozen=True)
class Playing:
    start_time_ms: int
    name = "playing"


@dataclass(frozen=True)
class RoundOver:
    start_time_ms: int
    winner_id: str | None
    name = "round_over"


Phase = Lobby | Starting | Playing | RoundOver


@dataclass
class PlayerState:
    id: str
    slot: int
    nickname: str
    character: str
    y: float = DEFAULT_SPAWN_Y
    ready: bool = False
    alive: bool = True

    def reset_for_round(self, spawn_y: float) -> None:
        self.alive = True
        self.y = spawn_y

    def as_sync_player(self) -> SyncPlayer:
        return SyncPlayer(
            id=self.id,
            slot=self.slot,
            y=self.y,
            char=self.character,
            nick=self.nickname,
            ready=self.ready,
            alive=self.alive,
        )


@dataclass
class MatchState:
    """Live session for one room code.

    Every transition method is synchronous and reports whether it changed
    anything; the caller broadcasts a snapshot after each ``True``.
    Players are keyed by connection id, never by the socket object.
    """

    room_code: str
    host_connection: str
    seed: int
    phase: Phase = field(default_factory=Lobby)
    players: dict[str, PlayerState] = field(default_factory=dict)
    max_players: int = MAX_SLOTS
    spawn_y: float = DEFAULT_SPAWN_Y
    countdown_ms: int = DEFAULT_COUNTDOWN_MS
    rng: random.Random = field(default_factory=random.Random, repr=False)
    clock: Clock = field(default=epoch_ms, repr=False)

    @property
    def round_over(self) -> bool:
        return isinstance(self.phase, RoundOver)

    @property
    def start_time_ms(self) -> int | None:
        if isinstance(self.phase, (Playing, RoundOver)):
            return self.phase.start_time_ms
        return None

    @property
    def winner_id(self) -> str | None:
        if isinstance(self.phase, RoundOver):
            return self.phase.winner_id
        return None

    @property
    def host_player(self) -> PlayerState | None:
        return self.players.get(self.host_connection)

    def is_empty(self) -> bool:
        return not self.players

    def is_full(self) -> bool:
        return len(self.players) >= self.max_players

    def nickname_taken(self, nickname: str) -> bool:
        wanted = normalize_nickname(nickname)
        return any(normalize_nickname(player.nickname) == wanted for player in self.players.values())

    def next_free_slot(self) -> int | None:
        used = {player.slot for player in self.players.values()}
        for candidate in range(1, self.max_players + 1):
            if candidate not in used:
                return candidate
        return None

    def new_seed(self) -> int:
        return self.rng.getrandbits(SEED_BITS)

    # Membership

    def add_player(self, connection_id: str, nickname: str, character: str) -> PlayerState:
        if connection_id in self.players:
            raise ValueError("Connection is already part of this match")
        if self.nickname_taken(nickname):
            raise ValueError("Nickname already in use")
        slot = self.next_free_slot()
        if slot is None:
            raise ValueError("Room is full")
        player = PlayerState(
            id=uuid4().hex,
            slot=slot,
            nickname=nickname,
            character=character,
            y=self.spawn_y,
        )
        self.players[connection_id] = player
        if self.host_connection not in self.players:
            self.host_connection = connection_id
        return player

    def remove_player(self, connection_id: str) -> PlayerState | None:
        """Drop a departing connection and repair host, round and readiness.

        Returns the removed player, or ``None`` if the connection was unknown.
        When the room becomes empty the state is left as-is; the registry owns
        discarding it.
        """

        player = self.players.pop(connection_id, None)
        if player is None:
            return None
        if not self.players:
            return player

        if connection_id == self.host_connection:
            self.host_connection = next(iter(self.players))
            logger.info("Room %s host transferred to %s", self.room_code, self.players[self.host_connection].id)

        if isinstance(self.phase, Playing):
            self.resolve_round_if_decided()
        elif isinstance(self.phase, Starting):
            self.begin_round_if_all_ready()
        return player

    # Transitions

    def update_position(self, connection_id: str, y: float) -> bool:
        player = self.players.get(connection_id)
        if player is None or not player.alive or self.round_over:
            return False
        player.y = y
        return True

    def arm_round(self, connection_id: str) -> bool:
        """``start``: host only, refused while a round is in progress."""

        if connection_id != self.host_connection:
            return False
        if isinstance(self.phase, Playing):
            return False
        self._rearm()
        return True

    def restart_round(self, connection_id: str) -> bool:
        """``restart``: host only, re-arms from any phase."""

        if connection_id != self.host_connection:
            return False
        self._rearm()
        return True

    def set_ready(self, connection_id: str, ready: bool) -> bool:
        player = self.players.get(connection_id)
        if player is None:
            return False
        player.ready = ready
        return True

    def begin_round_if_all_ready(self) -> bool:
        if not isinstance(self.phase, Starting) or not self.players:
            return False
        if not all(player.ready for player in self.players.values()):
            return False
        self.seed = self.new_seed()
        for player in self.players.values():
            player.reset_for_round(self.spawn_y)
        self.phase = Playing(start_time_ms=self.clock() + self.countdown_ms)
        logger.info("Room %s round started with %d players", self.room_code, len(self.players))
        return True

    def mark_dead(self, connection_id: str) -> bool:
        player = self.players.get(connection_id)
        if player is None or not isinstance(self.phase, Playing):
            return False
        player.alive = False
        self.resolve_round_if_decided()
        return True

    def alive_players(self) -> list[PlayerState]:
        return [player for player in self.players.values() if player.alive]

    def resolve_round_if_decided(self) -> bool:
        if not isinstance(self.phase, Playing):
            return False
        survivors = self.alive_players()
        if len(survivors) > 1:
            return False
        winner_id = survivors[0].id if survivors else None
        self.phase = RoundOver(start_time_ms=self.phase.start_time_ms, winner_id=winner_id)
        logger.info("Room %s round over, winner=%s", self.room_code, winner_id or "draw")
        return True

    def _rearm(self) -> None:
        for player in self.players.values():
            player.ready = False
            player.reset_for_round(self.spawn_y)
        self.seed = self.new_seed()
        self.phase = Starting()

    # Serialization

    def snapshot(self) -> SyncMessage:
        ordered = sorted(self.players.values(), key=lambda player: player.slot)
        host = self.host_player
        return SyncMessage(
            players=[player.as_sync_player() for player in ordered],
            started=isinstance(self.phase, (Playing, RoundOver)),
            starting=isinstance(self.phase, Starting),
            start_time=self.start_time_ms,
            seed=self.seed,
            round_over=self.round_over,
            winner_id=self.winner_id,
            host_id=host.id if host else None,
        )
