from __future__ import annotations

import logging
import random

from flappy_versus.game.state import (
    DEFAULT_COUNTDOWN_MS,
    DEFAULT_SPAWN_Y,
    MAX_SLOTS,
    SEED_BITS,
    Clock,
    MatchState,
    epoch_ms,
)

logger = logging.getLogger(__name__)


class MatchRegistry:
    """Room code -> live ``MatchState`` for this process.

    One instance lives on the application; tests build their own.
    """

    def __init__(
        self,
        *,
        max_players: int = MAX_SLOTS,
        spawn_y: float = DEFAULT_SPAWN_Y,
        countdown_ms: int = DEFAULT_COUNTDOWN_MS,
        seed: int | None = None,
        clock: Clock = epoch_ms,
    ) -> None:
        self._matches: dict[str, MatchState] = {}
        self._max_players = max_players
        self._spawn_y = spawn_y
        self._countdown_ms = countdown_ms
        self._random = random.Random(seed)
        self._clock = clock

    def get(self, room_code: str) -> MatchState | None:
        return self._matches.get(room_code)

    def get_or_create(self, room_code: str, host_connection: str) -> MatchState:
        match = self._matches.get(room_code)
        if match is not None:
            return match
        match = MatchState(
            room_code=room_code,
            host_connection=host_connection,
            seed=self._random.getrandbits(SEED_BITS),
            max_players=self._max_players,
            spawn_y=self._spawn_y,
            countdown_ms=self._countdown_ms,
            rng=self._random,
            clock=self._clock,
        )
        self._matches[room_code] = match
        logger.info("Match created for room %s", room_code)
        return match

    def remove(self, room_code: str) -> None:
        if self._matches.pop(room_code, None) is not None:
            logger.info("Match removed for room %s", room_code)

    def discard_if_empty(self, match: MatchState) -> bool:
        if not match.is_empty():
            return False
        if self._matches.get(match.room_code) is match:
            self.remove(match.room_code)
        return True

    def players_online(self, room_code: str) -> int:
        match = self._matches.get(room_code)
        return len(match.players) if match else 0

    def __contains__(self, room_code: object) -> bool:
        return room_code in self._matches

    def __len__(self) -> int:
        return len(self._matches)
