from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, StrictBool, TypeAdapter, ValidationError

from flappy_versus.schemas.common import APIModel


# Server -> client


class SyncPlayer(APIModel):
    id: str
    slot: int
    y: float
    char: str
    nick: str
    ready: bool
    alive: bool


class SyncMessage(APIModel):
    type: Literal["sync"] = "sync"
    players: list[SyncPlayer]
    started: bool
    starting: bool
    start_time: int | None = None
    seed: int
    round_over: bool
    winner_id: str | None = None
    host_id: str | None = None


class WelcomeMessage(APIModel):
    type: Literal["welcome"] = "welcome"
    player_id: str
    slot: int
    room_code: str


class ErrorMessage(APIModel):
    type: Literal["error"] = "error"
    reason: str
    message: str


NICK_TAKEN = "nick_taken"
ROOM_FULL = "room_full"


# Client -> server


class UpdatePosition(BaseModel):
    type: Literal["update_position"]
    y: float = Field(strict=True, allow_inf_nan=False)


class StartRound(BaseModel):
    type: Literal["start"]


class SetReady(BaseModel):
    type: Literal["ready"]
    ready: StrictBool


class ReportDead(BaseModel):
    type: Literal["dead"]


class RestartRound(BaseModel):
    type: Literal["restart"]


ClientMessage = Annotated[
    Union[UpdatePosition, StartRound, SetReady, ReportDead, RestartRound],
    Field(discriminator="type"),
]

_client_message_adapter: TypeAdapter[ClientMessage] = TypeAdapter(ClientMessage)


def parse_client_message(raw: str | bytes) -> ClientMessage | None:
    """Decode one inbound frame; anything that is not a known message yields ``None``."""

    try:
        return _client_message_adapter.validate_json(raw)
    except ValidationError:
        return None
