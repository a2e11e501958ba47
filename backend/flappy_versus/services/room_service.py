from __future__ import annotations

import hmac

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flappy_versus.core.config import settings
from flappy_versus.models import Room
from flappy_versus.schemas.room import RoomCreateRequest, RoomJoinRequest
from flappy_versus.services.utils import generate_room_code


class RoomService:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_room(self, payload: RoomCreateRequest) -> Room:
        for _ in range(10):
            candidate_code = generate_room_code(settings.room_code_length)
            exists = await self.session.execute(select(Room).where(Room.code == candidate_code))
            if exists.scalar_one_or_none():
                continue
            room = Room(
                code=candidate_code,
                name=payload.name,
                is_private=payload.is_private,
                password=payload.password,
            )
            self.session.add(room)
            await self.session.flush()
            await self.session.refresh(room)
            return room
        raise RuntimeError("Unable to generate unique room code")

    async def join_room(self, payload: RoomJoinRequest) -> Room:
        room = await self.get_room_by_code(payload.code)
        if room.is_private and not _password_matches(room.password, payload.password):
            raise PermissionError("Invalid password")
        return room

    async def get_room_by_code(self, room_code: str) -> Room:
        result = await self.session.execute(select(Room).where(Room.code == room_code.strip()))
        room = result.scalar_one_or_none()
        if room is None:
            raise LookupError("Room not found")
        return room


def _password_matches(expected: str | None, supplied: str | None) -> bool:
    if expected is None:
        return True
    return hmac.compare_digest(expected.encode(), (supplied or "").encode())
