from __future__ import annotations

from datetime import datetime

from pydantic import Field, model_validator

from flappy_versus.schemas.common import APIModel


class RoomCreateRequest(APIModel):
    name: str = Field(min_length=1, max_length=64)
    is_private: bool = Field(default=False)
    password: str | None = Field(default=None, max_length=128)

    @model_validator(mode="after")
    def _private_rooms_need_password(self) -> RoomCreateRequest:
        self.name = self.name.strip()
        if not self.name:
            raise ValueError("Room name must not be blank")
        if self.is_private and not (self.password or "").strip():
            raise ValueError("Private rooms require a password")
        if not self.is_private:
            self.password = None
        return self


class RoomJoinRequest(APIModel):
    code: str = Field(min_length=1, max_length=12)
    password: str | None = Field(default=None, max_length=128)


class RoomRead(APIModel):
    id: int
    code: str
    name: str
    is_private: bool
    created_at: datetime
    players_online: int = Field(default=0)
