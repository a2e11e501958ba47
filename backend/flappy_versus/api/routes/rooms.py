import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from flappy_versus.api.dependencies import get_match_registry, get_session
from flappy_versus.game.registry import MatchRegistry
from flappy_versus.models import Room
from flappy_versus.schemas.room import RoomCreateRequest, RoomJoinRequest, RoomRead
from flappy_versus.services.room_service import RoomService

logger = logging.getLogger(__name__)

router = APIRouter()


def _room_read(room: Room, registry: MatchRegistry) -> RoomRead:
    room_schema = RoomRead.model_validate(room)
    room_schema.players_online = registry.players_online(room.code)
    return room_schema


@router.post("", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
async def create_room(
    payload: RoomCreateRequest,
    session: AsyncSession = Depends(get_session),
    registry: MatchRegistry = Depends(get_match_registry),
) -> RoomRead:
    service = RoomService(session)
    try:
        room = await service.create_room(payload)
        await session.commit()
    except RuntimeError as exc:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    logger.info("Room %s created (private=%s)", room.code, room.is_private)
    return _room_read(room, registry)


@router.post("/join", response_model=RoomRead)
async def join_room(
    payload: RoomJoinRequest,
    session: AsyncSession = Depends(get_session),
    registry: MatchRegistry = Depends(get_match_registry),
) -> RoomRead:
    service = RoomService(session)
    try:
        room = await service.join_room(payload)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    return _room_read(room, registry)


@router.get("/{room_code}", response_model=RoomRead)
async def get_room(
    room_code: str,
    session: AsyncSession = Depends(get_session),
    registry: MatchRegistry = Depends(get_match_registry),
) -> RoomRead:
    service = RoomService(session)
    try:
        room = await service.get_room_by_code(room_code)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return _room_read(room, registry)
