from fastapi import APIRouter

from flappy_versus.api.routes import rooms

api_router = APIRouter()
api_router.include_router(rooms.router, prefix="/rooms", tags=["rooms"])
