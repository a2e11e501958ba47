from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from flappy_versus.api.router import api_router
from flappy_versus.api.routes import ws
from flappy_versus.core.config import settings
from flappy_versus.core.logging import configure_logging
from flappy_versus.db.base import Base
from flappy_versus.db.session import engine
from flappy_versus.game.registry import MatchRegistry
from flappy_versus.realtime import Broadcaster

configure_logging(settings.debug)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.create_schema_on_startup:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    yield


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": first.get("msg", "Invalid request"), "field": field},
    )


def create_app(registry: MatchRegistry | None = None) -> FastAPI:
    fastapi_app = FastAPI(title=settings.project_name, debug=settings.debug, lifespan=lifespan)
    if registry is None:
        registry = MatchRegistry(
            max_players=settings.max_players_per_room,
            spawn_y=settings.spawn_y,
            countdown_ms=settings.countdown_ms,
        )
    fastapi_app.state.match_registry = registry
    fastapi_app.state.broadcaster = Broadcaster()

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    fastapi_app.add_exception_handler(StarletteHTTPException, _http_error)
    fastapi_app.add_exception_handler(RequestValidationError, _validation_error)

    fastapi_app.include_router(api_router, prefix=settings.api_prefix)
    fastapi_app.include_router(ws.router, tags=["ws"])

    @fastapi_app.get("/health", tags=["health"])
    async def health_check() -> dict[str, str | int]:
        return {"status": "ok", "liveRooms": len(fastapi_app.state.match_registry)}

    return fastapi_app


app = create_app()
