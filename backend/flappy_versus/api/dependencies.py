from fastapi import Request

from flappy_versus.db.session import get_session
from flappy_versus.game.registry import MatchRegistry


def get_match_registry(request: Request) -> MatchRegistry:
    return request.app.state.match_registry


__all__ = ["get_match_registry", "get_session"]
