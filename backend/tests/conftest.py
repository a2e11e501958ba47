import os
import tempfile

_DB_DIR = tempfile.mkdtemp(prefix="flappy-versus-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/rooms.db"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from flappy_versus.game.registry import MatchRegistry  # noqa: E402
from flappy_versus.main import create_app  # noqa: E402
from flappy_versus.realtime import Broadcaster, ConnectionHandler  # noqa: E402

FIXED_NOW_MS = 1_700_000_000_000


class FakeSocket:
    """Records everything the server would have written to a WebSocket."""

    def __init__(self, *, fail_sends: bool = False) -> None:
        self.sent: list[dict] = []
        self.accepted = False
        self.close_code: int | None = None
        self.fail_sends = fail_sends

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data) -> None:
        if self.fail_sends or self.close_code is not None:
            raise RuntimeError('Cannot call "send" once a close message has been sent.')
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.close_code = code

    def of_type(self, message_type: str) -> list[dict]:
        return [message for message in self.sent if message["type"] == message_type]

    @property
    def last_sync(self) -> dict:
        return self.of_type("sync")[-1]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def registry() -> MatchRegistry:
    return MatchRegistry(seed=1234, clock=lambda: FIXED_NOW_MS)


@pytest.fixture
def broadcaster() -> Broadcaster:
    return Broadcaster()


@pytest.fixture
def join(registry, broadcaster):
    """Admit a fake socket into a room and hand back ``(handler, socket)``."""

    async def _join(code: str | None = "ABC123", nick: str | None = None, char: str | None = None):
        socket = FakeSocket()
        query = {key: value for key, value in {"code": code, "nick": nick, "char": char}.items() if value is not None}
        handler = ConnectionHandler(socket, registry, broadcaster)
        await handler.admit(query)
        return handler, socket

    return _join


@pytest.fixture
def app(registry):
    return create_app(registry)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
