"""Live match coordination over WebSockets."""

from .broadcaster import Broadcaster  # noqa: F401
from .handler import ConnectionHandler, JoinParams  # noqa: F401
