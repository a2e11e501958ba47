from .room import Room

__all__ = [
	"Room",
]
