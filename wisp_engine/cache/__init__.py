"""Cross-process control plane."""

from .control import (
    BotState,
    ControlPlane,
    FileControlPlane,
    InMemoryControlPlane,
    RedisControlPlane,
    get_control_plane,
)

__all__ = [
    "BotState",
    "ControlPlane",
    "FileControlPlane",
    "InMemoryControlPlane",
    "RedisControlPlane",
    "get_control_plane",
]
