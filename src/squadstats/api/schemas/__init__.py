"""Pydantic models for API I/O."""

from .player import PlayerRebuildResponse, PlayerTrendResponse
from .rebuild import RebuildJobResponse, RebuildResponse

__all__ = [
    "PlayerRebuildResponse",
    "PlayerTrendResponse",
    "RebuildJobResponse",
    "RebuildResponse",
]
