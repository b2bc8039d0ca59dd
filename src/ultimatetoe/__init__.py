"""Ultimate Tic-Tac-Toe package exposing the rules engine, minimax AI, rooms and the web API."""

from .ai import MinimaxAI, best_move, score_position
from .game import GameState, MoveRejection, apply_move, evaluate_line, reset
from .rooms import RoomMirror, RoomRegistry
from .api import app

__all__ = [
    "GameState",
    "MinimaxAI",
    "MoveRejection",
    "RoomMirror",
    "RoomRegistry",
    "app",
    "apply_move",
    "best_move",
    "evaluate_line",
    "reset",
    "score_position",
]
