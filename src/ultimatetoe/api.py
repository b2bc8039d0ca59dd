"""FastAPI service exposing local/AI game sessions and polled multiplayer rooms."""

from __future__ import annotations

import logging
import random
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Tuple

from fastapi import BackgroundTasks, FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .ai import MinimaxAI
from .game import GameState, Player, apply_move, other, reset
from .rooms import RoomError, RoomRegistry, RoomResult

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Ultimate Tic-Tac-Toe",
    description="Ultimate tic-tac-toe against a friend, the computer or a remote player",
)

DEFAULT_DEPTH = 4
MAX_DEPTH = 8
AI_THINK_DELAY: Tuple[float, float] = (0.5, 0.6)


# ---------- Local and AI sessions ----------


@dataclass
class GameSession:
    """A single-process game, either hot-seat or against the minimax AI."""

    state: GameState = field(default_factory=GameState)
    ai: Optional[MinimaxAI] = None
    move_log: List[Dict[str, int | str]] = field(default_factory=list)
    ai_pending: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def mode(self) -> str:
        return "ai" if self.ai else "local"

    def ai_to_move(self) -> bool:
        return (
            self.ai is not None
            and not self.state.game_over
            and self.state.current_player == self.ai.player
        )


SESSIONS: Dict[str, GameSession] = {}
ROOMS = RoomRegistry()


class NewSessionRequest(BaseModel):
    """Request payload for starting a local or AI game."""

    model_config = ConfigDict(populate_by_name=True)

    mode: Literal["local", "ai"] = "ai"
    depth: int = Field(
        default=DEFAULT_DEPTH,
        ge=1,
        le=MAX_DEPTH,
        description="Minimax depth controlling AI strength",
    )
    ai_player: Literal["X", "O"] = Field(default="O", alias="aiPlayer")


class MoveRequest(BaseModel):
    """Request payload for submitting a move on an existing game."""

    model_config = ConfigDict(populate_by_name=True)

    board_index: int = Field(alias="boardIndex", ge=0, le=8)
    cell_index: int = Field(alias="cellIndex", ge=0, le=8)


def _reject(status_code: int, reason: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code, detail={"reason": reason, "message": message}
    )


def _get_session(session_id: str) -> GameSession:
    try:
        return SESSIONS[session_id]
    except KeyError as exc:
        raise _reject(404, "session-not-found", "Game not found") from exc


def _run_ai_turn(session_id: str) -> None:
    session = SESSIONS.get(session_id)
    if not session:
        return

    # Lets clients render the triggering move before the search starts
    time.sleep(max(0.0, random.uniform(*AI_THINK_DELAY)))

    with session.lock:
        try:
            if not session.ai_to_move():
                return
            ai = session.ai
            board_index, cell_index = ai.choose(session.state)
            outcome = apply_move(session.state, board_index, cell_index, ai.player)
            if not outcome.accepted:
                logger.error(
                    "AI proposed rejected move (%d, %d): %s",
                    board_index,
                    cell_index,
                    outcome.rejection.value,
                )
                return
            session.state = outcome.state
            session.move_log.append(
                {"player": ai.player, "boardIndex": board_index, "cellIndex": cell_index}
            )
        finally:
            session.ai_pending = False


def _schedule_ai(
    session_id: str, session: GameSession, background_tasks: BackgroundTasks
) -> None:
    # Caller holds session.lock
    if session.ai_to_move() and not session.ai_pending:
        session.ai_pending = True
        background_tasks.add_task(_run_ai_turn, session_id)


def _serialize_session(session_id: str, session: GameSession) -> Dict[str, object]:
    with session.lock:
        state = session.state
        payload: Dict[str, object] = {"id": session_id, "mode": session.mode}
        payload.update(state.to_dict())
        available_moves = [
            {"board": board_index, "cell": cell_index}
            for board_index, cell_index in state.available_moves()
        ]
        payload["availableMoves"] = available_moves
        payload["availableBoards"] = sorted({m["board"] for m in available_moves})
        payload["moveLog"] = list(session.move_log)
        payload["aiPlayer"] = session.ai.player if session.ai else None
        payload["aiDepth"] = session.ai.depth if session.ai else None
        payload["aiPending"] = session.ai_pending
        return payload


@app.post("/api/session")
def create_session(
    request: NewSessionRequest, background_tasks: BackgroundTasks
) -> Dict[str, object]:
    ai = None
    if request.mode == "ai":
        ai = MinimaxAI(player=request.ai_player, depth=request.depth)
    session = GameSession(ai=ai)
    session_id = uuid.uuid4().hex
    SESSIONS[session_id] = session
    logger.info("Session %s started (%s)", session_id, session.mode)

    with session.lock:
        _schedule_ai(session_id, session, background_tasks)
    return _serialize_session(session_id, session)


@app.get("/api/session/{session_id}")
def get_session(session_id: str) -> Dict[str, object]:
    session = _get_session(session_id)
    return _serialize_session(session_id, session)


@app.post("/api/session/{session_id}/move")
def make_session_move(
    session_id: str, request: MoveRequest, background_tasks: BackgroundTasks
) -> Dict[str, object]:
    session = _get_session(session_id)
    with session.lock:
        if session.ai_pending:
            raise _reject(409, "ai-pending", "AI is completing its move")

        state = session.state
        # Hot-seat games move for whoever is on turn; AI games only for the human
        player: Player = state.current_player
        if session.ai is not None:
            player = other(session.ai.player)

        outcome = apply_move(state, request.board_index, request.cell_index, player)
        if not outcome.accepted:
            raise _reject(400, outcome.rejection.value, outcome.rejection.message)

        session.state = outcome.state
        session.move_log.append(
            {
                "player": player,
                "boardIndex": request.board_index,
                "cellIndex": request.cell_index,
            }
        )
        _schedule_ai(session_id, session, background_tasks)

    return _serialize_session(session_id, session)


@app.post("/api/session/{session_id}/reset")
def reset_session(
    session_id: str, background_tasks: BackgroundTasks
) -> Dict[str, object]:
    session = _get_session(session_id)
    with session.lock:
        session.state = reset()
        session.move_log.clear()
        _schedule_ai(session_id, session, background_tasks)
    return _serialize_session(session_id, session)


# ---------- Multiplayer rooms ----------


class CreateRoomRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    player_id: str = Field(alias="playerId", min_length=1)


class RoomActionRequest(BaseModel):
    """Join, move, reset or leave request for an existing room."""

    model_config = ConfigDict(populate_by_name=True)

    action: Literal["join", "move", "reset", "leave"]
    player_id: str = Field(alias="playerId", min_length=1)
    # Range is left to the rules engine so bad indices get a tagged rejection
    board_index: Optional[int] = Field(default=None, alias="boardIndex")
    cell_index: Optional[int] = Field(default=None, alias="cellIndex")

    @model_validator(mode="after")
    def ensure_move_target(self) -> "RoomActionRequest":
        if self.action == "move" and (
            self.board_index is None or self.cell_index is None
        ):
            raise ValueError("A move requires boardIndex and cellIndex")
        return self


def _check_room_result(result: RoomResult) -> None:
    if result.success:
        return
    status = 400
    if result.reason == RoomError.ROOM_NOT_FOUND.value:
        status = 404
    elif result.reason == RoomError.ROOM_UNAVAILABLE.value:
        status = 503
    raise _reject(status, result.reason or "", result.message or "")


@app.post("/api/game/create")
def create_room(request: CreateRoomRequest) -> Dict[str, object]:
    result = ROOMS.create(request.player_id)
    _check_room_result(result)
    payload = result.to_payload()
    payload["roomId"] = result.room["id"]  # type: ignore[index]
    return payload


@app.get("/api/game/{room_id}")
def get_room(room_id: str) -> Dict[str, object]:
    result = ROOMS.fetch(room_id)
    _check_room_result(result)
    return result.room  # type: ignore[return-value]


@app.post("/api/game/{room_id}")
def room_action(room_id: str, request: RoomActionRequest) -> Dict[str, object]:
    if request.action == "join":
        result = ROOMS.join(room_id, request.player_id)
    elif request.action == "move":
        result = ROOMS.move(
            room_id, request.player_id, request.board_index, request.cell_index
        )
    elif request.action == "reset":
        result = ROOMS.reset(room_id, request.player_id)
    else:
        result = ROOMS.leave(room_id, request.player_id)
    _check_room_result(result)
    return result.to_payload()

