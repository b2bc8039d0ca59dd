"""Shared multiplayer rooms: membership, turn ownership and change stamps for polling clients."""

from __future__ import annotations

import copy
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional

from .game import O, X, GameState, MoveRejection, apply_move, reset

logger = logging.getLogger(__name__)

ROOM_CODE_LENGTH = 6
ROOM_CODE_ATTEMPTS = 10
SPECTATOR = "spectator"


class RoomError(str, Enum):
    ROOM_NOT_FOUND = "room-not-found"
    NOT_HOST = "not-host"
    ROOM_UNAVAILABLE = "room-unavailable"

    @property
    def message(self) -> str:
        return _ROOM_ERROR_MESSAGES[self]


_ROOM_ERROR_MESSAGES: Dict[RoomError, str] = {
    RoomError.ROOM_NOT_FOUND: "Room not found",
    RoomError.NOT_HOST: "Only host can reset the game",
    RoomError.ROOM_UNAVAILABLE: "Unable to allocate room",
}


def generate_room_code() -> str:
    return uuid.uuid4().hex[:ROOM_CODE_LENGTH].upper()


def normalize_room_id(room_id: str) -> str:
    return room_id.strip().upper()


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Room:
    """Authoritative server-side record of one multiplayer game."""

    id: str
    players: List[str] = field(default_factory=list)
    # Symbol each player was seated with; never remapped when someone leaves
    seats: Dict[str, str] = field(default_factory=dict)
    spectators: List[str] = field(default_factory=list)
    state: GameState = field(default_factory=GameState)
    last_update_time: int = 0
    closed: bool = False
    lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    @property
    def host(self) -> Optional[str]:
        return self.players[0] if self.players else None

    def symbol_for(self, participant_id: str) -> Optional[str]:
        if participant_id in self.seats:
            return self.seats[participant_id]
        if participant_id in self.spectators:
            return SPECTATOR
        return None

    def free_seat(self) -> Optional[str]:
        taken = set(self.seats.values())
        for symbol in (X, O):
            if symbol not in taken:
                return symbol
        return None

    def snapshot(self) -> Dict[str, object]:
        """Independent copy in the wire format polled by clients."""
        data: Dict[str, object] = {
            "id": self.id,
            "players": list(self.players),
            "seats": dict(self.seats),
            "spectators": list(self.spectators),
        }
        data.update(self.state.to_dict())
        data["lastUpdateTime"] = self.last_update_time
        return data


@dataclass
class RoomResult:
    success: bool
    room: Optional[Dict[str, object]] = None
    reason: Optional[str] = None
    message: Optional[str] = None
    player_symbol: Optional[str] = None
    is_host: Optional[bool] = None

    @classmethod
    def failure(cls, reason: Enum, room: Optional[Room] = None) -> "RoomResult":
        return cls(
            success=False,
            room=room.snapshot() if room is not None else None,
            reason=reason.value,
            message=reason.message,  # type: ignore[attr-defined]
        )

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"success": self.success}
        if self.player_symbol is not None:
            payload["playerSymbol"] = self.player_symbol
        if self.is_host is not None:
            payload["isHost"] = self.is_host
        if self.room is not None:
            payload["room"] = self.room
        if not self.success:
            payload["reason"] = self.reason
            payload["error"] = self.message
        return payload


class RoomRegistry:
    """Process-wide in-memory room store.

    Rooms are inserted on create and only removed when their last player
    leaves; nothing expires them. Each room is mutated under its own lock so
    concurrent requests for the same room are applied one at a time.
    """

    def __init__(
        self,
        clock: Optional[Callable[[], int]] = None,
        code_factory: Optional[Callable[[], str]] = None,
    ):
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()
        self._clock = clock or _wall_clock_ms
        self._code_factory = code_factory or generate_room_code

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    def __contains__(self, room_id: object) -> bool:
        if not isinstance(room_id, str):
            return False
        with self._lock:
            return normalize_room_id(room_id) in self._rooms

    def _touch(self, room: Room) -> None:
        # Strictly increasing even when the clock stalls or goes backwards
        room.last_update_time = max(self._clock(), room.last_update_time + 1)

    def _lookup(self, room_id: str) -> Optional[Room]:
        with self._lock:
            return self._rooms.get(normalize_room_id(room_id))

    # ---- lifecycle ----

    def create(self, participant_id: str) -> RoomResult:
        with self._lock:
            for _ in range(ROOM_CODE_ATTEMPTS):
                room_id = normalize_room_id(self._code_factory())
                if room_id not in self._rooms:
                    break
            else:
                logger.warning("Unable to allocate a free room code")
                return RoomResult.failure(RoomError.ROOM_UNAVAILABLE)
            room = Room(
                id=room_id, players=[participant_id], seats={participant_id: X}
            )
            self._touch(room)
            self._rooms[room_id] = room

        logger.info("Room %s created by %s", room_id, participant_id)
        return RoomResult(
            success=True,
            room=room.snapshot(),
            player_symbol=X,
            is_host=True,
        )

    def fetch(self, room_id: str) -> RoomResult:
        room = self._lookup(room_id)
        if room is None:
            return RoomResult.failure(RoomError.ROOM_NOT_FOUND)
        with room.lock:
            if room.closed:
                return RoomResult.failure(RoomError.ROOM_NOT_FOUND)
            return RoomResult(success=True, room=room.snapshot())

    def join(self, room_id: str, participant_id: str) -> RoomResult:
        room = self._lookup(room_id)
        if room is None:
            return RoomResult.failure(RoomError.ROOM_NOT_FOUND)
        with room.lock:
            if room.closed:
                return RoomResult.failure(RoomError.ROOM_NOT_FOUND)

            symbol = room.symbol_for(participant_id)
            if symbol is None:
                seat = room.free_seat()
                if seat is not None:
                    room.players.append(participant_id)
                    room.seats[participant_id] = seat
                    self._touch(room)
                    logger.info(
                        "%s joined room %s as %s",
                        participant_id,
                        room.id,
                        seat,
                    )
                else:
                    room.spectators.append(participant_id)
                    self._touch(room)
                    logger.info("%s is spectating room %s", participant_id, room.id)

            return RoomResult(
                success=True,
                room=room.snapshot(),
                player_symbol=room.symbol_for(participant_id),
                is_host=room.host == participant_id,
            )

    def leave(self, room_id: str, participant_id: str) -> RoomResult:
        with self._lock:
            room = self._rooms.get(normalize_room_id(room_id))
            if room is None:
                return RoomResult.failure(RoomError.ROOM_NOT_FOUND)
            with room.lock:
                if participant_id in room.players:
                    room.players.remove(participant_id)
                    del room.seats[participant_id]
                elif participant_id in room.spectators:
                    room.spectators.remove(participant_id)
                else:
                    return RoomResult(success=True, room=room.snapshot())

                self._touch(room)
                logger.info("%s left room %s", participant_id, room.id)
                if not room.players:
                    room.closed = True
                    del self._rooms[room.id]
                    logger.info("Room %s closed", room.id)
                    return RoomResult(success=True)
                return RoomResult(success=True, room=room.snapshot())

    # ---- game actions ----

    def move(
        self, room_id: str, participant_id: str, board_index: int, cell_index: int
    ) -> RoomResult:
        room = self._lookup(room_id)
        if room is None:
            return RoomResult.failure(RoomError.ROOM_NOT_FOUND)
        with room.lock:
            if room.closed:
                return RoomResult.failure(RoomError.ROOM_NOT_FOUND)

            symbol = room.symbol_for(participant_id)
            if symbol not in (X, O):
                # Spectators and strangers never own the turn
                return RoomResult.failure(MoveRejection.NOT_YOUR_TURN, room)

            outcome = apply_move(room.state, board_index, cell_index, symbol)
            if not outcome.accepted:
                logger.debug(
                    "Room %s rejected %s at (%d, %d): %s",
                    room.id,
                    participant_id,
                    board_index,
                    cell_index,
                    outcome.rejection.value,
                )
                return RoomResult.failure(outcome.rejection, room)

            room.state = outcome.state
            self._touch(room)
            logger.debug(
                "Room %s: %s played (%d, %d)", room.id, symbol, board_index, cell_index
            )
            if room.state.game_over:
                logger.info("Room %s finished: %s", room.id, room.state.winner)
            return RoomResult(success=True, room=room.snapshot())

    def reset(self, room_id: str, participant_id: str) -> RoomResult:
        room = self._lookup(room_id)
        if room is None:
            return RoomResult.failure(RoomError.ROOM_NOT_FOUND)
        with room.lock:
            if room.closed:
                return RoomResult.failure(RoomError.ROOM_NOT_FOUND)
            if room.host != participant_id:
                return RoomResult.failure(RoomError.NOT_HOST, room)
            room.state = reset()
            self._touch(room)
            logger.info("Room %s reset by host", room.id)
            return RoomResult(success=True, room=room.snapshot())


class RoomMirror:
    """Client-side copy of a room kept current from poll responses.

    A snapshot is applied only when its ``lastUpdateTime`` is strictly newer
    than the last one seen, so overlapping polls never roll the view back.
    """

    def __init__(self, snapshot: Optional[Mapping[str, object]] = None):
        self.room: Optional[Dict[str, object]] = None
        self.last_seen: int = -1
        if snapshot is not None:
            self.offer(snapshot)

    @property
    def room_id(self) -> Optional[str]:
        return self.room["id"] if self.room is not None else None  # type: ignore[return-value]

    def offer(self, snapshot: Mapping[str, object]) -> bool:
        """Apply ``snapshot`` if it is newer; return whether it was applied."""
        if self.room is not None and snapshot.get("id") != self.room_id:
            return False
        stamp = int(snapshot["lastUpdateTime"])  # type: ignore[arg-type]
        if stamp <= self.last_seen:
            return False
        self.room = copy.deepcopy(dict(snapshot))
        self.last_seen = stamp
        return True

    def forget(self) -> None:
        self.room = None
        self.last_seen = -1
