"""Core rules for Ultimate Tic-Tac-Toe: line evaluation, legality and move application."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

Player = str  # "X" or "O"
Move = Tuple[int, int]  # (board_index, cell_index)

X: Player = "X"
O: Player = "O"
DRAW = "draw"
ANY_BOARD = -1

WINNING_LINES: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 2),
    (3, 4, 5),
    (6, 7, 8),
    (0, 3, 6),
    (1, 4, 7),
    (2, 5, 8),
    (0, 4, 8),
    (2, 4, 6),
)


def other(player: Player) -> Player:
    return O if player == X else X


def evaluate_line(line: Sequence[Optional[str]]) -> Optional[str]:
    """Resolve a 9-slot board.

    Returns ``"X"``/``"O"`` for the first completed triple, ``"draw"`` when every
    slot is filled without a winner and ``None`` while still open. Main-board
    slots holding ``"draw"`` count as filled but never form a winning triple.
    """
    for a, b, c in WINNING_LINES:
        v = line[a]
        if v in (X, O) and v == line[b] == line[c]:
            return v
    if all(v is not None for v in line):
        return DRAW
    return None


class MoveRejection(str, Enum):
    GAME_OVER = "game-over"
    NOT_YOUR_TURN = "not-your-turn"
    INVALID_BOARD = "invalid-board"
    INVALID_CELL = "invalid-cell"
    BOARD_ALREADY_WON = "board-already-won"
    CELL_FILLED = "cell-filled"

    @property
    def message(self) -> str:
        return _REJECTION_MESSAGES[self]


_REJECTION_MESSAGES: Dict[MoveRejection, str] = {
    MoveRejection.GAME_OVER: "Game is over",
    MoveRejection.NOT_YOUR_TURN: "Not your turn",
    MoveRejection.INVALID_BOARD: "Invalid board",
    MoveRejection.INVALID_CELL: "Invalid cell",
    MoveRejection.BOARD_ALREADY_WON: "Board already won",
    MoveRejection.CELL_FILLED: "Cell already filled",
}


def _empty_boards() -> List[List[Optional[Player]]]:
    return [[None] * 9 for _ in range(9)]


@dataclass
class GameState:
    # boards[b][c] is None, "X" or "O"; main_board[b] additionally may be "draw"
    boards: List[List[Optional[Player]]] = field(default_factory=_empty_boards)
    main_board: List[Optional[str]] = field(default_factory=lambda: [None] * 9)
    current_player: Player = X
    # ANY_BOARD means any unresolved sub-board is playable
    next_board_index: int = ANY_BOARD
    game_over: bool = False
    winner: Optional[str] = None
    last_move: Optional[Move] = None

    # ---- legality & routing ----

    def forced_board(self) -> Optional[int]:
        """The sub-board the side to move must play in, or ``None`` for a free move."""
        nbi = self.next_board_index
        if 0 <= nbi <= 8 and self.main_board[nbi] is None:
            return nbi
        return None

    def check_move(
        self, board_index: int, cell_index: int, player: Optional[Player] = None
    ) -> Optional[MoveRejection]:
        """Return why a move is illegal, or ``None`` when it may be played.

        ``player`` is only checked against ``current_player`` when given.
        """
        if self.game_over:
            return MoveRejection.GAME_OVER
        if player is not None and player != self.current_player:
            return MoveRejection.NOT_YOUR_TURN
        if not 0 <= board_index <= 8:
            return MoveRejection.INVALID_BOARD
        if not 0 <= cell_index <= 8:
            return MoveRejection.INVALID_CELL
        if self.main_board[board_index] is not None:
            return MoveRejection.BOARD_ALREADY_WON
        forced = self.forced_board()
        if forced is not None and board_index != forced:
            return MoveRejection.INVALID_BOARD
        if self.boards[board_index][cell_index] is not None:
            return MoveRejection.CELL_FILLED
        return None

    def is_legal(self, board_index: int, cell_index: int) -> bool:
        return self.check_move(board_index, cell_index) is None

    def next_active_board(self, cell_index: int) -> int:
        """Board the opponent is sent to after a move on ``cell_index``."""
        return cell_index if self.main_board[cell_index] is None else ANY_BOARD

    def available_moves(self) -> List[Move]:
        """All legal (board, cell) moves in row-major order, ignoring whose turn it is."""
        if self.game_over:
            return []
        forced = self.forced_board()
        candidates = [forced] if forced is not None else range(9)
        moves: List[Move] = []
        for i in candidates:
            if self.main_board[i] is not None:
                continue
            for j, c in enumerate(self.boards[i]):
                if c is None:
                    moves.append((i, j))
        return moves

    # ---- helpers ----

    def clone(self) -> "GameState":
        return GameState(
            boards=[b.copy() for b in self.boards],
            main_board=self.main_board.copy(),
            current_player=self.current_player,
            next_board_index=self.next_board_index,
            game_over=self.game_over,
            winner=self.winner,
            last_move=self.last_move,
        )

    def to_dict(self) -> Dict[str, object]:
        last_move = None
        if self.last_move is not None:
            last_move = {
                "boardIndex": self.last_move[0],
                "cellIndex": self.last_move[1],
            }
        return {
            "boards": [b.copy() for b in self.boards],
            "mainBoard": self.main_board.copy(),
            "currentPlayer": self.current_player,
            "nextBoardIndex": self.next_board_index,
            "gameOver": self.game_over,
            "winner": self.winner,
            "lastMove": last_move,
        }


@dataclass
class MoveOutcome:
    state: GameState
    rejection: Optional[MoveRejection] = None

    @property
    def accepted(self) -> bool:
        return self.rejection is None


def place(state: GameState, board_index: int, cell_index: int, mark: Player) -> GameState:
    """Return a copy of ``state`` with ``mark`` played on the cell.

    No legality checks are made; callers validate first (``apply_move``) or
    only generate legal moves (the search).
    """
    nxt = state.clone()
    nxt.boards[board_index][cell_index] = mark
    nxt.last_move = (board_index, cell_index)

    if nxt.main_board[board_index] is None:
        nxt.main_board[board_index] = evaluate_line(nxt.boards[board_index])

    # Also covers the "every sub-board resolved, no line" draw
    result = evaluate_line(nxt.main_board)
    if result is not None:
        nxt.game_over = True
        nxt.winner = result
        nxt.next_board_index = ANY_BOARD
        return nxt

    nxt.next_board_index = nxt.next_active_board(cell_index)
    nxt.current_player = other(mark)
    return nxt


def apply_move(
    state: GameState, board_index: int, cell_index: int, player: Player
) -> MoveOutcome:
    """Validate and play a move for ``player``; the input state is never modified."""
    rejection = state.check_move(board_index, cell_index, player)
    if rejection is not None:
        return MoveOutcome(state=state, rejection=rejection)
    return MoveOutcome(state=place(state, board_index, cell_index, player))


def reset() -> GameState:
    return GameState()
