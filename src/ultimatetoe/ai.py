"""Depth-limited minimax AI with alpha-beta pruning for Ultimate Tic-Tac-Toe."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .game import (
    DRAW,
    WINNING_LINES,
    GameState,
    Move,
    Player,
    evaluate_line,
    other,
    place,
)

logger = logging.getLogger(__name__)

WIN_SCORE = 1000
TERMINAL_SCORE = 100
MAIN_LINE_WEIGHT = 10
CELL_LINE_WEIGHT = 1


# ---- static evaluation ----


def _line_potential(
    slots: Sequence[Optional[str]], me: Player, opp: Player, weight: int
) -> int:
    score = 0
    for a, b, c in WINNING_LINES:
        trio = (slots[a], slots[b], slots[c])
        if DRAW in trio:
            continue
        m = trio.count(me)
        o = trio.count(opp)
        if m and not o:
            score += weight * m
        elif o and not m:
            score -= weight * o
    return score


def score_position(state: GameState, player: Player) -> int:
    """Static score of ``state`` from ``player``'s point of view.

    Open main-board lines are worth 10 per owned sub-board, open lines inside
    unresolved sub-boards 1 per mark. A resolved main board scores +/-1000 or 0.
    """
    opp = other(player)
    result = evaluate_line(state.main_board)
    if result == player:
        return WIN_SCORE
    if result == opp:
        return -WIN_SCORE
    if result == DRAW:
        return 0

    score = _line_potential(state.main_board, player, opp, MAIN_LINE_WEIGHT)
    for status, cells in zip(state.main_board, state.boards):
        if status is None:
            score += _line_potential(cells, player, opp, CELL_LINE_WEIGHT)
    return score


# ---- search ----


@dataclass
class SearchResult:
    move: Optional[Move]
    score: float
    nodes: int = 0


class _Search:
    def __init__(self, player: Player, pruning: bool):
        self.player = player
        self.opponent = other(player)
        self.pruning = pruning
        self.nodes = 0

    def minimax(
        self,
        state: GameState,
        depth: int,
        alpha: float,
        beta: float,
        maximizing: bool,
    ) -> Tuple[float, Optional[Move]]:
        self.nodes += 1

        result = evaluate_line(state.main_board)
        if result == self.player:
            return TERMINAL_SCORE + depth, None
        if result == self.opponent:
            return -TERMINAL_SCORE - depth, None
        if result == DRAW:
            return 0, None
        if depth == 0:
            return score_position(state, self.player), None

        moves = state.available_moves()
        if not moves:
            return 0, None

        mark = self.player if maximizing else self.opponent
        best_move: Optional[Move] = None

        if maximizing:
            value = -math.inf
            for move in moves:
                child = place(state, move[0], move[1], mark)
                score, _ = self.minimax(child, depth - 1, alpha, beta, False)
                if score > value:
                    value, best_move = score, move
                alpha = max(alpha, score)
                if self.pruning and beta <= alpha:
                    break
        else:
            value = math.inf
            for move in moves:
                child = place(state, move[0], move[1], mark)
                score, _ = self.minimax(child, depth - 1, alpha, beta, True)
                if score < value:
                    value, best_move = score, move
                beta = min(beta, score)
                if self.pruning and beta <= alpha:
                    break

        return value, best_move


def best_move(
    state: GameState, player: Player, max_depth: int, pruning: bool = True
) -> SearchResult:
    """Search ``max_depth`` plies ahead and return the best move for ``player``.

    ``player`` moves first regardless of ``state.current_player``. Among equally
    scored moves the first in row-major order wins. ``state`` is not modified.
    """
    search = _Search(player, pruning)
    score, move = search.minimax(
        state, max(0, max_depth), -math.inf, math.inf, True
    )
    return SearchResult(move=move, score=score, nodes=search.nodes)


@dataclass
class MinimaxAI:
    """AI player backed by ``best_move``.

      - MinimaxAI(player="O", depth=4)
      - choose(state) -> (board_index, cell_index)
    """

    player: Player
    depth: int = 4

    def choose(self, state: GameState) -> Move:
        if state.game_over:
            raise ValueError("Game already finished")
        if state.current_player != self.player:
            raise ValueError("It is not this AI player's turn")

        started = time.perf_counter()
        result = best_move(state, self.player, max(1, self.depth))
        logger.debug(
            "AI %s searched %d nodes at depth %d in %.1fms (score %s)",
            self.player,
            result.nodes,
            self.depth,
            (time.perf_counter() - started) * 1000,
            result.score,
        )

        if result.move is None:
            # Fallback to first legal move
            moves = state.available_moves()
            if not moves:
                raise RuntimeError("No valid moves available")
            return moves[0]
        return result.move
