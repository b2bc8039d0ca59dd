"""Unit tests for the Ultimate Tic-Tac-Toe rules engine."""

import random

from ultimatetoe.game import (
    ANY_BOARD,
    DRAW,
    GameState,
    MoveRejection,
    O,
    X,
    apply_move,
    evaluate_line,
    reset,
)

# X O X / X O O / O X X: full board with no line
DRAWN_CELLS = [X, O, X, X, O, O, O, X, X]


def play(state, *moves):
    for board_index, cell_index in moves:
        outcome = apply_move(state, board_index, cell_index, state.current_player)
        assert outcome.accepted, (board_index, cell_index, outcome.rejection)
        state = outcome.state
    return state


def test_evaluate_line():
    assert evaluate_line([None] * 9) is None
    assert evaluate_line([X, X, X, O, O, None, None, None, None]) == X
    assert evaluate_line([O, X, None, O, X, None, O, None, None]) == O
    assert evaluate_line(DRAWN_CELLS) == DRAW


def test_evaluate_line_picks_first_line_in_canonical_order():
    # Column 0 (O) is checked before column 1 (X) on this impossible board
    line = [O, X, X, O, X, None, O, X, None]
    assert evaluate_line(line) == O


def test_draws_never_form_a_winning_line():
    main = [DRAW, DRAW, DRAW, None, None, None, None, None, None]
    assert evaluate_line(main) is None
    assert evaluate_line([DRAW] * 9) == DRAW


def test_initial_state_allows_any_board():
    state = GameState()
    assert len(state.available_moves()) == 9 * 9
    assert state.next_board_index == ANY_BOARD


def test_center_move_routes_to_center_board():
    state = play(GameState(), (4, 4))
    assert state.main_board[4] is None
    assert state.next_board_index == 4
    assert state.current_player == O
    assert state.last_move == (4, 4)


def test_directed_move_restricts_every_legal_move():
    state = play(GameState(), (0, 4))
    moves = state.available_moves()
    assert moves and all(board == 4 for board, _ in moves)
    for board_index in range(9):
        for cell_index in range(9):
            if state.is_legal(board_index, cell_index):
                assert board_index == 4
    assert state.check_move(0, 0) is MoveRejection.INVALID_BOARD


def test_sub_board_win_is_frozen():
    state = play(
        GameState(),
        (0, 0),
        (0, 3),
        (3, 1),
        (1, 0),
        (0, 1),
        (1, 4),
        (4, 2),
        (2, 0),
    )
    assert state.main_board[0] is None

    state = play(state, (0, 2))
    assert state.main_board[0] == X
    assert state.next_board_index == 2

    for cell_index in (4, 5, 6, 7, 8):
        outcome = apply_move(state, 0, cell_index, O)
        assert outcome.rejection is MoveRejection.BOARD_ALREADY_WON
        assert outcome.state is state

    state = play(state, (2, 4), (4, 0))
    assert state.main_board[0] == X
    # O was sent to the won board 0, so any open board is fine
    assert state.next_board_index == ANY_BOARD
    assert apply_move(state, 0, 8, O).rejection is MoveRejection.BOARD_ALREADY_WON


def test_unavailable_board_redirects():
    state = GameState()
    state.boards[4] = list(DRAWN_CELLS)
    state.main_board[4] = DRAW
    state = play(state, (0, 4))
    assert state.next_board_index == ANY_BOARD
    moves = state.available_moves()
    assert all(board != 4 for board, _ in moves)
    assert len({board for board, _ in moves}) == 8


def test_rejections():
    state = play(GameState(), (0, 0))
    assert apply_move(state, 0, 1, X).rejection is MoveRejection.NOT_YOUR_TURN
    assert apply_move(state, 0, 0, O).rejection is MoveRejection.CELL_FILLED
    assert apply_move(state, 5, 0, O).rejection is MoveRejection.INVALID_BOARD
    assert apply_move(state, 9, 0, O).rejection is MoveRejection.INVALID_BOARD
    assert apply_move(state, 0, 9, O).rejection is MoveRejection.INVALID_CELL

    finished = state.clone()
    finished.game_over = True
    finished.winner = X
    assert apply_move(finished, 0, 1, O).rejection is MoveRejection.GAME_OVER
    assert finished.available_moves() == []


def test_big_board_win_detection():
    state = GameState()
    for board_index in (0, 1):
        state.boards[board_index] = [X, X, X, O, O, None, None, None, None]
        state.main_board[board_index] = X
    state.boards[2] = [X, X, None, O, O, None, None, None, None]
    state.next_board_index = 2

    state = play(state, (2, 2))
    assert state.main_board[2] == X
    assert state.game_over is True
    assert state.winner == X
    assert state.current_player == X
    assert state.next_board_index == ANY_BOARD


def test_all_drawn_boards_end_in_draw():
    state = GameState()
    for board_index in range(8):
        state.boards[board_index] = list(DRAWN_CELLS)
        state.main_board[board_index] = DRAW
    state.boards[8] = DRAWN_CELLS[:8] + [None]
    state.next_board_index = 8

    state = play(state, (8, 8))
    assert state.main_board == [DRAW] * 9
    assert state.game_over is True
    assert state.winner == DRAW


def test_apply_move_does_not_touch_input():
    start = play(GameState(), (4, 4), (4, 0))
    before = start.to_dict()
    first = apply_move(start, 0, 4, X)
    second = apply_move(start, 0, 4, X)
    assert start.to_dict() == before
    assert first.state.to_dict() == second.state.to_dict()
    assert first.state is not start


def test_reset_returns_initial_state():
    state = play(GameState(), (4, 4), (4, 0))
    assert reset().to_dict() == GameState().to_dict()
    assert state.boards[4][4] == X


def test_random_playouts_keep_invariants():
    rng = random.Random(2024)
    for _ in range(40):
        state = GameState()
        resolved = {}
        while not state.game_over:
            moves = state.available_moves()
            assert moves
            if state.next_board_index != ANY_BOARD:
                assert state.main_board[state.next_board_index] is None
                assert all(b == state.next_board_index for b, _ in moves)
            board_index, cell_index = rng.choice(moves)
            player = state.current_player
            state = apply_move(state, board_index, cell_index, player).state
            assert state.boards[board_index][cell_index] == player

            assert state.game_over == (state.winner is not None)
            for i, status in enumerate(state.main_board):
                if status is not None:
                    assert status == evaluate_line(state.boards[i])
                    assert resolved.setdefault(i, status) == status
                else:
                    assert i not in resolved
        assert state.winner in (X, O, DRAW)
        assert state.winner == evaluate_line(state.main_board)
