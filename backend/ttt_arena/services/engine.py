"""Rule engine for capped-symbol tic-tac-toe.

Every function takes a ``Game`` and either returns a new ``Game`` or raises a
``GameError``. Inputs are never mutated, so a rejected action leaves the
stored game exactly as it was.
"""
import copy
import time
from typing import List, Optional, Tuple

from ttt_arena.errors import (
    CannotRemoveForeignSymbol,
    CellOccupied,
    GameNotActive,
    InvalidCellIndex,
    NothingToUndo,
    NotYourTurn,
    SymbolCapReached,
)
from ttt_arena.models import (
    BOARD_SIZE,
    DRAW,
    EMPTY,
    FINISHED,
    PLAYING,
    WAITING,
    X,
    O,
    Game,
)

WIN_LINES: Tuple[Tuple[int, int, int], ...] = (
    (0, 1, 2), (3, 4, 5), (6, 7, 8),
    (0, 3, 6), (1, 4, 7), (2, 5, 8),
    (0, 4, 8), (2, 4, 6),
)


def opponent(role: str) -> str:
    return O if role == X else X


def create_game(symbol_cap: int = 3, scores: Optional[dict] = None) -> Game:
    game = Game(symbol_cap=symbol_cap)
    if scores is not None:
        game.scores = dict(scores)
    return game


def evaluate_win(board: List[str]):
    """Return ``(role, line)``, ``(DRAW, None)`` or ``None`` for an open board."""
    for line in WIN_LINES:
        a, b, c = line
        if board[a] != EMPTY and board[a] == board[b] == board[c]:
            return board[a], list(line)
    if all(cell != EMPTY for cell in board):
        return DRAW, None
    return None


def _check_index(index) -> int:
    # bool is an int subclass; True/False are not cell indices
    if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < BOARD_SIZE:
        raise InvalidCellIndex()
    return index


def _check_turn(game: Game, role: str) -> None:
    if game.status != PLAYING:
        raise GameNotActive()
    if role != game.current_player:
        raise NotYourTurn()


def _settle(game: Game, now: float) -> Game:
    """Record a win or draw, or hand the turn over when the board is open."""
    result = evaluate_win(game.board)
    if result is None:
        game.current_player = opponent(game.current_player)
        game.turn_start_time = now
        return game
    winner, line = result
    game.winner = winner
    game.winning_line = line
    game.status = FINISHED
    game.scores[winner] = game.scores.get(winner, 0) + 1
    return game


def apply_placement(game: Game, role: str, index, now: Optional[float] = None) -> Game:
    now = time.time() if now is None else now
    _check_turn(game, role)
    index = _check_index(index)
    if game.board[index] != EMPTY:
        raise CellOccupied()
    if len(game.moves[role]) >= game.symbol_cap:
        raise SymbolCapReached()

    new = copy.deepcopy(game)
    new.board[index] = role
    new.moves[role].append(index)
    new.move_history.append({'type': 'place', 'role': role, 'index': index, 'timestamp': now})
    return _settle(new, now)


def apply_removal(game: Game, role: str, index, now: Optional[float] = None) -> Game:
    now = time.time() if now is None else now
    _check_turn(game, role)
    index = _check_index(index)
    if game.board[index] != role:
        raise CannotRemoveForeignSymbol()

    new = copy.deepcopy(game)
    new.board[index] = EMPTY
    new.moves[role].remove(index)
    new.move_history.append({'type': 'remove', 'role': role, 'index': index, 'timestamp': now})
    new.removed_stack.append({'role': role, 'index': index})
    # removal always consumes the turn
    new.current_player = opponent(role)
    new.turn_start_time = now
    return new


def apply_undo(game: Game, now: Optional[float] = None) -> Game:
    """Put back the most recently removed symbol and return the turn to its owner."""
    now = time.time() if now is None else now
    if game.status != PLAYING:
        raise GameNotActive()
    if not game.removed_stack:
        raise NothingToUndo()
    last = game.removed_stack[-1]
    role, index = last['role'], last['index']
    if game.board[index] != EMPTY:
        raise CellOccupied()
    if len(game.moves[role]) >= game.symbol_cap:
        raise SymbolCapReached()

    new = copy.deepcopy(game)
    new.removed_stack.pop()
    new.board[index] = role
    new.moves[role].append(index)
    new.move_history.append({'type': 'restore', 'role': role, 'index': index, 'timestamp': now})
    # _settle flips the turn, so start from the opponent to land on the remover
    new.current_player = opponent(role)
    return _settle(new, now)


def apply_forfeit(game: Game, now: Optional[float] = None) -> Game:
    """The player on turn ran out of time; the other role wins."""
    if game.status != PLAYING:
        raise GameNotActive()
    new = copy.deepcopy(game)
    winner = opponent(game.current_player)
    new.winner = winner
    new.winning_line = None
    new.status = FINISHED
    new.scores[winner] = new.scores.get(winner, 0) + 1
    return new


def start_game(game: Game, now: Optional[float] = None) -> Game:
    new = copy.deepcopy(game)
    new.status = PLAYING
    new.turn_start_time = time.time() if now is None else now
    return new


def pause_game(game: Game) -> Game:
    new = copy.deepcopy(game)
    new.status = WAITING
    new.turn_start_time = None
    return new


def reset_preserving_scores(game: Game, ready: bool, now: Optional[float] = None) -> Game:
    fresh = create_game(game.symbol_cap, scores=game.scores)
    if ready:
        return start_game(fresh, now)
    return fresh
