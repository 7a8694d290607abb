import random
import string
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

X = 'X'
O = 'O'
SPECTATOR = 'spectator'
DRAW = 'draw'
EMPTY = ''
PLAYER_ROLES = (X, O)

WAITING = 'waiting'
PLAYING = 'playing'
FINISHED = 'finished'

BOARD_SIZE = 9


def generate_display_id(length=4):
    """Generate a short opaque display id for members who gave no name."""
    return 'Player-' + ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))


def _zero_scores():
    return {X: 0, O: 0, DRAW: 0}


@dataclass
class Game:
    symbol_cap: int = 3
    board: List[str] = field(default_factory=lambda: [EMPTY] * BOARD_SIZE)
    current_player: str = X
    moves: Dict[str, List[int]] = field(default_factory=lambda: {X: [], O: []})
    move_history: List[dict] = field(default_factory=list)
    removed_stack: List[dict] = field(default_factory=list)
    winner: Optional[str] = None
    winning_line: Optional[List[int]] = None
    status: str = WAITING
    turn_start_time: Optional[float] = None
    scores: Dict[str, int] = field(default_factory=_zero_scores)

    def to_dict(self):
        return {
            'board': list(self.board),
            'currentPlayer': self.current_player,
            'moves': {role: list(idx) for role, idx in self.moves.items()},
            'moveHistory': [dict(entry) for entry in self.move_history],
            'removedStack': [dict(entry) for entry in self.removed_stack],
            'winner': self.winner,
            'winningLine': list(self.winning_line) if self.winning_line else None,
            'status': self.status,
            'turnStartTime': self.turn_start_time,
            'scores': dict(self.scores),
            'symbolCap': self.symbol_cap,
        }


@dataclass
class Member:
    connection_id: str
    role: str
    display_id: str
    joined_at: float = field(default_factory=time.time)

    @property
    def is_player(self):
        return self.role in PLAYER_ROLES

    def to_dict(self):
        return {
            'role': self.role,
            'displayId': self.display_id,
            'joinedAt': self.joined_at,
        }


@dataclass
class Room:
    id: str
    game: Game
    members: Dict[str, Member] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)

    @property
    def channel(self):
        """Transport room name used for broadcasts."""
        return f"room:{self.id}"

    def player(self, role):
        for member in self.members.values():
            if member.role == role:
                return member
        return None

    def touch(self, now=None):
        self.last_activity = now if now is not None else time.time()
