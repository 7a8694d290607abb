"""In-memory room registry."""
import re
import threading
import time
from typing import Callable, Dict, List, Optional, Set, Tuple

from ttt_arena.errors import InvalidRoomId, RoomNotFound
from ttt_arena.models import PLAYER_ROLES, SPECTATOR, Member, Room, generate_display_id
from ttt_arena.services.engine import create_game

ROOM_ID_PATTERN = re.compile(r'[A-Za-z0-9_-]+')

RoomHook = Callable[[str], None]


class RoomRegistry:
    """Owns every live room plus the sid -> room ids index.

    Handlers and timer callbacks hold ``lock`` while they read and write a
    room so each transition runs to completion before the next one starts.
    """

    def __init__(self, symbol_cap=3, max_room_id_length=50, max_display_name_length=32, logger=None):
        self.symbol_cap = symbol_cap
        self.max_room_id_length = max_room_id_length
        self.max_display_name_length = max_display_name_length
        self.logger = logger
        self.lock = threading.RLock()
        self._rooms: Dict[str, Room] = {}
        self._sid_rooms: Dict[str, Set[str]] = {}
        self._create_hooks: List[RoomHook] = []
        self._destroy_hooks: List[RoomHook] = []

    def __len__(self):
        return len(self._rooms)

    def __contains__(self, room_id):
        return room_id in self._rooms

    def add_create_hook(self, hook: RoomHook) -> None:
        self._create_hooks.append(hook)

    def add_destroy_hook(self, hook: RoomHook) -> None:
        self._destroy_hooks.append(hook)

    def validate_room_id(self, room_id) -> str:
        if (
            not isinstance(room_id, str)
            or len(room_id) > self.max_room_id_length
            or not ROOM_ID_PATTERN.fullmatch(room_id)
        ):
            raise InvalidRoomId()
        return room_id

    def get(self, room_id) -> Optional[Room]:
        return self._rooms.get(room_id)

    def require(self, room_id) -> Room:
        room = self._rooms.get(self.validate_room_id(room_id))
        if room is None:
            raise RoomNotFound()
        return room

    def get_or_create(self, room_id) -> Tuple[Room, bool]:
        room_id = self.validate_room_id(room_id)
        room = self._rooms.get(room_id)
        if room is not None:
            return room, False
        room = Room(id=room_id, game=create_game(self.symbol_cap))
        self._rooms[room_id] = room
        if self.logger:
            self.logger.info(f"[room-create] room={room_id} rooms={len(self._rooms)}")
        for hook in self._create_hooks:
            hook(room_id)
        return room, True

    def assign_role(self, room: Room, sid: str, display_name=None) -> Member:
        existing = room.members.get(sid)
        if existing is not None:
            return existing
        taken = {m.role for m in room.members.values()}
        role = next((r for r in PLAYER_ROLES if r not in taken), SPECTATOR)
        name = display_name.strip()[: self.max_display_name_length] if isinstance(display_name, str) else ''
        member = Member(connection_id=sid, role=role, display_id=name or generate_display_id())
        room.members[sid] = member
        self._sid_rooms.setdefault(sid, set()).add(room.id)
        return member

    def remove_member(self, room: Room, sid: str) -> Optional[Member]:
        member = room.members.pop(sid, None)
        rooms = self._sid_rooms.get(sid)
        if rooms is not None:
            rooms.discard(room.id)
            if not rooms:
                self._sid_rooms.pop(sid, None)
        return member

    def rooms_for(self, sid: str) -> List[str]:
        return sorted(self._sid_rooms.get(sid, ()))

    def destroy(self, room_id: str) -> None:
        room = self._rooms.pop(room_id, None)
        if room is None:
            return
        for sid in room.members:
            rooms = self._sid_rooms.get(sid)
            if rooms is not None:
                rooms.discard(room_id)
                if not rooms:
                    self._sid_rooms.pop(sid, None)
        for hook in self._destroy_hooks:
            hook(room_id)
        if self.logger:
            self.logger.info(
                f"[room-destroy] room={room_id} age={time.time() - room.created_at:.0f}s rooms={len(self._rooms)}"
            )

    @staticmethod
    def active_count(room: Room) -> int:
        return sum(1 for m in room.members.values() if m.is_player)

    def stats(self, room: Room) -> dict:
        players = {}
        for role in PLAYER_ROLES:
            member = room.player(role)
            players[role] = member.display_id if member else None
        return {
            'roomId': room.id,
            'players': players,
            'playerCount': self.active_count(room),
            'spectatorCount': sum(1 for m in room.members.values() if m.role == SPECTATOR),
            'status': room.game.status,
            'scores': dict(room.game.scores),
            'createdAt': room.created_at,
            'lastActivity': room.last_activity,
        }
