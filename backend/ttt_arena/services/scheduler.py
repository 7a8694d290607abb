import itertools
import time
from typing import Callable, Dict, List, Optional, Set, Tuple

from ttt_arena.models import PLAYING, Room
from ttt_arena.services.engine import apply_forfeit

Listener = Callable[[Room], None]


class DeadlineScheduler:
    """One pending deadline per room, fired from a Socket.IO background task.

    Each ``arm`` issues a fresh token and a later deadline. A room has at most
    one live worker: re-arming only replaces the pending entry, and the worker
    keeps sleeping until whatever deadline is pending when it wakes. It
    re-resolves the room through the registry instead of trusting anything
    captured when it was scheduled.
    """

    tag = 'timer'

    def __init__(
        self,
        registry,
        socketio,
        delay_ms: int,
        logger,
        spawn: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.socketio = socketio
        self.delay_sec = delay_ms / 1000.0
        self.logger = logger
        self.spawn = spawn
        self._clock = clock
        self._tokens = itertools.count(1)
        self._pending: Dict[str, Tuple[int, float]] = {}
        self._workers: Set[str] = set()
        self._listeners: List[Listener] = []
        registry.add_destroy_hook(self.disarm)

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def arm(self, room_id: str) -> int:
        with self.registry.lock:
            token = next(self._tokens)
            self._pending[room_id] = (token, self._clock() + self.delay_sec)
            self.logger.debug(f"[{self.tag}-set] room={room_id} token={token} duration={self.delay_sec}s")
            if self.spawn and room_id not in self._workers:
                self._workers.add(room_id)
                self.socketio.start_background_task(self._runner, room_id)
            return token

    def disarm(self, room_id: str) -> None:
        self._pending.pop(room_id, None)

    def pending(self, room_id: str) -> Optional[int]:
        entry = self._pending.get(room_id)
        return entry[0] if entry else None

    def deadline(self, room_id: str) -> Optional[float]:
        entry = self._pending.get(room_id)
        return entry[1] if entry else None

    def workers(self) -> int:
        return len(self._workers)

    def _runner(self, room_id: str) -> None:
        while True:
            with self.registry.lock:
                entry = self._pending.get(room_id)
                if entry is None:
                    self._workers.discard(room_id)
                    return
                token, deadline = entry
                remaining = deadline - self._clock()
                if remaining <= 0:
                    # leave before firing so a listener that re-arms gets a fresh worker
                    self._workers.discard(room_id)
                    self.expire(room_id, token)
                    return
            self.socketio.sleep(remaining)

    def expire(self, room_id: str, token: int) -> bool:
        """Run the deadline action if ``token`` is still current. Returns True when it fired."""
        with self.registry.lock:
            if self.pending(room_id) != token:
                self.logger.debug(f"[{self.tag}-abort] room={room_id} token={token} superseded")
                return False
            self._pending.pop(room_id, None)
            room = self.registry.get(room_id)
            if room is None:
                self.logger.info(f"[{self.tag}-abort] room={room_id} token={token} room gone")
                return False
            self.logger.info(f"[{self.tag}-fire] room={room_id} token={token} status={room.game.status}")
            try:
                return self._fire(room)
            except Exception:
                self.logger.exception(f"[{self.tag}-error] room={room_id} token={token}")
                return False

    def _notify(self, room: Room) -> None:
        for listener in self._listeners:
            listener(room)

    def _fire(self, room: Room) -> bool:
        raise NotImplementedError


class TurnTimer(DeadlineScheduler):
    """Forfeits the turn of a player who does not act before the deadline."""

    tag = 'turn'

    def arm(self, room_id: str) -> int:
        token = super().arm(room_id)
        room = self.registry.get(room_id)
        if room is not None:
            room.game.turn_start_time = self._clock()
        return token

    def _fire(self, room: Room) -> bool:
        if room.game.status != PLAYING:
            self.logger.info(f"[turn-abort] room={room.id} status={room.game.status}")
            return False
        loser = room.game.current_player
        room.game = apply_forfeit(room.game)
        room.touch()
        self.logger.info(f"[forfeit] room={room.id} loser={loser} winner={room.game.winner} scores={room.game.scores}")
        self._notify(room)
        return True


class RoomExpiry(DeadlineScheduler):
    """Destroys rooms that saw no accepted action for the expiry window."""

    tag = 'expire'

    def __init__(self, registry, socketio, delay_ms: int, logger, spawn: bool = True, clock=time.time) -> None:
        super().__init__(registry, socketio, delay_ms, logger, spawn=spawn, clock=clock)
        registry.add_create_hook(self.arm)

    def _fire(self, room: Room) -> bool:
        self._notify(room)
        self.registry.destroy(room.id)
        return True
