import time
from typing import Optional

from flask import request
from flask_socketio import emit, join_room

from ttt_arena.errors import (
    GameError,
    GameInProgress,
    InvalidPayload,
    NotAMember,
    NothingToUndo,
    RateLimited,
    SpectatorForbidden,
)
from ttt_arena.models import DRAW, FINISHED, PLAYING, WAITING, Member, Room
from ttt_arena.schemas import INTENTS, parse_intent
from ttt_arena.services import engine
from ttt_arena.services.rate_limit import RateLimiter
from ttt_arena.services.registry import RoomRegistry
from ttt_arena.services.scheduler import RoomExpiry, TurnTimer

STANDARD = 'standard'
CLASSIC = 'classic'


class SessionCoordinator:
    """Binds Socket.IO intents to the room registry, rule engine and timers.

    Every handler validates completely before writing, stores the new game on
    the room, re-arms timers and then broadcasts. Rejections go back to the
    requesting sid only.
    """

    def __init__(
        self,
        socketio,
        registry: RoomRegistry,
        limiter: RateLimiter,
        expiry: RoomExpiry,
        turn_timer: Optional[TurnTimer],
        logger,
        namespace: str = '/',
        ruleset: str = STANDARD,
        max_chat_length: int = 200,
    ) -> None:
        self.socketio = socketio
        self.registry = registry
        self.limiter = limiter
        self.expiry = expiry
        self.turn_timer = turn_timer
        self.logger = logger
        self.namespace = namespace
        self.ruleset = ruleset
        self.max_chat_length = max_chat_length
        self._handlers = {
            'joinGame': self.join_game,
            'makeMove': self.make_move,
            'removeSymbol': self.remove_symbol,
            'undo': self.undo,
            'resetGame': self.reset_game,
            'rematch': self.rematch,
            'getRoomInfo': self.get_room_info,
            'chatMessage': self.chat_message,
        }
        expiry.subscribe(self._announce_expiry)
        if turn_timer is not None:
            turn_timer.subscribe(self._announce_forfeit)

    # ---- transport helpers ----

    def _send(self, sid: str, event: str, payload: dict) -> None:
        try:
            self.socketio.emit(event, payload, to=sid, namespace=self.namespace)
        except Exception:
            self.logger.exception(f"[emit-failed] event={event} sid={sid}")

    def _broadcast(self, room: Room, event: str, payload: dict, skip_sid: Optional[str] = None) -> None:
        try:
            self.socketio.emit(event, payload, to=room.channel, namespace=self.namespace, skip_sid=skip_sid)
        except Exception:
            self.logger.exception(f"[emit-failed] event={event} room={room.id}")

    def state(self, room: Room) -> dict:
        payload = room.game.to_dict()
        payload['roomId'] = room.id
        payload['stats'] = self.registry.stats(room)
        payload['turnDeadline'] = self.turn_timer.deadline(room.id) if self.turn_timer else None
        return payload

    def _broadcast_update(self, room: Room) -> None:
        self._broadcast(room, 'update', self.state(room))

    # ---- dispatch ----

    def dispatch(self, event: str, sid: str, data) -> None:
        try:
            intent = parse_intent(event, data)
            with self.registry.lock:
                self._handlers[event](sid, intent)
        except GameError as exc:
            self.logger.info(f"[reject] event={event} sid={sid} code={exc.code}")
            self._send(sid, 'error', exc.to_dict())
        except Exception:
            # one bad handler must not take the other rooms down
            self.logger.exception(f"[handler-error] event={event} sid={sid}")
            self._send(sid, 'error', {'message': 'Internal error', 'code': 'InternalError'})

    def _throttle(self, sid: str) -> None:
        if not self.limiter.check(sid):
            self.logger.info(f"[rate-limit] sid={sid}")
            raise RateLimited()

    @staticmethod
    def _member(room: Room, sid: str) -> Member:
        member = room.members.get(sid)
        if member is None:
            raise NotAMember()
        return member

    def _player(self, room: Room, sid: str) -> Member:
        member = self._member(room, sid)
        if not member.is_player:
            raise SpectatorForbidden()
        return member

    def _ready(self, room: Room) -> bool:
        return self.registry.active_count(room) == 2

    def _rearm(self, room: Room) -> None:
        if self.turn_timer is not None:
            if room.game.status == PLAYING:
                self.turn_timer.arm(room.id)
            else:
                self.turn_timer.disarm(room.id)
        self.expiry.arm(room.id)

    def _after_action(self, room: Room) -> None:
        room.touch()
        self._rearm(room)
        self._broadcast_update(room)
        if room.game.status == FINISHED:
            game = room.game
            reason = 'draw' if game.winner == DRAW else 'line'
            self.logger.info(f"[game-over] room={room.id} winner={game.winner} scores={game.scores}")
            self._broadcast(room, 'gameOver', {
                'roomId': room.id,
                'winner': game.winner,
                'line': game.winning_line,
                'reason': reason,
                'scores': dict(game.scores),
            })

    # ---- intents ----

    def join_game(self, sid: str, intent) -> None:
        room, created = self.registry.get_or_create(intent.roomId)
        join_room(room.channel, sid=sid, namespace=self.namespace)
        rejoin = sid in room.members
        member = self.registry.assign_role(room, sid, intent.displayName)
        started = False
        if not rejoin and member.is_player and room.game.status == WAITING and self._ready(room):
            room.game = engine.start_game(room.game)
            started = True
            if self.turn_timer is not None:
                self.turn_timer.arm(room.id)
        self.expiry.arm(room.id)
        self.logger.info(
            f"[join] room={room.id} sid={sid} role={member.role} created={created} rejoin={rejoin} status={room.game.status}"
        )

        init = self.state(room)
        init.update({'myPlayer': member.role, 'displayId': member.display_id, 'ruleset': self.ruleset})
        self._send(sid, 'init', init)
        if not rejoin:
            self._broadcast(room, 'playerJoined', {
                'roomId': room.id,
                'role': member.role,
                'displayId': member.display_id,
                'stats': self.registry.stats(room),
            }, skip_sid=sid)
        if started:
            self._broadcast_update(room)

    def make_move(self, sid: str, intent) -> None:
        self._throttle(sid)
        room = self.registry.require(intent.roomId)
        member = self._player(room, sid)
        room.game = engine.apply_placement(room.game, member.role, intent.index)
        self.logger.info(f"[move] room={room.id} role={member.role} index={intent.index}")
        self._after_action(room)

    def remove_symbol(self, sid: str, intent) -> None:
        self._throttle(sid)
        room = self.registry.require(intent.roomId)
        member = self._player(room, sid)
        room.game = engine.apply_removal(room.game, member.role, intent.index)
        self.logger.info(f"[remove] room={room.id} role={member.role} index={intent.index}")
        self._after_action(room)

    def undo(self, sid: str, intent) -> None:
        self._throttle(sid)
        room = self.registry.require(intent.roomId)
        self._player(room, sid)
        if self.ruleset != CLASSIC:
            raise NothingToUndo('Undo is not available in this room')
        room.game = engine.apply_undo(room.game)
        self.logger.info(f"[undo] room={room.id} turn={room.game.current_player}")
        self._after_action(room)

    def _restart(self, room: Room, member: Member, event: str) -> None:
        room.game = engine.reset_preserving_scores(room.game, ready=self._ready(room))
        self.logger.info(f"[{event}] room={room.id} by={member.role} status={room.game.status} scores={room.game.scores}")
        room.touch()
        self._rearm(room)
        self._broadcast(room, 'gameReset', {
            'roomId': room.id,
            'by': member.display_id,
            'scores': dict(room.game.scores),
        })
        self._broadcast_update(room)

    def reset_game(self, sid: str, intent) -> None:
        self._throttle(sid)
        room = self.registry.require(intent.roomId)
        if self.ruleset == CLASSIC:
            member = self._member(room, sid)
        else:
            member = self._player(room, sid)
        self._restart(room, member, 'reset')

    def rematch(self, sid: str, intent) -> None:
        self._throttle(sid)
        room = self.registry.require(intent.roomId)
        member = self._player(room, sid)
        if room.game.status != FINISHED:
            raise GameInProgress()
        self._restart(room, member, 'rematch')

    def get_room_info(self, sid: str, intent) -> None:
        room_id = self.registry.validate_room_id(intent.roomId)
        room = self.registry.get(room_id)
        if room is None:
            self._send(sid, 'roomInfo', {'roomId': room_id, 'exists': False})
            return
        info = self.registry.stats(room)
        info['exists'] = True
        self._send(sid, 'roomInfo', info)

    def chat_message(self, sid: str, intent) -> None:
        self._throttle(sid)
        room = self.registry.require(intent.roomId)
        member = self._member(room, sid)
        text = intent.message.strip()
        if not text:
            raise InvalidPayload('Message is empty')
        self._broadcast(room, 'chatMessage', {
            'roomId': room.id,
            'from': member.display_id,
            'role': member.role,
            'message': text[: self.max_chat_length],
            'timestamp': time.time(),
        })

    def disconnect(self, sid: str) -> None:
        with self.registry.lock:
            for room_id in self.registry.rooms_for(sid):
                room = self.registry.get(room_id)
                if room is None:
                    continue
                member = self.registry.remove_member(room, sid)
                if member is None:
                    continue
                self.logger.info(f"[leave] room={room_id} sid={sid} role={member.role} remaining={len(room.members)}")
                if not room.members:
                    self.registry.destroy(room_id)
                    continue
                if member.is_player and room.game.status == PLAYING:
                    room.game = engine.pause_game(room.game)
                    if self.turn_timer is not None:
                        self.turn_timer.disarm(room_id)
                self._broadcast(room, 'playerLeft', {
                    'roomId': room_id,
                    'role': member.role,
                    'displayId': member.display_id,
                    'stats': self.registry.stats(room),
                })
                if member.is_player:
                    self._broadcast_update(room)
            self.limiter.forget(sid)

    # ---- timer listeners ----

    def _announce_forfeit(self, room: Room) -> None:
        self.expiry.arm(room.id)
        self._broadcast(room, 'gameOver', {
            'roomId': room.id,
            'winner': room.game.winner,
            'line': None,
            'reason': 'timeout',
            'scores': dict(room.game.scores),
        })
        self._broadcast_update(room)

    def _announce_expiry(self, room: Room) -> None:
        self.logger.info(f"[expire] room={room.id} members={len(room.members)}")
        self._broadcast(room, 'roomClosed', {'roomId': room.id, 'reason': 'expired'})
        try:
            self.socketio.close_room(room.channel, namespace=self.namespace)
        except Exception:
            self.logger.exception(f"[emit-failed] close_room room={room.id}")


def build_coordinator(flask_app, socketio) -> SessionCoordinator:
    cfg = flask_app.config
    logger = flask_app.logger
    ruleset = CLASSIC if cfg.get('RULESET') == CLASSIC else STANDARD
    spawn = not cfg.get('TESTING') or bool(cfg.get('ENABLE_TIMERS_IN_TESTS'))

    registry = RoomRegistry(
        symbol_cap=cfg.get('MAX_SYMBOLS_PER_ROLE', 3),
        max_room_id_length=cfg.get('MAX_ROOM_ID_LENGTH', 50),
        max_display_name_length=cfg.get('MAX_DISPLAY_NAME_LENGTH', 32),
        logger=logger,
    )
    limiter = RateLimiter(
        max_per_window=cfg.get('MAX_ACTIONS_PER_WINDOW', 5),
        window_ms=cfg.get('RATE_LIMIT_WINDOW_MS', 1000),
    )
    expiry = RoomExpiry(registry, socketio, cfg.get('ROOM_EXPIRY_MS', 3600000), logger, spawn=spawn)
    turn_timer = None
    if ruleset == STANDARD:
        turn_timer = TurnTimer(registry, socketio, cfg.get('MOVE_TIMEOUT_MS', 30000), logger, spawn=spawn)
    return SessionCoordinator(
        socketio,
        registry,
        limiter,
        expiry,
        turn_timer,
        logger,
        namespace=cfg.get('SOCKETIO_NAMESPACE', '/'),
        ruleset=ruleset,
        max_chat_length=cfg.get('MAX_CHAT_LENGTH', 200),
    )


def register_socketio_handlers(socketio, coordinator: SessionCoordinator) -> None:
    """Register Socket.IO event handlers on the coordinator's namespace."""
    namespace = coordinator.namespace

    def handle_connect(auth=None):
        emit('connected', {'sid': request.sid, 'ruleset': coordinator.ruleset})

    def handle_disconnect(reason=None):
        sid = request.sid
        try:
            coordinator.disconnect(sid)
        except Exception:
            coordinator.logger.exception(f"[handler-error] event=disconnect sid={sid}")

    def _bind(event):
        def handler(data=None):
            coordinator.dispatch(event, request.sid, data)
        return handler

    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    for event in INTENTS:
        socketio.on_event(event, _bind(event), namespace=namespace)
