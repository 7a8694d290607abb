import logging

import pytest

from ttt_arena.models import FINISHED, O, PLAYING, WAITING, X
from ttt_arena.services import engine
from ttt_arena.services.registry import RoomRegistry
from ttt_arena.services.scheduler import RoomExpiry, TurnTimer

logger = logging.getLogger('tests.scheduler')


class FakeSocketIO:
    """Collects background tasks instead of running them. `sleep` advances a fake clock."""

    def __init__(self, now=1000.0):
        self.now = now
        self.tasks = []
        self.started = []
        self.slept = []

    def clock(self):
        return self.now

    def start_background_task(self, target, *args):
        self.tasks.append((target, args))
        self.started.append(args)

    def sleep(self, seconds):
        self.slept.append(seconds)
        self.now += seconds

    def run_all(self):
        while self.tasks:
            target, args = self.tasks.pop(0)
            target(*args)


@pytest.fixture()
def sio():
    return FakeSocketIO()


@pytest.fixture()
def registry():
    return RoomRegistry(logger=logger)


def _playing_room(registry, room_id='r1'):
    room, _ = registry.get_or_create(room_id)
    registry.assign_role(room, 'sid-x', None)
    registry.assign_role(room, 'sid-o', None)
    room.game = engine.start_game(room.game)
    return room


def test_turn_timer_forfeits_current_player(registry, sio):
    timer = TurnTimer(registry, sio, 30000, logger, clock=sio.clock)
    forfeits = []
    timer.subscribe(forfeits.append)
    room = _playing_room(registry)
    room.game = engine.apply_placement(room.game, X, 4)
    timer.arm('r1')
    assert room.game.turn_start_time is not None
    assert timer.deadline('r1') == pytest.approx(room.game.turn_start_time + 30, abs=1)

    sio.run_all()

    assert sio.slept == [30.0]
    assert room.game.status == FINISHED
    assert room.game.winner == X
    assert room.game.scores[X] == 1
    assert room.game.scores[O] == 0
    assert forfeits == [room]
    assert timer.pending('r1') is None


def test_rearm_supersedes_previous_deadline(registry, sio):
    timer = TurnTimer(registry, sio, 30000, logger, clock=sio.clock)
    room = _playing_room(registry)
    first = timer.arm('r1')
    second = timer.arm('r1')
    assert first != second
    assert timer.expire('r1', first) is False
    assert room.game.status == PLAYING
    assert timer.expire('r1', second) is True
    assert room.game.status == FINISHED


def test_disarm_cancels(registry, sio):
    timer = TurnTimer(registry, sio, 30000, logger, clock=sio.clock)
    room = _playing_room(registry)
    token = timer.arm('r1')
    timer.disarm('r1')
    sio.run_all()
    assert timer.expire('r1', token) is False
    assert room.game.status == PLAYING


def test_turn_timer_rechecks_status_on_fire(registry, sio):
    timer = TurnTimer(registry, sio, 30000, logger, clock=sio.clock)
    room = _playing_room(registry)
    token = timer.arm('r1')
    room.game = engine.pause_game(room.game)
    assert timer.expire('r1', token) is False
    assert room.game.status == WAITING
    assert room.game.winner is None


def test_turn_timer_ignores_destroyed_room(registry, sio):
    timer = TurnTimer(registry, sio, 30000, logger, clock=sio.clock)
    _playing_room(registry)
    token = timer.arm('r1')
    registry.destroy('r1')
    assert timer.pending('r1') is None
    assert timer.expire('r1', token) is False


def test_turn_timer_does_not_leak_into_recreated_room(registry, sio):
    timer = TurnTimer(registry, sio, 30000, logger, clock=sio.clock)
    _playing_room(registry)
    token = timer.arm('r1')
    registry.destroy('r1')
    fresh = _playing_room(registry)
    assert timer.expire('r1', token) is False
    assert fresh.game.status == PLAYING


def test_no_background_task_when_spawn_disabled(registry, sio):
    timer = TurnTimer(registry, sio, 30000, logger, spawn=False)
    _playing_room(registry)
    assert timer.arm('r1') is not None
    assert sio.tasks == []


def test_room_expiry_armed_on_create_and_destroys(registry, sio):
    expiry = RoomExpiry(registry, sio, 3600000, logger, clock=sio.clock)
    closed = []
    expiry.subscribe(lambda room: closed.append(room.id))
    room = _playing_room(registry)
    assert expiry.pending('r1') is not None
    assert len(sio.tasks) == 1

    sio.run_all()

    assert sio.slept == [3600.0]
    assert closed == ['r1']
    assert 'r1' not in registry
    assert registry.rooms_for('sid-x') == []
    assert room.members  # members are not touched, only the registry entry goes


def test_room_expiry_rearm_postpones(registry, sio):
    expiry = RoomExpiry(registry, sio, 3600000, logger, clock=sio.clock)
    registry.get_or_create('r1')
    stale = expiry.pending('r1')
    expiry.arm('r1')
    assert expiry.expire('r1', stale) is False
    assert 'r1' in registry


def test_listener_failure_is_contained(registry, sio):
    expiry = RoomExpiry(registry, sio, 1000, logger, clock=sio.clock)

    def boom(room):
        raise RuntimeError('listener exploded')

    expiry.subscribe(boom)
    registry.get_or_create('r1')
    assert expiry.expire('r1', expiry.pending('r1')) is False


def test_repeated_arm_keeps_one_worker_per_room(registry, sio):
    timer = TurnTimer(registry, sio, 30000, logger, clock=sio.clock)
    _playing_room(registry, 'r1')
    _playing_room(registry, 'r2')
    for _ in range(50):
        timer.arm('r1')
    timer.arm('r2')
    assert sio.started == [('r1',), ('r2',)]
    assert timer.workers() == 2


def test_worker_follows_postponed_deadline(registry, sio):
    timer = TurnTimer(registry, sio, 30000, logger, clock=sio.clock)
    forfeits = []
    timer.subscribe(forfeits.append)
    room = _playing_room(registry)
    timer.arm('r1')
    target, args = sio.tasks.pop()
    sio.now += 20
    timer.arm('r1')

    target(*args)

    assert sio.slept == [pytest.approx(30.0)]
    assert sio.now == pytest.approx(1050.0)
    assert forfeits == [room]
    assert timer.workers() == 0
    assert sio.tasks == []


def test_worker_exits_when_disarmed(registry, sio):
    timer = TurnTimer(registry, sio, 30000, logger, clock=sio.clock)
    room = _playing_room(registry)
    timer.arm('r1')
    timer.disarm('r1')
    sio.run_all()
    assert sio.slept == []
    assert timer.workers() == 0
    assert room.game.status == PLAYING


def test_arm_after_fire_starts_new_worker(registry, sio):
    expiry = RoomExpiry(registry, sio, 1000, logger, clock=sio.clock)
    expiry.subscribe(lambda room: expiry.arm('other'))
    registry.get_or_create('r1')
    registry.get_or_create('other')
    sio.run_all()
    assert 'r1' not in registry
    assert 'other' not in registry
    assert sio.started == [('r1',), ('other',), ('other',)]
