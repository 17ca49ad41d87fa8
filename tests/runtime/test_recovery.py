from __future__ import annotations

import pytest

from multiview.infra.exceptions import PlaybackError
from multiview.runtime.recovery import RecoveryScheduler
from multiview.runtime.transport import StreamSourceAdapter

URL = "https://cdn.example.com/live/channel.m3u8"

HARD_RELOAD = ["stop_load", "detach", "attach", "load_source", "start_load"]
CHEAP = ["start_load", "recover_media_error"]


class _NullListener:
    def on_transport_error(self, event) -> None:
        pass


@pytest.fixture
def adapter(session_factory, fake_target) -> StreamSourceAdapter:
    adapter = StreamSourceAdapter(URL, fake_target, session_factory, _NullListener(), tile_index=3)
    adapter.attach()
    return adapter


def test_counter_steps_by_one_and_hard_reload_every_third(adapter, scheduler, sessions, fake_target):
    recovery = RecoveryScheduler(adapter, fake_target.play, scheduler, hard_reload_every=3)
    session = sessions[0]

    for attempt in range(1, 10):
        before = len(session.calls)
        recovery.tick()
        assert recovery.attempts == attempt
        tick_calls = session.calls[before:]
        if attempt % 3 == 0:
            assert tick_calls == CHEAP + HARD_RELOAD
        else:
            assert tick_calls == CHEAP

    assert recovery.hard_reloads == 3
    assert fake_target.play_calls == 9


def test_zero_disables_hard_reload(adapter, scheduler, sessions, fake_target):
    recovery = RecoveryScheduler(adapter, fake_target.play, scheduler, hard_reload_every=0)
    for _ in range(6):
        recovery.tick()
    assert "detach" not in sessions[0].calls
    assert recovery.hard_reloads == 0


def test_runs_on_interval_without_cutoff(adapter, scheduler, fake_target):
    recovery = RecoveryScheduler(adapter, fake_target.play, scheduler, interval=5.0)
    recovery.start()

    scheduler.advance(5.0 * 100)
    assert recovery.attempts == 100
    assert recovery.running


def test_resume_failures_do_not_stop_the_loop(adapter, scheduler, fake_target):
    fake_target.play_error = PlaybackError("autoplay rejected")
    recovery = RecoveryScheduler(adapter, fake_target.play, scheduler, interval=5.0)
    recovery.start()

    scheduler.advance(15.0)
    assert recovery.attempts == 3
    assert fake_target.play_calls == 3


def test_mitigation_failures_are_swallowed(adapter, scheduler, sessions, fake_target):
    sessions[0].fail_on = {"start_load", "recover_media_error", "detach"}
    recovery = RecoveryScheduler(adapter, fake_target.play, scheduler, interval=5.0)
    recovery.start()

    scheduler.advance(30.0)
    assert recovery.attempts == 6
    assert recovery.running
    assert adapter.attached


def test_restart_keeps_a_single_interval(adapter, scheduler, fake_target):
    recovery = RecoveryScheduler(adapter, fake_target.play, scheduler, interval=5.0)
    recovery.start()
    recovery.start()
    assert scheduler.pending() == 1

    scheduler.advance(5.0)
    assert recovery.attempts == 1

    recovery.stop()
    assert scheduler.pending() == 0
    assert not recovery.running


def test_validates_parameters(adapter, scheduler, fake_target):
    with pytest.raises(ValueError):
        RecoveryScheduler(adapter, fake_target.play, scheduler, interval=0.0)
    with pytest.raises(ValueError):
        RecoveryScheduler(adapter, fake_target.play, scheduler, hard_reload_every=-1)
