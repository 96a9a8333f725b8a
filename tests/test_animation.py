"""Tests for the playback clock and time-based tasks."""

import pytest

from compute_diagrams.animation import (
    MAX_DELTA,
    Animator,
    PlaybackClock,
    clamp01,
    lerp,
    sine_out,
)
from compute_diagrams.coroutines import CoroutineManager


@pytest.fixture
def setup():
    manager = CoroutineManager()
    clock = PlaybackClock(speed=2.5)
    return manager, manager.create_runner(), clock, Animator(manager, clock)


def run(manager, clock, runner, dt=0.1, limit=100):
    passes = 0
    while runner.is_busy():
        clock.advance(dt)
        manager.advance()
        passes += 1
        assert passes < limit
    return passes


class TestHelpers:
    def test_clamp01(self):
        assert clamp01(-1) == 0.0
        assert clamp01(0.3) == 0.3
        assert clamp01(7) == 1.0

    def test_lerp(self):
        assert lerp(2, 4, 0.5) == 3

    def test_sine_out_endpoints(self):
        assert sine_out(0) == pytest.approx(0)
        assert sine_out(1) == pytest.approx(1)


class TestPlaybackClock:
    def test_clamps_long_frames(self):
        clock = PlaybackClock()
        assert clock.advance(3.0) == pytest.approx(MAX_DELTA)

    def test_scales_by_speed(self):
        clock = PlaybackClock(speed=4)
        assert clock.advance(0.05) == pytest.approx(0.2)

    def test_paused_clock_does_not_advance_animation(self):
        clock = PlaybackClock()
        assert clock.toggle() is False
        assert clock.advance(0.05) == 0
        assert clock.elapsed == pytest.approx(0.05)
        clock.toggle()
        assert clock.advance(0.05) == pytest.approx(0.05)

    def test_reset(self):
        clock = PlaybackClock()
        clock.advance(0.05)
        clock.reset()
        assert clock.delta == 0
        assert clock.elapsed == 0


class TestLerpStep:
    def test_interpolates_over_duration(self, setup):
        manager, runner, clock, animator = setup
        seen = []
        runner.add(animator.lerp_step(seen.append, duration=1.0))
        passes = run(manager, clock, runner)
        assert seen == pytest.approx([0.25, 0.5, 0.75, 1.0])
        # the pass that reaches t=1 also finishes the task
        assert passes == 4

    def test_zero_duration_finishes_immediately(self, setup):
        manager, runner, clock, animator = setup
        seen = []
        runner.add(animator.lerp_step(seen.append, duration=0))
        assert run(manager, clock, runner) == 1
        assert seen == [1.0]

    def test_seeking_jumps_to_end_and_suspends_once(self, setup):
        manager, runner, clock, animator = setup
        seen = []
        manager.target_step_count = 100
        runner.add(animator.lerp_step(seen.append, duration=10.0))
        manager.advance()
        assert seen == [1.0]
        assert runner.is_busy()
        manager.advance()
        assert seen == [1.0]
        assert not runner.is_busy()

    def test_paused_lerp_waits(self, setup):
        manager, runner, clock, animator = setup
        seen = []
        clock.toggle()
        runner.add(animator.lerp_step(seen.append, duration=1.0))
        for _ in range(5):
            clock.advance(0.1)
            manager.advance()
        assert seen == [0.0] * 5
        assert runner.is_busy()

    def test_wait_seconds(self, setup):
        manager, runner, clock, animator = setup
        runner.add(animator.wait_seconds(0.5))
        assert run(manager, clock, runner) == 2

    def test_sequenced_tweens_cost_one_pass_each_when_seeking(self, setup):
        manager, runner, clock, animator = setup

        def sequence():
            for _ in range(5):
                yield animator.lerp_step(lambda t: None, duration=3.0)
                manager.add_step()

        manager.target_step_count = 1000
        runner.add(sequence())
        passes = 0
        while runner.is_busy():
            manager.advance()
            passes += 1
        # five tween suspends plus the pass that finds the task finished
        assert passes == 6
        assert manager.step_count == 5
