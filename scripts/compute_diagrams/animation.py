"""Playback clock, easing helpers and time-based leaf tasks."""

import math

# Playback speed presets offered by the diagram controls (¼x … 4x).
SPEEDS = (0.25, 0.5, 1, 2, 4)

# Longest frame delta honoured, so a stalled frame does not skip animation.
MAX_DELTA = 0.1


def clamp01(v):
    return min(1.0, max(0.0, v))


def lerp(a, b, t):
    return a + (b - a) * t


def sine_out(t):
    return 1 - math.cos(t * math.pi * 0.5)


class PlaybackClock:
    """Per-frame animation time: raw frame delta scaled by speed and pause."""

    def __init__(self, speed=1.0, playing=True):
        self.speed = speed
        self.playing = playing
        self.delta = 0.0
        self.elapsed = 0.0

    def advance(self, dt):
        """Record a new frame of ``dt`` seconds and return the animation delta."""
        dt = min(MAX_DELTA, max(0.0, dt))
        self.elapsed += dt
        self.delta = dt * self.speed * (1 if self.playing else 0)
        return self.delta

    def toggle(self):
        self.playing = not self.playing
        return self.playing

    def reset(self):
        self.delta = 0.0
        self.elapsed = 0.0


class Animator:
    """Builds time-based tasks paced by a clock and aware of seeking."""

    def __init__(self, manager, clock):
        self.manager = manager
        self.clock = clock

    def lerp_step(self, fn, duration=1.0):
        """Call ``fn(t)`` once per frame with ``t`` going from 0 to 1.

        While the manager is seeking, ``t`` jumps straight to 1 and the task
        still suspends once before finishing, so each tween costs one pass.
        """
        elapsed = 0.0
        while True:
            elapsed += self.clock.delta
            seeking = self.manager.is_seeking
            if seeking or duration <= 0:
                t = 1.0
            else:
                t = clamp01(elapsed / duration)
            fn(t)
            if t >= 1.0:
                if seeking:
                    yield
                return
            yield

    def wait_seconds(self, duration):
        yield self.lerp_step(lambda t: None, duration)
