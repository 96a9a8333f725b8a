"""Frame-by-frame driver for one histogram diagram."""

import logging

from .animation import Animator, PlaybackClock
from .coroutines import CoroutineManager
from .histogram import CONFIGS, HistogramScene

log = logging.getLogger(__name__)

# Passes a seek may take before it is considered stuck.
MAX_SEEK_PASSES = 200_000


class ComputeDiagram:
    """Owns a clock, a coroutine manager and the scene they animate.

    ``update(dt)`` is the per-frame entry point. ``reset()`` rewinds to the
    first frame and ``seek(step)`` fast-forwards, without pacing, until more
    than ``step`` instruction steps have been shown or the diagram ends.
    """

    def __init__(self, config, speed=1.0):
        if isinstance(config, str):
            config = CONFIGS[config]
        self.config = config
        self.clock = PlaybackClock(speed=speed)
        self.manager = CoroutineManager()
        self.scene = HistogramScene(config, self.manager, Animator(self.manager, self.clock))
        self.frame = 0
        self.scene.start()

    @property
    def finished(self):
        return self.scene.finished

    @property
    def step_count(self):
        return self.manager.step_count

    def update(self, dt):
        self.clock.advance(dt)
        self.manager.advance()
        self.frame += 1

    def reset(self):
        self.manager.reset()
        self.clock.reset()
        self.frame = 0
        self.scene.start()

    def seek(self, step, max_passes=MAX_SEEK_PASSES):
        """Rewind, then run passes until ``step`` has been passed.

        Returns the number of passes taken.
        """
        self.reset()
        self.manager.target_step_count = step
        passes = 0
        while self.manager.is_seeking and not self.finished:
            if passes >= max_passes:
                raise RuntimeError(
                    f"{self.config.kind}: seek to step {step} did not finish "
                    f"within {max_passes} passes (at step {self.step_count})"
                )
            self.manager.advance()
            passes += 1
        log.debug(
            "%s: seek to %d took %d passes, now at step %d",
            self.config.kind,
            step,
            passes,
            self.step_count,
        )
        return passes

    def frames(self, render, fps=15, max_frames=1500, hold=None):
        """Play the diagram in real time, yielding ``render(scene)`` per frame.

        Stops ``hold`` frames (default: one second) after the diagram
        finishes, or after ``max_frames`` frames.
        """
        dt = 1.0 / fps
        hold = fps if hold is None else hold
        remaining = None
        for _ in range(max_frames):
            self.update(dt)
            yield render(self.scene)
            if self.finished:
                remaining = hold if remaining is None else remaining - 1
                if remaining <= 0:
                    return
