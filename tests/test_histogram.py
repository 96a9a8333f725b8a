"""Tests for the histogram scenes and the diagram player."""

import numpy as np
import pytest

from compute_diagrams.histogram import (
    CONFIGS,
    IMAGE_CHUNK_COUNTS,
    IMAGE_HISTOGRAM,
    NUM_BINS,
    DiagramConfig,
    HistogramScene,
    Layout,
)
from compute_diagrams.player import ComputeDiagram

# Far past the end of every diagram.
THE_END = 10**9


def finish(kind):
    diagram = ComputeDiagram(kind)
    diagram.seek(THE_END)
    assert diagram.finished
    return diagram


class TestImageData:
    def test_histogram(self):
        assert IMAGE_HISTOGRAM.tolist() == [16, 8, 18]

    def test_chunk_counts(self):
        assert IMAGE_CHUNK_COUNTS.shape == (14, NUM_BINS)
        assert (IMAGE_CHUNK_COUNTS.sum(axis=1) == 3).all()
        assert (IMAGE_CHUNK_COUNTS.sum(axis=0) == IMAGE_HISTOGRAM).all()


class TestConfig:
    def test_code_lines_are_dedented(self):
        lines = CONFIGS["single"].code_lines
        assert lines[0].startswith("for (y")
        assert lines[1].startswith("  for (x")
        assert len(lines) == 6

    def test_visible_lines(self):
        assert CONFIGS["chunks"].visible_lines == 3
        assert CONFIGS["sum"].visible_lines == 1
        assert CONFIGS["race"].visible_lines == 3

    @pytest.mark.parametrize("kind", sorted(CONFIGS))
    def test_layout_fits_drawing(self, kind):
        config = CONFIGS[kind]
        layout = Layout(config)
        for ndx in range(config.num_workgroups):
            x, y = layout.workgroup_origin(ndx)
            assert 0 <= x and x + layout.workgroup_width <= layout.width
        for ndx in range(config.num_chunks):
            x, y = layout.chunk_origin(ndx)
            assert 0 <= x <= layout.width

    def test_unknown_kind(self):
        from compute_diagrams.animation import Animator, PlaybackClock
        from compute_diagrams.coroutines import CoroutineManager

        manager = CoroutineManager()
        with pytest.raises(ValueError):
            HistogramScene(
                DiagramConfig(kind="bogus", num_workgroups=1),
                manager,
                Animator(manager, PlaybackClock()),
            )


class TestResults:
    @pytest.mark.parametrize("kind", ["single", "noRace"])
    def test_storage_histogram_is_exact(self, kind):
        diagram = finish(kind)
        assert diagram.scene.storage == IMAGE_HISTOGRAM.tolist()
        assert not any(b.locked for b in diagram.scene.chunks[0].bins)

    def test_race_never_over_counts(self):
        storage = np.array(finish("race").scene.storage)
        assert (storage <= IMAGE_HISTOGRAM).all()
        assert (storage >= 1).all()
        # four invocations racing over the same bins lose updates
        assert storage.sum() < IMAGE_HISTOGRAM.sum()

    def test_chunks_match_image(self):
        scene = finish("chunks").scene
        values = np.array([[b.value for b in chunk.bins] for chunk in scene.chunks])
        assert (values == IMAGE_CHUNK_COUNTS).all()
        for wg in scene.workgroups:
            assert wg.barrier_count == 0
            assert not any(b.locked for b in wg.chunk.bins)

    @pytest.mark.parametrize("kind", ["sum", "reduce"])
    def test_reductions_total_into_first_chunk(self, kind):
        scene = finish(kind).scene
        assert scene.storage == IMAGE_HISTOGRAM.tolist()
        assert all(b.covered for chunk in scene.chunks[1:] for b in chunk.bins)

    def test_locked_bin(self):
        scene = finish("lockedBin").scene
        first, second = (wg.invocations[0] for wg in scene.workgroups)
        assert scene.chunks[0].bins[2].locked
        assert first.lock_target is not None
        assert second.lock_stop

    @pytest.mark.parametrize("kind", sorted(CONFIGS))
    def test_every_kind_finishes(self, kind):
        diagram = finish(kind)
        assert diagram.step_count > 0
        assert not diagram.scene.dispatch_runner.is_busy()


class TestPlayer:
    def test_seek_stops_just_past_target(self):
        diagram = ComputeDiagram("noRace")
        diagram.seek(5)
        assert diagram.step_count == 6
        assert not diagram.manager.is_seeking

    def test_seek_is_deterministic(self):
        diagram = ComputeDiagram("race")

        def snapshot():
            return [
                (inv.instruction, inv.pointer, inv.value)
                for wg in diagram.scene.workgroups
                for inv in wg.invocations
            ] + [diagram.scene.storage]

        diagram.seek(40)
        first = snapshot()
        diagram.seek(40)
        assert snapshot() == first

    def test_seek_gives_up(self):
        diagram = ComputeDiagram("single")
        with pytest.raises(RuntimeError):
            diagram.seek(THE_END, max_passes=10)

    def test_reset_rewinds(self):
        diagram = ComputeDiagram("noRace", speed=4)
        for _ in range(200):
            diagram.update(0.1)
        assert diagram.step_count > 0
        diagram.reset()
        assert diagram.step_count == 0
        assert diagram.frame == 0
        assert diagram.scene.storage == [0, 0, 0]
        assert diagram.scene.dispatch_runner.is_busy()

    def test_real_time_playback_matches_seek(self):
        diagram = ComputeDiagram("sum", speed=4)
        for _ in range(20_000):
            if diagram.finished:
                break
            diagram.update(0.1)
        assert diagram.finished
        assert diagram.scene.storage == IMAGE_HISTOGRAM.tolist()

    def test_frames_stop_after_hold(self):
        diagram = ComputeDiagram("lockedBin")
        frames = list(diagram.frames(lambda scene: diagram.frame, fps=10, hold=3))
        assert diagram.finished
        assert frames == list(range(1, len(frames) + 1))
        assert len(frames) < 1500

    def test_frames_respect_max_frames(self):
        diagram = ComputeDiagram("single")
        frames = list(diagram.frames(lambda scene: None, fps=10, max_frames=25))
        assert len(frames) == 25
        assert not diagram.finished
