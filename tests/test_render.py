"""Tests for drawing scenes and writing image assets."""

import matplotlib.pyplot as plt
import pytest
from PIL import Image

from compute_diagrams._common import save, save_gif
from compute_diagrams.histogram import CONFIGS
from compute_diagrams.player import ComputeDiagram
from compute_diagrams.render import SceneRenderer, draw_scene, new_figure


@pytest.fixture
def renderer_for():
    renderers = []

    def make(diagram):
        renderer = SceneRenderer(diagram.scene.layout, dpi=30)
        renderers.append(renderer)
        return renderer

    yield make
    for renderer in renderers:
        renderer.close()


@pytest.mark.parametrize("kind", sorted(CONFIGS))
def test_draw_scene_mid_animation(kind):
    diagram = ComputeDiagram(kind)
    diagram.seek(3)
    fig, ax = new_figure(diagram.scene.layout, dpi=30)
    try:
        draw_scene(ax, diagram.scene)
        assert ax.patches
    finally:
        plt.close(fig)


def test_renderer_returns_images(renderer_for):
    diagram = ComputeDiagram("chunks")
    diagram.seek(12)
    render = renderer_for(diagram)
    first = render(diagram.scene)
    second = render(diagram.scene)
    assert isinstance(first, Image.Image)
    assert first.mode == "RGBA"
    assert first.size == second.size
    assert first.width > first.height / 4


def test_save_gif(tmp_path, renderer_for):
    diagram = ComputeDiagram("lockedBin")
    render = renderer_for(diagram)
    frames = diagram.frames(render, fps=10, max_frames=4)
    out = save_gif(frames, "locked.gif", str(tmp_path))
    with Image.open(out) as gif:
        assert gif.format == "GIF"
        # identical consecutive frames may be merged
        assert 1 <= gif.n_frames <= 4


def test_save_gif_without_frames(tmp_path):
    assert save_gif([], "empty.gif", str(tmp_path)) is None
    assert not (tmp_path / "empty.gif").exists()


def test_save_png(tmp_path):
    diagram = ComputeDiagram("sum")
    fig, ax = new_figure(diagram.scene.layout, dpi=30)
    draw_scene(ax, diagram.scene)
    out = save(fig, "still.png", str(tmp_path))
    with Image.open(out) as png:
        assert png.format == "PNG"
