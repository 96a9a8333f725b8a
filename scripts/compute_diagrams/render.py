"""Draw a HistogramScene with matplotlib."""

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.patches import Circle, Rectangle, RegularPolygon
from PIL import Image

from ._common import GIF_DPI, STYLE, setup_axes, stroked
from .histogram import (
    BIN_COLORS,
    BINS,
    CURSOR_TOP,
    IMAGE,
    LINE_HEIGHT,
    SIZE,
    TEXEL_COLORS,
)

# Figure inches per drawing unit; one SIZE cell is 0.4in.
INCHES_PER_UNIT = 0.4 / SIZE
IDLE_COLOR = "#888888"


def new_figure(layout, dpi=GIF_DPI):
    """Figure and full-bleed axes sized for ``layout``."""
    fig = plt.figure(
        figsize=(layout.width * INCHES_PER_UNIT, layout.height * INCHES_PER_UNIT),
        dpi=dpi,
        facecolor=STYLE["bg"],
    )
    ax = fig.add_axes((0, 0, 1, 1))
    return fig, ax


def _label(ax, x, y, text, size=10, color=None, **kwargs):
    ax.text(
        x,
        y,
        text,
        color=color or STYLE["text"],
        fontsize=size,
        fontweight="bold",
        family="monospace",
        ha=kwargs.pop("ha", "center"),
        va=kwargs.pop("va", "center"),
        **kwargs,
    )


def _draw_chunk(ax, chunk):
    for ndx, bin_ in enumerate(chunk.bins):
        bx, by = chunk.x, chunk.y + ndx * SIZE
        ax.add_patch(
            Rectangle(
                (bx, by), SIZE, SIZE,
                facecolor=BIN_COLORS[BINS[ndx]],
                edgecolor="black",
                linewidth=0.8,
            )
        )
        cx, cy = chunk.bin_center(ndx)
        _label(ax, cx, cy, str(bin_.value), path_effects=stroked(2))
        if bin_.locked:
            ax.add_patch(
                Rectangle(
                    (bx + 2, by + 2), SIZE - 4, SIZE - 4,
                    fill=False,
                    edgecolor=STYLE["accent2"],
                    linewidth=2.5,
                )
            )
        if bin_.covered:
            ax.add_patch(Rectangle((bx, by), SIZE, SIZE, facecolor=(0, 0, 0, 0.5), linewidth=0))


def _draw_image(ax, layout):
    for ty, row in enumerate(IMAGE):
        for tx, texel in enumerate(row):
            ax.add_patch(
                Rectangle(
                    (layout.image_x + tx * SIZE, layout.image_y + ty * SIZE),
                    SIZE,
                    SIZE,
                    facecolor=TEXEL_COLORS[texel],
                    linewidth=0,
                )
            )
    _label(
        ax,
        layout.image_x + layout.image_width / 2,
        layout.image_y + layout.image_height + SIZE * 0.5,
        "texture",
    )


def _draw_invocation(ax, inv, config, layout):
    x, y, w = inv.x, inv.y, inv.width
    ax.add_patch(
        Rectangle((x, y), w, inv.height, facecolor=STYLE["invocation"], edgecolor="black", linewidth=0.8)
    )
    ax.add_patch(Rectangle((x, y), w, SIZE * 0.5, facecolor=IDLE_COLOR, linewidth=0))
    if inv.header_alpha > 0:
        ax.add_patch(
            Rectangle((x, y), w, SIZE * 0.5, facecolor=STYLE["warn"], alpha=inv.header_alpha, linewidth=0)
        )
    _label(ax, x + 2, y + SIZE * 0.25, inv.id_text, size=4, color="black", ha="left")
    _label(ax, x + w - 2, y + SIZE * 0.25, inv.instruction, size=4, color="#222233", ha="right")

    # code listing, clipped to the visible lines
    code_y = y + SIZE * 0.5
    code_h = LINE_HEIGHT * config.visible_lines + SIZE * 0.1
    code_box = Rectangle((x, code_y), w, code_h, facecolor=STYLE["code"], linewidth=0)
    ax.add_patch(code_box)
    if inv.cursor_visible:
        cursor = Rectangle(
            (x, code_y + inv.cursor_y - CURSOR_TOP + SIZE * 0.05),
            w,
            SIZE * 0.35,
            facecolor=STYLE["accent4"],
            alpha=0.45,
            linewidth=0,
        )
        ax.add_patch(cursor)
        cursor.set_clip_path(code_box)
    for i, line in enumerate(config.code_lines):
        text = ax.text(
            x + 2,
            code_y + CURSOR_TOP + i * LINE_HEIGHT + SIZE * 0.2,
            line,
            color="black",
            fontsize=4.5,
            family="monospace",
            fontweight="bold",
            ha="left",
            va="center",
        )
        text.set_clip_path(code_box)

    # swatch + value row
    sx, sy = inv.color_pos
    ax.add_patch(
        Rectangle(
            (sx - SIZE / 4, sy - SIZE / 4), SIZE / 2, SIZE / 2,
            facecolor=inv.color or IDLE_COLOR,
            edgecolor="black",
            linewidth=0.5,
        )
    )
    nx, ny = inv.number_pos
    if inv.value is not None:
        _label(ax, nx, ny, str(inv.value), size=8, path_effects=stroked(2))
    icon = (x + w / 2, y + layout.below_code_y + SIZE * 0.625)
    if inv.lock_stop:
        ax.add_patch(
            RegularPolygon(icon, numVertices=8, radius=SIZE * 0.45, orientation=np.pi / 8, facecolor="#cc2222", edgecolor="white", linewidth=0.8)
        )
    if inv.barrier:
        ax.add_patch(
            Rectangle(
                (icon[0] - SIZE * 0.5, icon[1] - SIZE * 0.1), SIZE, SIZE * 0.2,
                facecolor=STYLE["accent3"],
                linewidth=0,
            )
        )
    if inv.plus_visible:
        _label(
            ax,
            nx,
            ny - SIZE * 0.25 * (inv.plus_scale - 1),
            "+",
            size=10 * inv.plus_scale,
            color=(1, 1, 1, inv.plus_alpha),
        )


def _draw_pointers(ax, inv):
    if inv.lock_target is not None:
        (x0, y0), (x1, y1) = inv.color_pos, inv.lock_target
        ax.plot([x0, x1], [y0, y1], color=inv.lock_color, alpha=0.5, linewidth=3, solid_capstyle="round")
    if not inv.pointer_visible:
        return
    (x0, y0), (x1, y1) = inv.origin, inv.pointer
    white = (1, 1, 1, inv.pointer_alpha)
    ax.plot([x0, x1], [y0, y1], color=white, linewidth=1)
    ax.add_patch(Circle((x1, y1), SIZE / 2, fill=False, edgecolor=white, linewidth=1))
    if inv.carried_color:
        ax.add_patch(
            Rectangle((x1 - 5, y1 - 5), 10, 10, facecolor=inv.carried_color, edgecolor="black", linewidth=0.5)
        )
    if inv.carried_value is not None:
        _label(ax, x1, y1, str(inv.carried_value), path_effects=stroked(2))


def draw_scene(ax, scene):
    """Draw every element of ``scene`` onto ``ax``."""
    config, layout = scene.config, scene.layout
    setup_axes(ax, layout.width, layout.height)

    if config.show_image:
        _draw_image(ax, layout)
        bottom_y = layout.image_y + layout.image_height + SIZE * 0.5
    else:
        bottom_y = layout.image_y + layout.chunk_height * config.chunks_down + SIZE * 0.5
    _label(ax, layout.chunks_x + layout.chunks_width / 2, bottom_y, config.bottom_label)
    _label(ax, layout.width / 2, SIZE * 0.5, config.workgroups_label)

    for chunk in scene.chunks:
        _draw_chunk(ax, chunk)
    for wg in scene.workgroups:
        ax.add_patch(
            Rectangle(
                (wg.x, wg.y - SIZE * 0.25), wg.width, wg.height,
                facecolor="#555566",
                linewidth=0,
            )
        )
        for inv in wg.invocations:
            _draw_invocation(ax, inv, config, layout)
        if wg.chunk is not None:
            _draw_chunk(ax, wg.chunk)
    # pointers last so they sit on top of everything
    for wg in scene.workgroups:
        for inv in wg.invocations:
            _draw_pointers(ax, inv)


class SceneRenderer:
    """Renders scenes into Pillow images through one reusable figure."""

    def __init__(self, layout, dpi=GIF_DPI):
        self.fig, self.ax = new_figure(layout, dpi)

    def __call__(self, scene):
        self.ax.clear()
        draw_scene(self.ax, scene)
        self.fig.canvas.draw()
        rgba = np.asarray(self.fig.canvas.buffer_rgba())
        return Image.fromarray(rgba.copy())

    def close(self):
        plt.close(self.fig)
