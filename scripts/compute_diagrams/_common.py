"""Shared style, helpers, and constants for compute diagram generation."""

import os

import matplotlib

matplotlib.use("Agg")

import matplotlib.patheffects as pe  # noqa: E402
import matplotlib.pyplot as plt  # noqa: E402
from PIL import Image  # noqa: E402

# ---------------------------------------------------------------------------
# Paths and settings
# ---------------------------------------------------------------------------

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
ASSETS_DIR = os.path.join(REPO_ROOT, "assets")
DPI = 200  # still PNGs
GIF_DPI = 80  # animation frames; GIFs get large quickly
GIF_COLORS = 256

# ---------------------------------------------------------------------------
# Dark theme style
# ---------------------------------------------------------------------------

STYLE = {
    "bg": "#1a1a2e",  # Dark blue-gray background
    "grid": "#2a2a4a",  # Subtle grid lines
    "axis": "#8888aa",  # Axis lines and labels
    "text": "#e0e0f0",  # Primary text
    "text_dim": "#8888aa",  # Secondary/dim text
    "accent1": "#4fc3f7",  # Cyan: program cursor
    "accent2": "#ff7043",  # Orange: locks
    "accent3": "#66bb6a",  # Green: barrier
    "accent4": "#ab47bc",  # Purple: workgroup memory
    "warn": "#ffd54f",  # Yellow: header flash, stop sign
    "surface": "#252545",  # Slightly lighter surface for fills
    "invocation": "#444455",  # Invocation body
    "code": "#ccccdd",  # Code listing background
}


def setup_axes(ax, width, height):
    """Apply the dark styling to axes drawn in top-down diagram coordinates."""
    ax.set_facecolor(STYLE["bg"])
    ax.set_xlim(0, width)
    ax.set_ylim(height, 0)
    ax.set_aspect("equal")
    ax.axis("off")


def stroked(linewidth=2):
    """Path effect that outlines text against the background."""
    return [pe.withStroke(linewidth=linewidth, foreground=STYLE["bg"])]


def save(fig, filename, out_dir=None):
    """Save a figure as PNG to the assets/ directory and return its path."""
    out_dir = out_dir or ASSETS_DIR
    os.makedirs(out_dir, exist_ok=True)
    out = os.path.join(out_dir, filename)
    fig.savefig(
        out,
        dpi=DPI,
        bbox_inches="tight",
        facecolor=STYLE["bg"],
        pad_inches=0.2,
    )
    plt.close(fig)
    print(f"  {_display_path(out)}")
    return out


def save_gif(frames, filename, out_dir=None, duration_ms=66):
    """Assemble Pillow images into an animated GIF and return its path.

    Returns None if there were no frames.
    """
    out_dir = out_dir or ASSETS_DIR
    quantized = []
    for img in frames:
        # GIF has no alpha channel
        if img.mode == "RGBA":
            img = img.convert("RGB")
        quantized.append(img.quantize(colors=GIF_COLORS, method=Image.Quantize.MEDIANCUT))
    if not quantized:
        print(f"  {filename}: no frames!")
        return None

    os.makedirs(out_dir, exist_ok=True)
    out = os.path.join(out_dir, filename)
    quantized[0].save(
        out,
        save_all=True,
        append_images=quantized[1:],
        duration=duration_ms,
        loop=0,
        optimize=True,
    )
    size_kb = os.path.getsize(out) / 1024
    print(f"  {_display_path(out)} ({size_kb:.1f} KB, {len(quantized)} frames)")
    return out


def _display_path(path):
    try:
        return os.path.relpath(path, REPO_ROOT)
    except ValueError:  # different drive on Windows
        return path
