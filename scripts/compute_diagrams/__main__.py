"""CLI entry point for compute_diagrams package.

Invoke as:  python scripts/compute_diagrams --diagram race
"""

# Bootstrap: when run as `python scripts/compute_diagrams` (directory path),
# re-execute through runpy so the package machinery resolves relative imports
# correctly and without DeprecationWarning.
if __name__ == "__main__" and not __package__:
    import os
    import runpy
    import sys

    _scripts_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    if _scripts_dir not in sys.path:
        sys.path.insert(0, _scripts_dir)
    runpy.run_module("compute_diagrams", run_name="__main__", alter_sys=True)
    raise SystemExit(0)  # unreachable; run_module already calls sys.exit()

import argparse
import logging
import sys

from ._common import DPI, save, save_gif
from .animation import SPEEDS
from .histogram import CONFIGS
from .player import ComputeDiagram
from .render import SceneRenderer, draw_scene, new_figure

# ---------------------------------------------------------------------------
# Diagram registry
# ---------------------------------------------------------------------------

DIAGRAMS = {
    "single": "histogram_single.gif",
    "race": "histogram_race.gif",
    "lockedBin": "histogram_locked_bin.gif",
    "noRace": "histogram_no_race.gif",
    "chunks": "histogram_chunks.gif",
    "sum": "histogram_sum.gif",
    "reduce": "histogram_reduce.gif",
}

DESCRIPTIONS = {
    "single": "one invocation walks every texel",
    "race": "one invocation per texel, non-atomic increment (loses counts)",
    "lockedBin": "two invocations contending for one bin",
    "noRace": "one invocation per texel, atomicAdd on storage bins",
    "chunks": "workgroup memory bins, barrier, copy out to chunks",
    "sum": "one workgroup sums all chunks",
    "reduce": "pairwise reduction of chunks over several dispatches",
}


def match_diagram(query):
    """Match a query like 'race', 'norace' or 'no' to a registry key."""
    q = query.strip()
    if q in DIAGRAMS:
        return q

    lowered = {key.lower(): key for key in DIAGRAMS}
    if q.lower() in lowered:
        return lowered[q.lower()]

    # Unique prefix (e.g. "ch" matches "chunks")
    matches = [key for key in DIAGRAMS if key.lower().startswith(q.lower())]
    if len(matches) == 1:
        return matches[0]
    return None


def render_gif(name, args):
    """Play one diagram in real time and write it as an animated GIF."""
    diagram = ComputeDiagram(CONFIGS[name], speed=args.speed)
    renderer = SceneRenderer(diagram.scene.layout)
    try:
        frames = diagram.frames(renderer, fps=args.fps, max_frames=args.max_frames)
        out = save_gif(frames, DIAGRAMS[name], args.out, duration_ms=round(1000 / args.fps))
    finally:
        renderer.close()
    if not diagram.finished:
        print(f"  (stopped after {args.max_frames} frames, raise --max-frames to see the end)")
    return out


def render_still(name, step, args):
    """Seek one diagram to ``step`` and save that frame as a PNG."""
    diagram = ComputeDiagram(CONFIGS[name])
    diagram.seek(step)
    fig, ax = new_figure(diagram.scene.layout, dpi=DPI)
    draw_scene(ax, diagram.scene)
    stem = DIAGRAMS[name].rsplit(".", 1)[0]
    return save(fig, f"{stem}_step{step:03d}.png", args.out)


def build_parser():
    parser = argparse.ArgumentParser(
        description="Render the animated compute-shader histogram diagrams."
    )
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--diagram", help="Diagram to render (e.g. race, noRace)")
    group.add_argument("--all", action="store_true", help="Render all diagrams")
    group.add_argument("--list", action="store_true", help="List available diagrams")
    parser.add_argument(
        "--step",
        type=int,
        help="Save a still PNG after seeking to this step instead of a GIF",
    )
    parser.add_argument("--fps", type=int, default=15, help="GIF frame rate (default: 15)")
    parser.add_argument(
        "--speed",
        type=float,
        default=1,
        choices=SPEEDS,
        help="Playback speed (default: 1)",
    )
    parser.add_argument(
        "--max-frames",
        type=int,
        default=3000,
        help="Stop a GIF after this many frames (default: 3000)",
    )
    parser.add_argument("--out", help="Output directory (default: assets/)")
    parser.add_argument("--verbose", action="store_true", help="Log scheduler activity")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )

    if args.list:
        print("Available diagrams:\n")
        for name, filename in DIAGRAMS.items():
            print(f"  {name:<10} {filename:<28} {DESCRIPTIONS[name]}")
        print(f"\n{len(DIAGRAMS)} diagrams total.")
        return 0

    if args.fps <= 0:
        print("--fps must be positive.")
        return 1

    if args.all:
        names = list(DIAGRAMS)
    else:
        name = match_diagram(args.diagram)
        if name is None:
            print(f"No diagram named '{args.diagram}'.")
            print("Use --list to see available diagrams.")
            return 1
        names = [name]

    total = 0
    for name in names:
        print(f"{name}/")
        if args.step is not None:
            render_still(name, args.step, args)
        else:
            render_gif(name, args)
        total += 1

    print(f"\nRendered {total} diagram(s).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
