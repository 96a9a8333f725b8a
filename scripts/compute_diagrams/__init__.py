"""compute_diagrams — Render animated compute-shader histogram diagrams.

Simulates workgroups and invocations computing an image histogram, paced by
a cooperative coroutine scheduler, and writes each diagram as an animated GIF
(or a still PNG of a chosen step) into assets/.

Usage:
    python scripts/compute_diagrams --diagram race           # one diagram
    python scripts/compute_diagrams --all                    # all diagrams
    python scripts/compute_diagrams --diagram chunks --step 20
    python scripts/compute_diagrams --list                   # list available

Requires: pip install numpy matplotlib pillow
"""
