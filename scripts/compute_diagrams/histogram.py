"""Scene state and choreography for the compute-shader histogram diagrams.

Each diagram simulates a small GPU computing the histogram of a 6x7 image
with three colours. Invocations, workgroups and the dispatcher are authored
as generator tasks run by a ``CoroutineManager``; they only mutate the plain
state objects below, which ``render.py`` draws each frame.

None of this is how a GPU actually schedules work. It is paced so the reader
can follow one invocation at a time.
"""

import logging
import textwrap
from collections import deque
from dataclasses import dataclass, field

import numpy as np

from .animation import lerp, sine_out

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Source image and its histogram
# ---------------------------------------------------------------------------

IMAGE = [
    "BYYYYB",
    "BYRRYB",
    "BBRRBB",
    "RRRRRR",
    "BBRRBB",
    "BRBBRB",
    "YRBBRY",
]
PIXELS_ACROSS = len(IMAGE[0])
PIXELS_DOWN = len(IMAGE)

BINS = "RYB"  # bin index -> texel colour
NUM_BINS = len(BINS)
TEXEL_COLORS = {"R": "red", "Y": "yellow", "B": "blue"}
BIN_COLORS = {"R": "#880000", "Y": "#888800", "B": "#000088"}

IMAGE_BINS = np.array([[BINS.index(texel) for texel in row] for row in IMAGE])
IMAGE_HISTOGRAM = np.bincount(IMAGE_BINS.ravel(), minlength=NUM_BINS)


def chunk_counts(chunk_width=NUM_BINS):
    """Histogram of each ``chunk_width``-texel run, row by row (14 chunks)."""
    counts = []
    for row in IMAGE_BINS:
        for x in range(0, PIXELS_ACROSS, chunk_width):
            counts.append(np.bincount(row[x : x + chunk_width], minlength=NUM_BINS))
    return np.array(counts)


IMAGE_CHUNK_COUNTS = chunk_counts()

# Drawing unit: one texel / one bin is SIZE x SIZE.
SIZE = 20
CURSOR_TOP = 1.8
LINE_HEIGHT = 0.4 * SIZE


# ---------------------------------------------------------------------------
# Diagram configurations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DiagramConfig:
    kind: str
    num_workgroups: int
    wave_size: int = 1
    has_workgroup_mem: bool = False
    chunks_across: int = 1
    chunks_down: int = 1
    show_image: bool = True
    use_image_data: bool = False
    workgroups_label: str = "workgroups"
    bottom_label: str = "bins"
    num_lines_visible: int = 0
    code: str = ""

    @property
    def code_lines(self):
        lines = textwrap.dedent(self.code).split("\n")
        return [line for line in lines if line.strip()]

    @property
    def visible_lines(self):
        return self.num_lines_visible or max(1, len(self.code_lines))

    @property
    def num_chunks(self):
        return self.chunks_across * self.chunks_down


CONFIGS = {
    "single": DiagramConfig(
        kind="single",
        num_workgroups=1,
        code="""
            for (y = 0; y < size.y; y++) {
              for (x = 0; x < size.x; x++) {
                color = textureLoad(ourTexture, vec2(x,y))
                histogram[color] += 1
              }
            }
        """,
    ),
    "race": DiagramConfig(
        kind="race",
        num_workgroups=4,
        code="""
            xy = glbl_inv_id
            color = textureLoad(ourTexture, xy)
            histogram[color] + 1
        """,
    ),
    "lockedBin": DiagramConfig(
        kind="lockedBin",
        num_workgroups=2,
        show_image=False,
        workgroups_label="",
        bottom_label="",
        code="""
            atomicAdd(&histogram[color], 1)
        """,
    ),
    "noRace": DiagramConfig(
        kind="noRace",
        num_workgroups=4,
        code="""
            xy = gid.xy;
            color = texLoad(ourTex, xy)
            atomicAdd(&histogram[color], 1)
        """,
    ),
    "chunks": DiagramConfig(
        kind="chunks",
        num_workgroups=4,
        wave_size=3,
        has_workgroup_mem=True,
        chunks_across=7,
        chunks_down=2,
        bottom_label="chunks",
        num_lines_visible=3,
        code="""
            xy = w_id * chunkSize * l_id;
            color = textureLoad(ourTexture, xy)
            atomicAdd(&histogram[color], 1)
            wkBarrier();
            chunk[chunkNdx][bin] = atmcLoad(???)
        """,
    ),
    "sum": DiagramConfig(
        kind="sum",
        num_workgroups=1,
        wave_size=3,
        chunks_across=7,
        chunks_down=2,
        show_image=False,
        use_image_data=True,
        bottom_label="chunks",
    ),
    "reduce": DiagramConfig(
        kind="reduce",
        num_workgroups=4,
        wave_size=3,
        chunks_across=7,
        chunks_down=2,
        show_image=False,
        use_image_data=True,
        bottom_label="chunks",
    ),
}


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


class Layout:
    """Drawing coordinates (y grows downwards) for one configuration."""

    def __init__(self, config):
        c = config
        lines = c.visible_lines
        self.image_width = PIXELS_ACROSS * SIZE if c.show_image else 0
        self.image_height = PIXELS_DOWN * SIZE if c.show_image else 0
        self.chunks_width = c.chunks_across * SIZE
        self.chunk_height = SIZE * 3.5
        self.invocation_units = 4 if c.num_workgroups > 2 else 7
        height_units = 1.25 + (lines * 0.4 + 0.6)
        self.invocation_width = SIZE * (
            self.invocation_units + (0 if c.has_workgroup_mem else 1.5)
        )
        self.invocation_pitch = SIZE * height_units
        self.invocation_height = SIZE * (1 + 0.4 * lines + 0.6)
        self.below_code_y = lines * LINE_HEIGHT + SIZE * 0.5
        self.workgroup_y = SIZE * 1.5
        self.workgroup_width = self.invocation_width + SIZE * (
            2 if c.has_workgroup_mem else 0.5
        )
        self.workgroup_height = SIZE * (c.wave_size * height_units + 0.25)
        self.width = PIXELS_ACROSS * SIZE + SIZE * 20
        if c.show_image:
            self.height = self.image_height + SIZE * 3 + self.workgroup_height
        else:
            self.height = (
                self.workgroup_height
                + SIZE * 3
                + c.chunks_down * self.chunk_height
                + (c.chunks_down - 1) * SIZE * 0.25
            )
        total = self.image_width + self.chunks_width + SIZE * 2.5
        self.image_x = self.width / 2 - total / 2
        self.image_y = (
            self.workgroup_y + self.workgroup_height + (SIZE * 0.5 if c.show_image else 0)
        )
        if c.show_image:
            self.chunks_x = self.image_x + self.image_width + SIZE * 2.5
        else:
            self.chunks_x = self.width / 2 - self.chunks_width / 2
        self._config = c

    def texel_center(self, tx, ty):
        return (self.image_x + (tx + 0.5) * SIZE, self.image_y + (ty + 0.5) * SIZE)

    def chunk_origin(self, ndx):
        c = self._config
        col = ndx % c.chunks_across
        row = ndx // c.chunks_across if c.chunks_down > 1 else 0.5
        return (self.chunks_x + col * SIZE, self.image_y + SIZE * 0.25 + self.chunk_height * row)

    def workgroup_origin(self, ndx):
        n = self._config.num_workgroups
        full = self.workgroup_width * n + SIZE * (n - 1) * 0.5
        x = self.width / 2 - full / 2 + (self.workgroup_width + SIZE * 0.5) * ndx
        return (x, self.workgroup_y)

    def workgroup_chunk_origin(self, wx, wy):
        return (
            wx + SIZE * (self.invocation_units + 0.75),
            wy + self.workgroup_height / 2 - self.chunk_height / 2,
        )

    def invocation_origin(self, wx, wy, ndx):
        return (wx + SIZE * 0.25, wy + ndx * self.invocation_pitch)


# ---------------------------------------------------------------------------
# Scene state
# ---------------------------------------------------------------------------


@dataclass
class Bin:
    value: int = 0
    locked: bool = False
    covered: bool = False


@dataclass
class Chunk:
    x: float
    y: float
    bins: list = field(default_factory=lambda: [Bin() for _ in range(NUM_BINS)])

    def bin_center(self, ndx):
        return (self.x + SIZE / 2, self.y + ndx * SIZE + SIZE / 2)


@dataclass
class Invocation:
    local_index: int
    x: float
    y: float
    width: float
    height: float
    origin: tuple  # where the fetch line starts
    color_pos: tuple
    number_pos: tuple
    id_text: str = ""
    header_alpha: float = 0.0
    instruction: str = "-"
    cursor_y: float = CURSOR_TOP
    cursor_visible: bool = True
    color: str = None
    value: int = None
    pointer: tuple = None
    pointer_rest: tuple = None
    pointer_visible: bool = False
    pointer_alpha: float = 0.5
    carried_value: int = None
    carried_color: str = None
    plus_visible: bool = False
    plus_alpha: float = 1.0
    plus_scale: float = 1.0
    lock_stop: bool = False
    barrier: bool = False
    lock_target: tuple = None
    lock_color: str = None

    def __post_init__(self):
        self.pointer = self.origin
        self.pointer_rest = self.origin

    @property
    def cursor_line(self):
        return round((self.cursor_y - CURSOR_TOP) / LINE_HEIGHT)

    def reset_line(self):
        self.cursor_visible = True
        self.cursor_y = CURSOR_TOP


@dataclass
class Workgroup:
    index: int
    x: float
    y: float
    width: float
    height: float
    invocations: list = field(default_factory=list)
    chunk: Chunk = None  # workgroup (shared) memory
    barrier_count: int = 0
    active_invocation_count: int = 0
    work: deque = field(default_factory=deque)


# ---------------------------------------------------------------------------
# Scene and choreography
# ---------------------------------------------------------------------------


class HistogramScene:
    """One diagram: the state being drawn plus the tasks that animate it.

    Runners are created once, in drawing order (each workgroup's invocations,
    then the workgroup itself, then the dispatcher). ``start()`` rebuilds the
    state and queues fresh tasks on those runners, so it can be called again
    after the manager has been reset.
    """

    def __init__(self, config, manager, animator):
        self.config = config
        self.manager = manager
        self.animator = animator
        self.layout = Layout(config)
        self._core_runners = []
        self._workgroup_runners = []
        for _ in range(config.num_workgroups):
            self._core_runners.append(
                [manager.create_runner() for _ in range(config.wave_size)]
            )
            self._workgroup_runners.append(manager.create_runner())
        self.dispatch_runner = manager.create_runner()
        self._shaders = {
            "single": self._shade_single,
            "race": self._shade_race,
            "noRace": self._shade_no_race,
            "lockedBin": self._shade_locked_bin,
            "chunks": self._shade_chunks,
            "sum": self._shade_sum,
            "reduce": self._shade_reduce,
        }
        if config.kind not in self._shaders:
            raise ValueError(f"unknown diagram kind: {config.kind!r}")
        self._reset_state()

    def start(self):
        self._reset_state()
        for wg, runners in zip(self.workgroups, self._core_runners):
            for inv, runner in zip(wg.invocations, runners):
                runner.add(self._invocation_loop(wg, inv))
        for wg, runner in zip(self.workgroups, self._workgroup_runners):
            runner.add(self._start_invocations(wg))
        self.dispatch_runner.add(self._dispatcher())

    def _reset_state(self):
        c = self.config
        layout = self.layout
        self.chunks = [Chunk(*layout.chunk_origin(i)) for i in range(c.num_chunks)]
        if c.use_image_data:
            for chunk, counts in zip(self.chunks, IMAGE_CHUNK_COUNTS):
                for bin_, count in zip(chunk.bins, counts):
                    bin_.value = int(count)
        self.workgroups = []
        for w in range(c.num_workgroups):
            wx, wy = layout.workgroup_origin(w)
            wg = Workgroup(w, wx, wy, layout.workgroup_width, layout.workgroup_height)
            for i in range(c.wave_size):
                wg.invocations.append(self._make_invocation(wx, wy, i))
            if c.has_workgroup_mem:
                wg.chunk = Chunk(*layout.workgroup_chunk_origin(wx, wy))
            self.workgroups.append(wg)
        self.work_for_workgroups = deque()
        self.active_workgroup_count = 0
        self.uniform_stride = 0
        self.finished = False

    def _make_invocation(self, wx, wy, ndx):
        layout = self.layout
        x, y = layout.invocation_origin(wx, wy, ndx)
        w = layout.invocation_width
        below = y + layout.below_code_y
        return Invocation(
            local_index=ndx,
            x=x,
            y=y,
            width=w,
            height=layout.invocation_height,
            origin=(x + w / 2, below + SIZE * 0.75),
            color_pos=(x + w / 2 + SIZE / 2, below + SIZE * 0.625),
            number_pos=(x + w / 2 - SIZE * 0.5, below + SIZE * 0.75 - 3),
        )

    @property
    def storage(self):
        """The histogram in storage memory (the first chunk)."""
        return [b.value for b in self.chunks[0].bins]

    # -- primitives --------------------------------------------------------

    def _set_instructions(self, inv, text):
        inv.instruction = text
        self.manager.add_step()

    def _goto(self, inv, target, duration=1.0):
        inv.pointer_visible = True
        sx, sy = inv.pointer_rest
        ex, ey = target

        def move(t):
            inv.pointer = (lerp(sx, ex, t), lerp(sy, ey, t))

        yield self.animator.lerp_step(move, duration)
        yield self.animator.wait_seconds(0.25)
        inv.pointer_rest = target

    def _fade_line(self, inv):
        inv.pointer_rest = inv.origin

        def fade(t):
            inv.pointer_alpha = (1 - t) * 0.25

        yield self.animator.lerp_step(fade, 0.5)
        inv.pointer_visible = False
        inv.pointer = inv.origin
        inv.pointer_alpha = 0.25

    def _go_up_scale_and_fade(self, inv):
        inv.plus_visible = True

        def grow(t):
            inv.plus_alpha = 1 - t
            inv.plus_scale = 1 + t

        yield self.animator.lerp_step(grow)
        inv.plus_visible = False
        inv.plus_alpha = 1.0
        inv.plus_scale = 1.0

    def _flash_header(self, inv, duration=0.5):
        def fade(t):
            inv.header_alpha = 1 - t

        yield self.animator.lerp_step(fade, duration)
        inv.header_alpha = 0.0

    def _go_to_line(self, inv, line_no, duration=0.5):
        inv.cursor_visible = True
        sy = inv.cursor_y
        ey = line_no * LINE_HEIGHT + CURSOR_TOP

        def move(t):
            inv.cursor_y = lerp(sy, ey, sine_out(t))

        yield self.animator.lerp_step(move, duration)

    def _advance_line(self, inv, duration=0.5):
        yield self._go_to_line(inv, inv.cursor_line + 1, duration)

    def _lock(self, inv, chunk, bin_ndx, color):
        """Spin until ``chunk.bins[bin_ndx]`` is free, then take it."""
        inv.lock_stop = True
        while chunk.bins[bin_ndx].locked:
            yield
        inv.lock_stop = False
        chunk.bins[bin_ndx].locked = True
        inv.lock_target = chunk.bin_center(bin_ndx)
        inv.lock_color = color

    def _unlock(self, inv, chunk, bin_ndx):
        chunk.bins[bin_ndx].locked = False
        inv.lock_target = None
        inv.lock_color = None

    def _texture_load(self, inv, tx, ty):
        self._set_instructions(inv, "textureLoad(...)")
        yield self._goto(inv, self.layout.texel_center(tx, ty))
        color = TEXEL_COLORS[IMAGE[ty][tx]]
        inv.carried_color = color
        yield self._goto(inv, inv.color_pos)
        inv.color = color
        inv.carried_color = None

    def _workgroup_barrier(self, wg):
        wg.barrier_count += 1
        while wg.barrier_count != len(wg.invocations):
            yield
        yield  # every invocation has to see the full count before it drops
        wg.barrier_count -= 1

    # -- shaders -----------------------------------------------------------

    def _do_one(self, inv, tx, ty, atomic):
        texel = IMAGE[ty][tx]
        bin_ndx = BINS.index(texel)
        yield self._advance_line(inv)
        yield self._texture_load(inv, tx, ty)
        storage = self.chunks[0]
        storage_bin = storage.bins[bin_ndx]

        if atomic:
            inv.pointer_visible = False
            yield self._advance_line(inv)
            self._set_instructions(inv, "atomicAdd(&bin[color], 1)")
            yield self._lock(inv, storage, bin_ndx, TEXEL_COLORS[texel])
        else:
            yield self._advance_line(inv)
            self._set_instructions(inv, "bin[color] += 1")

        bin_pos = storage.bin_center(bin_ndx)
        yield self._goto(inv, bin_pos)
        inv.carried_value = storage_bin.value

        yield self._goto(inv, inv.number_pos)
        inv.value = inv.carried_value + 1
        inv.carried_value = None
        yield self._go_up_scale_and_fade(inv)

        # write back whatever this invocation read, even if it is stale now
        inv.carried_value = inv.value
        yield self._goto(inv, bin_pos)
        storage_bin.value = inv.carried_value
        inv.carried_value = None

        if atomic:
            self._unlock(inv, storage, bin_ndx)

        yield self._fade_line(inv)
        inv.color = None
        inv.value = None
        yield self._advance_line(inv)
        self._set_instructions(inv, "-")

    def _shade_single(self, wg, inv, gid, lid):
        for ty in range(PIXELS_DOWN):
            yield self._go_to_line(inv, 0)
            for tx in range(PIXELS_ACROSS):
                yield self._go_to_line(inv, 1)
                yield self._do_one(inv, tx, ty, atomic=False)

    def _shade_race(self, wg, inv, gid, lid):
        yield self._go_to_line(inv, 0)
        yield self._do_one(inv, gid[0], gid[1], atomic=False)
        inv.cursor_visible = False
        inv.cursor_y = CURSOR_TOP

    def _shade_no_race(self, wg, inv, gid, lid):
        yield self._do_one(inv, gid[0], gid[1], atomic=True)

    def _shade_locked_bin(self, wg, inv, gid, lid):
        self._set_instructions(inv, "atomicAdd(&histogram[bin], 1)")
        texel = BINS[2]
        inv.color = TEXEL_COLORS[texel]
        storage = self.chunks[0]
        if gid[0] == 0:
            storage.bins[2].locked = True
            inv.lock_target = storage.bin_center(2)
            inv.lock_color = inv.color
        elif gid[0] == 1:
            inv.lock_stop = True
        yield self.animator.wait_seconds(2)

    def _shade_chunks(self, wg, inv, gid, lid):
        chunk = wg.chunk
        chunk.bins[lid].value = 0

        tx = gid[0] * self.config.wave_size + lid
        ty = gid[1]
        texel = IMAGE[ty][tx]
        yield self._texture_load(inv, tx, ty)

        bin_ndx = BINS.index(texel)
        self._set_instructions(inv, "atomicAdd(bin[color], 1)")
        yield self._lock(inv, chunk, bin_ndx, TEXEL_COLORS[texel])

        bin_pos = chunk.bin_center(bin_ndx)
        yield self._goto(inv, bin_pos)
        value = chunk.bins[bin_ndx].value
        inv.carried_value = value
        yield self._goto(inv, inv.number_pos)

        inv.carried_value = None
        inv.value = value
        yield
        inv.value = value + 1
        yield self._go_up_scale_and_fade(inv)
        inv.carried_value = value + 1
        yield self._goto(inv, bin_pos)
        chunk.bins[bin_ndx].value = value + 1
        inv.carried_value = None
        yield self._fade_line(inv)
        self._unlock(inv, chunk, bin_ndx)

        inv.color = None
        inv.barrier = True
        self._set_instructions(inv, "wGroupBarrier")
        yield self._workgroup_barrier(wg)
        inv.barrier = False

        self._set_instructions(inv, "chunks[bin]=")
        yield self._goto(inv, chunk.bin_center(lid))
        total = chunk.bins[lid].value
        inv.carried_value = total
        yield self._goto(inv, inv.number_pos)
        inv.value = total

        chunks_per_row = PIXELS_ACROSS // self.config.wave_size
        target = self.chunks[gid[0] + gid[1] * chunks_per_row]
        yield self._goto(inv, target.bin_center(lid))
        target.bins[lid].value = total
        inv.carried_value = None
        yield self._fade_line(inv)
        inv.color = None
        inv.value = None
        self._set_instructions(inv, "-")

    def _reduce_impl(self, inv, gid, lid, num_chunks):
        inv.value = 0
        stride = self.uniform_stride
        base = gid[0] * stride * 2
        for ndx in range(num_chunks):
            chunk_ndx = base + ndx * stride
            self._set_instructions(inv, f"sum += chunks[{chunk_ndx}][{lid}]")
            chunk = self.chunks[chunk_ndx]
            value = chunk.bins[lid].value
            yield self._goto(inv, chunk.bin_center(lid))
            inv.carried_value = value

            yield self._goto(inv, inv.number_pos)
            inv.carried_value = None
            inv.pointer_visible = False
            inv.value += value
            yield self._go_up_scale_and_fade(inv)

        inv.carried_value = inv.value
        self._set_instructions(inv, f"chunks[{base}][{lid}] = sum")
        yield self._goto(inv, self.chunks[base].bin_center(lid))
        self.chunks[base].bins[lid].value = inv.value
        for ndx in range(1, num_chunks):
            self.chunks[base + ndx * stride].bins[lid].covered = True
        inv.carried_value = None
        yield self._fade_line(inv)
        self._set_instructions(inv, "-")

    def _shade_sum(self, wg, inv, gid, lid):
        yield self._reduce_impl(inv, gid, lid, self.config.num_chunks)

    def _shade_reduce(self, wg, inv, gid, lid):
        yield self._reduce_impl(inv, gid, lid, 2)

    # -- scheduling --------------------------------------------------------

    def _invocation_loop(self, wg, inv):
        while True:
            while not wg.work:
                yield
            wg.active_invocation_count += 1
            gid, lid = wg.work.popleft()
            inv.reset_line()
            inv.id_text = f"wid({gid[0]},{gid[1]},0) lid({lid},0,0)"
            yield self._flash_header(inv)
            yield self._shaders[self.config.kind](wg, inv, gid, lid)
            wg.active_invocation_count -= 1

    def _start_invocations(self, wg):
        while True:
            while not self.work_for_workgroups:
                yield
            self.active_workgroup_count += 1
            gid = self.work_for_workgroups.popleft()
            for lid in range(self.config.wave_size):
                wg.work.append((gid, lid))
            yield
            while wg.work or wg.active_invocation_count > 0:
                yield
            self.active_workgroup_count -= 1

    def _dispatch_workgroups(self, width, depth):
        log.debug("%s: dispatching %dx%d workgroups", self.config.kind, width, depth)
        for y in range(depth):
            for x in range(width):
                self.work_for_workgroups.append((x, y))

    def _wait_for_workgroups(self):
        yield
        while self.work_for_workgroups or self.active_workgroup_count > 0:
            yield
        yield

    def _dispatch_reduce(self):
        chunks_left = self.config.num_chunks
        i = 0
        while chunks_left > 1:
            self.uniform_stride = 2**i
            i += 1
            count = chunks_left // 2
            chunks_left -= count
            self._dispatch_workgroups(count, 1)
            yield self._wait_for_workgroups()

    def _dispatcher(self):
        kind = self.config.kind
        if kind == "reduce":
            yield self._dispatch_reduce()
        else:
            sizes = {
                "single": (1, 1),
                "race": (PIXELS_ACROSS, PIXELS_DOWN),
                "noRace": (PIXELS_ACROSS, PIXELS_DOWN),
                "lockedBin": (2, 1),
                "chunks": (PIXELS_ACROSS // self.config.wave_size, PIXELS_DOWN),
                "sum": (1, 1),
            }
            if kind == "sum":
                self.uniform_stride = 1
            self._dispatch_workgroups(*sizes[kind])
            yield self._wait_for_workgroups()
        self.finished = True
