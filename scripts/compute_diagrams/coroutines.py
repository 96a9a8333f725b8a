"""Cooperative coroutine scheduler that drives the animated compute diagrams.

A task is anything with a ``resume()`` method returning one of three results:

    SUSPEND           no further progress this pass, resume here next pass
    Delegate(child)   run ``child`` until it finishes, then continue here
    DONE              this task has completed

Choreography is usually written as generator functions, which ``as_task``
adapts: a bare ``yield`` suspends, ``yield other_generator()`` delegates and
returning finishes.

    def do5(msg):
        for i in range(5):
            print(i, msg)
            yield

    def do5_by_5():
        for _ in range(5):
            yield do5("hi")

    manager = CoroutineManager()
    runner = manager.create_runner()
    runner.add(do5_by_5())
    while runner.is_busy():
        manager.advance()  # once per animation frame

Delegation is free: a child that finishes without suspending costs its parent
no extra pass. Only a suspend ends a stack's turn.
"""

import logging
import types
from dataclasses import dataclass

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Resumption results
# ---------------------------------------------------------------------------


class Suspend:
    """Stop for this pass and keep the current position."""

    __slots__ = ()

    def __repr__(self):
        return "SUSPEND"


class Done:
    """The task has completed."""

    __slots__ = ()

    def __repr__(self):
        return "DONE"


@dataclass(frozen=True)
class Delegate:
    """Hand control to ``child`` until it finishes."""

    child: object


SUSPEND = Suspend()
DONE = Done()


# ---------------------------------------------------------------------------
# Generator adapter
# ---------------------------------------------------------------------------


class GeneratorTask:
    """Run a generator under the three-result contract."""

    __slots__ = ("generator",)

    def __init__(self, generator):
        self.generator = generator

    def resume(self):
        try:
            value = next(self.generator)
        except StopIteration:
            return DONE
        if value is None:
            return SUSPEND
        return Delegate(as_task(value))

    def __repr__(self):
        return f"GeneratorTask({self.generator.__qualname__})"


def as_task(obj):
    """Return ``obj`` as something with ``resume()``, wrapping generators."""
    if isinstance(obj, types.GeneratorType):
        return GeneratorTask(obj)
    if callable(getattr(obj, "resume", None)):
        return obj
    raise TypeError(f"not a task or generator: {obj!r}")


class TaskStack:
    """One top-level task plus the children it has delegated to."""

    __slots__ = ("main", "tasks")

    def __init__(self, main):
        # ``main`` is the object handed to ``add``; remove() matches on it.
        self.main = main
        self.tasks = [as_task(main)]

    def __len__(self):
        return len(self.tasks)

    @property
    def top(self):
        return self.tasks[-1]


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class CoroutineRunner:
    """Advances a set of task stacks together, one pass per ``advance()``.

    Tasks added while a pass is running join at the next pass. Removal is
    deferred and keyed on the identity of the object passed to ``add``.
    """

    def __init__(self, manager=None):
        self.manager = manager
        self._stacks = []
        self._add_queue = []
        self._remove_queue = {}  # id(main) -> main

    def is_busy(self):
        return bool(self._add_queue or self._stacks)

    def add(self, task):
        self._add_queue.append(TaskStack(task))

    def remove(self, task):
        registered = any(s.main is task for s in self._stacks) or any(
            s.main is task for s in self._add_queue
        )
        if not registered:
            log.debug("remove(%r): not registered, ignoring", task)
            return
        self._remove_queue[id(task)] = task

    def reset(self):
        self._stacks.clear()
        self._add_queue.clear()
        self._remove_queue.clear()

    def advance(self):
        """Run one pass over every active stack.

        An exception raised by a task propagates immediately. Stacks already
        visited in this pass keep their progress; the rest are not resumed.
        """
        self._add_queued()
        self._remove_queued(clear=False)
        for stack in list(self._stacks):
            # another stack may have removed this one earlier in the pass
            if id(stack.main) in self._remove_queue:
                continue
            self._run_stack(stack)
        self._remove_queued(clear=True)

    def _run_stack(self, stack):
        while True:
            result = stack.top.resume()
            if isinstance(result, Suspend):
                return
            if isinstance(result, Done):
                if len(stack) == 1:
                    self._remove_queue[id(stack.main)] = stack.main
                    return
                stack.tasks.pop()
            elif isinstance(result, Delegate):
                stack.tasks.append(as_task(result.child))
            else:
                raise TypeError(
                    f"{stack.top!r} returned {result!r}, "
                    "expected SUSPEND, DONE or Delegate"
                )

    def _add_queued(self):
        if self._add_queue:
            log.debug("activating %d task(s)", len(self._add_queue))
            self._stacks.extend(self._add_queue)
            self._add_queue = []

    def _remove_queued(self, clear):
        if self._remove_queue:
            self._stacks = [s for s in self._stacks if id(s.main) not in self._remove_queue]
            # tasks added and removed within the same pass never activate
            self._add_queue = [s for s in self._add_queue if id(s.main) not in self._remove_queue]
            if clear:
                log.debug("removed %d task(s)", len(self._remove_queue))
                self._remove_queue.clear()


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class CoroutineManager:
    """Owns the runners of one diagram and its global step clock.

    Tasks call ``add_step()`` whenever they make visible progress (a new
    instruction shown). ``step_count`` advances by one for every frame in
    which that happened, which is what seeking is measured against.
    """

    def __init__(self):
        self._runners = []
        self._step_count = 0
        self._target_step_count = None
        self._have_step = False

    @property
    def step_count(self):
        return self._step_count

    @property
    def target_step_count(self):
        return self._target_step_count

    @target_step_count.setter
    def target_step_count(self, value):
        self._target_step_count = None if value is None else max(0, int(value))

    @property
    def is_seeking(self):
        target = self._target_step_count
        return target is not None and target >= self._step_count

    @property
    def runners(self):
        return tuple(self._runners)

    def create_runner(self):
        runner = CoroutineRunner(self)
        self._runners.append(runner)
        return runner

    def reset(self):
        self._step_count = 0
        self._target_step_count = None
        self._have_step = False
        for runner in self._runners:
            runner.reset()

    def add_step(self):
        self._have_step = True

    def advance(self):
        """Advance every runner by one pass; call once per animation frame."""
        self._have_step = False
        for runner in self._runners:
            runner.advance()
        if self._have_step:
            self._have_step = False
            self._step_count += 1
