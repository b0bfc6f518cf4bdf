from __future__ import annotations

import itertools
import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .config import LayoutOptions
from .errors import NotFound, NotReady, TaskDiscarded
from .graph import Graph
from .node_positioner import LayoutResult, NodePositioner

logger = logging.getLogger(__name__)

DEFAULT_VIEW = "default"
# ids of released discarded tasks still answered with TaskDiscarded
TOMBSTONE_LIMIT = 256


class LayoutKind(str, Enum):
    FORCE = "force"
    TREE = "tree"


@dataclass(frozen=True)
class TaskHandle:
    task_id: int
    view: str
    kind: LayoutKind


class _LayoutWorker:
    """One layout computation; runs on the executor thread."""

    def __init__(self, positioner: NodePositioner, graph: Graph, kind: LayoutKind,
                 params: Dict[str, Any]):
        self.positioner = positioner
        self.graph = graph
        self.kind = kind
        self.params = dict(params)
        self.generation = graph.generation
        self.future: Optional[Future] = None
        self.discarded = False

    def compute(self) -> LayoutResult:
        params = dict(self.params)
        width = params.pop("target_width")
        height = params.pop("target_height")
        root = params.pop("root", None)
        if self.kind is LayoutKind.TREE:
            self.positioner.layout_tree(self.graph, root, width, height, **params)
        else:
            self.positioner.layout_force(self.graph, width, height, **params)
        # re-fetch from the positioner, the result is consumed elsewhere
        return self.positioner.last_result


class LayoutTaskRunner:
    """Runs node positioning off the interactive thread.

    Work is handed to a background executor by :meth:`submit`; the caller then
    polls :meth:`is_finished` (every ``POLL_INTERVAL_MS``) and fetches the
    layout with :meth:`result`. Only the latest submission per view counts: a
    new submission replaces the previous handle, whose computation still runs
    to completion but whose result is thrown away. Once such a task finishes
    its worker is released; the handle keeps answering with TaskDiscarded.
    """

    def __init__(self, max_workers: int = 1, options: Optional[LayoutOptions] = None,
                 positioner_factory: Callable[..., NodePositioner] = NodePositioner):
        self.options = options or LayoutOptions()
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix="layout")
        self._positioner_factory = positioner_factory
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._workers: Dict[int, _LayoutWorker] = {}
        self._current: Dict[str, int] = {}
        self._tombstones: OrderedDict[int, None] = OrderedDict()

    # ------------------------------------------------------------------
    def submit(self, graph: Graph, layout_kind, params: Optional[Dict[str, Any]] = None,
               view: str = DEFAULT_VIEW) -> TaskHandle:
        """Start a layout of ``graph`` in the background; returns at once.

        ``params`` holds ``target_width``/``target_height`` (default 100), the
        ``root`` feature for tree layouts, and any :class:`LayoutOptions`
        override.
        """
        kind = LayoutKind(layout_kind)
        params = dict(params or {})
        params.setdefault("target_width", 100)
        params.setdefault("target_height", 100)
        if kind is LayoutKind.TREE:
            root = params.get("root")
            if root is None or root not in graph:
                raise NotFound(f"root {root!r} is not a node of the graph")
        # reject bad option overrides here rather than inside the worker
        extra = {k: v for k, v in params.items()
                 if k not in ("target_width", "target_height", "root")}
        if extra:
            self.options.replace(**extra)

        worker = _LayoutWorker(self._positioner_factory(self.options), graph, kind, params)
        with self._lock:
            task_id = next(self._ids)
            handle = TaskHandle(task_id, view, kind)
            stale = self._current.get(view)
            if stale is not None:
                self._discard(stale, "superseded by task %d" % task_id)
            self._workers[task_id] = worker
            self._current[view] = task_id

        logger.info("Submitting %s layout task %d for view %r (%d nodes)",
                    kind.value, task_id, view, len(graph))
        worker.future = self._executor.submit(worker.compute)
        worker.future.add_done_callback(lambda fut, h=handle: self._on_done(h, fut))
        return handle

    def _on_done(self, handle: TaskHandle, future: Future) -> None:
        with self._lock:
            worker = self._workers.get(handle.task_id)
            if worker is not None and worker.discarded:
                self._bury(handle.task_id)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Layout task %d failed: %s", handle.task_id, exc)
            return
        logger.info("Layout task %d finished", handle.task_id)

    def _discard(self, task_id: int, reason: str) -> None:
        # caller holds self._lock
        worker = self._workers.get(task_id)
        if worker is None or worker.discarded:
            return
        worker.discarded = True
        if worker.future is not None and worker.future.done():
            logger.debug("Discarding layout task %d: %s", task_id, reason)
            self._bury(task_id)
        else:
            # released by _on_done once it finishes
            logger.warning("Discarding in-flight layout task %d: %s", task_id, reason)

    def _bury(self, task_id: int) -> None:
        """Release a finished, discarded worker and remember only its id."""
        self._workers.pop(task_id, None)
        self._tombstones[task_id] = None
        while len(self._tombstones) > TOMBSTONE_LIMIT:
            self._tombstones.popitem(last=False)

    # ------------------------------------------------------------------
    def _worker(self, handle: TaskHandle) -> Optional[_LayoutWorker]:
        """The live worker of ``handle``, or None once it was discarded and released."""
        with self._lock:
            worker = self._workers.get(handle.task_id)
            if worker is None and handle.task_id not in self._tombstones:
                raise NotFound(f"unknown task {handle.task_id}")
            return worker

    @property
    def tracked_tasks(self) -> int:
        """Number of tasks whose worker is still held."""
        with self._lock:
            return len(self._workers)

    def is_finished(self, handle: TaskHandle) -> bool:
        worker = self._worker(handle)
        if worker is None:
            return True
        return worker.future is not None and worker.future.done()

    def is_current(self, handle: TaskHandle) -> bool:
        with self._lock:
            return self._current.get(handle.view) == handle.task_id

    def result(self, handle: TaskHandle) -> LayoutResult:
        """Return the finished layout; never blocks.

        Raises:
            NotReady: the task is still running
            TaskDiscarded: the task was superseded or torn down, or its graph
                changed while it ran
            LayoutError: whatever the layout algorithm raised
        """
        worker = self._worker(handle)
        if worker is None:
            raise TaskDiscarded(f"layout task {handle.task_id} was discarded")
        if not self.is_finished(handle):
            raise NotReady(f"layout task {handle.task_id} is still running")
        if worker.discarded:
            raise TaskDiscarded(f"layout task {handle.task_id} was discarded")
        if worker.graph.generation != worker.generation:
            logger.warning("Graph changed while layout task %d was running", handle.task_id)
            with self._lock:
                if self._current.get(handle.view) == handle.task_id:
                    del self._current[handle.view]
                self._discard(handle.task_id, "graph mutated")
            raise TaskDiscarded(f"graph changed while layout task {handle.task_id} ran")
        return worker.future.result()

    def current(self, view: str = DEFAULT_VIEW) -> Optional[TaskHandle]:
        with self._lock:
            task_id = self._current.get(view)
            if task_id is None:
                return None
            worker = self._workers[task_id]
            return TaskHandle(task_id, view, worker.kind)

    def check_status(self, view: str = DEFAULT_VIEW) -> Optional[LayoutResult]:
        """Poll the current task of ``view``: its result once done, else None."""
        handle = self.current(view)
        if handle is None or not self.is_finished(handle):
            return None
        return self.result(handle)

    def discard(self, view: str = DEFAULT_VIEW) -> None:
        """Tear down ``view``; a running task finishes but is not applied."""
        with self._lock:
            task_id = self._current.pop(view, None)
            if task_id is not None:
                self._discard(task_id, "view %r closed" % view)

    def forget(self, handle: TaskHandle) -> None:
        """Drop bookkeeping for a handle the caller no longer needs."""
        with self._lock:
            if self._current.get(handle.view) == handle.task_id:
                del self._current[handle.view]
            self._workers.pop(handle.task_id, None)
            self._tombstones.pop(handle.task_id, None)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "LayoutTaskRunner":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown(wait=True)
