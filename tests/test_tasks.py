import threading
import time

import numpy as np
import pytest

import gallerylayout.tasks as tasks_module

from gallerylayout import (
    ANCHOR,
    Feature,
    Graph,
    LayoutKind,
    LayoutTaskRunner,
    NodePositioner,
    NotFound,
    NotReady,
    TaskDiscarded,
)

SIZE = {"target_width": 100, "target_height": 100}


class _GatedPositioner(NodePositioner):
    """Blocks every layout until the test opens the gate."""

    def __init__(self, gate, options=None):
        super().__init__(options)
        self.gate = gate

    def layout_force(self, *args, **kwargs):
        assert self.gate.wait(5)
        return super().layout_force(*args, **kwargs)

    def layout_tree(self, *args, **kwargs):
        assert self.gate.wait(5)
        return super().layout_tree(*args, **kwargs)


class _FailingPositioner(NodePositioner):
    def layout_force(self, *args, **kwargs):
        raise NotFound("boom")


def _gated_runner(gate):
    return LayoutTaskRunner(positioner_factory=lambda opts: _GatedPositioner(gate, opts))


def _random_graph(n, dim=4, seed=9):
    rng = np.random.default_rng(seed)
    return Graph(Feature(rng.normal(size=dim)) for _ in range(n))


def _wait(runner, handle, timeout=10.0):
    deadline = time.monotonic() + timeout
    while not runner.is_finished(handle):
        assert time.monotonic() < deadline, "layout task did not finish"
        time.sleep(0.01)


def test_submit_poll_and_fetch():
    gate = threading.Event()
    graph = _random_graph(40)
    with _gated_runner(gate) as runner:
        handle = runner.submit(graph, LayoutKind.FORCE, SIZE)

        assert not runner.is_finished(handle)
        with pytest.raises(NotReady):
            runner.result(handle)

        gate.set()
        _wait(runner, handle)
        assert runner.is_finished(handle)

        first = runner.result(handle)
        second = runner.result(handle)
        assert first is second
        assert set(first.positions) == set(graph.features)


def test_tree_task_places_root_at_anchor():
    graph = _random_graph(12)
    root = graph.features[3]
    with LayoutTaskRunner() as runner:
        handle = runner.submit(graph, "tree", dict(SIZE, root=root))
        _wait(runner, handle)
        result = runner.result(handle)
    assert result.positions[root] == ANCHOR
    assert len(result.edges) == len(graph) - 1


def test_tree_task_rejects_missing_root_at_submit():
    with LayoutTaskRunner() as runner:
        with pytest.raises(NotFound):
            runner.submit(_random_graph(3), "tree", dict(SIZE, root=Feature(np.zeros(4))))
        with pytest.raises(NotFound):
            runner.submit(_random_graph(3), "tree", SIZE)


def test_submit_rejects_bad_arguments():
    with LayoutTaskRunner() as runner:
        with pytest.raises(ValueError):
            runner.submit(_random_graph(3), "spiral", SIZE)
        with pytest.raises(ValueError):
            runner.submit(_random_graph(3), "force", dict(SIZE, bogus=1))


def test_new_submission_replaces_previous():
    gate = threading.Event()
    graph = _random_graph(20)
    with _gated_runner(gate) as runner:
        old = runner.submit(graph, "force", SIZE, view="class")
        new = runner.submit(graph, "force", SIZE, view="class")
        assert not runner.is_current(old)
        assert runner.is_current(new)
        assert runner.current("class") == new

        gate.set()
        _wait(runner, old)
        _wait(runner, new)

        with pytest.raises(TaskDiscarded):
            runner.result(old)
        assert set(runner.result(new).positions) == set(graph.features)


def test_views_are_independent():
    with LayoutTaskRunner() as runner:
        a = runner.submit(_random_graph(5, seed=1), "force", SIZE, view="a")
        b = runner.submit(_random_graph(5, seed=2), "force", SIZE, view="b")
        _wait(runner, a)
        _wait(runner, b)
        assert runner.result(a) is not runner.result(b)


def test_discarded_view_drops_result():
    gate = threading.Event()
    with _gated_runner(gate) as runner:
        handle = runner.submit(_random_graph(10), "force", SIZE, view="class")
        runner.discard("class")
        gate.set()
        _wait(runner, handle)

        assert runner.check_status("class") is None
        with pytest.raises(TaskDiscarded):
            runner.result(handle)


def test_mutated_graph_discards_result():
    gate = threading.Event()
    graph = _random_graph(10)
    with _gated_runner(gate) as runner:
        handle = runner.submit(graph, "force", SIZE)
        graph.add_node(Feature(np.ones(4)))
        gate.set()
        _wait(runner, handle)
        with pytest.raises(TaskDiscarded):
            runner.result(handle)
        with pytest.raises(TaskDiscarded):
            runner.result(handle)
        assert runner.check_status() is None


def test_task_error_surfaces_on_result():
    with LayoutTaskRunner(positioner_factory=_FailingPositioner) as runner:
        handle = runner.submit(_random_graph(4), "force", SIZE)
        _wait(runner, handle)
        with pytest.raises(NotFound):
            runner.result(handle)


def test_check_status_polls_current_view():
    gate = threading.Event()
    with _gated_runner(gate) as runner:
        assert runner.check_status("class") is None
        handle = runner.submit(_random_graph(8), "force", SIZE, view="class")
        assert runner.check_status("class") is None
        gate.set()
        _wait(runner, handle)
        assert runner.check_status("class") is runner.result(handle)


def test_forget_unknown_handle():
    with LayoutTaskRunner() as runner:
        handle = runner.submit(_random_graph(3), "force", SIZE)
        _wait(runner, handle)
        runner.forget(handle)
        with pytest.raises(NotFound):
            runner.is_finished(handle)


def _wait_released(runner, timeout=10.0):
    deadline = time.monotonic() + timeout
    while runner.tracked_tasks:
        assert time.monotonic() < deadline, "discarded workers were not released"
        time.sleep(0.01)


def test_finished_discarded_tasks_release_workers():
    gate = threading.Event()
    graph = _random_graph(10)
    with _gated_runner(gate) as runner:
        handles = [runner.submit(graph, "force", SIZE, view="class") for _ in range(5)]
        runner.discard("class")
        assert runner.tracked_tasks == 5

        gate.set()
        for handle in handles:
            _wait(runner, handle)
        _wait_released(runner)

        for handle in handles:
            assert runner.is_finished(handle)
            with pytest.raises(TaskDiscarded):
                runner.result(handle)


def test_superseding_a_finished_task_releases_it():
    with LayoutTaskRunner() as runner:
        old = runner.submit(_random_graph(6), "force", SIZE, view="class")
        _wait(runner, old)
        runner.result(old)

        new = runner.submit(_random_graph(6, seed=4), "force", SIZE, view="class")
        _wait(runner, new)
        assert runner.tracked_tasks == 1
        with pytest.raises(TaskDiscarded):
            runner.result(old)
        assert runner.check_status("class") is runner.result(new)


def test_tombstones_are_bounded(monkeypatch):
    monkeypatch.setattr(tasks_module, "TOMBSTONE_LIMIT", 2)
    with LayoutTaskRunner() as runner:
        handles = []
        for seed in range(4):
            handle = runner.submit(_random_graph(4, seed=seed), "force", SIZE, view="class")
            _wait(runner, handle)
            runner.discard("class")
            handles.append(handle)

        with pytest.raises(NotFound):
            runner.result(handles[0])
        with pytest.raises(TaskDiscarded):
            runner.result(handles[-1])
