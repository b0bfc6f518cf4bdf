import math

import networkx as nx
import numpy as np
import pytest

from gallerylayout import (
    ANCHOR,
    Feature,
    Graph,
    LayoutOptions,
    NodePositioner,
    NotFound,
    NotReady,
)
from gallerylayout.overlaps import min_distance, resolve_overlaps
from gallerylayout.sim_engine import SimulationEngine


def _random_graph(n, dim=6, seed=3):
    rng = np.random.default_rng(seed)
    return Graph(Feature(rng.normal(size=dim)) for _ in range(n))


def _inside(result, width, height, margin=0.0, tol=1e-9):
    for x, y in result.positions.values():
        if abs(x) > width / 2 + margin + tol or abs(y) > height / 2 + margin + tol:
            return False
    return True


# ---------------------------------------------------------------------------
# force layout
def test_force_empty_graph():
    result = NodePositioner().layout_force(Graph(), 100, 100)
    assert dict(result.positions) == {}
    assert result.edges == ()


def test_force_single_node_at_origin():
    f = Feature([1.0, 2.0])
    result = NodePositioner().layout_force(Graph([f]), 100, 100)
    assert dict(result.positions) == {f: (0.0, 0.0)}
    assert result.edges == ()


def test_force_three_nodes_within_box():
    f1, f2, f3 = Feature([0.0, 0.0]), Feature([1.0, 0.0]), Feature([4.0, 1.0])
    opts = LayoutOptions(k=1, iterations=200, seed=7)
    result = NodePositioner(opts).layout_force(Graph([f1, f2, f3]), 200, 100)

    assert set(result.positions) == {f1, f2, f3}
    assert 1 <= len(result.edges) <= 2
    assert result.iterations <= 200
    assert _inside(result, 200, 100)


def test_force_positions_match_node_set():
    graph = _random_graph(25)
    result = NodePositioner().layout_force(graph, 500, 300)
    assert set(result.positions) == set(graph.features)
    assert all(math.isfinite(x) and math.isfinite(y) for x, y in result.positions.values())
    assert _inside(result, 500, 300)


def test_force_is_deterministic_for_a_seed():
    graph = _random_graph(15)
    a = NodePositioner(LayoutOptions(seed=11)).layout_force(graph, 100, 100)
    b = NodePositioner(LayoutOptions(seed=11)).layout_force(graph, 100, 100)
    assert dict(a.positions) == dict(b.positions)

    c = NodePositioner().layout_force(graph, 100, 100, seed=12)
    assert dict(a.positions) != dict(c.positions)


def test_force_without_edges_runs_on_repulsion():
    graph = _random_graph(6)
    result = NodePositioner().layout_force(graph, 100, 100, k=0)
    assert result.edges == ()
    pts = result.as_array()
    assert len({tuple(p) for p in np.round(pts, 6)}) == 6


def test_force_iteration_cap_bounds_runtime():
    graph = _random_graph(10)
    result = NodePositioner().layout_force(graph, 100, 100, iterations=5, epsilon=0.0)
    assert result.iterations == 5
    assert not result.converged


def test_force_coincident_features():
    same = [Feature([1.0, 1.0, 1.0]) for _ in range(5)]
    result = NodePositioner().layout_force(Graph(same), 100, 100)
    pts = result.as_array(same)
    assert np.all(np.isfinite(pts))
    assert _inside(result, 100, 100)


def test_force_clearance_margin():
    graph = _random_graph(12)
    margin = 15.0
    result = NodePositioner().layout_force(graph, 1000, 1000, margin=margin)
    assert _inside(result, 1000, 1000, margin=margin)
    pts = result.as_array()
    diffs = pts[:, None, :] - pts[None, :, :]
    dist = np.sqrt((diffs ** 2).sum(-1))
    np.fill_diagonal(dist, np.inf)
    assert dist.min() >= margin - 1e-3


def test_force_clearance_wins_over_small_box():
    # ten discs of diameter 50 cannot fit a 100 x 100 box
    graph = _random_graph(10)
    result = NodePositioner().layout_force(graph, 100, 100, node_size=50.0)
    assert min_distance(result.as_array()) >= 50.0 - 1e-6
    assert not _inside(result, 100, 100)
    lo_x, lo_y, hi_x, hi_y = result.bounds()
    assert (lo_x + hi_x) / 2 == pytest.approx(0.0, abs=1e-9)
    assert (lo_y + hi_y) / 2 == pytest.approx(0.0, abs=1e-9)


def test_resolve_overlaps_reports_convergence():
    stacked = np.zeros((3, 2))
    pos, passes, converged = resolve_overlaps(stacked, 1.0)
    assert converged
    assert passes >= 1
    assert min_distance(pos) >= 2.0 - 1e-9
    assert np.all(stacked == 0.0)

    _, passes, converged = resolve_overlaps(stacked, 1.0, iterations=1)
    assert passes == 1
    assert not converged


def test_force_disconnected_components():
    rng = np.random.default_rng(0)
    left = [Feature(rng.normal(0, 0.1, 3)) for _ in range(5)]
    right = [Feature(rng.normal(100, 0.1, 3)) for _ in range(5)]
    graph = Graph(left + right)
    result = NodePositioner().layout_force(graph, 100, 100, k=2)
    assert nx.number_connected_components(graph.to_networkx(result.edges)) == 2
    assert set(result.positions) == set(left + right)


def test_simulation_engine_separates_stacked_points():
    engine = SimulationEngine(np.zeros((4, 2)), [(0, 1)], max_iterations=50)
    engine.run()
    assert np.all(np.isfinite(engine.positions))
    assert len({tuple(p) for p in engine.positions}) == 4


# ---------------------------------------------------------------------------
# tree layout
def test_tree_root_at_anchor_with_four_children():
    rng = np.random.default_rng(5)
    f1 = Feature(rng.normal(size=4))
    others = [Feature(rng.normal(size=4)) for _ in range(4)]
    graph = Graph([f1] + others)

    result = NodePositioner().layout_tree(graph, f1, 100, 100)

    assert result.positions[f1] == ANCHOR
    assert result.root is f1
    assert len(result.edges) == 4
    T = graph.to_networkx(result.edges)
    assert nx.is_tree(T)
    assert set(nx.descendants(T, f1)) == set(others)


def test_tree_unknown_root():
    graph = _random_graph(4)
    with pytest.raises(NotFound):
        NodePositioner().layout_tree(graph, Feature(np.zeros(6)), 100, 100)


def test_tree_single_node():
    f = Feature([3.0])
    result = NodePositioner().layout_tree(Graph([f]), f, 100, 100)
    assert dict(result.positions) == {f: ANCHOR}
    assert result.edges == ()


@pytest.mark.parametrize("style", ["radial", "layered"])
def test_tree_fits_box_and_keeps_root_centred(style):
    graph = _random_graph(30)
    root = graph.features[7]
    result = NodePositioner().layout_tree(graph, root, 100, 80, tree_style=style)
    assert result.positions[root] == ANCHOR
    assert set(result.positions) == set(graph.features)
    assert len(result.edges) == len(graph) - 1
    for x, y in result.positions.values():
        assert abs(x) <= 50 + 1e-9
        assert abs(y) <= 80 + 1e-9


def test_radial_tree_depth_grows_outward():
    graph = _random_graph(20)
    root = graph.features[0]
    result = NodePositioner().layout_tree(graph, root, 100, 100)
    T = graph.to_networkx(result.edges)
    depth = nx.single_source_shortest_path_length(T, root)
    radius = {f: math.hypot(*p) for f, p in result.positions.items()}
    for f, d in depth.items():
        assert radius[f] == pytest.approx(d * 50 / max(depth.values()))


def test_layout_does_not_mutate_graph():
    graph = _random_graph(10)
    generation = graph.generation
    positioner = NodePositioner()
    positioner.layout_force(graph, 100, 100)
    positioner.layout_tree(graph, graph.features[0], 100, 100)
    assert graph.generation == generation
    assert len(graph) == 10


# ---------------------------------------------------------------------------
# cached result
def test_previous_result_is_cached():
    positioner = NodePositioner()
    with pytest.raises(NotReady):
        positioner.get_previous_node_positions()

    graph = _random_graph(6)
    result = positioner.layout_tree(graph, graph.features[2], 100, 100)
    assert positioner.last_result is result
    assert positioner.get_previous_node_positions() is result.positions
    assert positioner.get_edges() == result.edges


def test_result_is_immutable():
    graph = _random_graph(4)
    result = NodePositioner().layout_force(graph, 100, 100)
    with pytest.raises(TypeError):
        result.positions[graph.features[0]] = (1.0, 1.0)
    assert len(result.edge_segments()) == len(result.edges)


def test_result_extra_is_read_only():
    graph = _random_graph(6)
    result = NodePositioner().layout_tree(graph, graph.features[0], 100, 100)
    assert result.extra["depth"] >= 1
    with pytest.raises(TypeError):
        result.extra["depth"] = 0
