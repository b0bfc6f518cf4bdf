"""Node positioning for the clustered image views.

Two regimes are offered:

* :meth:`NodePositioner.layout_force` spreads an unstructured set of features
  with a Fruchterman-Reingold simulation over their k-nearest-neighbour graph.
  Used for the overview of all class icons.
* :meth:`NodePositioner.layout_tree` hangs every feature off a minimum
  spanning tree rooted at one feature and places it by depth. Used for the
  single class view, centred on the class icon.

Both return a :class:`LayoutResult` and keep it as the positioner's most
recent result, so the layout can be computed in one place and fetched in
another.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

import networkx as nx
import numpy as np

from .config import CLEARANCE_ROUNDS, OVERLAP_ITERATIONS, LayoutOptions
from .errors import NotFound, NotReady
from .feature import Feature
from .graph import Edge, Graph, KNearest, Node, SpanningTree
from .overlaps import min_distance, resolve_overlaps
from .sim_engine import SimulationEngine

logger = logging.getLogger(__name__)

ANCHOR = (0.0, 0.0)
FORCE = "force"
TREE = "tree"

Point = Tuple[float, float]


@dataclass(frozen=True)
class LayoutResult:
    """Positions keyed by feature plus the edges used to compute them."""

    positions: Mapping[Feature, Point]
    edges: Tuple[Edge, ...]
    kind: str
    root: Optional[Feature] = None
    iterations: int = 0
    converged: bool = True
    extra: Mapping[str, object] = field(default_factory=dict)

    @classmethod
    def build(cls, positions: Dict[Feature, Point], edges, kind, **kw) -> "LayoutResult":
        kw["extra"] = MappingProxyType(dict(kw.get("extra", {})))
        return cls(MappingProxyType(dict(positions)), tuple(edges), kind, **kw)

    def __len__(self) -> int:
        return len(self.positions)

    def as_array(self, features=None) -> np.ndarray:
        """Positions as an ``(n, 2)`` array, in ``features`` order if given."""
        order = list(self.positions) if features is None else list(features)
        if not order:
            return np.zeros((0, 2))
        return np.array([self.positions[f] for f in order], dtype=np.float64)

    def edge_segments(self) -> List[Tuple[Point, Point]]:
        """Start and end point of every edge, ready to be drawn as lines."""
        return [(self.positions[e.node1.feature], self.positions[e.node2.feature]) for e in self.edges]

    def bounds(self) -> Tuple[float, float, float, float]:
        """``(min_x, min_y, max_x, max_y)``; all zero for an empty layout."""
        if not self.positions:
            return 0.0, 0.0, 0.0, 0.0
        arr = self.as_array()
        return (*map(float, arr.min(axis=0)), *map(float, arr.max(axis=0)))


def _edge_strengths(edges: Tuple[Edge, ...]) -> np.ndarray:
    """Attraction per edge; shorter feature distance pulls harder."""
    if not edges:
        return np.zeros(0)
    weights = np.array([e.weight for e in edges], dtype=np.float64)
    scale = float(np.median(weights))
    if scale <= 0:
        scale = 1.0
    return 2.0 / (1.0 + weights / scale)


def _centre(pos: np.ndarray) -> np.ndarray:
    """Shift ``pos`` so its bounding box is centred on the origin."""
    return pos - (pos.min(axis=0) + pos.max(axis=0)) / 2.0


def _fit_to_box(pos: np.ndarray, width: float, height: float) -> np.ndarray:
    """Centre ``pos`` on the origin and scale uniformly into ``width x height``."""
    lo, hi = pos.min(axis=0), pos.max(axis=0)
    pos = pos - (lo + hi) / 2.0
    extent = hi - lo
    scales = [t / e for t, e in zip((width, height), extent) if e > 1e-12]
    if not scales:
        return np.zeros_like(pos)
    return pos * min(scales)


class NodePositioner:
    """Computes 2D layouts for a :class:`Graph` and remembers the last one."""

    def __init__(self, options: Optional[LayoutOptions] = None):
        self.options = options or LayoutOptions()
        self._last: Optional[LayoutResult] = None

    # ------------------------------------------------------------------
    # cached result access
    @property
    def last_result(self) -> LayoutResult:
        if self._last is None:
            raise NotReady("no layout has been computed yet")
        return self._last

    def get_previous_node_positions(self) -> Mapping[Feature, Point]:
        return self.last_result.positions

    def get_edges(self) -> Tuple[Edge, ...]:
        return self.last_result.edges

    # ------------------------------------------------------------------
    def layout_force(self, graph: Graph, target_width: float, target_height: float,
                     **overrides) -> LayoutResult:
        """Force-directed layout fitted into ``target_width x target_height``.

        Keyword overrides are any :class:`LayoutOptions` field, e.g. ``k``,
        ``seed``, ``iterations``, ``epsilon``, ``margin`` and ``node_size``.
        """
        opts = self.options.replace(**overrides) if overrides else self.options
        nodes = graph.nodes
        n = len(nodes)

        if n == 0:
            result = LayoutResult.build({}, (), FORCE)
        elif n == 1:
            result = LayoutResult.build({nodes[0].feature: ANCHOR}, (), FORCE)
        else:
            edges = graph.derive_edges(KNearest(opts.k))
            rng = np.random.default_rng(opts.seed)
            initial = rng.uniform(-0.5, 0.5, size=(n, 2))

            engine = SimulationEngine(
                initial,
                [(e.node1.index, e.node2.index) for e in edges],
                strengths=_edge_strengths(edges),
                max_iterations=opts.iterations,
            )
            iterations, converged = engine.run(opts.epsilon)
            logger.debug("force layout: %d nodes, %d edges, %d iterations, converged=%s",
                         n, len(edges), iterations, converged)

            pos = _fit_to_box(engine.positions, target_width, target_height)
            pos = self._apply_clearance(pos, target_width, target_height, opts)
            positions = {node.feature: (float(x), float(y)) for node, (x, y) in zip(nodes, pos)}
            result = LayoutResult.build(positions, edges, FORCE,
                                        iterations=iterations, converged=converged)

        self._last = result
        return result

    @staticmethod
    def _apply_clearance(pos: np.ndarray, width: float, height: float,
                         opts: LayoutOptions) -> np.ndarray:
        """Keep nodes ``node_size + margin`` apart inside the box grown by ``margin``.

        Separation and clamping alternate until a clamped layout is still
        separated. When the box cannot hold every node at that distance,
        clearance wins over the box: the separated layout is returned centred
        on the origin and extends past the box.
        """
        separation = opts.node_size + opts.margin
        if separation <= 0:
            return pos
        radii = np.full(len(pos), separation / 2.0)
        half = np.array([width / 2.0 + opts.margin, height / 2.0 + opts.margin])
        for _ in range(CLEARANCE_ROUNDS):
            pos, _, converged = resolve_overlaps(pos, radii)
            pos = _centre(pos)
            if not converged:
                break
            if np.all(np.abs(pos) <= half):
                return pos
            pos = np.clip(pos, -half, half)
            if min_distance(pos) >= separation:
                return pos

        logger.warning("%d nodes need %.1f clearance but the %.0fx%.0f box is too small; "
                       "layout extends past it", len(pos), separation, width, height)
        pos, passes, converged = resolve_overlaps(pos, radii, iterations=10 * OVERLAP_ITERATIONS)
        if not converged:
            logger.error("Clearance pass gave up after %d passes", passes)
        return _centre(pos)

    # ------------------------------------------------------------------
    def layout_tree(self, graph: Graph, root_feature: Feature, target_width: float,
                    target_height: float, **overrides) -> LayoutResult:
        """Rooted layout with ``root_feature`` at the origin.

        Nodes are visited breadth first over the minimum spanning tree grown
        from the root, so tree depth becomes distance from the centre.
        """
        opts = self.options.replace(**overrides) if overrides else self.options
        if root_feature not in graph:
            raise NotFound(f"root {root_feature!r} is not a node of the graph")

        edges = graph.derive_edges(SpanningTree(root_feature))
        root = graph.node(root_feature)
        children = self._children(graph, root, edges)

        if opts.tree_style == "layered":
            pos = self._layered(root, children, target_width, target_height)
        else:
            pos = self._radial(root, children, target_width, target_height)

        positions = {node.feature: pos[node.index] for node in graph.nodes}
        positions[root_feature] = ANCHOR
        result = LayoutResult.build(positions, edges, TREE, root=root_feature,
                                    extra={"depth": max(self._depths(root, children).values())})
        self._last = result
        return result

    @staticmethod
    def _children(graph: Graph, root: Node, edges) -> Dict[Node, List[Node]]:
        T = graph.to_networkx(edges)
        weight = {}
        for e in edges:
            weight[(e.node1, e.node2)] = weight[(e.node2, e.node1)] = e.weight

        children: Dict[Node, List[Node]] = {node: [] for node in graph.nodes}
        for parent_f, child_fs in nx.bfs_successors(T, root.feature):
            parent = graph.node(parent_f)
            kids = [graph.node(f) for f in child_fs]
            kids.sort(key=lambda c: (weight[(parent, c)], c.index))
            children[parent] = kids
        return children

    @staticmethod
    def _depths(root: Node, children) -> Dict[Node, int]:
        depth = {root: 0}
        queue = [root]
        for node in queue:
            for c in children[node]:
                depth[c] = depth[node] + 1
                queue.append(c)
        return depth

    @staticmethod
    def _leaf_counts(root: Node, children) -> Dict[Node, int]:
        order = [root]
        for node in order:
            order.extend(children[node])
        leaves: Dict[Node, int] = {}
        for node in reversed(order):
            leaves[node] = sum(leaves[c] for c in children[node]) or 1
        return leaves

    def _radial(self, root, children, width, height) -> Dict[int, Point]:
        depth = self._depths(root, children)
        leaves = self._leaf_counts(root, children)
        max_depth = max(depth.values())
        ring = (min(width, height) / 2.0) / max_depth if max_depth else 0.0

        pos: Dict[int, Point] = {root.index: ANCHOR}
        wedges = {root: (0.0, 2.0 * math.pi)}
        queue = [root]
        for node in queue:
            start, span = wedges[node]
            for c in children[node]:
                share = span * leaves[c] / leaves[node]
                wedges[c] = (start, share)
                theta = start + share / 2.0
                r = depth[c] * ring
                pos[c.index] = (r * math.cos(theta), r * math.sin(theta))
                start += share
                queue.append(c)
        return pos

    def _layered(self, root, children, width, height) -> Dict[int, Point]:
        depth = self._depths(root, children)
        max_depth = max(depth.values())

        # leaves take consecutive slots, parents sit over the middle of their leaves
        slot: Dict[Node, float] = {}
        counter = 0
        stack = [(root, False)]
        while stack:
            node, expanded = stack.pop()
            kids = children[node]
            if not kids:
                slot[node] = float(counter)
                counter += 1
            elif expanded:
                slot[node] = (slot[kids[0]] + slot[kids[-1]]) / 2.0
            else:
                stack.append((node, True))
                stack.extend((c, False) for c in reversed(kids))

        xs = {node: s - slot[root] for node, s in slot.items()}
        span = max(abs(x) for x in xs.values())
        x_scale = (width / 2.0) / span if span else 0.0
        y_step = height / max_depth if max_depth else 0.0
        return {node.index: (xs[node] * x_scale, -depth[node] * y_step) for node in xs}
