from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import networkx as nx
import numpy as np
from sklearn.metrics.pairwise import euclidean_distances
from sklearn.neighbors import KDTree

from .config import BRUTE_FORCE_LIMIT, DEFAULT_K
from .errors import DimensionMismatch, NotFound
from .feature import Feature

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Node:
    """Graph vertex wrapping one feature. Does not own the feature."""

    feature: Feature
    index: int

    def __repr__(self) -> str:
        return f"Node({self.index}, {self.feature!r})"


@dataclass(frozen=True)
class Edge:
    """Unordered connection; ``node1.index < node2.index`` always holds."""

    node1: Node
    node2: Node
    weight: float = field(compare=False)

    @classmethod
    def between(cls, a: Node, b: Node, weight: float) -> "Edge":
        if a.index > b.index:
            a, b = b, a
        return cls(a, b, weight)

    @property
    def features(self) -> Tuple[Feature, Feature]:
        return self.node1.feature, self.node2.feature

    def other(self, node: Node) -> Node:
        return self.node2 if node is self.node1 else self.node1


# ---------------------------------------------------------------------------
# edge policies
@dataclass(frozen=True)
class KNearest:
    """Connect every node to its ``k`` closest nodes (symmetric union)."""

    k: int = DEFAULT_K

    def __post_init__(self) -> None:
        if self.k < 0:
            raise ValueError(f"k must be >= 0, got {self.k}")

    def select(self, graph: "Graph") -> Tuple[Edge, ...]:
        nodes = graph.nodes
        n = len(nodes)
        k = min(self.k, n - 1)
        if k <= 0:
            return ()

        matrix = graph.matrix()
        if n <= BRUTE_FORCE_LIMIT:
            dist = euclidean_distances(matrix)
            np.fill_diagonal(dist, np.inf)
            # stable sort keeps ties in insertion order
            order = np.argsort(dist, axis=1, kind="stable")[:, :k]
            neigh_dist = np.take_along_axis(dist, order, axis=1)
        else:
            tree = KDTree(matrix)
            neigh_dist, order = tree.query(matrix, k=k + 1)
            neigh_dist, order = _drop_self(order, neigh_dist, k)

        seen: Dict[Tuple[int, int], Edge] = {}
        for i in range(n):
            for j, d in zip(order[i], neigh_dist[i]):
                j = int(j)
                key = (i, j) if i < j else (j, i)
                if i == j or key in seen:
                    continue
                seen[key] = Edge(nodes[key[0]], nodes[key[1]], float(d))
        edges = tuple(seen[key] for key in sorted(seen))
        logger.debug("k-NN (k=%d) selected %d edges over %d nodes", k, len(edges), n)
        return edges


def _drop_self(order: np.ndarray, dist: np.ndarray, k: int):
    """Remove each row's own index from a ``k + 1`` neighbour query."""
    out_idx = np.empty((order.shape[0], k), dtype=order.dtype)
    out_dist = np.empty((order.shape[0], k), dtype=dist.dtype)
    for i in range(order.shape[0]):
        keep = order[i] != i
        if keep.all():
            # coincident points may push self out of the first slot entirely
            keep[-1] = False
        out_idx[i] = order[i][keep][:k]
        out_dist[i] = dist[i][keep][:k]
    return out_dist, out_idx


@dataclass(frozen=True)
class SpanningTree:
    """Grow a minimum spanning tree outward from ``root``.

    Prim's nearest-unvisited expansion: always ``n - 1`` edges, connected and
    acyclic. ``root=None`` starts from the first inserted node.
    """

    root: Optional[Feature] = None

    def select(self, graph: "Graph") -> Tuple[Edge, ...]:
        nodes = graph.nodes
        n = len(nodes)
        if n == 0:
            if self.root is not None:
                raise NotFound(f"root {self.root!r} is not a node of the graph")
            return ()
        start = graph.node(self.root).index if self.root is not None else 0
        if n == 1:
            return ()

        matrix = graph.matrix()
        in_tree = np.zeros(n, dtype=bool)
        best = np.full(n, np.inf)
        parent = np.full(n, -1, dtype=np.int64)

        current = start
        edges: List[Edge] = []
        for _ in range(n - 1):
            in_tree[current] = True
            d = np.linalg.norm(matrix - matrix[current], axis=1)
            closer = (~in_tree) & (d < best)
            best[closer] = d[closer]
            parent[closer] = current

            candidates = np.where(in_tree, np.inf, best)
            nxt = int(np.argmin(candidates))
            edges.append(Edge.between(nodes[parent[nxt]], nodes[nxt], float(best[nxt])))
            current = nxt

        logger.debug("spanning tree rooted at %d: %d edges", start, len(edges))
        return tuple(edges)


# ---------------------------------------------------------------------------
class Graph:
    """Node container over features; edges are derived on demand."""

    def __init__(self, features: Iterable[Feature] = ()):
        self._nodes: List[Node] = []
        self._by_feature: Dict[Feature, Node] = {}
        self._dimension: Optional[int] = None
        self.generation = 0
        for f in features:
            self.add_node(f)

    def add_node(self, feature: Feature) -> Node:
        """Insert ``feature``; re-inserting an existing feature is a no-op."""
        node = self._by_feature.get(feature)
        if node is not None:
            return node
        if self._dimension is None:
            self._dimension = feature.dimension
        elif feature.dimension != self._dimension:
            raise DimensionMismatch(self._dimension, feature.dimension)

        node = Node(feature, len(self._nodes))
        self._nodes.append(node)
        self._by_feature[feature] = node
        self.generation += 1
        return node

    @property
    def nodes(self) -> Tuple[Node, ...]:
        return tuple(self._nodes)

    @property
    def features(self) -> List[Feature]:
        return [n.feature for n in self._nodes]

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def node(self, feature: Feature) -> Node:
        try:
            return self._by_feature[feature]
        except KeyError:
            raise NotFound(f"{feature!r} is not a node of the graph") from None

    def matrix(self) -> np.ndarray:
        """Feature vectors as an ``(n, d)`` matrix in insertion order."""
        return Feature.stack(self.features)

    def derive_edges(self, policy=None) -> Tuple[Edge, ...]:
        """Edge set of the current nodes under ``policy`` (default k-NN)."""
        if policy is None:
            policy = KNearest()
        return policy.select(self)

    def to_networkx(self, edges: Optional[Iterable[Edge]] = None) -> nx.Graph:
        G = nx.Graph()
        for node in self._nodes:
            G.add_node(node.feature, index=node.index)
        for e in edges or ():
            G.add_edge(e.node1.feature, e.node2.feature, weight=e.weight)
        return G

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, feature: object) -> bool:
        return feature in self._by_feature

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes)

    def __repr__(self) -> str:
        return f"<Graph nodes={len(self._nodes)} dim={self._dimension}>"
