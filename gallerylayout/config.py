from __future__ import annotations

import json
from dataclasses import dataclass, asdict, fields, replace as _dc_replace
from pathlib import Path
from typing import Any, Dict, Optional

# Edge derivation
DEFAULT_K = 3
BRUTE_FORCE_LIMIT = 2000          # above this, k-NN queries go through a KDTree

# Force layout
DEFAULT_ITERATIONS = 300
DEFAULT_EPSILON = 1e-4            # total displacement per iteration
DEFAULT_MARGIN = 0.0
DEFAULT_NODE_SIZE = 0.0
DEFAULT_SEED = 42
OVERLAP_ITERATIONS = 10000
OVERLAP_STRENGTH = 1.0
# separate/clamp alternations before clearance is kept at the cost of the box
CLEARANCE_ROUNDS = 20

# Tree layout
TREE_STYLES = ("radial", "layered")
DEFAULT_TREE_STYLE = "radial"
CLASS_VIEW_SIZE = 100             # width/height of the single class view

# Overview of all classes
CLUSTER_DIAMETER = 300
CLUSTER_PADDING = 200

# Async tasks
POLL_INTERVAL_MS = 100


@dataclass(frozen=True)
class LayoutOptions:
    """Tunable parameters shared by both layout regimes.

    ``seed=None`` gives a random initial placement on every run.
    """

    k: int = DEFAULT_K
    iterations: int = DEFAULT_ITERATIONS
    epsilon: float = DEFAULT_EPSILON
    margin: float = DEFAULT_MARGIN
    node_size: float = DEFAULT_NODE_SIZE
    seed: Optional[int] = DEFAULT_SEED
    tree_style: str = DEFAULT_TREE_STYLE

    def __post_init__(self) -> None:
        if self.k < 0:
            raise ValueError(f"k must be >= 0, got {self.k}")
        if self.iterations < 1:
            raise ValueError(f"iterations must be >= 1, got {self.iterations}")
        if self.epsilon < 0:
            raise ValueError(f"epsilon must be >= 0, got {self.epsilon}")
        if self.margin < 0 or self.node_size < 0:
            raise ValueError("margin and node_size must be >= 0")
        if self.tree_style not in TREE_STYLES:
            raise ValueError(f"Unknown tree style: {self.tree_style}")

    def replace(self, **overrides: Any) -> "LayoutOptions":
        """Return a copy with ``overrides`` applied."""
        unknown = set(overrides) - _FIELD_NAMES
        if unknown:
            raise ValueError(f"Unknown layout options: {sorted(unknown)}")
        return _dc_replace(self, **overrides)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LayoutOptions":
        return cls().replace(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_FIELD_NAMES = {f.name for f in fields(LayoutOptions)}


def load_options(path: str | Path) -> LayoutOptions:
    """Read layout options from a JSON file.

    Raises:
        FileNotFoundError: the file does not exist
        json.JSONDecodeError: the file is not valid JSON
        ValueError: unknown keys or out-of-range values
    """
    config_file = Path(path)
    if not config_file.exists():
        raise FileNotFoundError(f"Layout options file not found: {path}")

    with open(config_file, "r", encoding="utf-8") as f:
        data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError("Layout options file must contain a JSON object")
    return LayoutOptions.from_dict(data)
