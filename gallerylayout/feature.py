from __future__ import annotations

from typing import Iterable, Sequence

import numpy as np

from .errors import DimensionMismatch


class Feature:
    """A fixed-length feature vector describing one image or class icon.

    Features compare by identity only; two features holding equal vectors are
    still distinct. The vector is copied on construction and frozen.
    """

    __slots__ = ("_vector", "label")

    def __init__(self, vector: Sequence[float] | np.ndarray, label=None):
        arr = np.array(vector, dtype=np.float64).ravel()
        if arr.size == 0:
            raise ValueError("Feature vector must not be empty")
        if not np.all(np.isfinite(arr)):
            raise ValueError("Feature vector must be finite")
        arr.flags.writeable = False
        self._vector = arr
        self.label = label

    @property
    def vector(self) -> np.ndarray:
        return self._vector

    @property
    def dimension(self) -> int:
        return self._vector.shape[0]

    def distance(self, other: "Feature") -> float:
        """Euclidean (L2) distance to ``other``."""
        if other.dimension != self.dimension:
            raise DimensionMismatch(self.dimension, other.dimension)
        if other is self:
            return 0.0
        return float(np.linalg.norm(self._vector - other._vector))

    @staticmethod
    def stack(features: Iterable["Feature"]) -> np.ndarray:
        """Stack ``features`` into an ``(n, d)`` matrix."""
        feats = list(features)
        if not feats:
            return np.zeros((0, 0), dtype=np.float64)
        dim = feats[0].dimension
        for f in feats[1:]:
            if f.dimension != dim:
                raise DimensionMismatch(dim, f.dimension)
        return np.stack([f.vector for f in feats])

    def __repr__(self) -> str:
        name = f" {self.label!r}" if self.label is not None else ""
        return f"<Feature{name} dim={self.dimension}>"


def mean_feature(features: Iterable[Feature]) -> np.ndarray:
    """Mean vector of ``features``; an empty input gives an empty vector."""
    matrix = Feature.stack(features)
    if matrix.size == 0:
        return np.zeros(0)
    return matrix.mean(axis=0)
