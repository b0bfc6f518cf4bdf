from __future__ import annotations

from typing import Hashable, Iterable, List, Optional, Protocol, Sequence

import numpy as np
from sklearn.metrics.pairwise import euclidean_distances

from .feature import Feature, mean_feature
from .graph import Graph


class Classifier(Protocol):
    """What the browser needs from the image classifier."""

    def classify(self, feature: Feature) -> Hashable:
        """Class id for ``feature``, or None when it cannot be classified."""
        ...

    def train(self, classes: Sequence["FeatureClass"]) -> None:
        ...


class FeatureClass:
    """The features of all images assigned to one class, plus its icon.

    The icon is the member closest to the mean feature of the class; it is
    the representative used in the overview and the root of the class view.
    """

    def __init__(self, class_id: Hashable, features: Iterable[Feature] = ()):
        self.class_id = class_id
        self._features: List[Feature] = []
        self._icon: Optional[Feature] = None
        for f in features:
            self.add_feature(f)

    @property
    def features(self) -> List[Feature]:
        return list(self._features)

    @property
    def icon(self) -> Optional[Feature]:
        if self._icon is None and self._features:
            self.calculate_icon()
        return self._icon

    def add_feature(self, feature: Feature) -> None:
        if any(f is feature for f in self._features):
            return
        self._features.append(feature)

    def remove_feature(self, feature: Feature) -> bool:
        """Remove ``feature``; returns True when it was the icon."""
        for i, f in enumerate(self._features):
            if f is feature:
                del self._features[i]
                break
        else:
            return False
        if feature is self._icon:
            self._icon = None
            return True
        return False

    def mean_feature(self) -> np.ndarray:
        return mean_feature(self._features)

    def calculate_icon(self) -> Optional[Feature]:
        if not self._features:
            self._icon = None
            return None
        matrix = Feature.stack(self._features)
        dist = euclidean_distances(matrix, matrix.mean(axis=0, keepdims=True))[:, 0]
        self._icon = self._features[int(np.argmin(dist))]
        return self._icon

    def graph(self) -> Graph:
        """Graph over all members with the icon inserted first."""
        graph = Graph()
        if self.icon is not None:
            graph.add_node(self.icon)
        for f in self._features:
            graph.add_node(f)
        return graph

    def __len__(self) -> int:
        return len(self._features)

    def __repr__(self) -> str:
        return f"<FeatureClass {self.class_id!r} size={len(self._features)}>"
