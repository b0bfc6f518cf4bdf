from __future__ import annotations

import logging
from typing import Dict, Hashable, Iterable, List, Optional, Tuple

from .classes import Classifier, FeatureClass
from .config import CLASS_VIEW_SIZE, CLUSTER_DIAMETER, CLUSTER_PADDING, LayoutOptions
from .errors import NotFound
from .feature import Feature
from .graph import Graph
from .node_positioner import LayoutResult, NodePositioner, Point
from .tasks import LayoutKind, LayoutTaskRunner, TaskHandle

logger = logging.getLogger(__name__)

CLASS_VIEW = "class"


class ClusterBrowser:
    """Layout state behind the clustered image browser.

    Holds the image classes, lays the class icons out for the overview, and
    positions a single class in the background when the user opens it.
    Rendering stays with the caller.
    """

    def __init__(self, classes: Iterable[FeatureClass] = (), classifier: Optional[Classifier] = None,
                 options: Optional[LayoutOptions] = None, runner: Optional[LayoutTaskRunner] = None):
        self.options = options or LayoutOptions()
        self.classifier = classifier
        self.runner = runner or LayoutTaskRunner(options=self.options)
        self._classes: Dict[Hashable, FeatureClass] = {}
        self._new: Dict[Hashable, List[Feature]] = {}
        self.current_class: Optional[FeatureClass] = None
        self._handle: Optional[TaskHandle] = None
        for cls in classes:
            self._classes[cls.class_id] = cls

    # ------------------------------------------------------------------
    @property
    def classes(self) -> List[FeatureClass]:
        return list(self._classes.values())

    def get_class(self, class_id: Hashable) -> FeatureClass:
        try:
            return self._classes[class_id]
        except KeyError:
            raise NotFound(f"unknown class {class_id!r}") from None

    def add_class(self, image_class: FeatureClass) -> None:
        self._classes[image_class.class_id] = image_class

    # ------------------------------------------------------------------
    def overview(self, width: Optional[float] = None,
                 height: Optional[float] = None) -> Tuple[Dict[Hashable, Point], LayoutResult]:
        """Force layout of every class icon, computed synchronously.

        Icons keep ``CLUSTER_DIAMETER + CLUSTER_PADDING`` apart so the
        clusters drawn around them do not overlap.
        """
        graph = Graph()
        icons: Dict[Hashable, Feature] = {}
        for cls in self._classes.values():
            icon = cls.calculate_icon()
            if icon is None:
                continue
            graph.add_node(icon)
            icons[cls.class_id] = icon

        n = max(len(graph), 1)
        side = (CLUSTER_DIAMETER + CLUSTER_PADDING) * n ** 0.5
        result = NodePositioner(self.options).layout_force(
            graph,
            width if width is not None else side,
            height if height is not None else side,
            node_size=CLUSTER_DIAMETER,
            margin=CLUSTER_PADDING,
        )
        positions = {cid: result.positions[icon] for cid, icon in icons.items()}
        return positions, result

    def open_class(self, class_id: Hashable, width: float = CLASS_VIEW_SIZE,
                   height: float = CLASS_VIEW_SIZE) -> TaskHandle:
        """Start positioning the images of a class around its icon."""
        image_class = self.get_class(class_id)
        self.current_class = image_class
        self._handle = self.runner.submit(
            image_class.graph(),
            LayoutKind.TREE,
            {"root": image_class.icon, "target_width": width, "target_height": height},
            view=CLASS_VIEW,
        )
        return self._handle

    def check_status(self) -> Optional[LayoutResult]:
        """Poll the class layout; returns it once finished, else None."""
        return self.runner.check_status(CLASS_VIEW)

    def close_class(self) -> None:
        """Leave the class view; a pending layout is discarded."""
        self.runner.discard(CLASS_VIEW)
        if self.current_class is not None:
            self.clear_new(self.current_class.class_id)
        self.current_class = None
        self._handle = None

    # ------------------------------------------------------------------
    def add_features(self, features: Iterable[Feature]) -> Dict[Hashable, List[Feature]]:
        """Classify ``features`` into the existing classes.

        Returns the features added per class id; they are remembered as new
        until :meth:`clear_new` is called for the class.
        """
        if self.classifier is None:
            raise RuntimeError("no classifier configured")

        added: Dict[Hashable, List[Feature]] = {}
        skipped = 0
        for feature in features:
            class_id = self.classifier.classify(feature)
            if class_id is None or class_id not in self._classes:
                skipped += 1
                continue
            self._classes[class_id].add_feature(feature)
            added.setdefault(class_id, []).append(feature)
            self._new.setdefault(class_id, []).append(feature)

        for class_id in added:
            self._classes[class_id].calculate_icon()

        logger.info("%d new features were added, %d could not be classified",
                    sum(map(len, added.values())), skipped)
        return added

    def remove_feature(self, class_id: Hashable, feature: Feature) -> None:
        """Remove one image; an emptied class is dropped."""
        image_class = self.get_class(class_id)
        was_icon = image_class.remove_feature(feature)
        new = self._new.get(class_id)
        if new:
            self._new[class_id] = [f for f in new if f is not feature]

        if len(image_class) == 0:
            logger.info("Class %r is empty, removing it", class_id)
            del self._classes[class_id]
            self._new.pop(class_id, None)
            if self.current_class is image_class:
                self.close_class()
        elif was_icon:
            image_class.calculate_icon()

    def new_features(self, class_id: Hashable) -> List[Feature]:
        return list(self._new.get(class_id, []))

    def highlighted_classes(self) -> List[Hashable]:
        return [cid for cid, feats in self._new.items() if feats]

    def clear_new(self, class_id: Hashable) -> None:
        self._new.pop(class_id, None)

    def retrain(self) -> None:
        if self.classifier is None:
            raise RuntimeError("no classifier configured")
        logger.info("Re-training classifier on %d classes", len(self._classes))
        self.classifier.train(self.classes)
