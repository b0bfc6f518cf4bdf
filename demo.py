"""Lay out a few synthetic image classes and save the result as a PNG.

    python demo.py --classes 6 --per-class 40 --out layout.png
"""
import argparse
import logging
import time

import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from gallerylayout import ClusterBrowser, Feature, FeatureClass, POLL_INTERVAL_MS


class NearestMeanClassifier:
    """Stand-in classifier: assigns a feature to the class with the closest mean."""

    def __init__(self):
        self.means = {}

    def train(self, classes):
        self.means = {c.class_id: c.mean_feature() for c in classes if len(c)}

    def classify(self, feature):
        if not self.means:
            return None
        return min(self.means, key=lambda cid: np.linalg.norm(self.means[cid] - feature.vector))


def make_classes(n_classes, per_class, dim, rng):
    classes = []
    for c in range(n_classes):
        centre = rng.normal(0, 5, dim)
        feats = [Feature(centre + rng.normal(0, 1, dim), label=f"img_{c}_{i}") for i in range(per_class)]
        classes.append(FeatureClass(f"class_{c}", feats))
    return classes


def main():
    parser = argparse.ArgumentParser(description="gallerylayout demo")
    parser.add_argument("--classes", type=int, default=6)
    parser.add_argument("--per-class", type=int, default=40)
    parser.add_argument("--dim", type=int, default=64)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--out", default="layout.png")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    rng = np.random.default_rng(args.seed)

    classifier = NearestMeanClassifier()
    classes = make_classes(args.classes, args.per_class, args.dim, rng)
    classifier.train(classes)
    browser = ClusterBrowser(classes, classifier=classifier)

    positions, overview = browser.overview()
    first = browser.classes[0].class_id
    browser.open_class(first)

    start = time.perf_counter()
    class_layout = browser.check_status()
    while class_layout is None:
        time.sleep(POLL_INTERVAL_MS / 1000.0)
        class_layout = browser.check_status()
    logging.info("class layout ready after %.2fs", time.perf_counter() - start)

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 6))
    for (x1, y1), (x2, y2) in overview.edge_segments():
        ax1.plot([x1, x2], [y1, y2], color="0.7", lw=0.8, zorder=0)
    for cid, (x, y) in positions.items():
        ax1.scatter([x], [y], s=200)
        ax1.annotate(str(cid), (x, y), ha="center", va="bottom")
    ax1.set_title("Classes")

    for (x1, y1), (x2, y2) in class_layout.edge_segments():
        ax2.plot([x1, x2], [y1, y2], color="0.7", lw=0.8, zorder=0)
    pts = class_layout.as_array()
    ax2.scatter(pts[:, 0], pts[:, 1], s=20)
    ax2.scatter([0], [0], s=80, color="red")
    ax2.set_title(f"Class {first}")
    for ax in (ax1, ax2):
        ax.set_aspect("equal")

    fig.savefig(args.out, dpi=120)
    browser.runner.shutdown()
    logging.info("saved %s", args.out)


if __name__ == "__main__":
    main()
