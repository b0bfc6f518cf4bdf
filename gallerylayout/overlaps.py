"""Disc separation used to keep a minimum clearance between laid-out nodes."""
from __future__ import annotations

import logging
from typing import Tuple

import numba as nb
import numpy as np
from sklearn.metrics.pairwise import euclidean_distances

from .config import OVERLAP_ITERATIONS, OVERLAP_STRENGTH

logger = logging.getLogger(__name__)

GOLDEN_ANGLE = 2.399963229728653
# pushes aim slightly past contact so a separated pair reads as separated
OVERSHOOT = 1e-7


@nb.njit(fastmath=True, cache=True)
def _separate_discs(pos, radii, max_passes, strength):
    """Relax ``pos`` in place; returns ``(passes, converged)``."""
    n = pos.shape[0]
    for sweep in range(max_passes):
        pushes = 0
        for a in range(n - 1):
            ax = pos[a, 0]
            ay = pos[a, 1]
            for b in range(a + 1, n):
                gap = radii[a] + radii[b]
                ux = ax - pos[b, 0]
                uy = ay - pos[b, 1]
                d2 = ux * ux + uy * uy
                if d2 >= gap * gap:
                    continue
                if d2 > 1e-18:
                    d = np.sqrt(d2)
                    ux /= d
                    uy /= d
                else:
                    theta = (a * 31 + b * 17) * GOLDEN_ANGLE
                    d = 0.0
                    ux = np.cos(theta)
                    uy = np.sin(theta)
                # each disc takes half the missing distance
                half = 0.5 * strength * (gap * (1.0 + OVERSHOOT) - d)
                ax += ux * half
                ay += uy * half
                pos[b, 0] -= ux * half
                pos[b, 1] -= uy * half
                pushes += 1
            pos[a, 0] = ax
            pos[a, 1] = ay
        if pushes == 0:
            return sweep + 1, True
    return max_passes, False


def resolve_overlaps(positions: np.ndarray, radii,
                     iterations: int = OVERLAP_ITERATIONS,
                     strength: float = OVERLAP_STRENGTH) -> Tuple[np.ndarray, int, bool]:
    """Push apart discs of ``radii`` centred at ``positions`` until none overlap.

    Returns the new positions, the number of relaxation passes used and
    whether the discs ended up disjoint. ``positions`` is not modified.
    """
    pos = np.array(positions, dtype=np.float64).reshape(-1, 2)
    if len(pos) < 2:
        return pos, 0, True

    radii64 = np.ascontiguousarray(np.broadcast_to(radii, (len(pos),)), dtype=np.float64)
    passes, converged = _separate_discs(pos, radii64, int(iterations), float(strength))
    if not converged:
        logger.debug("Overlap pass stopped after %d passes with discs still touching", passes)
    return pos, int(passes), bool(converged)


def min_distance(positions: np.ndarray) -> float:
    """Smallest distance between two distinct points; ``inf`` below two points."""
    pos = np.asarray(positions, dtype=np.float64).reshape(-1, 2)
    if len(pos) < 2:
        return float("inf")
    dist = euclidean_distances(pos)
    np.fill_diagonal(dist, np.inf)
    return float(dist.min())
