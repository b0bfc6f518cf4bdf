import numpy as np

GOLDEN_ANGLE = np.pi * (3.0 - np.sqrt(5.0))
MIN_DISTANCE = 1e-9
JITTER = 1e-6


class SimulationEngine:
    """Fruchterman-Reingold relaxation in a unit square.

    Nodes repel each other with ``k^2 / d`` and every edge pulls its ends
    together with ``strength * d^2 / k``. Each step moves a node by at most the
    current temperature, which cools linearly to zero over ``max_iterations``.
    """

    def __init__(self, initial_positions, edges, strengths=None, max_iterations=300):
        self.num_nodes = len(initial_positions)
        self.positions = np.array(initial_positions, dtype=np.float64).reshape(self.num_nodes, 2)

        edges = np.asarray(edges, dtype=np.int64).reshape(-1, 2)
        self.src = edges[:, 0]
        self.dst = edges[:, 1]
        if strengths is None:
            strengths = np.ones(len(edges))
        self.strengths = np.asarray(strengths, dtype=np.float64)

        # optimal pairwise distance for unit area
        self.k = 1.0 / np.sqrt(max(self.num_nodes, 1))
        self.max_iterations = max_iterations
        self.temperature = 0.1
        self.cooling = self.temperature / (max_iterations + 1)
        self.iteration = 0

    def _separate_coincident(self):
        """Nudge nodes sharing a position apart along golden-angle offsets."""
        _, first, inverse = np.unique(
            self.positions, axis=0, return_index=True, return_inverse=True
        )
        inverse = inverse.ravel()
        dup = np.where(first[inverse] != np.arange(self.num_nodes))[0]
        if dup.size == 0:
            return False
        angles = dup * GOLDEN_ANGLE
        radii = JITTER * (1 + np.arange(dup.size))
        self.positions[dup, 0] += radii * np.cos(angles)
        self.positions[dup, 1] += radii * np.sin(angles)
        return True

    def simulation_step(self):
        """Advance one iteration; returns the total displacement."""
        if self.num_nodes < 2:
            self.iteration += 1
            return 0.0

        self._separate_coincident()

        # --- 1. repulsion, all pairs ---
        delta = self.positions[:, None, :] - self.positions[None, :, :]
        dist = np.sqrt((delta ** 2).sum(-1))
        np.fill_diagonal(dist, np.inf)
        dist = np.maximum(dist, MIN_DISTANCE)
        disp = (delta * (self.k ** 2 / dist ** 2)[:, :, None]).sum(axis=1)

        # --- 2. attraction along edges ---
        if self.src.size:
            d_vec = self.positions[self.src] - self.positions[self.dst]
            d_len = np.maximum(np.sqrt((d_vec ** 2).sum(-1)), MIN_DISTANCE)
            pull = d_vec * (self.strengths * d_len / self.k)[:, None]
            np.add.at(disp, self.src, -pull)
            np.add.at(disp, self.dst, pull)

        # --- 3. limit by temperature ---
        length = np.maximum(np.sqrt((disp ** 2).sum(-1)), MIN_DISTANCE)
        step = np.minimum(length, self.temperature)
        moves = disp * (step / length)[:, None]
        self.positions += moves

        self.temperature = max(self.temperature - self.cooling, 0.0)
        self.iteration += 1
        return float(step.sum())

    def run(self, epsilon=1e-4):
        """Iterate until displacement drops below ``epsilon`` or the cap is hit.

        Returns ``(iterations, converged)``.
        """
        while self.iteration < self.max_iterations:
            moved = self.simulation_step()
            if moved < epsilon:
                return self.iteration, True
        return self.iteration, False
