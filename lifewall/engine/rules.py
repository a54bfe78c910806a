from __future__ import annotations

import numpy as np

from lifewall.common.constants import DEAD, NUM_TEAMS

NEIGHBOR_OFFSETS = (
    (-1, -1),
    (-1, 0),
    (-1, 1),
    (0, -1),
    (0, 1),
    (1, -1),
    (1, 0),
    (1, 1),
)


class RandomSource:
    """Shared random source for tie-breaks, spontaneous spawns and events.

    Every stochastic draw of the simulation goes through one of these
    methods, so a test can swap in a deterministic stand-in.
    """

    def __init__(self, seed: int | None = None) -> None:
        self.gen = np.random.default_rng(seed)

    def random(self, shape=None):
        return self.gen.random(shape)

    def integers(self, low: int, high: int) -> int:
        """Uniform integer in ``[low, high]`` (inclusive)."""
        return int(self.gen.integers(low, high + 1))

    def tie_breaks(self, n_tied: np.ndarray) -> np.ndarray:
        """Pick one index in ``[0, n)`` for each entry ``n`` of ``n_tied``."""
        n_tied = np.asarray(n_tied)
        return (self.gen.random(n_tied.shape) * n_tied).astype(np.intp)

    def spawn_mask(self, shape: tuple[int, int], chance: float) -> np.ndarray:
        if chance <= 0:
            return np.zeros(shape, dtype=bool)
        return self.gen.random(shape) < chance

    def team_colors(self, n: int) -> np.ndarray:
        return self.gen.integers(1, NUM_TEAMS + 1, size=n, dtype=np.uint8)


def neighbor_summary(grid, row: int, col: int, rng: RandomSource) -> tuple[int, int]:
    """Return ``(alive_neighbors, dominant_color)`` for one cell.

    Edge cells simply have fewer neighbors. ``dominant_color`` is 0 when no
    neighbor is alive; ties go to a uniformly random tied color.
    """
    grid = np.asarray(grid)
    rows, cols = grid.shape
    tally = [0] * (NUM_TEAMS + 1)
    alive = 0
    for dr, dc in NEIGHBOR_OFFSETS:
        r = row + dr
        c = col + dc
        if 0 <= r < rows and 0 <= c < cols:
            color = int(grid[r, c])
            if color != DEAD:
                alive += 1
                tally[color] += 1
    if alive == 0:
        return 0, DEAD
    best = max(tally[1:])
    candidates = [color for color in range(1, NUM_TEAMS + 1) if tally[color] == best]
    if len(candidates) == 1:
        return alive, candidates[0]
    pick = int(rng.tie_breaks(np.array([len(candidates)]))[0])
    return alive, candidates[pick]


def color_counts(grid: np.ndarray) -> np.ndarray:
    """Per-color Moore neighbor counts, shape ``(NUM_TEAMS + 1, rows, cols)``.

    Index 0 is unused. The grid is zero-padded so there is no wraparound.
    """
    rows, cols = grid.shape
    padded = np.zeros((rows + 2, cols + 2), dtype=np.uint8)
    padded[1:-1, 1:-1] = grid
    counts = np.zeros((NUM_TEAMS + 1, rows, cols), dtype=np.uint8)
    for color in range(1, NUM_TEAMS + 1):
        plane = (padded == color).astype(np.uint8)
        acc = counts[color]
        for dr, dc in NEIGHBOR_OFFSETS:
            acc += plane[1 + dr : 1 + dr + rows, 1 + dc : 1 + dc + cols]
    return counts


def dominant_colors(
    counts: np.ndarray, rng: RandomSource, where: np.ndarray | None = None
) -> np.ndarray:
    """Resolve the dominant color of every cell selected by ``where``.

    Unselected cells and cells without live neighbors get 0. Tie-break draws
    happen only for selected tied cells, in row-major order.
    """
    team_counts = counts[1:]
    best = team_counts.max(axis=0)
    tied = (team_counts == best) & (best > 0)
    n_tied = tied.sum(axis=0)
    dominant = np.zeros(best.shape, dtype=np.uint8)

    single = n_tied == 1
    multi = n_tied > 1
    if where is not None:
        single &= where
        multi &= where

    dominant[single] = team_counts.argmax(axis=0)[single] + 1
    if multi.any():
        candidates = tied[:, multi]
        picks = rng.tie_breaks(n_tied[multi])
        rank = np.cumsum(candidates, axis=0)
        chosen = np.argmax(rank == (picks + 1), axis=0)
        dominant[multi] = chosen + 1
    return dominant
