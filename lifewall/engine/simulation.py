from __future__ import annotations

import math

import numpy as np

from lifewall.common.constants import (
    BRIGHTNESS_MAX,
    DEAD,
    NUM_TEAMS,
    TARGET_HEIGHT,
    TARGET_WIDTH,
)
from lifewall.common.types import SnapshotError
from lifewall.engine.rules import RandomSource, color_counts, dominant_colors


def grid_dimensions(
    width: int,
    height: int,
    base_cell_size: int = 8,
    target: tuple[int, int] = (TARGET_WIDTH, TARGET_HEIGHT),
) -> tuple[int, int, int]:
    """Return ``(rows, cols, cell_size)`` for a display resolution.

    The cell size scales with the display relative to ``target`` so a
    smaller screen shows roughly the same board.
    """
    scale = min(width / target[0], height / target[1])
    cell_size = max(1, int(math.floor(base_cell_size * scale + 0.5)))
    return height // cell_size, width // cell_size, cell_size


class SimulationEngine:
    """Live grid, trail overlay and generation stepping for one session."""

    def __init__(
        self,
        rows: int,
        cols: int,
        rng: RandomSource,
        spawn_chance: float = 0.00005,
        drought_decrement: float = 0.0001,
        comet_min_radius: int = 3,
        comet_max_radius: int = 12,
        initial_density: float = 0.5,
    ) -> None:
        if rows <= 0 or cols <= 0:
            raise ValueError("Grid dimensions must be positive")
        if comet_min_radius > comet_max_radius:
            raise ValueError("comet_min_radius must not exceed comet_max_radius")
        self.rows = rows
        self.cols = cols
        self.rng = rng
        self.initial_spawn_chance = spawn_chance
        self.spawn_chance = spawn_chance
        self.drought_decrement = drought_decrement
        self.comet_min_radius = comet_min_radius
        self.comet_max_radius = comet_max_radius
        self.initial_density = initial_density
        self.generation = 0
        self.team_counts = [0] * (NUM_TEAMS + 1)
        empty = np.zeros(self.shape, dtype=np.uint8)
        self.install(empty, empty.copy(), empty.copy())

    @property
    def shape(self) -> tuple[int, int]:
        return (self.rows, self.cols)

    def reset(self, density: float | None = None) -> None:
        """Replace grid and trail with a fresh random board."""
        density = self.initial_density if density is None else density
        grid = np.zeros(self.shape, dtype=np.uint8)
        alive = self.rng.random(self.shape) < density
        grid[alive] = self.rng.team_colors(int(alive.sum()))
        brightness = np.where(alive, BRIGHTNESS_MAX, 0).astype(np.uint8)
        self.install(grid, grid.copy(), brightness)

    def clear(self) -> None:
        empty = np.zeros(self.shape, dtype=np.uint8)
        self.install(empty, empty.copy(), empty.copy())

    def next_generation(self) -> np.ndarray:
        """Advance one generation into the scratch buffer, then swap."""
        grid = self.grid
        out = self._scratch
        counts = color_counts(grid)
        alive_counts = counts[1:].sum(axis=0)
        alive = grid > DEAD
        three = alive_counts == 3
        lives = three | (alive & (alive_counts == 2))

        dominant = dominant_colors(counts, self.rng, where=lives)
        out.fill(DEAD)
        np.copyto(out, dominant, where=lives)

        if self.spawn_chance > 0:
            spawns = self.rng.spawn_mask(self.shape, self.spawn_chance) & ~alive & ~three
            spawned = int(spawns.sum())
            if spawned:
                out[spawns] = self.rng.team_colors(spawned)

        self.grid, self._scratch = out, grid
        self.generation += 1
        return self.grid

    def count_teams(self) -> list[int]:
        totals = np.bincount(self.grid.ravel(), minlength=NUM_TEAMS + 1)
        self.team_counts = [0] + [int(n) for n in totals[1 : NUM_TEAMS + 1]]
        return list(self.team_counts)

    def spawn_comet(self) -> tuple[int, int, int]:
        """Blast a random disc of cells (and their trail) back to dead."""
        row = self.rng.integers(0, self.rows - 1)
        col = self.rng.integers(0, self.cols - 1)
        radius = self.rng.integers(self.comet_min_radius, self.comet_max_radius)
        self.clear_disc(row, col, radius)
        return row, col, radius

    def clear_disc(self, row: int, col: int, radius: int) -> int:
        rr, cc = np.ogrid[: self.rows, : self.cols]
        mask = (rr - row) ** 2 + (cc - col) ** 2 <= radius * radius
        self.grid[mask] = DEAD
        self.trail_color[mask] = DEAD
        self.trail_brightness[mask] = 0
        return int(mask.sum())

    def lower_spawn_chance(self) -> float:
        self.spawn_chance = max(0.0, self.spawn_chance - self.drought_decrement)
        return self.spawn_chance

    def reset_spawn_chance(self) -> None:
        self.spawn_chance = self.initial_spawn_chance

    def load_snapshot(
        self,
        grid,
        trail_color=None,
        trail_brightness=None,
        trail=None,
    ) -> None:
        """Adopt a serialized board, all or nothing."""
        self.install(*self.decode_snapshot(grid, trail_color, trail_brightness, trail=trail))

    def decode_snapshot(
        self,
        grid,
        trail_color=None,
        trail_brightness=None,
        trail=None,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Validate a serialized board into ``(grid, trail_color, trail_brightness)``.

        ``trail`` is the older list-of-objects form with float brightness.
        Without any trail data the trail is rebuilt from the grid. The live
        board is left untouched.
        """
        new_grid = self._coerce(grid, "grid", NUM_TEAMS)
        if trail_color is not None and trail_brightness is not None:
            color = self._coerce(trail_color, "trail_color", NUM_TEAMS)
            brightness = self._coerce(trail_brightness, "trail_brightness", BRIGHTNESS_MAX)
        elif trail:
            color, brightness = self._legacy_trail(trail)
        else:
            color = new_grid.copy()
            brightness = np.where(new_grid > DEAD, BRIGHTNESS_MAX, 0).astype(np.uint8)
        live = new_grid > DEAD
        color[live] = new_grid[live]
        brightness[live] = BRIGHTNESS_MAX
        color[brightness == 0] = DEAD
        return new_grid, color, brightness

    def export_snapshot(self) -> dict:
        return {
            "grid": self.grid.tolist(),
            "trail_color": self.trail_color.tolist(),
            "trail_brightness": self.trail_brightness.tolist(),
            "grid_dimensions": {"rows": self.rows, "cols": self.cols},
        }

    def install(
        self, grid: np.ndarray, trail_color: np.ndarray, trail_brightness: np.ndarray
    ) -> None:
        self.grid = grid
        self._scratch = np.zeros_like(grid)
        self.trail_color = trail_color
        self.trail_brightness = trail_brightness
        self.generation = 0
        self.count_teams()

    def _coerce(self, data, name: str, upper: int) -> np.ndarray:
        try:
            arr = np.asarray(data, dtype=np.int64)
        except (TypeError, ValueError) as exc:
            raise SnapshotError(f"{name} is not a rectangular numeric grid") from exc
        if arr.shape != self.shape:
            raise SnapshotError(f"{name} shape {arr.shape} does not match {self.shape}")
        if arr.size and (arr.min() < 0 or arr.max() > upper):
            raise SnapshotError(f"{name} values must be within 0..{upper}")
        return arr.astype(np.uint8)

    def _legacy_trail(self, trail) -> tuple[np.ndarray, np.ndarray]:
        try:
            color = [[int(entry["color"]) for entry in row] for row in trail]
            brightness = [
                [int(math.floor(float(entry["brightness"]) * BRIGHTNESS_MAX + 0.5)) for entry in row]
                for row in trail
            ]
        except (TypeError, KeyError, ValueError) as exc:
            raise SnapshotError("trail entries must be {color, brightness} objects") from exc
        return (
            self._coerce(color, "trail.color", NUM_TEAMS),
            self._coerce(brightness, "trail.brightness", BRIGHTNESS_MAX),
        )
