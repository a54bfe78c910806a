import numpy as np
import pytest

from lifewall.common.constants import BRIGHTNESS_MAX
from lifewall.common.types import SnapshotError
from lifewall.engine.rules import RandomSource
from lifewall.engine.simulation import SimulationEngine, grid_dimensions


class QuietRandom(RandomSource):
    """Lowest tied color wins and nothing ever spawns."""

    def __init__(self) -> None:
        super().__init__(seed=0)

    def tie_breaks(self, n_tied):
        return np.zeros(np.asarray(n_tied).shape, dtype=np.intp)

    def spawn_mask(self, shape, chance):
        return np.zeros(shape, dtype=bool)


def _make_sim(rows=5, cols=5, rng=None, **kwargs) -> SimulationEngine:
    return SimulationEngine(rows, cols, rng or QuietRandom(), **kwargs)


def test_grid_dimensions_scale_cell_size():
    assert grid_dimensions(1920, 1080) == (135, 240, 8)
    assert grid_dimensions(960, 540) == (135, 240, 4)
    assert grid_dimensions(1280, 720) == (144, 256, 5)
    assert grid_dimensions(10, 10)[2] == 1


def test_blinker_oscillates():
    sim = _make_sim()
    grid = np.zeros((5, 5), dtype=np.uint8)
    grid[2, 1:4] = 1
    sim.load_snapshot(grid)

    sim.next_generation()
    expected = np.zeros((5, 5), dtype=np.uint8)
    expected[1:4, 2] = 1
    assert np.array_equal(sim.grid, expected)
    assert sim.generation == 1

    sim.next_generation()
    assert np.array_equal(sim.grid, grid)


def test_block_is_still_life():
    sim = _make_sim(4, 4)
    grid = np.zeros((4, 4), dtype=np.uint8)
    grid[1:3, 1:3] = 3
    sim.load_snapshot(grid)
    sim.next_generation()
    assert np.array_equal(sim.grid, grid)


def test_birth_takes_majority_color():
    sim = _make_sim()
    grid = np.zeros((5, 5), dtype=np.uint8)
    grid[1, 1] = 1
    grid[1, 3] = 1
    grid[3, 2] = 2
    sim.load_snapshot(grid)
    sim.next_generation()
    assert sim.grid[2, 2] == 1


def test_survivor_takes_dominant_neighbor_color():
    sim = _make_sim()
    grid = np.zeros((5, 5), dtype=np.uint8)
    grid[2, 2] = 2
    grid[2, 1] = 4
    grid[2, 3] = 4
    sim.load_snapshot(grid)
    sim.next_generation()
    assert sim.grid[2, 2] == 4


def test_same_seed_same_history():
    a = _make_sim(20, 30, RandomSource(seed=11), spawn_chance=0.01)
    b = _make_sim(20, 30, RandomSource(seed=11), spawn_chance=0.01)
    a.reset()
    b.reset()
    for _ in range(10):
        a.next_generation()
        b.next_generation()
    assert np.array_equal(a.grid, b.grid)


def test_fixed_random_source_gives_identical_generations():
    start = np.random.default_rng(21).integers(0, 5, size=(12, 15)).astype(np.uint8)
    a = _make_sim(12, 15)
    b = _make_sim(12, 15)
    a.load_snapshot(start)
    b.load_snapshot(start)
    for _ in range(6):
        assert np.array_equal(a.next_generation(), b.next_generation())


def test_spawn_fills_empty_board_at_full_chance():
    sim = _make_sim(6, 6, RandomSource(seed=5), spawn_chance=1.0)
    sim.clear()
    sim.next_generation()
    assert (sim.grid > 0).all()
    assert sim.grid.max() <= 4


def test_reset_density_and_trail():
    sim = _make_sim(40, 40, RandomSource(seed=2))
    sim.reset(density=0.5)
    live = sim.grid > 0
    assert 0.3 < live.mean() < 0.7
    assert (sim.trail_brightness[live] == BRIGHTNESS_MAX).all()
    assert (sim.trail_brightness[~live] == 0).all()
    assert sim.generation == 0


def test_count_teams():
    sim = _make_sim(2, 3)
    sim.load_snapshot([[1, 1, 2], [0, 4, 4]])
    assert sim.count_teams() == [0, 2, 1, 0, 2]
    assert sim.team_counts == [0, 2, 1, 0, 2]


def test_clear_disc_kills_cells_and_trail():
    sim = _make_sim()
    sim.load_snapshot(np.ones((5, 5), dtype=np.uint8))
    cleared = sim.clear_disc(2, 2, 1)
    assert cleared == 5
    assert sim.grid[2, 2] == 0 and sim.grid[1, 2] == 0 and sim.grid[2, 3] == 0
    assert sim.grid[1, 1] == 1
    assert sim.trail_brightness[2, 2] == 0 and sim.trail_color[2, 2] == 0


def test_spawn_comet_radius_within_bounds():
    sim = _make_sim(30, 30, RandomSource(seed=9), comet_min_radius=3, comet_max_radius=12)
    sim.load_snapshot(np.ones((30, 30), dtype=np.uint8))
    row, col, radius = sim.spawn_comet()
    assert 3 <= radius <= 12
    assert 0 <= row < 30 and 0 <= col < 30
    assert sim.grid[row, col] == 0


def test_spawn_chance_clamps_and_resets():
    sim = _make_sim(spawn_chance=0.00005, drought_decrement=0.0001)
    assert sim.lower_spawn_chance() == 0.0
    assert sim.lower_spawn_chance() == 0.0
    sim.reset_spawn_chance()
    assert sim.spawn_chance == 0.00005


def test_load_snapshot_rejects_wrong_shape_without_changes():
    sim = _make_sim()
    sim.load_snapshot(np.ones((5, 5), dtype=np.uint8))
    before = sim.grid.copy()
    with pytest.raises(SnapshotError):
        sim.load_snapshot(np.zeros((4, 5), dtype=np.uint8))
    with pytest.raises(SnapshotError):
        sim.load_snapshot(np.zeros((5, 5)), np.zeros((5, 5)), np.zeros((5, 4)))
    assert np.array_equal(sim.grid, before)


def test_load_snapshot_rejects_out_of_range_values():
    sim = _make_sim()
    with pytest.raises(SnapshotError):
        sim.load_snapshot(np.full((5, 5), 5))
    with pytest.raises(SnapshotError):
        sim.load_snapshot(np.zeros((5, 5)), np.zeros((5, 5)), np.full((5, 5), 201))
    with pytest.raises(SnapshotError):
        sim.load_snapshot([["a"] * 5] * 5)


def test_load_snapshot_pins_live_cells_to_full_brightness():
    sim = _make_sim(1, 3)
    sim.load_snapshot([[2, 0, 0]], [[1, 3, 3]], [[0, 50, 0]])
    assert sim.trail_brightness.tolist() == [[BRIGHTNESS_MAX, 50, 0]]
    assert sim.trail_color.tolist() == [[2, 3, 0]]


def test_load_snapshot_legacy_trail_objects():
    sim = _make_sim(1, 2)
    trail = [[{"color": 3, "brightness": 0.5}, {"color": 1, "brightness": 0.0}]]
    sim.load_snapshot([[0, 0]], trail=trail)
    assert sim.trail_brightness.tolist() == [[100, 0]]
    assert sim.trail_color.tolist() == [[3, 0]]


def test_export_snapshot_round_trips_dimensions():
    sim = _make_sim(2, 3)
    sim.load_snapshot([[1, 0, 2], [0, 0, 3]])
    data = sim.export_snapshot()
    assert data["grid_dimensions"] == {"rows": 2, "cols": 3}
    assert data["grid"] == [[1, 0, 2], [0, 0, 3]]
    other = _make_sim(2, 3)
    other.load_snapshot(data["grid"], data["trail_color"], data["trail_brightness"])
    assert np.array_equal(other.trail_brightness, sim.trail_brightness)
