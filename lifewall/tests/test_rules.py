import numpy as np

from lifewall.engine.rules import RandomSource, color_counts, dominant_colors, neighbor_summary


class FirstChoice(RandomSource):
    """Always breaks ties toward the lowest color and never spawns."""

    def __init__(self) -> None:
        super().__init__(seed=0)
        self.tie_calls = []

    def tie_breaks(self, n_tied):
        n_tied = np.asarray(n_tied)
        self.tie_calls.append(n_tied.copy())
        return np.zeros(n_tied.shape, dtype=np.intp)

    def spawn_mask(self, shape, chance):
        return np.zeros(shape, dtype=bool)


class LastChoice(FirstChoice):
    def tie_breaks(self, n_tied):
        n_tied = np.asarray(n_tied)
        self.tie_calls.append(n_tied.copy())
        return (n_tied - 1).astype(np.intp)


def test_interior_cell_sees_eight_neighbors():
    grid = np.full((3, 3), 1, dtype=np.uint8)
    assert neighbor_summary(grid, 1, 1, FirstChoice()) == (8, 1)


def test_lone_center_cell_is_seen_by_every_neighbor():
    for color in range(1, 5):
        grid = np.zeros((3, 3), dtype=np.uint8)
        grid[1, 1] = color
        for row in range(3):
            for col in range(3):
                if (row, col) != (1, 1):
                    assert neighbor_summary(grid, row, col, FirstChoice()) == (1, color)


def test_corner_cell_sees_at_most_three_neighbors():
    grid = np.full((3, 3), 2, dtype=np.uint8)
    assert neighbor_summary(grid, 0, 0, FirstChoice()) == (3, 2)
    assert neighbor_summary(grid, 2, 2, FirstChoice()) == (3, 2)


def test_no_wraparound_at_edges():
    grid = np.zeros((5, 5), dtype=np.uint8)
    grid[4, 4] = 3
    grid[0, 4] = 3
    assert neighbor_summary(grid, 0, 0, FirstChoice()) == (0, 0)


def test_tie_goes_to_random_tied_color():
    grid = np.zeros((3, 3), dtype=np.uint8)
    grid[0, 0] = 4
    grid[0, 2] = 2
    assert neighbor_summary(grid, 1, 1, FirstChoice()) == (2, 2)
    assert neighbor_summary(grid, 1, 1, LastChoice()) == (2, 4)


def test_color_counts_agree_with_scalar_summary():
    rng = np.random.default_rng(7)
    grid = rng.integers(0, 5, size=(6, 7)).astype(np.uint8)
    counts = color_counts(grid)
    assert counts.shape == (5, 6, 7)
    for row in range(6):
        for col in range(7):
            alive, _ = neighbor_summary(grid, row, col, FirstChoice())
            assert int(counts[1:, row, col].sum()) == alive


def test_dominant_colors_single_maximum():
    grid = np.zeros((3, 3), dtype=np.uint8)
    grid[0, :] = 3
    grid[2, 0] = 1
    dominant = dominant_colors(color_counts(grid), FirstChoice())
    assert dominant[1, 1] == 3


def test_dominant_colors_only_draws_for_selected_ties():
    counts = np.zeros((5, 1, 2), dtype=np.uint8)
    counts[1, 0, 0] = 2
    counts[2, 0, 0] = 2
    counts[3, 0, 1] = 1

    rng = LastChoice()
    dominant = dominant_colors(counts, rng, where=np.array([[True, True]]))
    assert dominant.tolist() == [[2, 3]]
    assert [calls.tolist() for calls in rng.tie_calls] == [[2]]

    rng = LastChoice()
    dominant = dominant_colors(counts, rng, where=np.array([[False, True]]))
    assert dominant.tolist() == [[0, 3]]
    assert rng.tie_calls == []


def test_random_source_integers_inclusive():
    rng = RandomSource(seed=3)
    draws = {rng.integers(3, 5) for _ in range(200)}
    assert draws == {3, 4, 5}


def test_spawn_mask_zero_chance_is_empty():
    rng = RandomSource(seed=3)
    assert not rng.spawn_mask((4, 4), 0.0).any()
