import numpy as np
import pandas as pd
import pytest

from mpmap.prob.grid import (
    STEP_TOLERANCE,
    build_position_grid,
    check_grid_alignment,
    classify_positions,
    midpoint_name,
    step_name,
    step_sequence,
)
from mpmap.utils.data_types import MARKER, STEP
from mpmap.utils.errors import InternalInvariantError


def _even_map(n_markers: int = 11, length: float = 100.0, chrom: str = "1") -> pd.Series:
    pos = np.linspace(0.0, length, n_markers)
    return pd.Series(pos, index=[f"c{chrom}m{j + 1}" for j in range(n_markers)], name=chrom)


def test_step_zero_is_markers_only() -> None:
    grid = build_position_grid("1", _even_map(), 0)
    assert len(grid) == 11
    assert grid.n_steps == 0
    assert grid.names == list(_even_map().index)


def test_step_matching_marker_spacing_collapses_to_markers() -> None:
    grid = build_position_grid("1", _even_map(), 10)
    assert len(grid) == 11
    assert grid.n_markers == 11
    assert grid.n_steps == 0
    np.testing.assert_allclose(grid.positions, np.arange(0, 101, 10))


def test_positive_step_unions_markers_and_step_points() -> None:
    grid = build_position_grid("1", _even_map(), 5)
    assert grid.n_markers == 11
    assert grid.n_steps == 10
    assert np.all(np.diff(grid.positions) > 0)
    steps = grid.take(grid.step_indices)
    assert steps.names[0] == "c1.loc5"
    np.testing.assert_allclose(steps.positions, np.arange(5, 100, 10))


def test_negative_step_gives_interval_midpoints() -> None:
    grid = build_position_grid("2", _even_map(chrom="2"), -1)
    assert grid.n_markers == 0
    assert grid.names == [f"C2P{k}" for k in range(1, 11)]
    np.testing.assert_allclose(grid.positions, np.arange(5, 100, 10))


def test_single_marker_chromosome_ignores_step() -> None:
    single = pd.Series([12.5], index=["only"])
    for step in (-1, 0, 2.5):
        grid = build_position_grid("X", single, step)
        assert grid.names == ["only"]
        assert grid.kinds == [MARKER]


def test_step_points_within_tolerance_of_marker_count_as_marker() -> None:
    marker_map = pd.Series([0.0, 10.0 + STEP_TOLERANCE / 10, 20.0], index=["a", "b", "c"])
    grid = build_position_grid("1", marker_map, 10)
    assert grid.names == ["a", "b", "c"]
    assert grid.n_steps == 0


def test_step_sequence_stops_at_last_marker() -> None:
    np.testing.assert_allclose(step_sequence(np.array([0.0, 100.0]), 30), [0, 30, 60, 90])
    np.testing.assert_allclose(step_sequence(np.array([2.0, 12.0]), 5), [2, 7, 12])


def test_position_names() -> None:
    assert step_name("3", 12.5) == "c3.loc12.5"
    assert step_name("3", 0.0) == "c3.loc0"
    assert midpoint_name("X", 4) == "CXP4"


def test_classify_positions_tags_markers_and_steps() -> None:
    marker_map = _even_map()
    names = ["c1m1", "c1.loc5", "c1m2"]
    grid = classify_positions("1", names, np.array([0.0, 5.0 + 1e-9, 10.0]), marker_map, 5)
    assert grid.kinds == [MARKER, STEP, MARKER]


def test_classify_positions_rejects_off_grid_positions() -> None:
    marker_map = _even_map()
    with pytest.raises(InternalInvariantError):
        classify_positions("1", ["c1m1", "c1.loc3.3"], np.array([0.0, 3.3]), marker_map, 5)


def test_classify_midpoints_are_steps() -> None:
    marker_map = _even_map(n_markers=3)
    grid = classify_positions("1", ["C1P1", "C1P2"], np.array([25.0, 75.0]), marker_map, -1)
    assert grid.kinds == [STEP, STEP]


def test_grid_alignment_check() -> None:
    grid = build_position_grid("1", _even_map(), 5)
    check_grid_alignment(grid, 21 * 4, 4)
    with pytest.raises(InternalInvariantError, match="21 step|10 step"):
        check_grid_alignment(grid, 20 * 4, 4)
    with pytest.raises(InternalInvariantError):
        check_grid_alignment(grid, 21 * 4 + 1, 4)
