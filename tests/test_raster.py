"""Tests for cell lookup and value extraction."""

from __future__ import annotations

import numpy as np
import pytest

from smoothmap.models import BoundingBox, GridSpec, Surface
from smoothmap.raster import extract_values


@pytest.fixture
def projected_ramp():
    """500 columns of width 2 starting at x=1e6; value equals the column index."""
    grid = GridSpec(bbox=BoundingBox(1e6, 0.0, 1e6 + 1000.0, 10.0), nrows=5, ncols=500)
    values = np.tile(np.arange(500, dtype=float), (5, 1))
    return Surface(grid=grid, values=values, name="ramp")


class TestCellIndex:
    """Test point to cell lookup."""

    def test_large_coordinates_near_east_edge(self, projected_ramp):
        rows, cols, inside = projected_ramp.grid.cell_index([1_000_995.0, 1_001_005.0], [5.0, 5.0])
        assert cols[0] == 497
        assert rows[0] == 2
        assert inside.tolist() == [True, False]

    def test_max_edge_belongs_to_last_cell(self, projected_ramp):
        rows, cols, inside = projected_ramp.grid.cell_index([1_001_000.0], [10.0])
        assert (rows[0], cols[0]) == (4, 499)
        assert inside.all()

    def test_min_edge_and_outside(self, ramp_surface):
        rows, cols, inside = ramp_surface.grid.cell_index([0.0, -0.5, 3.5], [0.0, 1.0, 10.5])
        assert (rows[0], cols[0]) == (0, 0)
        assert inside.tolist() == [True, False, False]


class TestExtractValues:
    """Test sampling a surface at points."""

    def test_projected_ramp(self, projected_ramp):
        values = extract_values(projected_ramp, [1_000_995.0, 1_001_005.0, 1_000_001.0], [5.0, 5.0, 5.0])
        assert values[0] == pytest.approx(497.0)
        assert np.isnan(values[1])
        assert values[2] == pytest.approx(0.0)

    def test_missing_cells_stay_nan(self, ramp_surface):
        values = np.array(ramp_surface.values)
        values[:, 2] = np.nan
        surface = Surface(grid=ramp_surface.grid, values=values, name="holes")
        out = extract_values(surface, [2.5, 3.5], [4.0, 4.0])
        assert np.isnan(out[0])
        assert out[1] == pytest.approx(3.0)
