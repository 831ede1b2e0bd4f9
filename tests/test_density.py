"""Tests for grid resolution and kernel density estimation."""

from __future__ import annotations

import math

import numpy as np
import pytest
from shapely.geometry import LineString, box

from smoothmap.density import (
    bin_points,
    estimate_density,
    gaussian_kernel,
    resolve_bandwidth,
    resolve_grid,
)
from smoothmap.errors import UnsupportedGeometry
from smoothmap.models import BoundingBox, GridData, GridSpec, PointSet, PolygonSet


class TestResolveGrid:
    """Test grid dims and extent selection."""

    def test_points_use_extended_bbox_and_target_cells(self):
        points = PointSet(coords=[(0.0, 0.0), (2.0, 1.0)])
        grid = resolve_grid(points, target_cell_count=10_000)

        expected_bbox = BoundingBox(-0.025, -0.025, 2.025, 1.025)
        assert grid.bbox.bounds == pytest.approx(expected_bbox.bounds)
        nrows = int(round(math.sqrt(10_000 / expected_bbox.aspect)))
        assert grid.nrows == nrows
        assert grid.ncols == int(round(10_000 / nrows))

    def test_explicit_dims_win(self):
        points = PointSet(coords=[(0.0, 0.0), (1.0, 1.0)])
        grid = resolve_grid(points, rows=7, cols=11)
        assert grid.shape == (7, 11)

    def test_cover_bbox_grows_extent(self):
        points = PointSet(coords=[(0.0, 0.0), (1.0, 1.0)])
        cover = BoundingBox(-5.0, -5.0, 5.0, 5.0)
        grid = resolve_grid(points, target_cell_count=400, cover_bbox=cover)
        assert grid.bbox.contains(cover)

    def test_grid_data_keeps_layout(self, small_grid_data):
        grid = resolve_grid(small_grid_data, cover_bbox=BoundingBox(5.0, 5.0, 15.0, 15.0))
        assert grid == small_grid_data.grid

    def test_grid_data_padded_by_whole_cells(self):
        spec = GridSpec(bbox=BoundingBox(0.0, 0.0, 10.0, 10.0), nrows=10, ncols=10)
        data = GridData(grid=spec, values={"z": np.ones((10, 10))})
        grid = resolve_grid(data, cover_bbox=BoundingBox(-2.5, 0.0, 10.0, 10.0))
        assert grid.bbox.xmin == pytest.approx(-3.0)
        assert grid.ncols == 13
        assert grid.nrows == 10
        assert grid.cell_width == pytest.approx(1.0)

    def test_rejects_unknown_shape(self):
        with pytest.raises(UnsupportedGeometry):
            resolve_grid("not a shape")


class TestBandwidth:
    """Test bandwidth resolution."""

    def test_default_is_three_cells(self):
        grid = GridSpec(bbox=BoundingBox(0.0, 0.0, 10.0, 5.0), nrows=5, ncols=20)
        assert resolve_bandwidth(None, grid) == pytest.approx((1.5, 3.0))

    def test_scalar_and_pair(self):
        grid = GridSpec(bbox=BoundingBox(0.0, 0.0, 1.0, 1.0), nrows=4, ncols=4)
        assert resolve_bandwidth(0.2, grid) == (0.2, 0.2)
        assert resolve_bandwidth([0.1, 0.3], grid) == (0.1, 0.3)

    @pytest.mark.parametrize("bad", [0.0, -1.0, [1.0, 2.0, 3.0]])
    def test_invalid(self, bad):
        grid = GridSpec(bbox=BoundingBox(0.0, 0.0, 1.0, 1.0), nrows=4, ncols=4)
        with pytest.raises(ValueError):
            resolve_bandwidth(bad, grid)


class TestBinning:
    """Test linear binning of points onto cell centers."""

    def test_point_on_center_lands_in_one_cell(self):
        grid = GridSpec(bbox=BoundingBox(0.0, 0.0, 4.0, 4.0), nrows=4, ncols=4)
        binned = bin_points(np.array([[1.5, 2.5]]), grid)
        assert binned[2, 1] == pytest.approx(1.0)
        assert binned.sum() == pytest.approx(1.0)

    def test_point_between_centers_is_split(self):
        grid = GridSpec(bbox=BoundingBox(0.0, 0.0, 4.0, 4.0), nrows=4, ncols=4)
        binned = bin_points(np.array([[2.0, 2.0]]), grid)
        np.testing.assert_allclose(binned[1:3, 1:3], 0.25)
        assert binned.sum() == pytest.approx(1.0)

    def test_kernel_sums_to_one(self):
        grid = GridSpec(bbox=BoundingBox(0.0, 0.0, 10.0, 10.0), nrows=50, ncols=50)
        kernel = gaussian_kernel(grid, (0.5, 1.0))
        assert kernel.sum() == pytest.approx(1.0)
        assert kernel.shape[0] > kernel.shape[1]


class TestEstimateDensity:
    """Test mass normalization and areal input handling."""

    @pytest.mark.parametrize("cells", [2_500, 10_000])
    def test_point_mass_preserved(self, uniform_points, cells):
        grid = resolve_grid(uniform_points, target_cell_count=cells)
        estimate = estimate_density(uniform_points, grid, (0.1, 0.1))
        assert estimate.surface.total() == pytest.approx(len(uniform_points))
        assert estimate.mass == pytest.approx(100.0)
        assert np.all(estimate.surface.values >= 0.0)

    def test_point_weight_scales_mass(self, uniform_points):
        grid = resolve_grid(uniform_points, target_cell_count=2_500)
        estimate = estimate_density(uniform_points, grid, (0.1, 0.1), point_weight=2.5)
        assert estimate.surface.total() == pytest.approx(250.0)

    def test_polygon_mass_preserved(self, strips):
        grid = resolve_grid(strips, target_cell_count=3_000)
        estimate = estimate_density(strips, grid, (0.2, 0.2))
        assert estimate.surface.total() == pytest.approx(4.5)
        assert estimate.surface.name == "pop"

    def test_polygon_without_smoothing_keeps_values(self, strips):
        grid = GridSpec(bbox=BoundingBox(-1.0, -1.0, 4.0, 2.0), nrows=30, ncols=50)
        estimate = estimate_density(strips, grid, (0.2, 0.2), smooth=False)
        values = estimate.surface.values
        finite = values[np.isfinite(values)]
        assert set(np.round(finite, 6)) == {0.5, 1.5, 2.5}
        # corner cell lies outside every strip
        assert np.isnan(values[0, 0])
        assert not estimate.surface.smoothed

    def test_unknown_variable(self, strips):
        grid = resolve_grid(strips, target_cell_count=400)
        with pytest.raises(ValueError, match="Unknown variable"):
            estimate_density(strips, grid, (0.2, 0.2), variable="missing")

    def test_lines_are_rejected(self):
        shape = PolygonSet(geometries=(LineString([(0, 0), (1, 1)]),), values={"v": [1.0]})
        grid = GridSpec(bbox=BoundingBox(0.0, 0.0, 1.0, 1.0), nrows=4, ncols=4)
        with pytest.raises(UnsupportedGeometry):
            estimate_density(shape, grid, (0.1, 0.1))

    def test_grid_without_smoothing_is_passthrough(self, small_grid_data):
        grid = small_grid_data.grid
        estimate = estimate_density(small_grid_data, grid, (1.0, 1.0), smooth=False)
        np.testing.assert_array_equal(estimate.surface.values, small_grid_data.values["z"])

    def test_grid_smoothing_preserves_sum(self, small_grid_data):
        grid = small_grid_data.grid
        estimate = estimate_density(small_grid_data, grid, (2.0, 2.0))
        assert estimate.surface.total() == pytest.approx(float(small_grid_data.values["z"].sum()))

    def test_input_is_not_mutated(self, strips):
        before = strips.values["pop"].copy()
        grid = resolve_grid(strips, target_cell_count=400)
        estimate_density(strips, grid, (0.2, 0.2))
        np.testing.assert_array_equal(strips.values["pop"], before)
        assert box(0, 0, 1, 1).equals(strips.geometries[0])
