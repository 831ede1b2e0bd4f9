"""Tests for cover strategies."""

from __future__ import annotations

import numpy as np
import pytest
from shapely.geometry import box

from smoothmap.cover import (
    REASON_DEFAULT_GRID,
    REASON_DEFAULT_POINTS,
    REASON_DEFAULT_POLYGONS,
    REASON_DEGENERATE_HULL,
    REASON_EXPLICIT,
    REASON_REQUESTED,
    resolve_cover,
    resolve_strategy,
    threshold_polygon,
)
from smoothmap.density import resolve_grid
from smoothmap.models import BoundingBox, GridData, GridSpec, PointSet


class TestResolveStrategy:
    """Test default strategy selection per input kind."""

    def test_defaults(self, uniform_points, strips, small_grid_data):
        assert resolve_strategy(strips, None) == ("original", REASON_DEFAULT_POLYGONS)
        assert resolve_strategy(uniform_points, None) == ("rect", REASON_DEFAULT_POINTS)
        assert resolve_strategy(small_grid_data, None) == ("rect", REASON_DEFAULT_GRID)

    def test_requested_is_normalized(self, uniform_points):
        assert resolve_strategy(uniform_points, " Smooth ") == ("smooth", REASON_REQUESTED)

    def test_unknown_strategy(self, uniform_points):
        with pytest.raises(ValueError, match="Unknown cover strategy"):
            resolve_strategy(uniform_points, "convex")


class TestResolveCover:
    """Test the cover polygon and mask built for each strategy."""

    def test_rect_covers_every_cell(self, uniform_points):
        grid = resolve_grid(uniform_points, target_cell_count=400)
        cover = resolve_cover(uniform_points, grid, (0.1, 0.1))
        assert cover.strategy == "rect"
        assert cover.mask.all()
        assert cover.polygon.equals(grid.bbox.to_polygon())

    def test_original_polygons_is_union(self, strips):
        grid = resolve_grid(strips, target_cell_count=3_000)
        cover = resolve_cover(strips, grid, (0.2, 0.2))
        assert cover.strategy == "original"
        assert cover.polygon.area == pytest.approx(3.0)
        assert cover.polygon.geom_type == "Polygon"
        assert 0 < cover.mask.sum() < grid.size

    def test_original_points_is_hull(self, uniform_points):
        grid = resolve_grid(uniform_points, target_cell_count=2_500)
        cover = resolve_cover(uniform_points, grid, (0.1, 0.1), strategy="original")
        assert cover.polygon.geom_type == "Polygon"
        assert cover.polygon.area < 1.0
        assert cover.reason == REASON_REQUESTED

    def test_collinear_points_fall_back_to_rect(self):
        points = PointSet(coords=[(0.0, 0.0), (1.0, 1.0), (2.0, 2.0)])
        grid = resolve_grid(points, target_cell_count=400)
        cover = resolve_cover(points, grid, (0.3, 0.3), strategy="original")
        assert cover.strategy == "rect"
        assert cover.reason == REASON_DEGENERATE_HULL

    def test_original_grid_is_finite_cells(self):
        spec = GridSpec(bbox=BoundingBox(0.0, 0.0, 4.0, 4.0), nrows=4, ncols=4)
        layer = np.ones((4, 4))
        layer[:, 0] = np.nan
        data = GridData(grid=spec, values={"z": layer})
        cover = resolve_cover(data, spec, (1.0, 1.0), strategy="original")
        assert cover.mask.sum() == 12
        assert cover.polygon.area == pytest.approx(12.0)
        assert cover.polygon.bounds == pytest.approx((1.0, 0.0, 4.0, 4.0))

    def test_explicit_cover_wins(self, uniform_points):
        grid = resolve_grid(uniform_points, target_cell_count=2_500)
        explicit = box(0.25, 0.25, 0.75, 0.75)
        cover = resolve_cover(uniform_points, grid, (0.1, 0.1), strategy="smooth", cover=explicit)
        assert cover.reason == REASON_EXPLICIT
        assert cover.polygon.equals(explicit)
        centers_x, centers_y = grid.cell_centers()
        inside = (centers_x > 0.25) & (centers_x < 0.75) & (centers_y > 0.25) & (centers_y < 0.75)
        np.testing.assert_array_equal(cover.mask, inside)

    def test_smooth_threshold_out_of_range(self, uniform_points):
        grid = resolve_grid(uniform_points, target_cell_count=400)
        with pytest.raises(ValueError, match="threshold"):
            resolve_cover(uniform_points, grid, (0.1, 0.1), strategy="smooth", threshold=1.0)


class TestThresholdPolygon:
    """Test polygon extraction from a thresholded field."""

    def test_ring_with_island_in_hole(self):
        grid = GridSpec(bbox=BoundingBox(0.0, 0.0, 9.0, 9.0), nrows=9, ncols=9)
        values = np.zeros((9, 9))
        values[1:8, 1:8] = 1.0
        values[3:6, 3:6] = 0.0
        values[4, 4] = 1.0
        polygon = threshold_polygon(values, grid, 0.5)
        assert polygon.geom_type == "MultiPolygon"
        assert len(polygon.geoms) == 2
        assert not polygon.contains(box(3.6, 3.6, 3.9, 3.9))
        assert polygon.contains(box(4.4, 4.4, 4.6, 4.6))

    def test_empty_field(self):
        grid = GridSpec(bbox=BoundingBox(0.0, 0.0, 3.0, 3.0), nrows=3, ncols=3)
        assert threshold_polygon(np.zeros((3, 3)), grid, 0.5).is_empty
