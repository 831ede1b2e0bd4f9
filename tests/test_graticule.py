"""Tests for projected grid lines."""

from __future__ import annotations

import numpy as np
import pytest

from smoothmap.errors import GraticuleUnavailable
from smoothmap.graticule import graticule_lines
from smoothmap.models import BoundingBox


class TestGraticule:
    """Test grid line generation with and without a map CRS."""

    def test_plain_lines_without_crs(self):
        lines = graticule_lines(BoundingBox(0.0, 0.0, 10.0, 5.0), None, count=5)
        xs = [line.value for line in lines if line.axis == "x"]
        ys = [line.value for line in lines if line.axis == "y"]
        assert xs == [2.0, 4.0, 6.0, 8.0]
        assert ys == [1.0, 2.0, 3.0, 4.0]

    def test_projected_lines_are_finite(self):
        bbox = BoundingBox(0.0, 0.0, 1_000_000.0, 1_000_000.0)
        lines = graticule_lines(bbox, "EPSG:3857", grid_crs="EPSG:4326", count=4)
        assert {line.axis for line in lines} == {"x", "y"}
        for line in lines:
            assert np.all(np.isfinite(line.coords))
            assert line.coords.shape[1] == 2
        meridians = [line for line in lines if line.axis == "x"]
        # a meridian in web mercator is a vertical line
        for line in meridians:
            np.testing.assert_allclose(line.coords[:, 0], line.coords[0, 0])

    def test_unknown_crs_disables_grid(self):
        with pytest.warns(GraticuleUnavailable):
            lines = graticule_lines(BoundingBox(0.0, 0.0, 1.0, 1.0), "EPSG:999999")
        assert lines == ()
