"""Shared fixtures for smoothmap tests."""

from __future__ import annotations

from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest
import yaml
from shapely.geometry import box

from smoothmap.models import BoundingBox, GridData, GridSpec, PointSet, PolygonSet, Surface


@pytest.fixture
def rng():
    return np.random.default_rng(20240517)


@pytest.fixture
def uniform_points(rng):
    """100 points uniform over the unit square."""
    return PointSet(coords=rng.uniform(0.0, 1.0, size=(100, 2)))


@pytest.fixture
def bimodal_points(rng):
    """Two tight clusters ten units apart."""
    left = rng.normal(loc=(0.0, 0.0), scale=0.5, size=(200, 2))
    right = rng.normal(loc=(10.0, 0.0), scale=0.5, size=(200, 2))
    return PointSet(coords=np.vstack((left, right)))


@pytest.fixture
def strips():
    """Three adjacent unit squares with values 0.5, 1.5 and 2.5."""
    return PolygonSet(
        geometries=(box(0, 0, 1, 1), box(1, 0, 2, 1), box(2, 0, 3, 1)),
        values={"pop": np.array([0.5, 1.5, 2.5])},
    )


@pytest.fixture
def ramp_surface():
    """10x10 surface over (0, 0, 10, 10) whose value equals the column index."""
    grid = GridSpec(bbox=BoundingBox(0.0, 0.0, 10.0, 10.0), nrows=10, ncols=10)
    values = np.tile(np.arange(10, dtype=float), (10, 1))
    return Surface(grid=grid, values=values, name="ramp")


@pytest.fixture
def small_grid_data(rng):
    grid = GridSpec(bbox=BoundingBox(0.0, 0.0, 20.0, 20.0), nrows=20, ncols=20)
    return GridData(grid=grid, values={"z": rng.uniform(1.0, 5.0, size=(20, 20))})


def base_config() -> dict:
    return {
        "paths": {"output_dir": "out", "logs_dir": "logs"},
        "smoothing": {"target_cell_count": 2500, "smooth": True, "point_weight": 1.0},
        "levels": {"count": 4, "style": "pretty"},
        "cover": {"strategy": None, "threshold": 0.6},
        "regions": {"value_method": "grid", "outputs": ["raster", "contour", "regions"]},
        "render": {
            "image": {
                "width_px": 400,
                "height_px": 300,
                "dpi": 100,
                "background": "white",
                "format": "png",
            },
            "palette": {
                "colormap": "YlOrRd",
                "region_alpha": 1.0,
                "region_edge_color": "#555555",
                "region_edge_width": 0.3,
                "contour_color": "#333333",
                "contour_width": 0.6,
            },
            "layout": {
                "frame": "black",
                "legend_title": "Density",
                "scale_bar": True,
                "compass": True,
                "credits": "Test data",
            },
        },
    }


def write_config(tmp_path: Path, raw: dict) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(raw, sort_keys=False), encoding="utf-8")
    return path


@pytest.fixture
def config_path(tmp_path):
    return write_config(tmp_path, base_config())
