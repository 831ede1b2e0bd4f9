"""End-to-end tests for smooth_surface and run_pipeline."""

from __future__ import annotations

import numpy as np
import pytest
from shapely.geometry import box
from shapely.ops import unary_union

from smoothmap.errors import TooManyContours, UnknownOutputFormat
from smoothmap.levels import ClassificationSpec
from smoothmap.models import BoundingBox, GridData, GridSpec, IsoLine, RegionSet, Surface
from smoothmap.smooth import resolve_outputs, run_pipeline, smooth_surface


class TestPointDensity:
    """Test the full pipeline on uniform random points."""

    def test_all_outputs(self, uniform_points):
        result = smooth_surface(
            uniform_points,
            bandwidth=0.1,
            level_count=5,
            target_cell_count=10_000,
        )
        assert set(result) == {"raster", "contour", "regions"}

        raster = result["raster"]
        assert isinstance(raster, Surface)
        assert raster.total() == pytest.approx(100.0)

        regions = result["regions"]
        assert isinstance(regions, RegionSet)
        breaks = regions.breaks
        assert all(b > a for a, b in zip(breaks, breaks[1:]))

        cover_area = raster.grid.bbox.to_polygon().area
        union = unary_union([region.geometry for region in regions])
        assert abs(union.area - cover_area) / cover_area < 1e-6

        for iso in result["contour"]:
            assert breaks[0] < iso.level < breaks[-1]

    def test_regions_do_not_overlap(self, uniform_points):
        regions = smooth_surface(
            uniform_points,
            bandwidth=0.1,
            target_cell_count=4_000,
            outputs="regions",
        )
        geoms = [region.geometry for region in regions]
        for i, left in enumerate(geoms):
            for right in geoms[i + 1 :]:
                assert left.intersection(right).area == pytest.approx(0.0, abs=1e-9)

    def test_idempotent(self, uniform_points):
        kwargs = dict(bandwidth=0.1, target_cell_count=4_000)
        first = smooth_surface(uniform_points, **kwargs)
        second = smooth_surface(uniform_points, **kwargs)
        np.testing.assert_array_equal(first["raster"].values, second["raster"].values)
        assert first["regions"].labels == second["regions"].labels
        assert [r.value for r in first["regions"]] == [r.value for r in second["regions"]]

    @pytest.mark.parametrize("cells", [2_500, 6_400])
    def test_mass_independent_of_resolution(self, uniform_points, cells):
        raster = smooth_surface(
            uniform_points,
            bandwidth=0.1,
            target_cell_count=cells,
            outputs="raster",
        )
        assert raster.total() == pytest.approx(100.0)


class TestPolygonBands:
    """Test unsmoothed polygons split exactly along their borders."""

    def test_strips_without_smoothing(self, strips):
        result = smooth_surface(
            strips,
            smooth=False,
            breaks=[0, 1, 2, 3],
            rows=40,
            cols=120,
        )
        isolines = result["contour"]
        assert [iso.level for iso in isolines] == [1.0, 2.0]
        assert all(isinstance(iso, IsoLine) for iso in isolines)

        regions = result["regions"]
        assert regions.band_labels == ("0 to 1", "1 to 2", "2 to 3")
        assert regions.labels == ("0 to 1", "1 to 2", "2 to 3")
        assert [r.value for r in regions] == pytest.approx([0.5, 1.5, 2.5])
        for region, xmid in zip(regions, (0.5, 1.5, 2.5)):
            assert region.geometry.contains(box(xmid - 0.3, 0.1, xmid + 0.3, 0.9))

        raster = result["raster"]
        assert np.isnan(raster.values[0, 0])


class TestSmoothCover:
    """Test the presence-density cover on clustered points."""

    def test_two_clusters_give_two_parts(self, bimodal_points):
        result = run_pipeline(
            bimodal_points,
            bandwidth=0.5,
            target_cell_count=10_000,
            cover_strategy="smooth",
            cover_threshold=0.6,
            outputs=("raster",),
        )
        cover = result.cover
        assert cover.strategy == "smooth"
        assert cover.polygon.geom_type == "MultiPolygon"
        assert len(cover.polygon.geoms) == 2
        left, right = sorted(cover.polygon.geoms, key=lambda g: g.centroid.x)
        assert left.centroid.x == pytest.approx(0.0, abs=1.0)
        assert right.centroid.x == pytest.approx(10.0, abs=1.0)
        assert result.levels is None
        assert np.isnan(result.surface.values).any()

    def test_regions_fill_both_parts(self, bimodal_points):
        result = run_pipeline(
            bimodal_points,
            bandwidth=0.5,
            target_cell_count=10_000,
            cover_strategy="smooth",
            cover_threshold=0.6,
            outputs=("contour", "regions"),
        )
        cover = result.cover.polygon
        regions = result.regions
        assert len(regions) >= 1

        union = unary_union([region.geometry for region in regions])
        assert union.area == pytest.approx(cover.area, rel=1e-5)
        assert union.symmetric_difference(cover).area < 1e-4 * cover.area

        for part in cover.geoms:
            overlap = sum(region.geometry.intersection(part).area for region in regions)
            assert overlap == pytest.approx(part.area, rel=1e-5)
            assert any(region.geometry.intersects(part.representative_point()) for region in regions)


class TestSingleBand:
    """Test level sets without interior breaks."""

    def test_one_level_covers_everything(self, uniform_points):
        result = run_pipeline(
            uniform_points,
            bandwidth=0.1,
            target_cell_count=2_500,
            classification=ClassificationSpec.resolve(level_count=1, style="equal"),
            outputs=("contour", "regions"),
        )
        assert len(result.levels.breaks) == 2
        assert result.lines == ()
        assert result.isolines == ()

        regions = result.regions
        assert len(regions) == 1
        only = regions.regions[0]
        assert only.band_index == 0
        assert only.geometry.area == pytest.approx(result.cover.polygon.area, rel=1e-6)
        assert regions.breaks[0] <= only.value <= regions.breaks[1]

    def test_two_explicit_breaks(self, uniform_points):
        regions = smooth_surface(
            uniform_points,
            bandwidth=0.1,
            target_cell_count=2_500,
            breaks=[0, 1000],
            outputs="regions",
        )
        assert regions.labels == ("0 to 1000",)


class TestGridInput:
    """Test grid inputs keep their native layout."""

    def test_smaller_cover_keeps_grid(self, small_grid_data):
        raster = smooth_surface(
            small_grid_data,
            cover=box(5, 5, 15, 15),
            outputs="raster",
        )
        assert raster.grid.bbox == small_grid_data.grid.bbox
        assert raster.grid.shape == (20, 20)
        assert np.isnan(raster.values[0, 0])
        assert np.isfinite(raster.values[10, 10])

    def test_native_grid_output(self, small_grid_data):
        raster = smooth_surface(
            small_grid_data,
            smooth=False,
            outputs="raster",
            raster_as_native_grid=True,
        )
        assert isinstance(raster, GridData)
        np.testing.assert_array_equal(raster.values["z"], small_grid_data.values["z"])

    def test_too_many_contours(self):
        values = np.zeros((330, 330))
        values[1::3, 1::3] = 1.0
        grid = GridSpec(bbox=BoundingBox(0.0, 0.0, 330.0, 330.0), nrows=330, ncols=330)
        data = GridData(grid=grid, values={"z": values})
        with pytest.raises(TooManyContours):
            smooth_surface(data, smooth=False, breaks=[0, 0.5, 1], cover_strategy="rect")


class TestOutputs:
    """Test output selection and result shaping."""

    def test_aliases(self):
        assert resolve_outputs(["iso", "dasy", "raster", "iso"]) == ("contour", "regions", "raster")

    def test_single_output_is_unwrapped(self, uniform_points):
        isolines = smooth_surface(uniform_points, bandwidth=0.1, target_cell_count=2_500, outputs="iso")
        assert isinstance(isolines, tuple)
        assert all(isinstance(iso, IsoLine) for iso in isolines)

    def test_unknown_output_warns(self, uniform_points):
        with pytest.warns(UnknownOutputFormat):
            raster = smooth_surface(
                uniform_points,
                target_cell_count=2_500,
                outputs=("raster", "pdf"),
            )
        assert isinstance(raster, Surface)

    def test_no_valid_outputs(self, uniform_points):
        with pytest.warns(UnknownOutputFormat):
            assert smooth_surface(uniform_points, outputs=("pdf",)) == {}

    def test_raster_only_skips_contouring(self, uniform_points):
        result = run_pipeline(
            uniform_points,
            target_cell_count=2_500,
            classification=ClassificationSpec.resolve(),
            outputs=("raster",),
        )
        assert result.lines is None
        assert result.regions is None
