"""Input loading and artifact writing (GeoPandas vector files, NumPy rasters)."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Sequence

import numpy as np
from pandas.api.types import is_bool_dtype, is_numeric_dtype

from .errors import UnsupportedGeometry
from .models import BoundingBox, GridData, GridSpec, IsoLine, PointSet, PolygonSet, RegionSet, Shape, Surface

RASTER_SUFFIXES = (".npz",)
_POINT_TYPES = {"Point", "MultiPoint"}
_POLYGON_TYPES = {"Polygon", "MultiPolygon"}


def _first_existing_column(columns: Iterable[str], candidates: Sequence[str]) -> str | None:
    existing = {str(col).lower(): str(col) for col in columns}
    for candidate in candidates:
        match = existing.get(candidate.lower())
        if match:
            return match
    return None


def load_shape(path: str | Path, *, variable: str | None = None) -> Shape:
    """Read points or polygons with GeoPandas, or a raster written by ``write_raster``."""
    source = Path(path)
    if not source.exists():
        raise FileNotFoundError(f"Input file not found: {source}")
    if source.suffix.casefold() in RASTER_SUFFIXES:
        return load_raster(source)
    gpd = _require_geopandas()
    return shape_from_frame(gpd.read_file(source), variable=variable)


def shape_from_frame(frame: Any, *, variable: str | None = None) -> Shape:
    """Convert a GeoDataFrame into a ``PointSet`` or ``PolygonSet``."""
    frame = frame[frame.geometry.notna() & ~frame.geometry.is_empty]
    if len(frame) == 0:
        raise UnsupportedGeometry("Input has no non-empty geometries")
    crs = frame.crs.to_string() if frame.crs is not None else None
    geom_types = set(frame.geom_type.unique())

    if geom_types <= _POINT_TYPES:
        points = frame.explode(index_parts=False) if "MultiPoint" in geom_types else frame
        coords = np.column_stack((points.geometry.x.to_numpy(), points.geometry.y.to_numpy()))
        return PointSet(coords=coords, crs=crs)

    if geom_types <= _POLYGON_TYPES:
        numeric = [
            str(col)
            for col in frame.columns
            if col != frame.geometry.name
            and is_numeric_dtype(frame[col])
            and not is_bool_dtype(frame[col])
        ]
        if variable is not None:
            column = _first_existing_column(numeric, [variable])
            if column is None:
                raise ValueError(
                    f"Variable '{variable}' is not a numeric column; available: "
                    + (", ".join(numeric) or "none")
                )
            numeric = [column]
        values = {col: frame[col].to_numpy(dtype=float, na_value=np.nan) for col in numeric}
        return PolygonSet(geometries=tuple(frame.geometry), values=values, crs=crs)

    raise UnsupportedGeometry(
        "Input must hold only points or only polygons, got: " + ", ".join(sorted(geom_types))
    )


def write_raster(path: Path, surface: Surface) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as fh:
        np.savez_compressed(
            fh,
            values=surface.values,
            bbox=np.asarray(surface.grid.bbox.bounds, dtype=float),
            name=np.asarray(surface.name),
            crs=np.asarray(surface.grid.crs or ""),
        )
    return path


def load_raster(path: Path) -> GridData:
    with np.load(path, allow_pickle=False) as data:
        values = np.asarray(data["values"], dtype=float)
        bbox = BoundingBox.from_bounds(data["bbox"].tolist())
        name = str(data["name"])
        crs = str(data["crs"]) or None
    nrows, ncols = values.shape
    grid = GridSpec(bbox=bbox, nrows=nrows, ncols=ncols, crs=crs)
    return GridData(grid=grid, values={name: values})


def write_contours(path: Path, isolines: Sequence[IsoLine], crs: str | None) -> Path:
    gpd = _require_geopandas()
    frame = gpd.GeoDataFrame(
        {"level": [line.level for line in isolines]},
        geometry=[line.geometry for line in isolines],
        crs=crs,
    )
    return _write_geojson(frame, path)


def write_regions(path: Path, regions: RegionSet, crs: str | None) -> Path:
    gpd = _require_geopandas()
    frame = gpd.GeoDataFrame(
        {
            "band": [region.band_index for region in regions],
            "label": [region.label for region in regions],
            "value": [region.value for region in regions],
        },
        geometry=[region.geometry for region in regions],
        crs=crs,
    )
    return _write_geojson(frame, path)


def _write_geojson(frame: Any, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        path.unlink()
    frame.to_file(path, driver="GeoJSON")
    return path


def _require_geopandas() -> Any:
    try:
        import geopandas as gpd
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("geopandas is required for vector data input and output") from exc
    return gpd
