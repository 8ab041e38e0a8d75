"""
GeometryConditioner - CRS Resolution, Reprojection and Clipping

Brings the normalized parts of one source into a single line layer in the
working CRS: resolves the source CRS, drops Z/M, reprojects, keeps only
line geometries and optionally removes the parts inside a region polygon.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Optional, Union

import geopandas as gpd
import pandas as pd
from pyproj import CRS
from pyproj.exceptions import CRSError
from shapely import wkb as _swkb
from shapely.geometry import GeometryCollection, LineString, MultiLineString
from shapely.geometry.base import BaseGeometry

from ..boundaries import BoundaryPolygon
from ..types import CrsError
from ..utils import clean_filename

LINE_TYPES = {"LineString", "MultiLineString"}

Records = Union[gpd.GeoDataFrame, Sequence[gpd.GeoDataFrame]]
ClipMask = Union[BoundaryPolygon, BaseGeometry]


def condition(
    records: Records,
    source_crs: Optional[str] = None,
    target_crs: str = "EPSG:4326",
    clip_against: Optional[ClipMask] = None,
    source_name: str = "<unnamed>",
) -> gpd.GeoDataFrame:
    """
    Condition the records of one source into the target CRS.

    Args:
        records: One GeoDataFrame, or the sibling parts of one source
        source_crs: CRS assumed for parts that declare none
        target_crs: CRS of the returned records
        clip_against: Region whose interior is removed from every geometry
            (a BoundaryPolygon, or a shapely geometry already in target_crs)
        source_name: Name used in errors and logs

    Returns:
        GeoDataFrame in target_crs with 2D line geometries; the number of
        records that became empty after clipping is in attrs["dropped_after_clip"]

    Raises:
        CrsError: If the source CRS cannot be resolved unambiguously
    """
    parts = [records] if isinstance(records, gpd.GeoDataFrame) else list(records)
    if not parts:
        empty = gpd.GeoDataFrame(geometry=gpd.GeoSeries([], crs=target_crs))
        empty.attrs["dropped_after_clip"] = 0
        return empty

    crs = resolve_crs(parts, source_crs, source_name)
    parts = [part.set_crs(crs, allow_override=True) for part in parts]
    geom_name = parts[0].geometry.name
    gdf = gpd.GeoDataFrame(pd.concat(parts, ignore_index=True), geometry=geom_name, crs=crs)

    # Remove empty or null geometries
    missing = gdf.geometry.isna() | gdf.geometry.is_empty
    if missing.any():
        logging.warning(f"{source_name}: dropping {int(missing.sum())} records without geometry")
        gdf = gdf.loc[~missing].copy()

    # Z/M must go before reprojection so only XY is transformed
    gdf[geom_name] = gdf.geometry.apply(_force_2d)

    target = _parse_crs(target_crs, source_name)
    if not gdf.crs.equals(target, ignore_axis_order=True):
        gdf = gdf.to_crs(target)
    else:
        gdf = gdf.set_crs(target, allow_override=True)

    gdf = _keep_lines(gdf, source_name)

    dropped = 0
    if clip_against is not None:
        gdf, dropped = _clip(gdf, clip_against, target_crs, source_name)

    gdf = gdf.reset_index(drop=True)
    gdf.attrs["dropped_after_clip"] = dropped
    logging.info(f"{source_name}: conditioned {len(gdf):,} records into {crs_id(target)}")
    return gdf


def resolve_crs(parts: Sequence[gpd.GeoDataFrame], source_crs: Optional[str], source_name: str) -> CRS:
    """
    Determine the single CRS of a source.

    Parts that declare a CRS must agree with each other and with the assumed
    CRS when one is configured. Parts without a CRS need the assumed CRS.
    """
    assumed = _parse_crs(source_crs, source_name) if source_crs else None

    declared: list[CRS] = []
    for part in parts:
        if part.crs is None:
            continue
        if not any(part.crs.equals(seen, ignore_axis_order=True) for seen in declared):
            declared.append(part.crs)

    if len(declared) > 1:
        raise CrsError(
            source_name,
            f"parts declare different CRSs: {', '.join(c.to_string() for c in declared)}"
        )

    if declared and assumed is not None and not declared[0].equals(assumed, ignore_axis_order=True):
        raise CrsError(
            source_name,
            f"declared CRS {declared[0].to_string()} conflicts with assumed CRS {assumed.to_string()}"
        )

    undeclared = sum(1 for part in parts if part.crs is None)
    if undeclared and assumed is None:
        raise CrsError(
            source_name,
            f"{undeclared} of {len(parts)} parts declare no CRS and no assumed_crs is configured"
        )

    if undeclared:
        logging.info(f"{source_name}: assigning assumed CRS {assumed.to_string()} to {undeclared} parts")
    return declared[0] if declared else assumed


def crs_id(crs: Union[str, int, CRS]) -> str:
    """Short identifier of a CRS for keys and file names ('4326' for EPSG:4326)."""
    crs = CRS.from_user_input(crs)
    epsg = crs.to_epsg()
    if epsg is not None:
        return str(epsg)
    authority = crs.to_authority()
    if authority:
        return f"{authority[0]}_{authority[1]}"
    return clean_filename(crs.name)


def _parse_crs(value: Union[str, CRS], source_name: str) -> CRS:
    try:
        return CRS.from_user_input(value)
    except CRSError as e:
        raise CrsError(source_name, f"invalid CRS '{value}': {e}") from e


def _force_2d(geom: Optional[BaseGeometry]) -> Optional[BaseGeometry]:
    """Force geometry to 2D (drops Z and M)."""
    if geom is None:
        return None
    return _swkb.loads(_swkb.dumps(geom, output_dimension=2))


def _keep_lines(gdf: gpd.GeoDataFrame, source_name: str) -> gpd.GeoDataFrame:
    """Drop records whose geometry is not a (multi)line."""
    bad = ~gdf.geometry.geom_type.isin(LINE_TYPES)
    if bad.any():
        kinds = sorted(gdf.loc[bad].geometry.geom_type.unique())
        logging.warning(f"{source_name}: dropping {int(bad.sum())} non-line features ({', '.join(kinds)})")
        gdf = gdf.loc[~bad].copy()
    return gdf


def _clip(
    gdf: gpd.GeoDataFrame,
    clip_against: ClipMask,
    target_crs: str,
    source_name: str,
) -> tuple[gpd.GeoDataFrame, int]:
    """Remove the parts of every geometry inside the mask; drop what becomes empty."""
    if isinstance(clip_against, BoundaryPolygon):
        mask = clip_against.to_crs(target_crs)
        label = f"{clip_against.name} (MRGID {clip_against.mrgid})"
    else:
        mask = clip_against
        label = "clip mask"

    hits = gdf.geometry.intersects(mask)
    if not hits.any():
        logging.debug(f"{source_name}: no records intersect {label}")
        return gdf, 0

    geom_name = gdf.geometry.name
    gdf = gdf.copy()
    gdf.loc[hits, geom_name] = gdf.loc[hits].geometry.difference(mask).apply(_line_parts)

    empty = gdf.geometry.isna() | gdf.geometry.is_empty
    dropped = int(empty.sum())
    if dropped:
        logging.info(f"{source_name}: {dropped} records lie entirely inside {label}, dropped")
    logging.info(f"{source_name}: clipped {int(hits.sum())} records against {label}")
    return gdf.loc[~empty].copy(), dropped


def _line_parts(geom: Optional[BaseGeometry]) -> Optional[BaseGeometry]:
    """Reduce a difference result to its line parts."""
    if geom is None or geom.is_empty:
        return None
    if isinstance(geom, (LineString, MultiLineString)):
        return geom
    if isinstance(geom, GeometryCollection):
        lines = []
        for part in geom.geoms:
            if isinstance(part, LineString):
                lines.append(part)
            elif isinstance(part, MultiLineString):
                lines.extend(part.geoms)
        if not lines:
            return None
        return lines[0] if len(lines) == 1 else MultiLineString(lines)
    return None
