"""
Merger and finalize stage.

merge() stacks conditioned per-source layers into one layer; finalize()
recodes residual status spellings, derives cable length and applies the
status filter.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Optional, Union

import geopandas as gpd
import pandas as pd

from ..domain.enums import CableStatus, LengthUnit
from ..domain.models import DEFAULT_EXCLUDED_STATUSES
from ..types import CrsError, SchemaError
from .transform import CANONICAL_COLUMNS

logger = logging.getLogger(__name__)

MERGE_COLUMNS = [*CANONICAL_COLUMNS, "geometry"]


def merge(
    datasets: Sequence[gpd.GeoDataFrame],
    labels: Optional[Sequence[str]] = None,
) -> gpd.GeoDataFrame:
    """
    Concatenate conditioned layers in the given order.

    Args:
        datasets: Canonical GeoDataFrames sharing one CRS
        labels: Source names for error messages, parallel to datasets

    Returns:
        One GeoDataFrame with a fresh 0..n-1 index

    Raises:
        SchemaError: If an input has columns other than the canonical set
        CrsError: If the inputs do not share one CRS
    """
    if not datasets:
        return gpd.GeoDataFrame(
            {column: pd.Series([], dtype=object) for column in CANONICAL_COLUMNS},
            geometry=gpd.GeoSeries([]),
        )

    labels = list(labels) if labels is not None else [f"input {i}" for i in range(len(datasets))]
    crs = datasets[0].crs

    for label, df in zip(labels, datasets):
        if set(df.columns) != set(MERGE_COLUMNS):
            stray = sorted(set(df.columns) - set(MERGE_COLUMNS))
            missing = [c for c in MERGE_COLUMNS if c not in df.columns]
            raise SchemaError(label, f"not canonical: stray columns {stray}, missing columns {missing}")
        if df.crs is None or crs is None or not df.crs.equals(crs):
            raise CrsError(label, f"CRS {df.crs} differs from {crs} of the first input")

    merged = pd.concat([df[MERGE_COLUMNS] for df in datasets], ignore_index=True)
    result = gpd.GeoDataFrame(merged, geometry="geometry", crs=crs)
    logger.info(f"Merged {len(datasets)} layers into {len(result):,} records")
    return result


def finalize(
    records: gpd.GeoDataFrame,
    excluded_statuses: Iterable[Union[CableStatus, str]] = DEFAULT_EXCLUDED_STATUSES,
    length_unit: LengthUnit = LengthUnit.KM,
) -> gpd.GeoDataFrame:
    """
    Recode status spellings, compute length and drop excluded statuses.

    Records without a status are kept; only statuses listed in
    excluded_statuses are removed.

    Args:
        records: Merged cable layer
        excluded_statuses: Statuses to remove
        length_unit: Unit of the derived length column

    Returns:
        Filtered GeoDataFrame with the canonical columns, length_<unit> and
        geometry; attrs["units"] holds the length unit tag
    """
    length_unit = LengthUnit(length_unit)
    df = records.copy()

    df["status"] = df["status"].map(_canonical_status)
    df[length_unit.column] = compute_length(df.geometry, length_unit)

    excluded = _status_values(excluded_statuses)
    keep = ~df["status"].isin(excluded)
    removed = df.loc[~keep, "status"].value_counts()
    if not removed.empty:
        logger.info(
            "Excluded by status: " + ", ".join(f"{status}={count}" for status, count in removed.items())
        )

    df = df.loc[keep, [*CANONICAL_COLUMNS, length_unit.column, "geometry"]].reset_index(drop=True)
    result = gpd.GeoDataFrame(df, geometry="geometry", crs=records.crs)
    result.attrs["units"] = length_unit.value

    logger.info(f"Finalized {len(result):,} of {len(records):,} records")
    return result


def compute_length(geometries: gpd.GeoSeries, unit: LengthUnit = LengthUnit.KM) -> pd.Series:
    """
    Length of every geometry in the given unit.

    Geographic CRSs use the geodesic length on the CRS ellipsoid; projected
    CRSs use the planar length converted from the CRS axis unit.
    """
    crs = geometries.crs
    if crs is None:
        raise CrsError("finalize", "cannot compute length of records without a CRS")

    if crs.is_geographic:
        geod = crs.get_geod()
        meters = geometries.map(
            lambda g: 0.0 if g is None or g.is_empty else abs(geod.geometry_length(g))
        )
    else:
        factor = crs.axis_info[0].unit_conversion_factor
        meters = geometries.length * factor

    return pd.Series(meters, index=geometries.index, dtype=float) / LengthUnit(unit).meters


def _canonical_status(value: Optional[str]) -> Optional[str]:
    """Controlled-vocabulary spelling of a status; other values pass through."""
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return None
    status = CableStatus.from_label(value)
    return status.value if status else value


def _status_values(statuses: Iterable[Union[CableStatus, str]]) -> set[str]:
    values = set()
    for status in statuses:
        if isinstance(status, CableStatus):
            values.add(status.value)
            continue
        member = CableStatus.from_label(status)
        values.add(member.value if member else str(status))
    return values
