"""
Region layers: EEZ and country polygons labeled for the cable map.
"""

import logging
from collections.abc import Sequence
from typing import Optional, Protocol

import geopandas as gpd

from ..boundaries import BoundaryPolygon
from ..domain.models import RegionSpec

logger = logging.getLogger(__name__)

REGION_COLUMNS = ("country", "name", "mrgid", "northSeaBorder", "comment")


class BoundaryLookup(Protocol):
    def get_boundary(self, mrgid: int) -> Optional[BoundaryPolygon]:
        ...


def build_region_layer(
    regions: Sequence[RegionSpec],
    lookup: BoundaryLookup,
    target_crs: str = "EPSG:4326",
) -> gpd.GeoDataFrame:
    """
    Resolve regions to polygons and label them.

    Regions whose lookup fails are left out; their identifiers are listed in
    attrs["missing_mrgids"].

    Args:
        regions: Regions to include, in output order
        lookup: Boundary lookup (BoundaryManager)
        target_crs: CRS of the returned layer

    Returns:
        GeoDataFrame with country, name, mrgid, northSeaBorder, comment, geometry
    """
    rows = []
    geometries = []
    missing = []

    for region in regions:
        boundary = lookup.get_boundary(region.mrgid)
        if boundary is None:
            logger.warning(f"Skipping region {region.country} (MRGID {region.mrgid}): boundary unavailable")
            missing.append(region.mrgid)
            continue

        rows.append({
            "country": region.country,
            "name": region.name or boundary.name,
            "mrgid": region.mrgid,
            "northSeaBorder": region.north_sea_border,
            "comment": region.comment,
        })
        geometries.append(boundary.to_crs(target_crs))

    layer = gpd.GeoDataFrame(
        rows,
        columns=list(REGION_COLUMNS),
        geometry=gpd.GeoSeries(geometries, crs=target_crs),
    )
    layer.attrs["missing_mrgids"] = missing
    logger.info(f"Built region layer: {len(layer)} of {len(regions)} regions")
    return layer
