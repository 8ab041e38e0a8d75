# =============================================================================
# Shared test fixtures
# =============================================================================

import geopandas as gpd
import pytest
from shapely.geometry import box

from spc_harmonize.boundaries import BoundaryPolygon
from spc_harmonize.domain.enums import SourceKind
from spc_harmonize.domain.models import RecodeRule, SourceSpec
from spc_harmonize.pipeline.transform import CANONICAL_COLUMNS


class FakeBoundaries:
    """In-memory stand-in for BoundaryManager."""

    def __init__(self, polygons=None):
        self.polygons = dict(polygons or {})
        self.requested = []

    def get_boundary(self, mrgid):
        self.requested.append(mrgid)
        return self.polygons.get(mrgid)


@pytest.fixture
def make_frame():
    """Factory for GeoDataFrames from attribute dicts and geometries."""
    def _make(rows, geometries, crs="EPSG:4326"):
        return gpd.GeoDataFrame(list(rows), geometry=list(geometries), crs=crs)
    return _make


@pytest.fixture
def make_canonical():
    """Factory for canonical cable frames (all canonical columns plus geometry)."""
    def _make(records, geometries, crs="EPSG:4326"):
        rows = [{column: record.get(column) for column in CANONICAL_COLUMNS} for record in records]
        return gpd.GeoDataFrame(rows, columns=list(CANONICAL_COLUMNS), geometry=list(geometries), crs=crs)
    return _make


@pytest.fixture
def square_boundary():
    """Region polygon covering lon/lat 0..10."""
    return BoundaryPolygon(mrgid=17, name="Square", geometry=box(0, 0, 10, 10))


@pytest.fixture
def fake_boundaries(square_boundary):
    return FakeBoundaries({square_boundary.mrgid: square_boundary})


@pytest.fixture
def de_spec():
    """File source with German attribute names."""
    return SourceSpec(
        name="DE",
        country="DE",
        kind=SourceKind.FILE,
        paths=["DE/cables.gpkg"],
        columns={"name": "NAME", "status": "STATUS", "voltage": "SPANNUNG"},
        recode=[
            RecodeRule(column="status", source_value="in Betrieb", canonical_value="InUse"),
            RecodeRule(column="status", source_value="geplant", canonical_value="Planned"),
            RecodeRule(column="status", source_value="außer Betrieb", canonical_value="OutOfUse"),
        ],
    )


@pytest.fixture
def make_boundaries():
    """Factory for a fake boundary lookup over the given polygons."""
    return FakeBoundaries
