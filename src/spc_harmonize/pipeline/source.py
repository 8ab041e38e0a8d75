"""
GeometrySource - Upstream Dataset Adapters

Wraps local vector files and remote WFS layers behind one interface that
yields a SourceDataset: the raw records with their original attributes,
geometry and declared CRS (which may be missing).
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import fiona
import geopandas as gpd
import requests
from pyproj import CRS
from pyproj.exceptions import CRSError

from ..domain.enums import SourceKind
from ..domain.models import SourceSpec
from ..types import CrsError, SourceUnavailableError
from ..utils import retry_with_backoff

logger = logging.getLogger(__name__)

WFS_VERSION = "2.0.0"
GEOJSON_OUTPUT = "application/json"


@dataclass
class SourceDataset:
    """Raw records of one source; several parts when the source is split over sibling files."""
    name: str
    parts: list[gpd.GeoDataFrame] = field(default_factory=list)
    origin: str = ""

    @property
    def record_count(self) -> int:
        return sum(len(part) for part in self.parts)

    @property
    def declared_crs(self) -> list[Optional[CRS]]:
        return [part.crs for part in self.parts]


class GeometrySource:
    """Base class for source adapters."""

    def __init__(self, name: str):
        self.name = name

    def fetch(self) -> SourceDataset:
        raise NotImplementedError

    def list_layers(self) -> list[str]:
        raise NotImplementedError


class FileSource(GeometrySource):
    """
    Local vector file source.

    Several paths are read as sibling parts of the same dataset; each part
    keeps the CRS declared by its file.
    """

    def __init__(self, name: str, paths: list[str], layer: Optional[str] = None):
        super().__init__(name)
        self.paths = [Path(p) for p in paths]
        self.layer = layer

    def fetch(self) -> SourceDataset:
        parts = []
        for path in self.paths:
            if not path.exists():
                raise SourceUnavailableError(self.name, f"file not found: {path}")
            try:
                gdf = gpd.read_file(path, layer=self.layer) if self.layer else gpd.read_file(path)
            except Exception as e:
                raise SourceUnavailableError(self.name, f"cannot read {path}: {e}") from e

            logger.info(f"{self.name}: read {len(gdf):,} features from {path} (crs={_crs_label(gdf.crs)})")
            parts.append(gdf)

        return SourceDataset(name=self.name, parts=parts, origin=", ".join(str(p) for p in self.paths))

    def list_layers(self) -> list[str]:
        layers = []
        for path in self.paths:
            if not path.exists():
                raise SourceUnavailableError(self.name, f"file not found: {path}")
            try:
                layers.extend(fiona.listlayers(str(path)))
            except Exception as e:
                raise SourceUnavailableError(self.name, f"cannot list layers of {path}: {e}") from e
        return layers


class WfsSource(GeometrySource):
    """
    OGC Web Feature Service layer source.

    Features are requested as GeoJSON. The CRS is taken from the response's
    'crs' member when the service declares one, otherwise left undeclared.
    """

    def __init__(
        self,
        name: str,
        url: str,
        layer: str,
        timeout_s: int = 120,
        max_retries: int = 3,
        retry_delay_s: float = 1.0,
        srs_name: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(name)
        self.url = url
        self.layer = layer
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.retry_delay_s = retry_delay_s
        self.srs_name = srs_name
        self.session = session or requests.Session()

    def list_layers(self) -> list[str]:
        """Feature type names advertised by GetCapabilities."""
        response = self._request({
            "service": "WFS",
            "version": WFS_VERSION,
            "request": "GetCapabilities",
        })
        try:
            root = ET.fromstring(response.content)
        except ET.ParseError as e:
            raise SourceUnavailableError(self.name, f"invalid capabilities document: {e}") from e

        names = []
        for element in root.iter():
            if _local_name(element.tag) != "FeatureType":
                continue
            for child in element:
                if _local_name(child.tag) == "Name" and child.text:
                    names.append(child.text.strip())
        return names

    def fetch(self) -> SourceDataset:
        params = {
            "service": "WFS",
            "version": WFS_VERSION,
            "request": "GetFeature",
            "typeNames": self.layer,
            "outputFormat": GEOJSON_OUTPUT,
        }
        if self.srs_name:
            params["srsName"] = self.srs_name

        response = self._request(params)
        try:
            payload = response.json()
        except ValueError as e:
            raise SourceUnavailableError(self.name, f"layer {self.layer} did not return GeoJSON: {e}") from e

        features = payload.get("features") or []
        if not features:
            raise SourceUnavailableError(self.name, f"layer {self.layer} returned no features")

        crs = _crs_from_geojson(payload)
        try:
            gdf = gpd.GeoDataFrame.from_features(features, crs=crs)
        except CRSError as e:
            raise CrsError(self.name, f"layer {self.layer} declares an unknown CRS '{crs}': {e}") from e
        logger.info(f"{self.name}: fetched {len(gdf):,} features from {self.layer} (crs={_crs_label(gdf.crs)})")
        return SourceDataset(name=self.name, parts=[gdf], origin=f"{self.url}#{self.layer}")

    def _request(self, params: dict[str, str]) -> requests.Response:
        """GET with bounded retries; final failure makes the source unavailable."""
        @retry_with_backoff(
            max_retries=self.max_retries,
            base_delay=self.retry_delay_s,
            exceptions=(requests.RequestException,),
        )
        def _get() -> requests.Response:
            response = self.session.get(self.url, params=params, timeout=self.timeout_s)
            response.raise_for_status()
            return response

        try:
            return _get()
        except requests.RequestException as e:
            raise SourceUnavailableError(self.name, f"{params.get('request')} failed for {self.url}: {e}") from e


def build_source(spec: SourceSpec, timeout_s: int = 120, max_retries: int = 3) -> GeometrySource:
    """Create the adapter for a configured source."""
    if spec.kind == SourceKind.WFS:
        return WfsSource(
            spec.name,
            url=spec.url,
            layer=spec.layer,
            timeout_s=timeout_s,
            max_retries=max_retries,
            srs_name=spec.srs_name,
        )
    return FileSource(spec.name, paths=spec.paths, layer=spec.layer)


def _crs_from_geojson(payload: dict[str, Any]) -> Optional[str]:
    """CRS name from a GeoJSON 'crs' member (e.g. urn:ogc:def:crs:EPSG::4258)."""
    crs = payload.get("crs")
    if not isinstance(crs, dict):
        return None
    name = (crs.get("properties") or {}).get("name")
    return name or None


def _local_name(tag: str) -> str:
    """Strip the XML namespace from a tag."""
    return tag.rsplit("}", 1)[-1]


def _crs_label(crs: Optional[CRS]) -> str:
    if crs is None:
        return "undeclared"
    return crs.to_string()
