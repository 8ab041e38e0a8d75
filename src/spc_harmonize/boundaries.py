"""
Boundary lookup for EEZ and country polygons.

Resolves Marine Regions gazetteer identifiers (MRGID) to polygons, with an
in-memory and on-disk cache. Polygons serve as output records (EEZ and
country layers) and as clipping masks (removal of inland cable segments).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional

import geopandas as gpd
import pandas as pd
import requests
from shapely import wkt
from shapely.errors import ShapelyError
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from .utils import retry_with_backoff

logger = logging.getLogger(__name__)

# Gazetteer geometries are published in OGC CRS84 (lon/lat on WGS84)
GAZETTEER_CRS = "EPSG:4326"


@dataclass
class BoundaryPolygon:
    """A labeled region polygon."""
    mrgid: int
    name: str
    geometry: BaseGeometry
    crs: str = GAZETTEER_CRS

    def to_crs(self, crs: str) -> BaseGeometry:
        """Geometry reprojected to another CRS."""
        return gpd.GeoSeries([self.geometry], crs=self.crs).to_crs(crs).iloc[0]


@dataclass
class BoundaryInfo:
    """Metadata for cached boundary data."""
    mrgid: int
    name: str
    crs: str
    download_date: str
    geometry_type: str
    bbox: tuple[float, float, float, float]  # xmin, ymin, xmax, ymax


class BoundaryManager:
    """
    Resolve and cache gazetteer polygons.

    Lookups are idempotent and retried on transient HTTP failures. A lookup
    that still fails returns None; callers decide whether that is fatal.
    """

    GAZETTEER_URL = "https://marineregions.org/rest/"

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        timeout_s: int = 120,
        max_retries: int = 3,
        retry_delay_s: float = 1.0,
        fetch_json: Optional[Callable[[str], Any]] = None,
    ):
        """
        Initialize boundary manager.

        Args:
            cache_dir: Directory for boundary cache (default: boundaries_cache)
            timeout_s: Per-request timeout
            max_retries: Retry attempts per request
            retry_delay_s: Base delay of the exponential backoff
            fetch_json: Replacement for the HTTP JSON fetcher (url -> parsed JSON)
        """
        self.cache_dir = Path(cache_dir or "boundaries_cache")
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.retry_delay_s = retry_delay_s
        self._fetch_json = fetch_json or self._http_json

        # In-memory cache for repeated lookups within a run
        self._geometry_cache: dict[int, BoundaryPolygon] = {}

        logger.debug(f"BoundaryManager initialized: {self.cache_dir}")

    def get_boundary(self, mrgid: int) -> Optional[BoundaryPolygon]:
        """
        Get the polygon for one gazetteer identifier.

        Args:
            mrgid: Marine Regions gazetteer identifier

        Returns:
            BoundaryPolygon or None if the lookup failed
        """
        if mrgid in self._geometry_cache:
            logger.debug(f"Using cached boundary for MRGID {mrgid}")
            return self._geometry_cache[mrgid]

        cached = self._load_from_disk_cache(mrgid)
        if cached:
            self._geometry_cache[mrgid] = cached
            return cached

        try:
            boundary = self._download_boundary(mrgid)
        except (requests.RequestException, ShapelyError, ValueError, KeyError) as e:
            logger.warning(f"Failed to get boundary for MRGID {mrgid}: {e}")
            return None

        self._geometry_cache[mrgid] = boundary
        self._save_to_disk_cache(boundary)
        logger.info(f"Downloaded and cached boundary for MRGID {mrgid} ({boundary.name})")
        return boundary

    def get_multiple_boundaries(self, mrgids: list[int]) -> dict[int, BoundaryPolygon]:
        """
        Get polygons for many identifiers; failed lookups are omitted.

        Args:
            mrgids: Gazetteer identifiers

        Returns:
            Dictionary mapping MRGID to BoundaryPolygon
        """
        boundaries = {}
        for mrgid in mrgids:
            boundary = self.get_boundary(mrgid)
            if boundary:
                boundaries[mrgid] = boundary

        missing = [m for m in mrgids if m not in boundaries]
        if missing:
            logger.warning(f"No boundary for {len(missing)} of {len(mrgids)} regions: {missing}")
        return boundaries

    def _download_boundary(self, mrgid: int) -> BoundaryPolygon:
        """Fetch the gazetteer record and its geometries, union multi-part geometries."""
        record = self._fetch_json(f"{self.GAZETTEER_URL}getGazetteerRecordByMRGID.json/{mrgid}/")
        name = record.get("preferredGazetteerName") or str(mrgid)

        payload = self._fetch_json(f"{self.GAZETTEER_URL}getGazetteerGeometries.jsonld/{mrgid}/")
        shapes = [wkt.loads(_strip_crs_iri(text)) for text in _find_wkt(payload)]
        if not shapes:
            raise ValueError(f"gazetteer returned no geometry for MRGID {mrgid}")

        geometry = shapes[0] if len(shapes) == 1 else unary_union(shapes)
        return BoundaryPolygon(mrgid=mrgid, name=name, geometry=geometry, crs=GAZETTEER_CRS)

    def _http_json(self, url: str) -> Any:
        @retry_with_backoff(
            max_retries=self.max_retries,
            base_delay=self.retry_delay_s,
            exceptions=(requests.RequestException,),
        )
        def _get() -> Any:
            response = requests.get(url, timeout=self.timeout_s)
            response.raise_for_status()
            return response.json()

        return _get()

    def _load_from_disk_cache(self, mrgid: int) -> Optional[BoundaryPolygon]:
        """Load boundary from disk cache."""
        cache_file = self.cache_dir / f"{mrgid}.json"
        metadata_file = self.cache_dir / f"{mrgid}_meta.json"

        if not (cache_file.exists() and metadata_file.exists()):
            return None

        try:
            with open(cache_file, 'r') as f:
                geometry_data = json.load(f)
            with open(metadata_file, 'r') as f:
                metadata = json.load(f)
            metadata['bbox'] = tuple(metadata['bbox'])
            info = BoundaryInfo(**metadata)
            geometry = wkt.loads(geometry_data['wkt'])
        except (OSError, ShapelyError, ValueError, KeyError, TypeError) as e:
            logger.debug(f"Failed to load cached boundary {mrgid}: {e}")
            return None

        logger.debug(f"Loaded boundary from cache: {mrgid}")
        return BoundaryPolygon(mrgid=mrgid, name=info.name, geometry=geometry, crs=info.crs)

    def _save_to_disk_cache(self, boundary: BoundaryPolygon) -> None:
        """Save boundary to disk cache."""
        cache_file = self.cache_dir / f"{boundary.mrgid}.json"
        metadata_file = self.cache_dir / f"{boundary.mrgid}_meta.json"

        metadata = BoundaryInfo(
            mrgid=boundary.mrgid,
            name=boundary.name,
            crs=boundary.crs,
            download_date=pd.Timestamp.now().isoformat(),
            geometry_type=boundary.geometry.geom_type,
            bbox=boundary.geometry.bounds,
        )
        try:
            with open(cache_file, 'w') as f:
                json.dump({'wkt': boundary.geometry.wkt}, f)
            with open(metadata_file, 'w') as f:
                json.dump(asdict(metadata), f, indent=2)
        except OSError as e:
            logger.warning(f"Failed to cache boundary {boundary.mrgid}: {e}")
            return

        logger.debug(f"Cached boundary: {boundary.mrgid}")

    def clear_cache(self, mrgid: Optional[int] = None) -> None:
        """Clear boundary cache, for one identifier or entirely."""
        if mrgid is not None:
            self._geometry_cache.pop(mrgid, None)
            for cache_file in (self.cache_dir / f"{mrgid}.json", self.cache_dir / f"{mrgid}_meta.json"):
                if cache_file.exists():
                    cache_file.unlink()
            logger.info(f"Cleared cache for MRGID {mrgid}")
        else:
            self._geometry_cache.clear()
            for cache_file in self.cache_dir.glob("*.json"):
                cache_file.unlink()
            logger.info("Cleared all boundary cache")

    def get_cache_stats(self) -> dict[str, Any]:
        """Get boundary cache statistics."""
        cache_size_mb = sum(
            f.stat().st_size for f in self.cache_dir.glob("*.json")
        ) / (1024 * 1024)

        return {
            'cached_regions': len(self._geometry_cache),
            'cached_on_disk': len(list(self.cache_dir.glob("*_meta.json"))),
            'cache_dir': str(self.cache_dir),
            'cache_size_mb': round(cache_size_mb, 2),
        }


def _find_wkt(node: Any) -> list[str]:
    """Collect every WKT literal (keys ending in 'asWKT') from a JSON-LD document."""
    found: list[str] = []
    if isinstance(node, dict):
        for key, value in node.items():
            if key.endswith("asWKT"):
                for literal in value if isinstance(value, list) else [value]:
                    if isinstance(literal, dict):
                        literal = literal.get("@value")
                    if isinstance(literal, str):
                        found.append(literal)
            else:
                found.extend(_find_wkt(value))
    elif isinstance(node, list):
        for item in node:
            found.extend(_find_wkt(item))
    return found


def _strip_crs_iri(text: str) -> str:
    """Drop a leading '<http://www.opengis.net/def/crs/...> ' CRS IRI from a GeoSPARQL literal."""
    text = text.strip()
    if text.startswith("<"):
        text = text[text.index(">") + 1:].strip()
    return text
