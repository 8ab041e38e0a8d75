"""
Exporter - Projection Fan-out and Multi-format Export

export_all() produces one independent copy of a layer per target CRS;
Exporter writes each copy to its own file named <base>_<EPSG code>.<ext>
as GeoPackage, GeoJSON or ESRI Shapefile.
"""

import json
import logging
import sqlite3
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import geopandas as gpd

from ..domain.enums import ExportFormat
from ..types import CrsError
from .geometry import crs_id

logger = logging.getLogger(__name__)

SHAPEFILE_FIELD_MAX = 10


def export_all(
    records: gpd.GeoDataFrame,
    target_crs_list: Sequence[Union[str, int]],
    source_name: str = "export",
) -> dict[str, gpd.GeoDataFrame]:
    """
    Reproject a layer into every target CRS.

    Args:
        records: Final layer (left unchanged)
        target_crs_list: CRSs to produce, e.g. ["EPSG:4326", "EPSG:3035"]
        source_name: Name used in errors

    Returns:
        CRS id ('4326', '3035', ...) -> independent GeoDataFrame copy; all
        copies share row count and attributes, only geometry differs
    """
    if records.crs is None:
        raise CrsError(source_name, "cannot reproject records without a CRS")

    variants: dict[str, gpd.GeoDataFrame] = {}
    for target in target_crs_list:
        key = crs_id(target)
        if key in variants:
            continue
        variant = records.to_crs(target)
        variant.attrs = dict(records.attrs)
        variants[key] = variant
        logger.debug(f"Projected {len(variant):,} records to EPSG:{key}")
    return variants


class Exporter:
    """
    Multi-format data exporter.

    Writes one file per CRS variant with the format's driver and, for
    GeoPackage, a key/value metadata table.
    """

    def __init__(
        self,
        out_dir: Path,
        fmt: ExportFormat = ExportFormat.GPKG,
        pipeline_name: str = "spc-harmonize",
    ):
        """
        Initialize exporter with output directory and format.

        Args:
            out_dir: Directory receiving the files
            fmt: Output format
            pipeline_name: Recorded in the GeoPackage metadata table
        """
        self.out_dir = Path(out_dir)
        self.fmt = ExportFormat(fmt)
        self.pipeline_name = pipeline_name

    def output_path(self, base_name: str, crs_key: str) -> Path:
        return self.out_dir / f"{base_name}_{crs_key}.{self.fmt.extension}"

    def write(
        self,
        variants: dict[str, gpd.GeoDataFrame],
        base_name: str,
        layer_name: Optional[str] = None,
    ) -> list[Path]:
        """
        Write every CRS variant to its own file.

        Args:
            variants: CRS id -> GeoDataFrame, as returned by export_all()
            base_name: File stem, e.g. 'SPC' gives SPC_4326.gpkg
            layer_name: GeoPackage layer name (default: base_name)

        Returns:
            Paths of the written files
        """
        written = []
        for crs_key, gdf in variants.items():
            if gdf.empty:
                logger.warning(f"Nothing to write for {base_name} in EPSG:{crs_key}: layer is empty")
                continue
            output_path = self.output_path(base_name, crs_key)
            self.export_data(gdf, output_path, layer_name or base_name, crs_key)
            written.append(output_path)
        return written

    def export_data(
        self,
        gdf: gpd.GeoDataFrame,
        output_path: Path,
        layer_name: str,
        crs_key: str,
        include_metadata: bool = True,
    ) -> None:
        """Export one layer to the configured format."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        if self.fmt == ExportFormat.GEOJSON:
            self._export_to_geojson(gdf, output_path)
        elif self.fmt == ExportFormat.GPKG:
            self._export_to_gpkg(gdf, output_path, layer_name, crs_key, include_metadata)
        elif self.fmt == ExportFormat.SHP:
            self._export_to_shp(gdf, output_path)
        else:
            raise ValueError(f"Unsupported export format: {self.fmt}")

        logger.info(f"{self.fmt.driver} export completed: {len(gdf):,} features written to {output_path}")

    def _export_to_geojson(self, gdf: gpd.GeoDataFrame, output_path: Path) -> None:
        if output_path.exists():
            output_path.unlink()
        gdf.to_file(output_path, driver=ExportFormat.GEOJSON.driver)

        if not self._validate_geojson_file(output_path):
            raise ValueError(f"Generated GeoJSON file is invalid: {output_path}")

    def _export_to_gpkg(
        self,
        gdf: gpd.GeoDataFrame,
        output_path: Path,
        layer_name: str,
        crs_key: str,
        include_metadata: bool,
    ) -> None:
        # Rewrite the whole file so reruns leave no stale layers behind
        if output_path.exists():
            output_path.unlink()
        gdf.to_file(output_path, driver=ExportFormat.GPKG.driver, layer=layer_name)

        if include_metadata:
            self._add_gpkg_metadata(output_path, layer_name, crs_key, gdf)

    def _export_to_shp(self, gdf: gpd.GeoDataFrame, output_path: Path) -> None:
        gdf = self._prepare_for_shp(gdf)
        gdf.to_file(output_path, driver=ExportFormat.SHP.driver)

    def _prepare_for_shp(self, gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
        """Shorten field names to the 10-character dBASE limit, keeping them unique."""
        rename_map = {}
        taken = set()
        for col in gdf.columns:
            if col == gdf.geometry.name:
                continue
            new_name = col[:SHAPEFILE_FIELD_MAX]
            suffix = 1
            while new_name in taken:
                tail = str(suffix)
                new_name = col[:SHAPEFILE_FIELD_MAX - len(tail)] + tail
                suffix += 1
            taken.add(new_name)
            if new_name != col:
                logger.warning(f"Truncating field name '{col}' to '{new_name}' for Shapefile compatibility")
                rename_map[col] = new_name

        if rename_map:
            gdf = gdf.rename(columns=rename_map)
        return gdf

    def _add_gpkg_metadata(
        self,
        output_path: Path,
        layer_name: str,
        crs_key: str,
        gdf: gpd.GeoDataFrame,
    ) -> None:
        """Add metadata table to GeoPackage"""
        metadata = {
            'created_at': datetime.now().isoformat(),
            'layer': layer_name,
            'crs': f"EPSG:{crs_key}",
            'record_count': str(len(gdf)),
            'pipeline': self.pipeline_name,
        }
        if 'units' in gdf.attrs:
            metadata['length_units'] = str(gdf.attrs['units'])

        conn = sqlite3.connect(output_path)
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            """)
            for key, value in metadata.items():
                cursor.execute("INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)", (key, value))
            conn.commit()
        finally:
            conn.close()

    def _validate_geojson_file(self, filepath: Path) -> bool:
        """Validate that exported GeoJSON file is properly formatted."""
        try:
            with open(filepath, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"GeoJSON validation failed: {e}")
            return False

        if not isinstance(data, dict) or data.get("type") != "FeatureCollection":
            logger.error("Invalid GeoJSON: root must be a FeatureCollection")
            return False

        if not isinstance(data.get("features"), list):
            logger.error("Invalid GeoJSON: features must be an array")
            return False

        return True
