"""
Pipeline Enumerations

Core enums for type safety and clear interface definitions across the pipeline.
"""

import re
from enum import Enum
from typing import Optional


class CableStatus(str, Enum):
    """Controlled status vocabulary for submarine power cables."""
    IN_USE = "InUse"
    UNKNOWN = "Unknown"
    APPROVED = "Approved"
    OUT_OF_USE = "OutOfUse"
    UNDER_CONSTRUCTION = "UnderConstruction"
    PLANNED = "Planned"

    @classmethod
    def from_label(cls, label: Optional[str]) -> Optional["CableStatus"]:
        """
        Resolve a spelling variant ("planned", "in use", "Out_Of_Use") to a status.

        Returns None when the label is empty or not a variant of any member.
        """
        if label is None:
            return None
        key = re.sub(r"[\s_\-]+", "", str(label)).lower()
        if not key:
            return None
        for member in cls:
            if member.value.lower() == key:
                return member
        return None


class SourceKind(str, Enum):
    """Upstream dataset kinds."""
    FILE = "file"   # Local vector file(s), possibly split into sibling parts
    WFS = "wfs"     # Remote OGC Web Feature Service layer


class LengthUnit(str, Enum):
    """Units for the derived cable length."""
    KM = "km"
    M = "m"

    @property
    def meters(self) -> float:
        """Number of meters in one unit."""
        return {LengthUnit.KM: 1000.0, LengthUnit.M: 1.0}[self]

    @property
    def column(self) -> str:
        """Name of the derived length column for this unit."""
        return f"length_{self.value}"


class StatusPolicy(str, Enum):
    """What to do with status values that no recode rule covers."""
    PASSTHROUGH = "passthrough" # Keep the value, warn and report it
    NULL = "null"               # Replace the value with null
    REJECT = "reject"           # Fail the source with a SchemaError


class ExportFormat(str, Enum):
    """Export format options for data output."""
    GPKG = "gpkg"           # SQLite-based format with metadata table
    GEOJSON = "geojson"     # Standards-compliant JSON format
    SHP = "shp"             # ESRI Shapefile (10-character field names)

    @property
    def driver(self) -> str:
        return {
            ExportFormat.GPKG: "GPKG",
            ExportFormat.GEOJSON: "GeoJSON",
            ExportFormat.SHP: "ESRI Shapefile",
        }[self]

    @property
    def extension(self) -> str:
        return self.value


class RegionKind(str, Enum):
    """Boundary layers produced next to the cable layer."""
    EEZ = "eez"
    COUNTRIES = "countries"


class SourceOutcome(str, Enum):
    """Per-source result of a pipeline run."""
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"     # Source unavailable, run continued without it
    FAILED = "failed"       # Schema or CRS violation in this source
