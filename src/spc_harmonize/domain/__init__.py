"""
Domain Models and Types

This module contains the core domain models and enumerations used throughout the pipeline.

Models:
- SourceSpec: One upstream cable dataset with its column mapping and recode rules
- RecodeRule: Source value -> canonical value replacement
- RegionSpec: EEZ or country polygon request
- PipelineSettings: Complete per-run configuration

Enums:
- CableStatus: Controlled status vocabulary
- SourceKind: File or WFS adapters
- LengthUnit: Units for the derived length
- StatusPolicy: Handling of un-recoded status values
- ExportFormat: Export format options (gpkg, geojson, shp)
- RegionKind: EEZ or country layers
- SourceOutcome: Per-source run result
"""

from .enums import (
    CableStatus,
    ExportFormat,
    LengthUnit,
    RegionKind,
    SourceKind,
    SourceOutcome,
    StatusPolicy,
)
from .models import PipelineSettings, RecodeRule, RegionSpec, SourceSpec

__all__ = [
    "PipelineSettings", "RecodeRule", "RegionSpec", "SourceSpec",
    "CableStatus", "ExportFormat", "LengthUnit", "RegionKind",
    "SourceKind", "SourceOutcome", "StatusPolicy",
]
