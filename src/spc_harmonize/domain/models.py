"""
Pipeline Domain Models

Pydantic models for the declarative pipeline configuration. Every per-source
difference (column names, status vocabulary, CRS, clipping) is data in these
models, interpreted generically by the pipeline components.
"""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from .enums import CableStatus, ExportFormat, LengthUnit, SourceKind, StatusPolicy

DEFAULT_EXCLUDED_STATUSES = [
    CableStatus.OUT_OF_USE,
    CableStatus.UNKNOWN,
    CableStatus.UNDER_CONSTRUCTION,
]


class RecodeRule(BaseModel):
    """Replace one source value of a canonical column with a canonical value."""
    column: str = Field(..., description="Canonical column the rule applies to")
    source_value: str = Field(..., description="Value as delivered by the source")
    canonical_value: str = Field(..., description="Replacement value")

    class Config:
        """Pydantic configuration."""
        frozen = True


class SourceSpec(BaseModel):
    """One upstream cable dataset and the rules that map it onto the canonical schema."""
    name: str = Field(..., description="Source identifier used in logs and reports")
    country: str = Field(..., description="Short country code stamped on every record")
    kind: SourceKind = Field(..., description="Adapter type (file or wfs)")
    description: Optional[str] = Field(None, description="Provider and dataset description")

    # Location
    paths: list[str] = Field(default_factory=list, description="Local file(s); several paths are sibling parts")
    url: Optional[str] = Field(None, description="WFS endpoint URL")
    layer: Optional[str] = Field(None, description="WFS type name or file layer name")

    # Harmonization rules
    assumed_crs: Optional[str] = Field(None, description="CRS to assign when the source declares none")
    srs_name: Optional[str] = Field(None, description="CRS requested from a WFS (srsName); the service default when unset")
    columns: dict[str, str] = Field(default_factory=dict, description="Canonical field -> source column")
    constants: dict[str, Optional[str]] = Field(default_factory=dict, description="Canonical field -> literal value")
    recode: list[RecodeRule] = Field(default_factory=list, description="Value recoding rules")
    clip_mrgid: Optional[int] = Field(None, description="Remove the parts inside this gazetteer polygon")
    enabled: bool = Field(default=True, description="Include the source in runs")

    class Config:
        """Pydantic configuration."""
        frozen = True


class RegionSpec(BaseModel):
    """An EEZ or country polygon requested from the boundary lookup."""
    mrgid: int = Field(..., description="Marine Regions gazetteer identifier")
    country: str = Field(..., description="Short country code")
    name: Optional[str] = Field(None, description="Display name (defaults to the gazetteer name)")
    north_sea_border: bool = Field(default=False, description="Whether the region borders the North Sea")
    comment: Optional[str] = Field(None, description="Free text carried to the output")

    class Config:
        """Pydantic configuration."""
        frozen = True


class PipelineSettings(BaseModel):
    """Complete configuration of one pipeline run, built fresh per run."""
    sources: list[SourceSpec] = Field(default_factory=list)
    eez: list[RegionSpec] = Field(default_factory=list)
    countries: list[RegionSpec] = Field(default_factory=list)

    working_crs: str = Field(default="EPSG:4326", description="CRS every source is conditioned into")
    target_crs: list[str] = Field(default_factory=lambda: ["EPSG:4326", "EPSG:3035"], description="Export CRSs")
    excluded_statuses: list[CableStatus] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_STATUSES))
    length_unit: LengthUnit = Field(default=LengthUnit.KM)
    unknown_status: StatusPolicy = Field(default=StatusPolicy.PASSTHROUGH)

    output_dir: Path = Field(default=Path("03_results"))
    export_format: ExportFormat = Field(default=ExportFormat.GPKG)
    base_name: str = Field(default="SPC", description="Output file stem for the cable layer")

    http_timeout_s: int = Field(default=120)
    http_max_retries: int = Field(default=3)
    boundary_cache_dir: Path = Field(default=Path("boundaries_cache"))

    class Config:
        """Pydantic configuration."""
        arbitrary_types_allowed = True  # Allow Path types

    def enabled_sources(self) -> list[SourceSpec]:
        return [s for s in self.sources if s.enabled]

    def get_source(self, name: str) -> Optional[SourceSpec]:
        for source in self.sources:
            if source.name.lower() == name.lower():
                return source
        return None
