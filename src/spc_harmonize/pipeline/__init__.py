"""
Cable Harmonization Pipeline Components

This module provides the pipeline stages in execution order.

Components:
- source: FileSource / WfsSource adapters yielding raw SourceDatasets
- transform: SchemaNormalizer projecting raw records onto the canonical schema
- geometry: condition() for CRS resolution, 2D forcing, reprojection and clipping
- merge: merge() and finalize() for stacking, length and status filtering
- export: export_all() and Exporter for the per-CRS output files
- regions: build_region_layer() for the EEZ and country layers
- runner: PipelineRunner wiring the stages with per-source failure isolation
"""

from .export import Exporter, export_all
from .geometry import condition
from .merge import finalize, merge
from .regions import build_region_layer
from .runner import PipelineRunner
from .source import FileSource, SourceDataset, WfsSource, build_source
from .transform import CANONICAL_COLUMNS, SchemaNormalizer, normalize

__all__ = [
    "CANONICAL_COLUMNS", "Exporter", "FileSource", "PipelineRunner", "SchemaNormalizer",
    "SourceDataset", "WfsSource", "build_region_layer", "build_source", "condition",
    "export_all", "finalize", "merge", "normalize",
]
