"""
PipelineRunner - Orchestration of one harmonization run

Runs every enabled source through adapter, normalizer and conditioner,
isolating failures per source, then merges, finalizes and exports the
result. Region layers (EEZ, countries) go through the same exporter.
"""

import logging
import time
from collections.abc import Callable
from typing import Optional

import geopandas as gpd

from ..boundaries import BoundaryManager
from ..domain.enums import RegionKind, SourceOutcome
from ..domain.models import PipelineSettings, SourceSpec
from ..types import CrsError, RunSummary, SchemaError, SourceReport, SourceUnavailableError
from ..utils import format_duration
from .export import Exporter, export_all
from .geometry import condition
from .merge import finalize, merge
from .regions import build_region_layer
from .source import GeometrySource, build_source
from .transform import SchemaNormalizer

logger = logging.getLogger(__name__)

REGION_BASE_NAMES = {
    RegionKind.EEZ: "EEZ",
    RegionKind.COUNTRIES: "Countries",
}


class PipelineRunner:
    """
    Run the cable and region pipelines for one PipelineSettings.

    A source that cannot be fetched is skipped; a source that breaks its
    schema or CRS contract fails. In both cases the remaining sources still
    run and the outcome is reported in the RunSummary.
    """

    def __init__(
        self,
        settings: PipelineSettings,
        boundaries: Optional[BoundaryManager] = None,
        source_factory: Optional[Callable[[SourceSpec], GeometrySource]] = None,
    ):
        """
        Initialize runner.

        Args:
            settings: Configuration of this run
            boundaries: Boundary lookup (created from settings when omitted)
            source_factory: Builds the adapter for a source spec
        """
        self.settings = settings
        self._boundaries = boundaries
        self.source_factory = source_factory or self._build_source

    @property
    def boundaries(self) -> BoundaryManager:
        if self._boundaries is None:
            self._boundaries = BoundaryManager(
                cache_dir=self.settings.boundary_cache_dir,
                timeout_s=self.settings.http_timeout_s,
                max_retries=self.settings.http_max_retries,
            )
        return self._boundaries

    def _build_source(self, spec: SourceSpec) -> GeometrySource:
        return build_source(
            spec,
            timeout_s=self.settings.http_timeout_s,
            max_retries=self.settings.http_max_retries,
        )

    # ------------------------------------------------------------------
    # Cables
    # ------------------------------------------------------------------

    def run_cables(self, source_names: Optional[list[str]] = None, write: bool = True) -> RunSummary:
        """
        Harmonize all enabled sources into one cable layer.

        Args:
            source_names: Restrict the run to these sources
            write: Write the exported layers to disk

        Returns:
            RunSummary with per-source outcomes and written files
        """
        start = time.time()
        specs = self._select_sources(source_names)
        summary = RunSummary(pipeline="cables")

        conditioned: list[gpd.GeoDataFrame] = []
        labels: list[str] = []

        for spec in specs:
            report = SourceReport(name=spec.name, country=spec.country)
            try:
                frame = self._process_source(spec, report)
            except SourceUnavailableError as e:
                report.outcome = SourceOutcome.SKIPPED
                report.error = e.message
                logger.warning(f"Skipping source {spec.name}: {e.message}")
            except (SchemaError, CrsError) as e:
                report.outcome = SourceOutcome.FAILED
                report.error = f"{type(e).__name__}: {e.message}"
                logger.error(f"Source {spec.name} failed: {e}")
            else:
                report.outcome = SourceOutcome.SUCCEEDED
                conditioned.append(frame)
                labels.append(spec.name)
            summary.sources.append(report)

        if not conditioned:
            logger.error("No source succeeded; nothing to export")
            summary.duration_s = time.time() - start
            log_run_summary(summary)
            return summary

        merged = merge(conditioned, labels)
        final = finalize(merged, self.settings.excluded_statuses, self.settings.length_unit)

        summary.record_count = len(final)
        summary.per_country = {str(k): int(v) for k, v in final["country"].value_counts().sort_index().items()}
        summary.layers = export_all(final, self.settings.target_crs, source_name="cables")
        if write:
            summary.outputs = self._exporter().write(summary.layers, self.settings.base_name)

        summary.duration_s = time.time() - start
        log_run_summary(summary)
        return summary

    def _process_source(self, spec: SourceSpec, report: SourceReport) -> gpd.GeoDataFrame:
        """Adapt, normalize and condition one source, filling its report."""
        logger.info(f"Processing source {spec.name} ({spec.kind.value})")

        dataset = self.source_factory(spec).fetch()
        report.raw_records = dataset.record_count

        parts = SchemaNormalizer(spec, self.settings.unknown_status).normalize(dataset)
        report.normalized_records = sum(len(part) for part in parts)
        report.unmapped_statuses = sorted({
            value for part in parts for value in part.attrs.get("unmapped_status", [])
        })

        clip = None
        if spec.clip_mrgid is not None:
            clip = self.boundaries.get_boundary(spec.clip_mrgid)
            if clip is None:
                raise SourceUnavailableError(spec.name, f"clip boundary MRGID {spec.clip_mrgid} unavailable")

        frame = condition(
            parts,
            source_crs=spec.assumed_crs,
            target_crs=self.settings.working_crs,
            clip_against=clip,
            source_name=spec.name,
        )
        report.conditioned_records = len(frame)
        report.dropped_after_clip = int(frame.attrs.get("dropped_after_clip", 0))
        return frame

    def _select_sources(self, source_names: Optional[list[str]]) -> list[SourceSpec]:
        if not source_names:
            return self.settings.enabled_sources()

        specs = []
        for name in source_names:
            spec = self.settings.get_source(name)
            if spec is None:
                available = ", ".join(s.name for s in self.settings.sources)
                raise ValueError(f"Unknown source '{name}'. Available: {available}")
            specs.append(spec)
        return specs

    # ------------------------------------------------------------------
    # Regions
    # ------------------------------------------------------------------

    def run_regions(self, kind: RegionKind, write: bool = True) -> RunSummary:
        """
        Build and export the EEZ or country layer.

        Args:
            kind: Which region layer to produce
            write: Write the exported layers to disk

        Returns:
            RunSummary listing regions without boundary
        """
        start = time.time()
        kind = RegionKind(kind)
        regions = self.settings.eez if kind == RegionKind.EEZ else self.settings.countries
        summary = RunSummary(pipeline=kind.value)

        layer = build_region_layer(regions, self.boundaries, self.settings.working_crs)
        summary.missing_regions = list(layer.attrs.get("missing_mrgids", []))
        summary.record_count = len(layer)
        summary.per_country = {str(c): 1 for c in layer["country"]}

        if layer.empty:
            logger.error(f"No {kind.value} boundary could be resolved; nothing to export")
        else:
            summary.layers = export_all(layer, self.settings.target_crs, source_name=kind.value)
            if write:
                summary.outputs = self._exporter().write(summary.layers, REGION_BASE_NAMES[kind])

        summary.duration_s = time.time() - start
        log_run_summary(summary)
        return summary

    def _exporter(self) -> Exporter:
        return Exporter(self.settings.output_dir, self.settings.export_format)


def log_run_summary(summary: RunSummary) -> None:
    """Log the end-of-run summary table."""
    log = logging.info if summary.ok else logging.error

    log("=" * 60)
    log(f"{summary.pipeline.upper()} RUN {'COMPLETED' if summary.ok else 'PRODUCED NO OUTPUT'}")
    log("=" * 60)

    for report in summary.sources:
        line = (
            f"{report.name:<6} {report.outcome.value:<10} "
            f"raw={report.raw_records:,} kept={report.conditioned_records:,}"
        )
        if report.dropped_after_clip:
            line += f" dropped_after_clip={report.dropped_after_clip}"
        if report.error:
            line += f" error={report.error}"
        log(line)
        if report.unmapped_statuses:
            logging.warning(f"{report.name:<6} un-recoded status values: {', '.join(report.unmapped_statuses)}")

    if summary.sources:
        log(
            f"Sources: {len(summary.succeeded)} succeeded, "
            f"{len(summary.skipped)} skipped, {len(summary.failed)} failed"
        )
    if summary.per_country:
        log("Records per country: " + ", ".join(f"{c}={n:,}" for c, n in summary.per_country.items()))
    if summary.missing_regions:
        logging.warning(f"Regions without boundary (MRGID): {summary.missing_regions}")

    log(f"Total records: {summary.record_count:,}")
    for path in summary.outputs:
        log(f"Written: {path}")
    log(f"Execution time: {format_duration(summary.duration_s)}")
