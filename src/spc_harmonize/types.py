"""
Run reporting types and the pipeline exception hierarchy.

Every exception carries the name of the offending source so the operator can
see which feed was skipped or failed in the end-of-run summary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .domain.enums import SourceOutcome


class PipelineError(Exception):
    """Base exception for pipeline operations."""
    def __init__(self, source: str, message: str):
        self.source = source
        self.message = message
        super().__init__(f"[{source}] {message}")


class SourceUnavailableError(PipelineError):
    """A remote feature service or local file could not be retrieved or opened."""
    pass


class SchemaError(PipelineError):
    """A column mapping does not match the source schema, or a frame breaks the canonical schema."""
    pass


class CrsError(PipelineError):
    """A CRS is missing, or inconsistent with its siblings, without an explicit override."""
    pass


@dataclass
class SourceReport:
    """Outcome and record counts for one source in one run."""
    name: str
    country: str
    outcome: SourceOutcome = SourceOutcome.SKIPPED
    error: Optional[str] = None
    raw_records: int = 0
    normalized_records: int = 0
    conditioned_records: int = 0
    dropped_after_clip: int = 0
    unmapped_statuses: list[str] = field(default_factory=list)


@dataclass
class RunSummary:
    """End-of-run summary: which sources made it in and what was written."""
    pipeline: str
    sources: list[SourceReport] = field(default_factory=list)
    record_count: int = 0
    per_country: dict[str, int] = field(default_factory=dict)
    outputs: list[Path] = field(default_factory=list)
    layers: dict[str, Any] = field(default_factory=dict)  # CRS id -> exported GeoDataFrame
    missing_regions: list[int] = field(default_factory=list)
    duration_s: float = 0.0

    def _with_outcome(self, outcome: SourceOutcome) -> list[SourceReport]:
        return [s for s in self.sources if s.outcome == outcome]

    @property
    def succeeded(self) -> list[SourceReport]:
        return self._with_outcome(SourceOutcome.SUCCEEDED)

    @property
    def skipped(self) -> list[SourceReport]:
        return self._with_outcome(SourceOutcome.SKIPPED)

    @property
    def failed(self) -> list[SourceReport]:
        return self._with_outcome(SourceOutcome.FAILED)

    @property
    def ok(self) -> bool:
        """True when at least one source (or region) contributed records."""
        if self.sources:
            return bool(self.succeeded)
        return self.record_count > 0
