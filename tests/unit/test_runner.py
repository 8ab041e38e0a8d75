# =============================================================================
# Pipeline Runner Unit Tests
# =============================================================================

import geopandas as gpd
import pytest
from shapely.geometry import LineString

from spc_harmonize.boundaries import BoundaryManager
from spc_harmonize.domain.enums import RegionKind, SourceKind, SourceOutcome
from spc_harmonize.domain.models import PipelineSettings, RegionSpec, SourceSpec
from spc_harmonize.pipeline.runner import PipelineRunner
from spc_harmonize.pipeline.source import GeometrySource, SourceDataset
from spc_harmonize.types import SourceUnavailableError

OFFSHORE = LineString([(12.0, 12.0), (14.0, 14.0)])


class StaticSource(GeometrySource):
    """Source serving prepared frames, or raising a prepared error."""

    def __init__(self, name, parts=None, error=None):
        super().__init__(name)
        self.parts = parts or []
        self.error = error

    def fetch(self):
        if self.error:
            raise self.error
        return SourceDataset(name=self.name, parts=self.parts)


def _spec(name, **kwargs):
    base = {"name": name, "country": name, "kind": SourceKind.FILE, "paths": [f"{name}.shp"], "columns": {"name": "n", "status": "s"}}
    base.update(kwargs)
    return SourceSpec(**base)


def _frame(rows, geometries, crs="EPSG:4326"):
    return gpd.GeoDataFrame(rows, geometry=geometries, crs=crs)


@pytest.fixture
def settings(tmp_path):
    def _settings(sources, **kwargs):
        return PipelineSettings(
            sources=sources,
            output_dir=tmp_path / "out",
            boundary_cache_dir=tmp_path / "cache",
            **kwargs,
        )
    return _settings


class TestRunCables:
    """Tests for PipelineRunner.run_cables()."""

    def test_skip_and_continue(self, settings, fake_boundaries, tmp_path):
        """Unavailable and broken sources do not stop the others."""
        sources = {
            "BE": StaticSource("BE", [_frame([{"n": "a", "s": "InUse"}], [OFFSHORE])]),
            "NL": StaticSource("NL", error=SourceUnavailableError("NL", "WFS timed out")),
            "DK": StaticSource("DK", [_frame([{"navn": "x"}], [OFFSHORE])]),
        }
        runner = PipelineRunner(
            settings([_spec("BE"), _spec("NL"), _spec("DK")]),
            boundaries=fake_boundaries,
            source_factory=lambda spec: sources[spec.name],
        )

        summary = runner.run_cables()

        outcomes = {r.name: r.outcome for r in summary.sources}
        assert outcomes == {
            "BE": SourceOutcome.SUCCEEDED,
            "NL": SourceOutcome.SKIPPED,
            "DK": SourceOutcome.FAILED,
        }
        assert "WFS timed out" in summary.skipped[0].error
        assert summary.failed[0].error.startswith("SchemaError")
        assert summary.ok
        assert summary.record_count == 1
        assert summary.per_country == {"BE": 1}
        assert sorted(p.name for p in summary.outputs) == ["SPC_3035.gpkg", "SPC_4326.gpkg"]

    def test_crs_failure_isolated(self, settings, fake_boundaries):
        """A source without CRS and without assumption fails alone."""
        sources = {
            "UK": StaticSource("UK", [_frame([{"n": "a", "s": "InUse"}], [OFFSHORE], crs=None)]),
            "DE": StaticSource("DE", [_frame([{"n": "b", "s": "InUse"}], [OFFSHORE])]),
        }
        runner = PipelineRunner(
            settings([_spec("UK"), _spec("DE")]),
            boundaries=fake_boundaries,
            source_factory=lambda spec: sources[spec.name],
        )

        summary = runner.run_cables(write=False)

        assert [r.name for r in summary.failed] == ["UK"]
        assert "CrsError" in summary.failed[0].error
        assert summary.record_count == 1
        assert summary.outputs == []
        assert set(summary.layers) == {"4326", "3035"}

    def test_unparseable_assumed_crs_isolated(self, settings, fake_boundaries):
        """A malformed assumed CRS fails its source; siblings still export."""
        sources = {
            "BE": StaticSource("BE", [_frame([{"n": "a", "s": "InUse"}], [OFFSHORE])]),
            "NL": StaticSource("NL", [_frame([{"n": "b", "s": "InUse"}], [OFFSHORE], crs=None)]),
        }
        runner = PipelineRunner(
            settings([_spec("BE"), _spec("NL", assumed_crs="EPSG:2583l")]),
            boundaries=fake_boundaries,
            source_factory=lambda spec: sources[spec.name],
        )

        summary = runner.run_cables(write=False)

        assert [r.name for r in summary.failed] == ["NL"]
        assert "CrsError" in summary.failed[0].error
        assert summary.per_country == {"BE": 1}

    def test_malformed_clip_boundary_skips_source(self, settings, tmp_path):
        """A gazetteer answer that is not valid WKT skips the clipped source only."""
        def fetch_json(url):
            if "getGazetteerRecordByMRGID" in url:
                return {"preferredGazetteerName": "France"}
            return {"geo:asWKT": "MULTIPOLYGON (((0 0, 1 0, 1 1"}

        sources = {
            "FR": StaticSource("FR", [_frame([{"n": "a", "s": "InUse"}], [OFFSHORE])]),
            "NL": StaticSource("NL", [_frame([{"n": "b", "s": "InUse"}], [OFFSHORE])]),
        }
        runner = PipelineRunner(
            settings([_spec("FR", clip_mrgid=17), _spec("NL")]),
            boundaries=BoundaryManager(cache_dir=tmp_path / "cache", fetch_json=fetch_json),
            source_factory=lambda spec: sources[spec.name],
        )

        summary = runner.run_cables(write=False)

        outcomes = {r.name: r.outcome for r in summary.sources}
        assert outcomes == {"FR": SourceOutcome.SKIPPED, "NL": SourceOutcome.SUCCEEDED}
        assert "MRGID 17" in summary.skipped[0].error
        assert summary.per_country == {"NL": 1}

    def test_nothing_succeeded(self, settings, fake_boundaries, tmp_path):
        """No successful source means no export and a failed summary."""
        runner = PipelineRunner(
            settings([_spec("BE")]),
            boundaries=fake_boundaries,
            source_factory=lambda spec: StaticSource("BE", error=SourceUnavailableError("BE", "down")),
        )

        summary = runner.run_cables()

        assert not summary.ok
        assert summary.outputs == []
        assert not (tmp_path / "out").exists()

    def test_clip_source_uses_boundary(self, settings, fake_boundaries):
        """Records inside the clip region are dropped and counted."""
        inland = LineString([(2.0, 2.0), (3.0, 3.0)])
        source = StaticSource("FR", [_frame([{"n": "in", "s": "InUse"}, {"n": "off", "s": "InUse"}], [inland, OFFSHORE])])
        runner = PipelineRunner(
            settings([_spec("FR", clip_mrgid=17)]),
            boundaries=fake_boundaries,
            source_factory=lambda spec: source,
        )

        summary = runner.run_cables(write=False)

        report = summary.sources[0]
        assert report.raw_records == 2
        assert report.conditioned_records == 1
        assert report.dropped_after_clip == 1
        assert fake_boundaries.requested == [17]
        assert summary.layers["4326"]["name"].tolist() == ["off"]

    def test_missing_clip_boundary_skips_source(self, settings, make_boundaries):
        """Without the clip polygon the source cannot be conditioned."""
        source = StaticSource("FR", [_frame([{"n": "a", "s": "InUse"}], [OFFSHORE])])
        runner = PipelineRunner(
            settings([_spec("FR", clip_mrgid=17)]),
            boundaries=make_boundaries(),
            source_factory=lambda spec: source,
        )

        summary = runner.run_cables(write=False)

        assert summary.sources[0].outcome == SourceOutcome.SKIPPED
        assert "MRGID 17" in summary.sources[0].error

    def test_unmapped_statuses_reported(self, settings, fake_boundaries):
        """Status values no rule covers are listed per source."""
        source = StaticSource("NL", [_frame([{"n": "a", "s": "Toekomstig"}], [OFFSHORE])])
        runner = PipelineRunner(
            settings([_spec("NL")]),
            boundaries=fake_boundaries,
            source_factory=lambda spec: source,
        )

        summary = runner.run_cables(write=False)

        assert summary.sources[0].unmapped_statuses == ["Toekomstig"]
        assert summary.layers["4326"]["status"].tolist() == ["Toekomstig"]

    def test_source_selection(self, settings, fake_boundaries):
        """Named sources run, disabled or not; unknown names are rejected."""
        source = StaticSource("BE", [_frame([{"n": "a", "s": "InUse"}], [OFFSHORE])])
        runner = PipelineRunner(
            settings([_spec("BE", enabled=False), _spec("NL")]),
            boundaries=fake_boundaries,
            source_factory=lambda spec: source,
        )

        summary = runner.run_cables(["be"], write=False)
        assert [r.name for r in summary.sources] == ["BE"]

        with pytest.raises(ValueError, match="Unknown source"):
            runner.run_cables(["SE"], write=False)

    def test_disabled_sources_not_run_by_default(self, settings, fake_boundaries):
        source = StaticSource("NL", [_frame([{"n": "a", "s": "InUse"}], [OFFSHORE])])
        runner = PipelineRunner(
            settings([_spec("BE", enabled=False), _spec("NL")]),
            boundaries=fake_boundaries,
            source_factory=lambda spec: source,
        )

        assert [r.name for r in runner.run_cables(write=False).sources] == ["NL"]


class TestRunRegions:
    """Tests for PipelineRunner.run_regions()."""

    def test_eez_layer_written_per_crs(self, settings, fake_boundaries):
        """Resolved regions are exported; misses are reported."""
        runner = PipelineRunner(
            settings([], eez=[RegionSpec(mrgid=17, country="FR"), RegionSpec(mrgid=5669, country="DE")]),
            boundaries=fake_boundaries,
        )

        summary = runner.run_regions(RegionKind.EEZ)

        assert summary.record_count == 1
        assert summary.missing_regions == [5669]
        assert sorted(p.name for p in summary.outputs) == ["EEZ_3035.gpkg", "EEZ_4326.gpkg"]
        assert summary.ok

    def test_no_region_resolved(self, settings, make_boundaries):
        runner = PipelineRunner(
            settings([], countries=[RegionSpec(mrgid=14, country="BE")]),
            boundaries=make_boundaries(),
        )

        summary = runner.run_regions(RegionKind.COUNTRIES)

        assert not summary.ok
        assert summary.outputs == []
