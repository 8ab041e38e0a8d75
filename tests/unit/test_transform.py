# =============================================================================
# Schema Normalizer Unit Tests
# =============================================================================

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import LineString

from spc_harmonize.domain.enums import StatusPolicy
from spc_harmonize.domain.models import RecodeRule
from spc_harmonize.pipeline.source import SourceDataset
from spc_harmonize.pipeline.transform import CANONICAL_COLUMNS, SchemaNormalizer, normalize
from spc_harmonize.types import SchemaError

LINE = LineString([(3.0, 51.5), (3.5, 51.8)])


@pytest.fixture
def raw_de(make_frame):
    """Raw German-style records with extra provider columns."""
    return make_frame(
        [
            {"NAME": "BorWin1", "STATUS": "in Betrieb", "SPANNUNG": 150.0, "LAENGE": 125.2},
            {"NAME": "NOR-7-1", "STATUS": "geplant", "SPANNUNG": None, "LAENGE": 80.0},
        ],
        [LINE, LINE],
        crs="EPSG:25832",
    )


class TestNormalize:
    """Tests for normalize()."""

    def test_output_has_exactly_canonical_columns(self, raw_de):
        """Extra raw columns are dropped and unmapped canonical fields become null."""
        result = normalize(raw_de, {"name": "NAME"}, constants={"country": "DE"})

        assert list(result.columns) == [*CANONICAL_COLUMNS, "geometry"]
        assert result["owner"].isna().all()
        assert result["country"].tolist() == ["DE", "DE"]

    def test_recode_and_passthrough(self, raw_de):
        """Recode rules replace listed values; other values pass unchanged."""
        rules = [RecodeRule(column="status", source_value="in Betrieb", canonical_value="InUse")]

        result = normalize(raw_de, {"status": "STATUS"}, rules, constants={"country": "DE"})

        assert result["status"].tolist() == ["InUse", "geplant"]
        assert result.attrs["unmapped_status"] == ["geplant"]

    def test_recode_matches_after_strip(self, make_frame):
        """Source values with stray whitespace still match their rule."""
        raw = make_frame([{"ETAT": " EN EXPLOITATION "}], [LINE])
        rules = [RecodeRule(column="status", source_value="EN EXPLOITATION", canonical_value="InUse")]

        result = normalize(raw, {"status": "ETAT"}, rules, constants={"country": "FR"})

        assert result["status"].iloc[0] == "InUse"

    def test_integral_numbers_rendered_as_text(self, raw_de):
        """Voltage 150.0 becomes '150'; missing stays null."""
        result = normalize(raw_de, {"voltage": "SPANNUNG"}, constants={"country": "DE"})

        assert result["voltage"].iloc[0] == "150"
        assert pd.isna(result["voltage"].iloc[1])

    def test_geometry_and_crs_preserved(self, raw_de):
        """Normalization touches attributes only."""
        result = normalize(raw_de, {"name": "NAME"}, constants={"country": "DE"})

        assert result.crs == raw_de.crs
        assert result.geometry.iloc[0].equals(LINE)

    def test_missing_source_column_raises(self, raw_de):
        """A mapping to a column the source lacks is a SchemaError naming the source."""
        with pytest.raises(SchemaError, match=r"\[DE\].*BETREIBER"):
            normalize(raw_de, {"owner": "BETREIBER"}, constants={"country": "DE"}, source_name="DE")

    def test_unknown_canonical_field_raises(self, raw_de):
        """Only canonical fields can be mapped."""
        with pytest.raises(SchemaError, match="length"):
            normalize(raw_de, {"length": "LAENGE"}, constants={"country": "DE"})

    def test_missing_country_raises(self, raw_de):
        """Every record needs a country."""
        with pytest.raises(SchemaError, match="country"):
            normalize(raw_de, {"name": "NAME"})

    def test_source_column_mapped_twice_raises(self, raw_de):
        """Two canonical fields cannot share one source column."""
        with pytest.raises(SchemaError, match=r"\[BE\].*NAME"):
            normalize(raw_de, {"name": "NAME", "comment": "NAME"}, constants={"country": "BE"}, source_name="BE")

    def test_recode_matches_integer_codes_read_as_float(self, make_frame):
        """Numeric status codes read back as 1.0 (int column with gaps) match rule '1'."""
        raw = make_frame([{"CODE": 1.0}, {"CODE": 2.0}, {"CODE": None}], [LINE, LINE, LINE])
        rules = [RecodeRule(column="status", source_value="1", canonical_value="InUse")]

        result = normalize(raw, {"status": "CODE"}, rules, constants={"country": "DK"})

        assert result["status"].iloc[0] == "InUse"
        assert result["status"].iloc[1] == "2"
        assert pd.isna(result["status"].iloc[2])

    def test_vocabulary_variants_are_not_unmapped(self, make_frame):
        """'planned' is a spelling of Planned and is recoded later, not reported."""
        raw = make_frame([{"s": "planned"}, {"s": "InUse"}], [LINE, LINE])

        result = normalize(raw, {"status": "s"}, constants={"country": "NL"})

        assert result.attrs["unmapped_status"] == []


class TestStatusPolicy:
    """Tests for un-recoded status handling."""

    @pytest.fixture
    def raw(self, make_frame):
        return make_frame([{"s": "Toekomstig"}, {"s": "InUse"}], [LINE, LINE])

    def test_null_policy_nulls_values(self, raw):
        """NULL policy replaces un-recoded values with null."""
        result = normalize(raw, {"status": "s"}, constants={"country": "NL"}, status_policy=StatusPolicy.NULL)

        assert pd.isna(result["status"].iloc[0])
        assert result["status"].iloc[1] == "InUse"
        assert result.attrs["unmapped_status"] == ["Toekomstig"]

    def test_reject_policy_raises(self, raw):
        """REJECT policy fails the source."""
        with pytest.raises(SchemaError, match="Toekomstig"):
            normalize(raw, {"status": "s"}, constants={"country": "NL"}, status_policy=StatusPolicy.REJECT)


class TestSchemaNormalizer:
    """Tests for SchemaNormalizer over multi-part datasets."""

    def test_country_constant_from_spec(self, de_spec, raw_de):
        """The source country is stamped on every record."""
        parts = SchemaNormalizer(de_spec).normalize(SourceDataset(name="DE", parts=[raw_de]))

        assert len(parts) == 1
        assert parts[0]["country"].tolist() == ["DE", "DE"]
        assert parts[0]["status"].tolist() == ["InUse", "Planned"]

    def test_one_frame_per_part(self, de_spec, raw_de):
        """Sibling parts are normalized separately and keep their own CRS."""
        other = raw_de.set_crs("EPSG:4326", allow_override=True)

        parts = SchemaNormalizer(de_spec).normalize(SourceDataset(name="DE", parts=[raw_de, other]))

        assert [p.crs.to_epsg() for p in parts] == [25832, 4326]

    def test_undeclared_crs_kept_undeclared(self, de_spec, raw_de):
        """A part without CRS stays without CRS until conditioning."""
        undeclared = gpd.GeoDataFrame(raw_de.drop(columns="geometry"), geometry=list(raw_de.geometry))

        parts = SchemaNormalizer(de_spec).normalize(SourceDataset(name="DE", parts=[undeclared]))

        assert parts[0].crs is None
