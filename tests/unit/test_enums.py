# =============================================================================
# Enumeration Unit Tests
# =============================================================================

import pytest

from spc_harmonize.domain.enums import CableStatus, ExportFormat, LengthUnit


class TestCableStatusFromLabel:
    """Tests for spelling-variant resolution of status labels."""

    @pytest.mark.parametrize("label,expected", [
        ("InUse", CableStatus.IN_USE),
        ("in use", CableStatus.IN_USE),
        ("planned", CableStatus.PLANNED),
        ("out_of_use", CableStatus.OUT_OF_USE),
        ("Under-Construction", CableStatus.UNDER_CONSTRUCTION),
        ("  Approved ", CableStatus.APPROVED),
    ])
    def test_variants_resolve(self, label, expected):
        """Case, whitespace, underscore and hyphen variants map to the member."""
        assert CableStatus.from_label(label) is expected

    @pytest.mark.parametrize("label", [None, "", "   ", "Ingebruik", "As-Built"])
    def test_unknown_labels_return_none(self, label):
        """Provider vocabulary needs a recode rule; it is not guessed."""
        assert CableStatus.from_label(label) is None


class TestUnitsAndFormats:
    """Tests for derived enum properties."""

    def test_length_unit_column_and_meters(self):
        """Length column is named after the unit tag."""
        assert LengthUnit.KM.column == "length_km"
        assert LengthUnit.KM.meters == 1000.0
        assert LengthUnit.M.column == "length_m"
        assert LengthUnit.M.meters == 1.0

    def test_export_format_drivers(self):
        """Every format maps to its OGR driver name."""
        assert ExportFormat.GPKG.driver == "GPKG"
        assert ExportFormat.GEOJSON.driver == "GeoJSON"
        assert ExportFormat.SHP.driver == "ESRI Shapefile"
        assert ExportFormat.SHP.extension == "shp"
