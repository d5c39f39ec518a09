"""
Unit tests for the export generator.

Tests cover:
- CSV column order, quoting and re-parse
- Plain-text report summary and sections
- KML placemark count, styles and coordinates
- Empty input for every format
"""
import csv
import io
import xml.etree.ElementTree as ET

import pytest

from arborinsight.domain.models import InspectionFilter
from arborinsight.services.domain.export_generator import (
    CSV_COLUMNS,
    DEFAULT_TITLE,
    KML_NAMESPACE,
    export_to_csv,
    export_to_kml,
    export_to_report,
    slugify,
)


NS = {"kml": KML_NAMESPACE}


@pytest.fixture
def inspections(repository, make_inspection, refs):
    make_inspection(notes='Said "urgent", twice')
    make_inspection(
        noteNumber="2024002",
        priority="low",
        trees=[],
        finalSpecies="Ficus benjamina",
        avgSpeciesConfidence=64.5,
        regionId=refs.other_region.id,
        municipalityId=refs.other_municipality.id,
    )
    return repository.list_inspection_details()


def _rows(content: str) -> list:
    return list(csv.reader(io.StringIO(content)))


def _placemarks(content: str) -> list:
    root = ET.fromstring(content.encode("utf-8"))
    return root.findall(".//kml:Placemark", NS)


def _named(placemarks: list, name: str):
    return next(p for p in placemarks if p.find("kml:name", NS).text == name)


# ============================================================
# CSV Tests
# ============================================================

class TestCSVExport:
    """Tests for the CSV export."""

    def test_header_and_one_row_per_inspection(self, inspections):
        rows = _rows(export_to_csv(inspections).content)

        assert rows[0] == CSV_COLUMNS
        assert len(rows) == 3

    def test_reparse_recovers_values(self, inspections):
        rows = _rows(export_to_csv(inspections).content)
        by_note = {row[CSV_COLUMNS.index("Note Number")]: dict(zip(CSV_COLUMNS, row)) for row in rows[1:]}

        first = by_note["2024001"]
        assert first["Inspection Date"] == "2024-03-15"
        assert first["Region"] == "Sorocaba"
        assert first["Municipality"] == "Itu"
        assert first["Feeder"] == "ITU01"
        assert first["Substation"] == "SE Itu"
        assert first["Latitude"] == "-23.55"
        assert first["Longitude"] == "-47.3"
        assert first["Priority"] == "high"
        assert first["Operative Number"] == "OP-77"
        assert first["Notes"] == 'Said "urgent", twice'
        assert first["Trees"] == "2"

        legacy = by_note["2024002"]
        assert legacy["Final Species"] == "Ficus benjamina"
        assert legacy["AI Confidence (%)"] == "64.5%"
        assert legacy["Municipality"] == "Jundiaí"
        assert legacy["Trees"] == "0"

    def test_every_field_quoted_with_crlf(self, inspections):
        content = export_to_csv(inspections).content

        assert content.startswith('"Inspection Date","Region"')
        assert "\r\n" in content

    def test_file_name_from_title(self, inspections):
        document = export_to_csv(inspections, "Inspeções Itu 2024")

        assert document.filename == "inspecoes-itu-2024.csv"
        assert document.media_type.startswith("text/csv")

    def test_empty_input(self):
        rows = _rows(export_to_csv([]).content)

        assert rows == [CSV_COLUMNS]


# ============================================================
# Report Tests
# ============================================================

class TestReportExport:
    """Tests for the plain-text report."""

    def test_summary_counts(self, inspections, fixed_now):
        content = export_to_report(inspections, "March", generated_at=fixed_now).content

        assert "March" in content
        assert "Generated: 2024-03-20" in content
        assert "- Total inspections: 2" in content
        assert "- High priority: 1" in content
        assert "- Low priority: 1" in content
        assert "- Total trees: 2" in content

    def test_sections_list_trees(self, inspections):
        content = export_to_report(inspections).content

        assert "INSPECTION 2024001" in content
        assert "Tree 1: -23.5501, -47.3001" in content
        assert "Species: Tipuana tipu" in content
        assert "Photos: 1" in content
        assert "Priority: HIGH" in content

    def test_served_as_text(self, inspections):
        document = export_to_report(inspections)

        assert document.media_type.startswith("text/plain")
        assert document.filename == f"{slugify(DEFAULT_TITLE)}-report.txt"

    def test_empty_input(self):
        content = export_to_report([]).content

        assert "- Total inspections: 0" in content
        assert "INSPECTION DETAILS:" in content


# ============================================================
# KML Tests
# ============================================================

class TestKMLExport:
    """Tests for the KML export."""

    def test_one_placemark_per_tree_plus_legacy(self, inspections):
        placemarks = _placemarks(export_to_kml(inspections).content)

        # Two trees, plus one placemark for the treeless inspection
        assert len(placemarks) == 3

    def test_scenario_placemarks_match_trees(self, repository, make_inspection):
        make_inspection()
        high = repository.list_inspection_details(InspectionFilter(priority="alta"))

        placemarks = _placemarks(export_to_kml(high).content)

        assert len(placemarks) == sum(len(i.trees) for i in high) == 2

    def test_priority_styles(self, inspections):
        root = ET.fromstring(export_to_kml(inspections).content.encode("utf-8"))

        style_ids = {style.get("id") for style in root.findall(".//kml:Style", NS)}
        assert style_ids == {"priority-high", "priority-medium", "priority-low"}
        style_urls = [el.text for el in root.findall(".//kml:styleUrl", NS)]
        assert style_urls.count("#priority-high") == 2
        assert style_urls.count("#priority-low") == 1

    def test_coordinates_are_lon_lat(self, inspections):
        placemarks = _placemarks(export_to_kml(inspections).content)

        coordinates = _named(placemarks, "Tipuana tipu").find(".//kml:coordinates", NS).text
        assert coordinates == "-47.3001,-23.5501,0"

    def test_description_is_escaped_html(self, inspections):
        placemarks = _placemarks(export_to_kml(inspections).content)

        description = _named(placemarks, "Tipuana tipu").find("kml:description", NS).text
        assert "<b>Species:</b> Tipuana tipu<br/>" in description
        assert '<a href="/uploads/tree-1.jpg">' in description

    def test_empty_input(self):
        document = export_to_kml([], "Nothing")

        root = ET.fromstring(document.content.encode("utf-8"))
        assert root.find("kml:Document/kml:name", NS).text == "Nothing"
        assert _placemarks(document.content) == []
        assert document.filename == "nothing.kml"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
