"""
Domain service: CSV, plain-text report and KML exports.

Pure functions over inspection details. None of them raise on an empty
collection: the output is still a valid document, just without rows.
"""
import csv
import html
import io
import re
import unicodedata
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from arborinsight.domain.models import InspectionDetail, Priority, TreeDetail
from arborinsight.utils.formatting import format_confidence


DEFAULT_TITLE = "Urban Tree Inspections"

CSV_COLUMNS = [
    "Inspection Date",
    "Region",
    "Municipality",
    "Feeder",
    "Substation",
    "Address",
    "Latitude",
    "Longitude",
    "Final Species",
    "AI Confidence (%)",
    "Priority",
    "Note Number",
    "Operative Number",
    "Notes",
    "Trees",
]

KML_NAMESPACE = "http://www.opengis.net/kml/2.2"

# Pushpin per priority
PRIORITY_PINS = {
    Priority.HIGH: "https://maps.google.com/mapfiles/kml/pushpin/red-pushpin.png",
    Priority.MEDIUM: "https://maps.google.com/mapfiles/kml/pushpin/ylw-pushpin.png",
    Priority.LOW: "https://maps.google.com/mapfiles/kml/pushpin/grn-pushpin.png",
}

REPORT_RULE = "=" * 47


@dataclass(frozen=True)
class ExportDocument:
    """A rendered export ready to be served as a download."""
    filename: str
    media_type: str
    content: str


def slugify(title: str) -> str:
    """ASCII file-name stem for a title ("Inspeções Itu" -> "inspecoes-itu")."""
    ascii_title = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_title.lower()).strip("-")
    return slug or "inspections"


def _name(ref, attr: str = "name") -> str:
    if ref is None:
        return ""
    return getattr(ref, attr, None) or ""


def _date(value: Optional[datetime]) -> str:
    return value.date().isoformat() if value else ""


# ============================================================
# CSV
# ============================================================

def export_to_csv(inspections: Sequence[InspectionDetail], title: str = DEFAULT_TITLE) -> ExportDocument:
    """
    One row per inspection, every field quoted, CRLF line endings.

    The UTF-8 byte order mark is added when the document is served.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\r\n")
    writer.writerow(CSV_COLUMNS)

    for inspection in inspections:
        writer.writerow([
            _date(inspection.inspection_date),
            _name(inspection.region),
            _name(inspection.municipality),
            _name(inspection.feeder, "code"),
            _name(inspection.substation),
            inspection.address or "",
            str(inspection.latitude),
            str(inspection.longitude),
            inspection.final_species or "",
            format_confidence(inspection.avg_species_confidence),
            inspection.priority.value,
            inspection.note_number,
            inspection.operative_number or "",
            inspection.notes or "",
            str(len(inspection.trees)),
        ])

    return ExportDocument(
        filename=f"{slugify(title)}.csv",
        media_type="text/csv; charset=utf-8",
        content=buffer.getvalue(),
    )


# ============================================================
# Plain-text report
# ============================================================

def export_to_report(
    inspections: Sequence[InspectionDetail],
    title: str = DEFAULT_TITLE,
    generated_at: Optional[datetime] = None,
) -> ExportDocument:
    """Formatted plain-text report: summary block, then one section per inspection."""
    generated_at = generated_at or datetime.now()
    counts = {priority: 0 for priority in Priority}
    for inspection in inspections:
        counts[inspection.priority] += 1
    total_trees = sum(len(inspection.trees) for inspection in inspections)

    lines: List[str] = [
        "URBAN TREE INSPECTION SYSTEM",
        title,
        f"Generated: {generated_at.date().isoformat()}",
        "",
        REPORT_RULE,
        "",
        "SUMMARY:",
        f"- Total inspections: {len(inspections)}",
        f"- High priority: {counts[Priority.HIGH]}",
        f"- Medium priority: {counts[Priority.MEDIUM]}",
        f"- Low priority: {counts[Priority.LOW]}",
        f"- Total trees: {total_trees}",
        "",
        REPORT_RULE,
        "",
        "INSPECTION DETAILS:",
    ]

    for number, inspection in enumerate(inspections, start=1):
        lines.extend(_report_section(number, inspection))

    lines.extend([REPORT_RULE, "Report generated by the urban tree inspection system", ""])
    return ExportDocument(
        filename=f"{slugify(title)}-report.txt",
        media_type="text/plain; charset=utf-8",
        content="\n".join(lines),
    )


def _report_section(number: int, inspection: InspectionDetail) -> List[str]:
    lines = [
        "",
        f"{number}. INSPECTION {inspection.note_number}",
        f"   Date: {_date(inspection.inspection_date)}",
        f"   Region: {_name(inspection.region)}",
        f"   Municipality: {_name(inspection.municipality)}",
        f"   Feeder: {_name(inspection.feeder, 'code')}",
        f"   Substation: {_name(inspection.substation)}",
        f"   Location: {inspection.latitude}, {inspection.longitude}",
        f"   Address: {inspection.address or 'Not provided'}",
        f"   Species: {inspection.final_species or 'Not identified'}",
    ]
    if inspection.avg_species_confidence is not None:
        lines.append(f"   AI confidence: {format_confidence(inspection.avg_species_confidence)}")
    lines.append(f"   Priority: {inspection.priority.value.upper()}")
    if inspection.notes:
        lines.append(f"   Notes: {inspection.notes}")

    for tree_number, tree in enumerate(inspection.trees, start=1):
        lines.append(f"   Tree {tree_number}: {tree.latitude}, {tree.longitude}")
        lines.append(f"      Species: {tree.final_species or 'Not identified'}")
        if tree.avg_species_confidence is not None:
            lines.append(f"      AI confidence: {format_confidence(tree.avg_species_confidence)}")
        if tree.address:
            lines.append(f"      Address: {tree.address}")
        if tree.observation:
            lines.append(f"      Observation: {tree.observation}")
        lines.append(f"      Photos: {len(tree.photos)}")
    lines.append("")
    return lines


# ============================================================
# KML
# ============================================================

def export_to_kml(inspections: Sequence[InspectionDetail], title: str = DEFAULT_TITLE) -> ExportDocument:
    """
    KML 2.2 document with one placemark per tree.

    An inspection without trees (legacy single-tree records) gets one
    placemark at its own coordinates.
    """
    ET.register_namespace("", KML_NAMESPACE)
    kml = ET.Element(f"{{{KML_NAMESPACE}}}kml")
    document = _sub(kml, "Document")
    _sub(document, "name", title)
    _sub(document, "description", "Urban tree inspection points")

    for priority, href in PRIORITY_PINS.items():
        style = _sub(document, "Style", id=f"priority-{priority.value}")
        icon_style = _sub(style, "IconStyle")
        icon = _sub(icon_style, "Icon")
        _sub(icon, "href", href)

    for inspection in inspections:
        if inspection.trees:
            for tree_number, tree in enumerate(inspection.trees, start=1):
                _tree_placemark(document, inspection, tree, tree_number)
        else:
            _legacy_placemark(document, inspection)

    ET.indent(kml, space="  ")
    body = ET.tostring(kml, encoding="unicode")
    return ExportDocument(
        filename=f"{slugify(title)}.kml",
        media_type="application/vnd.google-earth.kml+xml",
        content=f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n',
    )


def _sub(parent: ET.Element, tag: str, text: Optional[str] = None, **attrib) -> ET.Element:
    element = ET.SubElement(parent, f"{{{KML_NAMESPACE}}}{tag}", attrib)
    if text is not None:
        element.text = text
    return element


def _placemark(
    document: ET.Element,
    name: str,
    description: str,
    priority: Priority,
    latitude: float,
    longitude: float,
) -> None:
    placemark = _sub(document, "Placemark")
    _sub(placemark, "name", name)
    _sub(placemark, "description", description)
    _sub(placemark, "styleUrl", f"#priority-{priority.value}")
    point = _sub(placemark, "Point")
    # KML coordinates are lon,lat,alt
    _sub(point, "coordinates", f"{longitude},{latitude},0")


def _description_rows(inspection: InspectionDetail) -> List[tuple]:
    return [
        ("Region", _name(inspection.region)),
        ("Municipality", _name(inspection.municipality)),
        ("Feeder", _name(inspection.feeder, "code")),
        ("Substation", _name(inspection.substation)),
        ("Priority", inspection.priority.value),
        ("Date", _date(inspection.inspection_date)),
        ("Note", inspection.note_number),
    ]


def _html(rows: List[tuple]) -> str:
    return "".join(
        f"<b>{html.escape(label)}:</b> {html.escape(str(value))}<br/>"
        for label, value in rows
        if value not in (None, "")
    )


def _tree_placemark(
    document: ET.Element,
    inspection: InspectionDetail,
    tree: TreeDetail,
    tree_number: int,
) -> None:
    rows = [("Species", tree.final_species or "Not identified")]
    if tree.avg_species_confidence is not None:
        rows.append(("AI confidence", format_confidence(tree.avg_species_confidence)))
    rows.append(("Address", tree.address or "Not provided"))
    rows.extend(_description_rows(inspection))
    rows.append(("Observation", tree.observation))
    description = _html(rows)
    if tree.photos:
        url = html.escape(tree.photos[0].url, quote=True)
        description += f'<b>Photo:</b> <a href="{url}">View image</a><br/>'

    _placemark(
        document,
        name=tree.final_species or f"Tree {tree_number} - note {inspection.note_number}",
        description=description,
        priority=inspection.priority,
        latitude=tree.latitude,
        longitude=tree.longitude,
    )


def _legacy_placemark(document: ET.Element, inspection: InspectionDetail) -> None:
    rows = [("Species", inspection.final_species or "Not identified")]
    rows.append(("Address", inspection.address or "Not provided"))
    rows.extend(_description_rows(inspection))
    rows.append(("Notes", inspection.notes))
    description = _html(rows)
    if inspection.photo_url:
        url = html.escape(inspection.photo_url, quote=True)
        description += f'<b>Photo:</b> <a href="{url}">View image</a><br/>'

    _placemark(
        document,
        name=inspection.final_species or f"Tree - note {inspection.note_number}",
        description=description,
        priority=inspection.priority,
        latitude=inspection.latitude,
        longitude=inspection.longitude,
    )
