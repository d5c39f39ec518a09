"""
Client layer: dashboard filters and map markers.
"""
import html
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Union

from arborinsight.client.notifications import DEFAULT_LANGUAGE
from arborinsight.domain.models import MunicipalityOut, Priority, TreeWithContext


PRIORITY_LABELS = {
    "pt-BR": {Priority.HIGH: "Alta", Priority.MEDIUM: "Média", Priority.LOW: "Baixa"},
    "en": {Priority.HIGH: "High", Priority.MEDIUM: "Medium", Priority.LOW: "Low"},
}

# Map pin colours, same red/yellow/green scheme as the KML export
PRIORITY_COLORS = {
    Priority.HIGH: "#ef4444",
    Priority.MEDIUM: "#f59e0b",
    Priority.LOW: "#10b981",
}
UNKNOWN_COLOR = "#6b7280"

POPUP_TEXT = {
    "pt-BR": {
        "no_species": "Espécie não identificada",
        "no_address": "Endereço não informado",
        "priority": "Prioridade",
    },
    "en": {
        "no_species": "Species not identified",
        "no_address": "Address not provided",
        "priority": "Priority",
    },
}


def _priority(value: Union[Priority, str, None]) -> Optional[Priority]:
    if value is None or isinstance(value, Priority):
        return value
    try:
        return Priority.parse(value)
    except ValueError:
        return None


def priority_label(value: Union[Priority, str, None], language: str = DEFAULT_LANGUAGE) -> str:
    """Display label of a priority; unknown values are shown as given."""
    priority = _priority(value)
    if priority is None:
        return "" if value is None else str(value)
    labels = PRIORITY_LABELS.get(language, PRIORITY_LABELS[DEFAULT_LANGUAGE])
    return labels[priority]


def priority_color(value: Union[Priority, str, None]) -> str:
    priority = _priority(value)
    return PRIORITY_COLORS.get(priority, UNKNOWN_COLOR)


@dataclass
class DashboardFilters:
    """
    Dashboard and map filter state.

    Municipality options depend on the selected region, so picking another
    region clears the municipality.
    """
    region_id: Optional[str] = None
    municipality_id: Optional[str] = None
    priorities: Set[Priority] = field(default_factory=lambda: set(Priority))

    def select_region(self, region_id: Optional[str]) -> None:
        if region_id != self.region_id:
            self.municipality_id = None
        self.region_id = region_id or None

    def select_municipality(
        self,
        municipality_id: Optional[str],
        options: Optional[Sequence[MunicipalityOut]] = None,
    ) -> None:
        """
        Select a municipality.

        Raises:
            ValueError: If ``options`` are given and the municipality is not among
                the selected region's options
        """
        if municipality_id and options is not None:
            allowed = {m.id for m in self.municipality_options(options)}
            if municipality_id not in allowed:
                raise ValueError(f"municipality '{municipality_id}' is not in the selected region")
        self.municipality_id = municipality_id or None

    def municipality_options(self, municipalities: Iterable[MunicipalityOut]) -> List[MunicipalityOut]:
        if self.region_id is None:
            return list(municipalities)
        return [m for m in municipalities if m.region_id == self.region_id]

    def toggle_priority(self, priority: Union[Priority, str], enabled: bool) -> None:
        priority = Priority.parse(priority)
        if enabled:
            self.priorities.add(priority)
        else:
            self.priorities.discard(priority)

    def clear(self) -> None:
        self.region_id = None
        self.municipality_id = None
        self.priorities = set(Priority)

    def to_query_params(self) -> Dict[str, str]:
        """Query parameters for the stats, listing and export endpoints."""
        params = {}
        if self.region_id:
            params["region_id"] = self.region_id
        if self.municipality_id:
            params["municipality_id"] = self.municipality_id
        # A single checked priority can be filtered server side
        if len(self.priorities) == 1:
            params["priority"] = next(iter(self.priorities)).value
        return params

    def matches(self, tree: TreeWithContext) -> bool:
        inspection = tree.inspection
        if inspection.priority not in self.priorities:
            return False
        if self.region_id and inspection.region_id != self.region_id:
            return False
        if self.municipality_id and inspection.municipality_id != self.municipality_id:
            return False
        return True


def build_map_markers(
    trees: Iterable[TreeWithContext],
    filters: Optional[DashboardFilters] = None,
    language: str = DEFAULT_LANGUAGE,
) -> List[Dict[str, Any]]:
    """
    Markers for every tree passing the filters.

    Each marker carries the tree coordinates, the colour of its
    inspection's priority and an HTML popup.
    """
    filters = filters or DashboardFilters()
    return [
        {
            "id": tree.id,
            "inspectionId": tree.inspection.id,
            "lat": tree.latitude,
            "lng": tree.longitude,
            "priority": tree.inspection.priority.value,
            "color": priority_color(tree.inspection.priority),
            "popup": marker_popup(tree, language),
        }
        for tree in trees
        if filters.matches(tree)
    ]


def marker_popup(tree: TreeWithContext, language: str = DEFAULT_LANGUAGE) -> str:
    text = POPUP_TEXT.get(language, POPUP_TEXT[DEFAULT_LANGUAGE])
    species = tree.final_species or text["no_species"]
    place = " - ".join(
        name for name in (
            tree.municipality.name if tree.municipality else None,
            tree.region.name if tree.region else None,
        ) if name
    )
    feeder = tree.feeder.code if tree.feeder else ""
    address = tree.address or text["no_address"]
    label = priority_label(tree.inspection.priority, language)

    parts = [
        '<div class="marker-popup">',
        f"<h4>{html.escape(species)}</h4>",
        f"<p>{html.escape(place)}</p>",
        f"<p>{html.escape(feeder)}</p>",
        f"<p>{html.escape(address)}</p>",
    ]
    if tree.photos:
        parts.append(f'<img src="{html.escape(tree.photos[0].url, quote=True)}" alt="">')
    parts.append(
        f'<span class="priority" style="color: {priority_color(tree.inspection.priority)}">'
        f"{text['priority']}: {html.escape(label)}</span>"
    )
    parts.append("</div>")
    return "".join(parts)
