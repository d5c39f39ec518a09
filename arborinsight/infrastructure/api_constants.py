"""
External API endpoint constants.

All gateway endpoint paths and fixed query parameters live here so that
provider versions can be swapped in one place.
"""


class PlantNetEndpoints:
    """Pl@ntNet API endpoint paths."""

    IDENTIFY_BASE = "/v2/identify"

    @classmethod
    def identify(cls, project: str = "all") -> str:
        """
        Identification endpoint for a flora project.

        Args:
            project: Pl@ntNet project (flora) to query, "all" for every flora

        Returns:
            Endpoint path
        """
        return f"{cls.IDENTIFY_BASE}/{project}"


class NominatimEndpoints:
    """Nominatim (OpenStreetMap) endpoint paths."""

    REVERSE = "/reverse"


# Fixed Pl@ntNet query parameters
PLANTNET_FIXED_PARAMS = {
    "include-related-images": "false",
    "no-reject": "false",
}

# Number of top candidates averaged into the overall confidence
TOP_CANDIDATES_FOR_AVERAGE = 5

SPECIES_SOURCE = "Pl@ntNet"
