"""
Static adjacency between sales territories.

Used by the routing engine as the search space for the geographic fallback
and by territory reassignment suggestions.
"""
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from common.enums import Region


JAMAICA_PARISHES: Tuple[str, ...] = (
    "Kingston",
    "St. Andrew",
    "St. Catherine",
    "Clarendon",
    "Manchester",
    "St. Elizabeth",
    "Westmoreland",
    "Hanover",
    "St. James",
    "Trelawny",
    "St. Ann",
    "St. Mary",
    "Portland",
    "St. Thomas",
)

_PARISH_ADJACENCY: Dict[str, Tuple[str, ...]] = {
    "Kingston": ("St. Andrew", "St. Catherine", "St. Thomas"),
    "St. Andrew": ("Kingston", "St. Catherine", "St. Mary", "St. Thomas"),
    "St. Catherine": ("Kingston", "St. Andrew", "Clarendon", "St. Mary"),
    "Clarendon": ("St. Catherine", "Manchester", "St. Ann"),
    "Manchester": ("Clarendon", "St. Elizabeth", "Trelawny", "St. Ann"),
    "St. Elizabeth": ("Manchester", "Westmoreland"),
    "Westmoreland": ("St. Elizabeth", "Hanover", "St. James"),
    "Hanover": ("Westmoreland", "St. James"),
    "St. James": ("Hanover", "Westmoreland", "Trelawny"),
    "Trelawny": ("St. James", "St. Ann", "Manchester"),
    "St. Ann": ("Trelawny", "St. Mary", "Clarendon", "Manchester"),
    "St. Mary": ("St. Ann", "Portland", "St. Andrew", "St. Catherine"),
    "Portland": ("St. Mary", "St. Thomas"),
    "St. Thomas": ("Portland", "Kingston", "St. Andrew"),
}

_PARISH_REGIONS: Dict[str, Region] = {
    **{p: Region.EASTERN for p in ("Kingston", "St. Andrew", "St. Thomas", "Portland", "St. Mary")},
    **{p: Region.CENTRAL for p in ("St. Catherine", "Clarendon", "Manchester", "St. Ann", "Trelawny")},
    **{p: Region.WESTERN for p in ("St. Elizabeth", "Westmoreland", "Hanover", "St. James")},
}


class TerritoryGraph:
    """Read-only adjacency relation between territory codes."""

    def __init__(
        self,
        adjacency: Mapping[str, Tuple[str, ...]],
        regions: Optional[Mapping[str, Region]] = None
    ):
        self._adjacency = MappingProxyType(dict(adjacency))
        self._regions = MappingProxyType(dict(regions or {}))

    @property
    def territories(self) -> List[str]:
        return list(self._adjacency)

    def neighbors(self, territory: str) -> List[str]:
        """Territories adjacent to `territory`; empty for unknown codes."""
        return list(self._adjacency.get(territory, ()))

    def region_of(self, territory: str) -> Region:
        """
        Regional grouping of a territory.
        Territories without a configured region fall in the western group.
        """
        return self._regions.get(territory, Region.WESTERN)


DEFAULT_TERRITORY_GRAPH = TerritoryGraph(_PARISH_ADJACENCY, _PARISH_REGIONS)


def get_nearby_territories(territory: str, graph: TerritoryGraph = DEFAULT_TERRITORY_GRAPH) -> List[str]:
    return graph.neighbors(territory)
