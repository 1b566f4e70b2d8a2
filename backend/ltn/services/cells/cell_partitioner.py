"""
Cell partitioning.

A cell is a maximal group of interior roads that can reach each other
without passing a filter that blocks the chosen travel mode. Cells are
rebuilt from scratch on every call; nothing is patched incrementally.
"""

import logging
from dataclasses import dataclass

import networkx as nx

from ltn.core.errors import InvariantViolation
from ltn.services.neighbourhood.neighbourhood import Neighbourhood
from ltn.services.network.filters import TravelMode
from ltn.services.network.map_model import MapModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Cell:
    """A connected group of interior roads."""
    id: int  # lowest road id in the cell
    roads: frozenset[int]
    intersections: frozenset[int]
    disconnected: bool  # no border intersection, unreachable from outside

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "roads": sorted(self.roads),
            "intersections": sorted(self.intersections),
            "disconnected": self.disconnected,
        }


def compute_cells(
    map_model: MapModel,
    neighbourhood: Neighbourhood,
    mode: TravelMode = TravelMode.DRIVING,
) -> list[Cell]:
    """
    Partition the neighbourhood's interior roads into cells.

    A road whose filter blocks `mode` does not connect its endpoints. It is
    still placed in exactly one cell: the one on the side of the filter that
    holds most of the road (the src side when the filter is at the middle or
    beyond).

    Args:
        map_model: The network and its current filters
        neighbourhood: Scope of the analysis
        mode: Travel mode deciding which filters block

    Returns:
        Cells ordered by id
    """
    G = nx.MultiGraph()
    G.add_nodes_from(sorted(neighbourhood.interior_intersections))

    blocked = []
    for road_id in sorted(neighbourhood.interior_roads):
        road = map_model.roads[road_id]
        if map_model.is_blocked(road_id, mode):
            blocked.append(road_id)
        else:
            G.add_edge(road.src_i, road.dst_i, key=road_id)

    component_of: dict[int, int] = {}
    components: list[set[int]] = []
    for idx, component in enumerate(nx.connected_components(G)):
        components.append(component)
        for i in component:
            component_of[i] = idx

    roads_by_component: dict[int, set[int]] = {}
    for u, v, road_id in G.edges(keys=True):
        roads_by_component.setdefault(component_of[u], set()).add(road_id)

    for road_id in blocked:
        road = map_model.roads[road_id]
        percent = map_model.modal_filters[road_id].percent_along
        side = road.src_i if percent >= 0.5 else road.dst_i
        if side not in component_of:
            raise InvariantViolation(
                f"Interior road {road_id} ends at non-interior intersection {side}"
            )
        roads_by_component.setdefault(component_of[side], set()).add(road_id)

    cells = []
    for idx, roads in roads_by_component.items():
        intersections = frozenset(components[idx])
        cells.append(Cell(
            id=min(roads),
            roads=frozenset(roads),
            intersections=intersections,
            disconnected=not (intersections & neighbourhood.border_intersections),
        ))
    cells.sort(key=lambda c: c.id)

    assigned = sum(len(c.roads) for c in cells)
    if assigned != len(neighbourhood.interior_roads):
        raise InvariantViolation(
            f"Cells cover {assigned} roads but the neighbourhood has "
            f"{len(neighbourhood.interior_roads)}"
        )

    logger.debug(
        "Computed %d cells for %s (blocked_roads=%d)", len(cells), mode.value, len(blocked)
    )
    return cells


def cell_of_road(cells: list[Cell]) -> dict[int, int]:
    """Map each road id to the id of its cell."""
    return {road_id: cell.id for cell in cells for road_id in cell.roads}
