"""
Neighbourhood selection.

Given a boundary polygon, splits the network into interior roads (eligible
for filters and analysed for cells and shortcuts), boundary roads (crossing
the polygon edge, used to find where traffic can enter) and everything else.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from shapely.geometry import Polygon
from shapely.prepared import prep

from ltn.core.errors import InvalidBoundary
from ltn.services.network.map_model import MapModel
from ltn.utils.geo import polygon_problem

logger = logging.getLogger(__name__)


class RoadClass(str, Enum):
    """Where a road sits relative to a neighbourhood boundary."""
    INTERIOR = "interior"
    BOUNDARY = "boundary"
    EXTERIOR = "exterior"


@dataclass(frozen=True)
class Neighbourhood:
    """A boundary polygon and the classification it induces on the map."""
    boundary: Polygon
    interior_intersections: frozenset[int]
    interior_roads: frozenset[int]
    boundary_roads: frozenset[int]
    border_intersections: frozenset[int]  # where boundary roads enter

    def classify_road(self, road_id: int) -> RoadClass:
        if road_id in self.interior_roads:
            return RoadClass.INTERIOR
        if road_id in self.boundary_roads:
            return RoadClass.BOUNDARY
        return RoadClass.EXTERIOR

    def to_dict(self) -> dict:
        return {
            "interior_roads": sorted(self.interior_roads),
            "boundary_roads": sorted(self.boundary_roads),
            "interior_intersections": sorted(self.interior_intersections),
            "border_intersections": sorted(self.border_intersections),
            "area_m2": round(self.boundary.area, 1),
        }


def classify(map_model: MapModel, boundary: Polygon) -> Neighbourhood:
    """
    Classify roads and intersections against a boundary polygon.

    An intersection is interior when the polygon contains it. A road is
    interior when both its endpoints are, a boundary road when exactly one is.

    Raises:
        InvalidBoundary: The polygon is degenerate or self-intersecting
    """
    problem = polygon_problem(boundary)
    if problem is not None:
        raise InvalidBoundary(problem)

    prepared = prep(boundary)
    interior_intersections = frozenset(
        i.id for i in map_model.intersections.values() if prepared.contains(i.point)
    )

    interior_roads = set()
    boundary_roads = set()
    border_intersections = set()

    for road in map_model.roads.values():
        src_in = road.src_i in interior_intersections
        dst_in = road.dst_i in interior_intersections
        if src_in and dst_in:
            interior_roads.add(road.id)
        elif src_in or dst_in:
            boundary_roads.add(road.id)
            border_intersections.add(road.src_i if src_in else road.dst_i)

    logger.info(
        "Classified neighbourhood (interior_roads=%d boundary_roads=%d "
        "border_intersections=%d)",
        len(interior_roads),
        len(boundary_roads),
        len(border_intersections),
    )

    return Neighbourhood(
        boundary=boundary,
        interior_intersections=interior_intersections,
        interior_roads=frozenset(interior_roads),
        boundary_roads=frozenset(boundary_roads),
        border_intersections=frozenset(border_intersections),
    )
