"""
Shortest path routing over the road network.

Routes are weighted purely by road length. Filters that block the traveller's
mode hide their road from the search when filters are respected; one-way
tags restrict driving only.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

import networkx as nx
from shapely.geometry import LineString, Point

from ltn.core.errors import InvariantViolation, NoRoute, UnsnappablePoint
from ltn.services.network.filters import TravelMode
from ltn.services.network.map_model import MapModel

logger = logging.getLogger(__name__)


@dataclass
class Route:
    """A path through the network as road and intersection sequences."""
    roads: list[int]
    intersections: list[int]
    length: float
    geometry: Optional[LineString] = field(default=None, repr=False)

    def crosses(self, road_id: int) -> bool:
        return road_id in self.roads

    def to_dict(self) -> dict:
        return {
            "roads": self.roads,
            "intersections": self.intersections,
            "length_m": round(self.length, 2),
        }


@dataclass
class RouteComparison:
    """Routes between the same two points, ignoring and respecting filters."""
    before: Optional[Route]
    after: Optional[Route]
    before_error: Optional[str] = None
    after_error: Optional[str] = None

    @property
    def detour_ratio(self) -> Optional[float]:
        if self.before is None or self.after is None or self.before.length == 0:
            return None
        return self.after.length / self.before.length


class Router:
    """
    Dijkstra search over a directed view of the network.

    Every road contributes a forward edge (src -> dst) and a backward edge;
    the weight function decides at query time which are usable, so the same
    Router keeps working as filters change.
    """

    def __init__(
        self,
        map_model: MapModel,
        mode: TravelMode = TravelMode.DRIVING,
        roads: Optional[Iterable[int]] = None,
    ):
        """
        Args:
            map_model: Network and live filters
            mode: Travel mode, deciding which filters and one-ways apply
            roads: Restrict the search to these roads (default: all)
        """
        self.map = map_model
        self.mode = mode
        self.graph = nx.MultiDiGraph()

        road_ids = sorted(roads) if roads is not None else sorted(map_model.roads)
        for road_id in road_ids:
            road = map_model.roads[road_id]
            self.graph.add_edge(
                road.src_i, road.dst_i, key=(road_id, "forward"),
                road=road_id, direction="forward", length=road.length,
            )
            self.graph.add_edge(
                road.dst_i, road.src_i, key=(road_id, "backward"),
                road=road_id, direction="backward", length=road.length,
            )

    def _edge_cost(self, data: dict, respect_filters: bool) -> Optional[float]:
        """Cost of a single directed road edge, None if unusable."""
        road = self.map.roads[data["road"]]
        if self.mode == TravelMode.DRIVING:
            oneway = road.oneway
            if oneway is not None and oneway != data["direction"]:
                return None
        if respect_filters and self.map.is_blocked(road.id, self.mode):
            return None
        return data["length"]

    def _weight(self, respect_filters: bool):
        def weight(u, v, keydict: dict) -> Optional[float]:
            costs = [
                c for c in (self._edge_cost(d, respect_filters) for d in keydict.values())
                if c is not None
            ]
            return min(costs) if costs else None

        return weight

    def _best_edge(self, u: int, v: int, respect_filters: bool) -> int:
        """Cheapest usable road for one step of a path, lowest id on ties."""
        options = []
        for data in self.graph[u][v].values():
            cost = self._edge_cost(data, respect_filters)
            if cost is not None:
                options.append((cost, data["road"]))
        if not options:
            raise InvariantViolation(f"Path uses unusable step {u} -> {v}")
        return min(options)[1]

    def shortest_path(
        self, start: int, end: int, respect_filters: bool = True
    ) -> Route:
        """
        Find the shortest route between two intersections.

        Raises:
            InvalidInput: Unknown intersection
            NoRoute: The intersections are disconnected under this configuration
        """
        self.map.get_intersection(start)
        self.map.get_intersection(end)

        if start == end:
            return Route(
                roads=[],
                intersections=[start],
                length=0.0,
                geometry=None,
            )

        if start not in self.graph or end not in self.graph:
            raise NoRoute(start, end, "endpoint not on the searched roads")

        try:
            length, path = nx.bidirectional_dijkstra(
                self.graph, start, end, weight=self._weight(respect_filters)
            )
        except nx.NetworkXNoPath:
            raise NoRoute(start, end, "disconnected under current filters")

        roads = [
            self._best_edge(u, v, respect_filters) for u, v in zip(path[:-1], path[1:])
        ]
        return Route(
            roads=roads,
            intersections=list(path),
            length=length,
            geometry=self._geometry(roads, path),
        )

    def shortest_paths_from(
        self, start: int, respect_filters: bool = True
    ) -> tuple[dict[int, float], dict[int, list[int]]]:
        """Single-source distances and intersection paths to everything reachable."""
        if start not in self.graph:
            return {start: 0.0}, {start: [start]}
        return nx.single_source_dijkstra(
            self.graph, start, weight=self._weight(respect_filters)
        )

    def route_from_path(self, path: list[int], respect_filters: bool = True) -> Route:
        """Turn an intersection path from shortest_paths_from into a Route."""
        roads = [
            self._best_edge(u, v, respect_filters) for u, v in zip(path[:-1], path[1:])
        ]
        return Route(
            roads=roads,
            intersections=list(path),
            length=sum(self.map.roads[r].length for r in roads),
            geometry=self._geometry(roads, path) if roads else None,
        )

    def route_between_points(
        self, pt1: Point, pt2: Point, respect_filters: bool = True
    ) -> Route:
        """Snap two planar points to intersections and route between them."""
        return self.shortest_path(
            self.snap(pt1), self.snap(pt2), respect_filters=respect_filters
        )

    def snap(self, point: Point) -> int:
        i = self.map.closest_intersection(point)
        if i is None:
            raise UnsnappablePoint((round(point.x, 1), round(point.y, 1)), self.map.snap_distance)
        return i

    def _geometry(self, roads: list[int], path: list[int]) -> LineString:
        """Stitch road geometries together in travel order."""
        coords = []
        for road_id, start in zip(roads, path):
            road = self.map.roads[road_id]
            line = list(road.linestring.coords)
            if road.src_i != start:
                line.reverse()
            if coords:
                line = line[1:]
            coords.extend(line)
        return LineString(coords)


def compare_route(
    map_model: MapModel,
    pt1: Point,
    pt2: Point,
    mode: TravelMode = TravelMode.DRIVING,
) -> RouteComparison:
    """
    Route between two points with and without the current filters.

    A side with no route is reported as None with its error message rather
    than failing the whole comparison. Points that cannot be snapped to the
    network still raise InvalidInput.
    """
    router = Router(map_model, mode)
    start = router.snap(pt1)
    end = router.snap(pt2)

    result = RouteComparison(before=None, after=None)
    try:
        result.before = router.shortest_path(start, end, respect_filters=False)
    except NoRoute as e:
        result.before_error = str(e)
    try:
        result.after = router.shortest_path(start, end, respect_filters=True)
    except NoRoute as e:
        result.after_error = str(e)

    logger.info(
        "Compared route %d -> %d (before=%s after=%s)",
        start,
        end,
        f"{result.before.length:.0f}m" if result.before else "none",
        f"{result.after.length:.0f}m" if result.after else "none",
    )
    return result
