"""
Road network graph model with editable modal filters.

The MapModel owns every Road and Intersection (keyed by stable integer id)
and the live set of modal filters. All filter edits go through it, are
recorded in an EditLog, and bump `version` so derived views (cells,
shortcuts) know to rebuild.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from shapely.geometry import LineString, Point
from shapely.strtree import STRtree

from ltn.core.errors import (
    AlreadyFiltered,
    InvalidInput,
    InvalidRoad,
    InvariantViolation,
)
from ltn.services.network.edit_log import EditLog, SetFilter, SetManyFilters
from ltn.services.network.filters import FilterKind, ModalFilter, TravelMode
from ltn.utils.geo import Projection, first_crossing, percent_along, point_along

logger = logging.getLogger(__name__)


DEFAULT_GEOMETRY_TOLERANCE = 0.5  # meters
DEFAULT_SNAP_DISTANCE = 50.0  # meters

ONEWAY_FORWARD_VALUES = {"yes", "true", "1"}
ONEWAY_BACKWARD_VALUES = {"-1", "reverse"}


@dataclass
class Intersection:
    """A node of the road graph."""
    id: int
    point: Point
    roads: list[int] = field(default_factory=list)

    @property
    def degree(self) -> int:
        return len(self.roads)


@dataclass
class Road:
    """An edge of the road graph, running from src_i to dst_i."""
    id: int
    src_i: int
    dst_i: int
    linestring: LineString
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def length(self) -> float:
        return self.linestring.length

    @property
    def name(self) -> Optional[str]:
        return self.tags.get("name")

    @property
    def oneway(self) -> Optional[str]:
        """'forward', 'backward', or None for two-way roads."""
        value = str(self.tags.get("oneway", "")).strip().lower()
        if value in ONEWAY_FORWARD_VALUES:
            return "forward"
        if value in ONEWAY_BACKWARD_VALUES:
            return "backward"
        return None

    def other_end(self, i: int) -> int:
        if i == self.src_i:
            return self.dst_i
        if i == self.dst_i:
            return self.src_i
        raise InvariantViolation(f"Intersection {i} is not an endpoint of road {self.id}")


class MapModel:
    """
    Roads, intersections and the modal filters placed on them.

    Filters supplied at construction (for example existing barriers from the
    map source) form the baseline of the edit history; undo never goes past
    them.
    """

    def __init__(
        self,
        intersections: Iterable[Intersection],
        roads: Iterable[Road],
        modal_filters: Optional[dict[int, ModalFilter]] = None,
        projection: Optional[Projection] = None,
        geometry_tolerance: float = DEFAULT_GEOMETRY_TOLERANCE,
        snap_distance: float = DEFAULT_SNAP_DISTANCE,
    ):
        """
        Build and validate the graph.

        Args:
            intersections: All intersections; incident road lists are rebuilt
            roads: All roads; endpoints must reference known intersections
            modal_filters: Filters already present on the network
            projection: Planar <-> WGS84 conversion for the host, if any
            geometry_tolerance: Max gap between a road end and its intersection
            snap_distance: Max distance for snapping points onto the network

        Raises:
            InvariantViolation: If roads reference missing intersections or
                their geometry does not meet them
        """
        self.projection = projection
        self.geometry_tolerance = geometry_tolerance
        self.snap_distance = snap_distance

        self.intersections: dict[int, Intersection] = {}
        for i in intersections:
            if i.id in self.intersections:
                raise InvariantViolation(f"Duplicate intersection id {i.id}")
            i.roads = []
            self.intersections[i.id] = i

        self.roads: dict[int, Road] = {}
        for r in roads:
            if r.id in self.roads:
                raise InvariantViolation(f"Duplicate road id {r.id}")
            self._check_road(r)
            self.roads[r.id] = r
            self.intersections[r.src_i].roads.append(r.id)
            if r.dst_i != r.src_i:
                self.intersections[r.dst_i].roads.append(r.id)

        baseline = dict(modal_filters or {})
        for road_id in baseline:
            if road_id not in self.roads:
                raise InvariantViolation(f"Modal filter on unknown road {road_id}")

        self.modal_filters: dict[int, ModalFilter] = dict(baseline)
        self.edit_log = EditLog(baseline)
        self.version = 0

        # Spatial indices, in id order so results are reproducible
        self._road_ids = sorted(self.roads)
        self._road_tree = STRtree([self.roads[r].linestring for r in self._road_ids])
        self._intersection_ids = sorted(self.intersections)
        self._intersection_tree = STRtree(
            [self.intersections[i].point for i in self._intersection_ids]
        )

        logger.info(
            "Map model built (intersections=%d roads=%d filters=%d)",
            len(self.intersections),
            len(self.roads),
            len(self.modal_filters),
        )

    def _check_road(self, road: Road) -> None:
        """Raise InvariantViolation if a road does not fit the intersections."""
        for end, i in (("src", road.src_i), ("dst", road.dst_i)):
            if i not in self.intersections:
                raise InvariantViolation(
                    f"Road {road.id} references missing {end} intersection {i}"
                )

        coords = list(road.linestring.coords)
        if len(coords) < 2:
            raise InvariantViolation(f"Road {road.id} has degenerate geometry")

        start = Point(coords[0])
        end = Point(coords[-1])
        if start.distance(self.intersections[road.src_i].point) > self.geometry_tolerance:
            raise InvariantViolation(
                f"Road {road.id} does not start at intersection {road.src_i}"
            )
        if end.distance(self.intersections[road.dst_i].point) > self.geometry_tolerance:
            raise InvariantViolation(
                f"Road {road.id} does not end at intersection {road.dst_i}"
            )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_road(self, road_id: int) -> Road:
        try:
            return self.roads[road_id]
        except (KeyError, TypeError):
            raise InvalidRoad(road_id)

    def get_intersection(self, intersection_id: int) -> Intersection:
        try:
            return self.intersections[intersection_id]
        except (KeyError, TypeError):
            raise InvalidInput(
                f"Unknown intersection {intersection_id}", subject=intersection_id
            )

    def closest_road(
        self,
        point: Point,
        candidates: Optional[Iterable[int]] = None,
        max_distance: Optional[float] = None,
    ) -> Optional[int]:
        """
        Find the road closest to a point.

        Ties are broken by the lowest road id. Returns None when no candidate
        lies within max_distance (defaults to the snap distance).
        """
        if max_distance is None:
            max_distance = self.snap_distance
        allowed = set(candidates) if candidates is not None else None

        best_road = None
        best_dist = float("inf")
        for idx in sorted(self._road_tree.query(point, predicate="dwithin", distance=max_distance)):
            road_id = self._road_ids[idx]
            if allowed is not None and road_id not in allowed:
                continue
            dist = self.roads[road_id].linestring.distance(point)
            if dist < best_dist:
                best_dist = dist
                best_road = road_id

        return best_road

    def closest_intersection(
        self, point: Point, max_distance: Optional[float] = None
    ) -> Optional[int]:
        """Find the intersection closest to a point, within max_distance."""
        if max_distance is None:
            max_distance = self.snap_distance

        best = None
        best_dist = float("inf")
        for idx in sorted(
            self._intersection_tree.query(point, predicate="dwithin", distance=max_distance)
        ):
            i = self._intersection_ids[idx]
            dist = self.intersections[i].point.distance(point)
            if dist < best_dist:
                best_dist = dist
                best = i

        return best

    def roads_crossing(
        self, line: LineString, candidates: Optional[Iterable[int]] = None
    ) -> list[int]:
        """Ids of candidate roads that the line intersects, ascending."""
        allowed = set(candidates) if candidates is not None else None
        result = []
        for idx in sorted(self._road_tree.query(line, predicate="intersects")):
            road_id = self._road_ids[idx]
            if allowed is None or road_id in allowed:
                result.append(road_id)
        return result

    def filter_point(self, road_id: int) -> Point:
        """Where the filter on a road sits."""
        modal_filter = self.modal_filters.get(road_id)
        if modal_filter is None:
            raise InvalidRoad(road_id, "has no modal filter")
        return point_along(self.get_road(road_id).linestring, modal_filter.percent_along)

    def blocked_roads(self, mode: TravelMode) -> set[int]:
        """Roads whose filter stops the given travel mode."""
        return {r for r, f in self.modal_filters.items() if f.blocks(mode)}

    def is_blocked(self, road_id: int, mode: TravelMode) -> bool:
        modal_filter = self.modal_filters.get(road_id)
        return modal_filter is not None and modal_filter.blocks(mode)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def add_modal_filter(
        self,
        road_id: int,
        kind: FilterKind,
        percent_along: Optional[float] = None,
    ) -> ModalFilter:
        """
        Place a filter on a road, replacing any different filter already there.

        Raises:
            InvalidRoad: Unknown road id
            AlreadyFiltered: The exact same filter is already on the road
        """
        self.get_road(road_id)
        if percent_along is None:
            modal_filter = ModalFilter(kind=FilterKind.parse(kind))
        else:
            modal_filter = ModalFilter(kind=FilterKind.parse(kind), percent_along=percent_along)

        existing = self.modal_filters.get(road_id)
        if existing == modal_filter:
            raise AlreadyFiltered(road_id)

        self._do(SetFilter(road=road_id, modal_filter=modal_filter))
        if existing is None:
            logger.info("Added %s filter on road %d", modal_filter.kind.value, road_id)
        else:
            logger.info(
                "Replaced %s filter on road %d with %s",
                existing.kind.value,
                road_id,
                modal_filter.kind.value,
            )
        return modal_filter

    def add_modal_filter_at(
        self,
        point: Point,
        kind: FilterKind,
        candidates: Optional[Iterable[int]] = None,
    ) -> int:
        """
        Place a filter on the candidate road closest to a clicked point.

        Returns:
            The id of the filtered road
        """
        road_id = self.closest_road(point, candidates)
        if road_id is None:
            raise InvalidInput(
                f"No eligible road within {self.snap_distance:g}m of "
                f"({point.x:.1f}, {point.y:.1f})",
                subject=(point.x, point.y),
            )
        percent = percent_along(self.roads[road_id].linestring, point)
        self.add_modal_filter(road_id, kind, percent)
        return road_id

    def add_many_modal_filters(
        self,
        line: LineString,
        kind: FilterKind,
        candidates: Optional[Iterable[int]] = None,
    ) -> list[int]:
        """
        Filter every candidate road crossed by a drawn line, as one edit.

        Roads that already carry the identical filter are left alone. Nothing
        is recorded when the line crosses no road.

        Returns:
            Ids of the roads that received a filter, ascending
        """
        kind = FilterKind.parse(kind)
        commands = []
        for road_id in self.roads_crossing(line, candidates):
            road = self.roads[road_id]
            crossing = first_crossing(road.linestring, line)
            if crossing is None:
                continue
            modal_filter = ModalFilter(
                kind=kind, percent_along=percent_along(road.linestring, crossing)
            )
            if self.modal_filters.get(road_id) == modal_filter:
                continue
            commands.append(SetFilter(road=road_id, modal_filter=modal_filter))

        if not commands:
            logger.info("Drawn line crossed no eligible roads")
            return []

        self._do(SetManyFilters(commands=tuple(commands)))
        logger.info("Added %d %s filters in one batch", len(commands), kind.value)
        return [c.road for c in commands]

    def delete_modal_filter(self, road_id: int) -> bool:
        """Remove a road's filter. Returns False when there was none."""
        self.get_road(road_id)
        if road_id not in self.modal_filters:
            return False

        self._do(SetFilter(road=road_id, modal_filter=None))
        logger.info("Deleted filter on road %d", road_id)
        return True

    def undo(self) -> bool:
        if not self.edit_log.undo():
            return False
        self._rebuild_filters()
        return True

    def redo(self) -> bool:
        if not self.edit_log.redo():
            return False
        self._rebuild_filters()
        return True

    def replace_modal_filters(self, filters: dict[int, ModalFilter]) -> None:
        """Install a whole new filter set and start a fresh history from it."""
        for road_id in filters:
            self.get_road(road_id)
        self.edit_log.reset(filters)
        self._rebuild_filters()
        logger.info("Replaced filter set (filters=%d)", len(self.modal_filters))

    def _do(self, command) -> None:
        self.edit_log.record(command)
        self._rebuild_filters()

    def _rebuild_filters(self) -> None:
        self.modal_filters = self.edit_log.replay()
        self.version += 1
