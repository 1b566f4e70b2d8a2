"""
Shortcut (rat-run) detection.

For every ordered pair of border intersections, the shortest path through
the neighbourhood's interior is compared against the shortest way around it, on
roads outside the interior. The interior path is a shortcut when it is
strictly shorter than going around, or when there is no way around at all.
Pairs are ordered because one-way streets can make a rat-run drivable in
only one direction.

This is O(B^2) in the number of border intersections (two single-source
searches per border intersection), so results should be computed once per
filter or boundary change and queried many times.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from shapely.geometry import LineString

from ltn.core.errors import LTNError
from ltn.services.neighbourhood.neighbourhood import Neighbourhood
from ltn.services.network.filters import TravelMode
from ltn.services.network.map_model import MapModel
from ltn.services.routing.router import Router

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ShortcutPath:
    """An interior route between two border intersections."""
    roads: tuple[int, ...]
    intersections: tuple[int, ...]
    length: float
    detour_length: Optional[float]  # None when there is no way around
    geometry: Optional[LineString] = field(default=None, repr=False, compare=False)

    @property
    def start(self) -> int:
        return self.intersections[0]

    @property
    def end(self) -> int:
        return self.intersections[-1]

    @property
    def directness(self) -> Optional[float]:
        """How much longer the way around is; higher means a worse rat-run."""
        if self.detour_length is None or self.length == 0:
            return None
        return self.detour_length / self.length

    def crosses(self, road_id: int) -> bool:
        return road_id in self.roads

    def sort_key(self) -> tuple:
        return (
            self.length,
            min(self.start, self.end),
            max(self.start, self.end),
            self.start,
            self.roads,
        )

    def to_dict(self) -> dict:
        return {
            "roads": list(self.roads),
            "intersections": list(self.intersections),
            "length_m": round(self.length, 2),
            "detour_length_m": (
                round(self.detour_length, 2) if self.detour_length is not None else None
            ),
        }


class Shortcuts:
    """All shortcuts through a neighbourhood for one filter configuration."""

    def __init__(
        self,
        map_model: MapModel,
        neighbourhood: Neighbourhood,
        mode: TravelMode = TravelMode.DRIVING,
    ):
        self.mode = mode
        self.version = map_model.version
        self.paths: list[ShortcutPath] = []
        self.skipped_pairs = 0

        interior = Router(map_model, mode, roads=neighbourhood.interior_roads)
        outside = Router(
            map_model,
            mode,
            roads=set(map_model.roads) - neighbourhood.interior_roads,
        )

        border = sorted(neighbourhood.border_intersections)
        for start in border:
            inside_dist, inside_paths = interior.shortest_paths_from(start)
            around_dist, _ = outside.shortest_paths_from(start)

            for end in border:
                if end == start or end not in inside_dist:
                    continue
                try:
                    route = interior.route_from_path(inside_paths[end])
                except LTNError as e:
                    # One bad pair must not stop the rest of the enumeration
                    logger.warning("Skipping shortcut %d -> %d: %s", start, end, e)
                    self.skipped_pairs += 1
                    continue

                detour = around_dist.get(end)
                if detour is not None and route.length >= detour:
                    continue

                self.paths.append(ShortcutPath(
                    roads=tuple(route.roads),
                    intersections=tuple(route.intersections),
                    length=route.length,
                    detour_length=detour,
                    geometry=route.geometry,
                ))

        self.paths.sort(key=ShortcutPath.sort_key)
        logger.debug(
            "Found %d shortcuts between %d border intersections (%s)",
            len(self.paths),
            len(border),
            mode.value,
        )

    def __len__(self) -> int:
        return len(self.paths)

    def subset(self, road_id: int) -> list[ShortcutPath]:
        """Shortcuts that use a road, shortest first."""
        return [p for p in self.paths if p.crosses(road_id)]

    def count_per_road(self) -> dict[int, int]:
        """How many shortcuts use each road."""
        counts: dict[int, int] = {}
        for path in self.paths:
            for road_id in path.roads:
                counts[road_id] = counts.get(road_id, 0) + 1
        return counts


def find_shortcuts(
    map_model: MapModel,
    neighbourhood: Neighbourhood,
    mode: TravelMode = TravelMode.DRIVING,
) -> Shortcuts:
    """Convenience function to compute all shortcuts through a neighbourhood."""
    return Shortcuts(map_model, neighbourhood, mode)
