"""
Tests for shortcut (rat-run) detection.
"""

import pytest
from shapely.geometry import LineString, Point, box

from ltn.services.neighbourhood.neighbourhood import classify
from ltn.services.network.filters import FilterKind, TravelMode
from ltn.services.network.map_model import Intersection, MapModel, Road
from ltn.services.shortcuts.shortcut_finder import ShortcutPath, find_shortcuts

from map_fixtures import grid_map, node, road_between


class TestShortcuts:
    """Shortcuts through the inner square of the grid."""

    def setup_method(self):
        self.map = grid_map()
        self.neighbourhood = classify(self.map, box(50, 50, 250, 250))
        self.top = road_between(self.map, node(1, 1), node(2, 1))
        self.bottom = road_between(self.map, node(1, 2), node(2, 2))

    def test_every_border_pair_is_a_shortcut(self):
        shortcuts = find_shortcuts(self.map, self.neighbourhood)
        # Both directions of each of the 6 pairs
        assert len(shortcuts) == 12
        lengths = sorted(p.length for p in shortcuts.paths)
        assert lengths == pytest.approx([100] * 8 + [200] * 4)
        assert sum(shortcuts.count_per_road().values()) == 16
        pairs = {(p.start, p.end) for p in shortcuts.paths}
        assert (node(1, 1), node(2, 1)) in pairs
        assert (node(2, 1), node(1, 1)) in pairs
        for path in shortcuts.paths:
            assert path.start in self.neighbourhood.border_intersections
            assert path.end in self.neighbourhood.border_intersections
            assert set(path.roads) <= self.neighbourhood.interior_roads
            assert path.detour_length > path.length

    def test_sorted_shortest_first(self):
        shortcuts = find_shortcuts(self.map, self.neighbourhood)
        keys = [p.sort_key() for p in shortcuts.paths]
        assert keys == sorted(keys)

    def test_filter_removes_shortcut(self):
        self.map.add_modal_filter(self.top, FilterKind.WALK_CYCLE_ONLY)
        shortcuts = find_shortcuts(self.map, self.neighbourhood)

        # Through the interior is now as long as going around, so not a shortcut
        assert len(shortcuts) == 10
        assert shortcuts.subset(self.top) == []
        assert len(shortcuts.subset(self.bottom)) == 6
        for path in shortcuts.paths:
            assert {path.start, path.end} != {node(1, 1), node(2, 1)}

    def test_subset_before_filter(self):
        shortcuts = find_shortcuts(self.map, self.neighbourhood)
        crossing = shortcuts.subset(self.top)
        assert crossing
        assert all(p.crosses(self.top) for p in crossing)
        assert crossing[0].roads == (self.top,)

    def test_cycling_ignores_walk_cycle_filters(self):
        self.map.add_modal_filter(self.top, FilterKind.WALK_CYCLE_ONLY)
        assert len(find_shortcuts(self.map, self.neighbourhood, TravelMode.CYCLING)) == 12

    def test_version_tracks_map(self):
        shortcuts = find_shortcuts(self.map, self.neighbourhood)
        assert shortcuts.version == self.map.version
        self.map.add_modal_filter(self.top, FilterKind.NO_ENTRY)
        assert shortcuts.version != self.map.version

    def test_no_border_no_shortcuts(self):
        whole = classify(self.map, box(-50, -50, 350, 350))
        assert len(find_shortcuts(self.map, whole)) == 0


class TestOneWayShortcuts:
    """Rat-runs that can only be driven one way round the inner square."""

    def setup_method(self):
        inner = [
            road_between(grid_map(), a, b) for a, b in (
                (node(1, 1), node(2, 1)),
                (node(1, 2), node(2, 2)),
                (node(1, 1), node(1, 2)),
                (node(2, 1), node(2, 2)),
            )
        ]
        # Every inner road is drawn from the lower id, and drivable only towards it
        self.map = grid_map(tags={road_id: {"oneway": "-1"} for road_id in inner})
        self.neighbourhood = classify(self.map, box(50, 50, 250, 250))

    def test_only_drivable_direction_is_found(self):
        shortcuts = find_shortcuts(self.map, self.neighbourhood)
        pairs = sorted((p.start, p.end) for p in shortcuts.paths)
        assert pairs == [
            (node(2, 1), node(1, 1)),
            (node(1, 2), node(1, 1)),
            (node(2, 2), node(1, 1)),
            (node(2, 2), node(2, 1)),
            (node(2, 2), node(1, 2)),
        ]
        assert all(p.start > p.end for p in shortcuts.paths)

    def test_cycling_uses_both_directions(self):
        assert len(find_shortcuts(self.map, self.neighbourhood, TravelMode.CYCLING)) == 12


class TestNoWayAround:
    """A through-route with no alternative outside is still a shortcut."""

    def setup_method(self):
        # 0 --- 1 --- 2 --- 3 in a row, with only 1 -- 2 inside
        points = {i: Point(i * 100, 0) for i in range(4)}
        intersections = [Intersection(id=i, point=p) for i, p in points.items()]
        roads = [
            Road(id=i, src_i=i, dst_i=i + 1, linestring=LineString([points[i], points[i + 1]]))
            for i in range(3)
        ]
        self.map = MapModel(intersections, roads)
        self.neighbourhood = classify(self.map, box(50, -50, 250, 50))

    def test_missing_detour(self):
        shortcuts = find_shortcuts(self.map, self.neighbourhood)
        assert len(shortcuts) == 2
        assert [(p.start, p.end) for p in shortcuts.paths] == [(1, 2), (2, 1)]
        path = shortcuts.paths[0]
        assert path.roads == (1,)
        assert path.detour_length is None
        assert path.directness is None

    def test_filtered_road_is_not_a_shortcut(self):
        self.map.add_modal_filter(1, FilterKind.BUS_GATE)
        assert len(find_shortcuts(self.map, self.neighbourhood)) == 0

    def test_to_dict(self):
        path = ShortcutPath(roads=(1, 2), intersections=(5, 6, 7), length=123.456, detour_length=None)
        assert path.to_dict() == {
            "roads": [1, 2],
            "intersections": [5, 6, 7],
            "length_m": 123.46,
            "detour_length_m": None,
        }
