"""
Tests for planning sessions and the session registry.
"""

import pytest
from shapely.geometry import LineString, Point, Polygon, box

from ltn.core.errors import (
    InvalidBoundary,
    InvalidInput,
    InvalidRoad,
    MalformedSavefile,
    NoNeighbourhood,
)
from ltn.services.network.filters import FilterKind, TravelMode
from ltn.services.session import LTNSession, SessionRegistry

from map_fixtures import grid_map, node, road_between


class TestLTNSession:
    """Tests for editing and analysing one neighbourhood."""

    def setup_method(self):
        self.session = LTNSession(grid_map(), name="grid")
        self.map = self.session.map
        self.top = road_between(self.map, node(1, 1), node(2, 1))
        self.outer = road_between(self.map, node(0, 0), node(1, 0))

    def test_requires_neighbourhood(self):
        with pytest.raises(NoNeighbourhood):
            self.session.add_modal_filter(self.top, FilterKind.NO_ENTRY)
        with pytest.raises(NoNeighbourhood):
            self.session.cells()
        with pytest.raises(NoNeighbourhood):
            self.session.shortcuts()

    def test_only_interior_roads_can_be_filtered(self):
        self.session.set_neighbourhood(box(50, 50, 250, 250))
        with pytest.raises(InvalidRoad):
            self.session.add_modal_filter(self.outer, FilterKind.NO_ENTRY)
        with pytest.raises(InvalidRoad):
            self.session.add_modal_filter(999, FilterKind.NO_ENTRY)
        self.session.add_modal_filter(self.top, FilterKind.NO_ENTRY)
        assert set(self.map.modal_filters) == {self.top}

    def test_click_snaps_to_interior_road(self):
        self.session.set_neighbourhood(box(50, 50, 250, 250))
        # Closer to the outer road below, but only interior roads qualify
        road_id = self.session.add_modal_filter_at(Point(150, 80), FilterKind.NO_ENTRY)
        assert road_id == self.top

        with pytest.raises(InvalidInput):
            self.session.add_modal_filter_at(Point(150, -40), FilterKind.NO_ENTRY)

    def test_drawn_line_only_filters_interior(self):
        self.session.set_neighbourhood(box(50, 50, 250, 250))
        roads = self.session.add_many_modal_filters(
            LineString([(150, -10), (150, 350)]), FilterKind.WALK_CYCLE_ONLY
        )
        assert roads == sorted([self.top, road_between(self.map, node(1, 2), node(2, 2))])

    def test_rejected_boundary_keeps_old_neighbourhood(self):
        old = self.session.set_neighbourhood(box(50, 50, 250, 250))
        with pytest.raises(InvalidBoundary):
            self.session.set_neighbourhood(Polygon([(0, 0), (200, 200), (200, 0), (0, 200)]))
        assert self.session.neighbourhood is old

    def test_shortcuts_are_cached_until_edit(self):
        self.session.set_neighbourhood(box(50, 50, 250, 250))
        first = self.session.shortcuts()
        assert self.session.shortcuts() is first

        self.session.add_modal_filter(self.top, FilterKind.WALK_CYCLE_ONLY)
        second = self.session.shortcuts()
        assert second is not first
        assert len(second) == 10
        assert self.session.shortcuts_crossing(self.top) == []

        self.session.undo()
        assert len(self.session.shortcuts()) == 12

    def test_shortcuts_per_mode(self):
        self.session.set_neighbourhood(box(50, 50, 250, 250))
        self.session.add_modal_filter(self.top, FilterKind.WALK_CYCLE_ONLY)
        assert len(self.session.shortcuts(TravelMode.DRIVING)) == 10
        assert len(self.session.shortcuts(TravelMode.CYCLING)) == 12

    def test_shortcuts_crossing_unknown_road(self):
        self.session.set_neighbourhood(box(50, 50, 250, 250))
        with pytest.raises(InvalidRoad):
            self.session.shortcuts_crossing(999)

    def test_undo_without_history(self):
        assert self.session.undo() is False
        assert self.session.redo() is False

    def test_compare_route_needs_no_neighbourhood(self):
        result = self.session.compare_route(Point(0, 0), Point(300, 0))
        assert result.before.length == pytest.approx(300)
        assert result.after.length == pytest.approx(300)


class TestSessionSavefiles:
    """Tests for exporting and loading savefiles through a session."""

    def setup_method(self):
        self.session = LTNSession(grid_map())
        self.session.set_neighbourhood(box(50, 50, 250, 250))
        self.top = road_between(self.session.map, node(1, 1), node(2, 1))
        self.session.add_modal_filter(self.top, FilterKind.BUS_GATE, 0.3)

    def test_load_into_fresh_session(self):
        savefile = self.session.to_savefile()
        fresh = LTNSession(grid_map())
        assert fresh.load_savefile(savefile) is True
        assert fresh.map.modal_filters == self.session.map.modal_filters
        assert fresh.neighbourhood.interior_roads == self.session.neighbourhood.interior_roads
        assert not fresh.map.edit_log.can_undo

    def test_load_without_boundary_clears_neighbourhood(self):
        savefile = self.session.to_savefile()
        savefile["features"] = [
            f for f in savefile["features"] if f["properties"]["kind"] != "boundary"
        ]
        assert self.session.load_savefile(savefile) is False
        assert self.session.neighbourhood is None
        assert set(self.session.map.modal_filters) == {self.top}

    def test_load_resets_history(self):
        savefile = self.session.to_savefile()
        self.session.delete_modal_filter(self.top)
        self.session.load_savefile(savefile)
        assert not self.session.map.edit_log.can_undo
        assert not self.session.map.edit_log.can_redo
        assert set(self.session.map.modal_filters) == {self.top}

    def test_malformed_savefile_changes_nothing(self):
        savefile = self.session.to_savefile()
        savefile["features"][0]["properties"]["filter_kind"] = "drawbridge"
        neighbourhood = self.session.neighbourhood
        version = self.session.map.version

        with pytest.raises(MalformedSavefile):
            self.session.load_savefile(savefile)
        assert self.session.neighbourhood is neighbourhood
        assert self.session.map.version == version
        assert self.session.map.edit_log.can_undo


class TestSessionRegistry:
    """Tests for SessionRegistry."""

    def test_add_and_get(self):
        registry = SessionRegistry(max_sessions=4)
        session = registry.add(LTNSession(grid_map()))
        assert registry.get(session.id) is session
        assert registry.get("missing") is None
        assert len(registry) == 1

    def test_least_recently_used_is_evicted(self):
        registry = SessionRegistry(max_sessions=2)
        a = registry.add(LTNSession(grid_map()))
        b = registry.add(LTNSession(grid_map()))
        registry.get(a.id)
        c = registry.add(LTNSession(grid_map()))

        assert registry.get(b.id) is None
        assert registry.get(a.id) is a
        assert registry.get(c.id) is c

    def test_remove(self):
        registry = SessionRegistry()
        session = registry.add(LTNSession(grid_map()))
        assert registry.remove(session.id) is True
        assert registry.remove(session.id) is False
