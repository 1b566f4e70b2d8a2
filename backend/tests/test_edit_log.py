"""
Tests for the edit history and undo/redo.
"""

import random

from ltn.services.network.edit_log import EditLog, SetFilter, SetManyFilters, apply_command
from ltn.services.network.filters import FilterKind, ModalFilter

from map_fixtures import grid_map


BOLLARD = ModalFilter(kind=FilterKind.WALK_CYCLE_ONLY)
GATE = ModalFilter(kind=FilterKind.BUS_GATE)


class TestEditLog:
    """Tests for EditLog on its own."""

    def test_empty_log(self):
        log = EditLog()
        assert log.replay() == {}
        assert not log.can_undo
        assert not log.can_redo
        assert log.undo() is False
        assert log.redo() is False

    def test_replay_over_baseline(self):
        log = EditLog({1: GATE})
        log.record(SetFilter(road=2, modal_filter=BOLLARD))
        log.record(SetFilter(road=1, modal_filter=None))
        assert log.replay() == {2: BOLLARD}

        log.undo()
        assert log.replay() == {1: GATE, 2: BOLLARD}
        log.undo()
        assert log.replay() == {1: GATE}
        assert not log.can_undo

    def test_record_discards_undone_commands(self):
        log = EditLog()
        log.record(SetFilter(road=1, modal_filter=BOLLARD))
        log.record(SetFilter(road=2, modal_filter=BOLLARD))
        log.undo()
        assert log.can_redo

        log.record(SetFilter(road=3, modal_filter=GATE))
        assert not log.can_redo
        assert len(log) == 2
        assert log.replay() == {1: BOLLARD, 3: GATE}

    def test_batch_is_one_step(self):
        log = EditLog()
        log.record(SetManyFilters(commands=(
            SetFilter(road=1, modal_filter=BOLLARD),
            SetFilter(road=2, modal_filter=BOLLARD),
        )))
        assert log.replay() == {1: BOLLARD, 2: BOLLARD}
        log.undo()
        assert log.replay() == {}

    def test_reset(self):
        log = EditLog()
        log.record(SetFilter(road=1, modal_filter=BOLLARD))
        log.reset({5: GATE})
        assert log.cursor == 0
        assert len(log) == 0
        assert log.replay() == {5: GATE}

    def test_apply_command_clearing_missing_road(self):
        filters = {}
        apply_command(filters, SetFilter(road=9, modal_filter=None))
        assert filters == {}


class TestHistoryReplay:
    """Undo and redo through a MapModel restore exact earlier filter sets."""

    def setup_method(self):
        self.map = grid_map()
        self.rng = random.Random(1234)

    def _random_edit(self):
        road_id = self.rng.choice(sorted(self.map.roads))
        action = self.rng.random()
        if action < 0.6:
            kind = self.rng.choice(list(FilterKind))
            percent = round(self.rng.random(), 3)
            if self.map.modal_filters.get(road_id) == ModalFilter(kind=kind, percent_along=percent):
                return False
            self.map.add_modal_filter(road_id, kind, percent)
            return True
        return self.map.delete_modal_filter(road_id)

    def test_undo_redo_walks_snapshots(self):
        snapshots = [dict(self.map.modal_filters)]
        while len(snapshots) < 40:
            if self._random_edit():
                snapshots.append(dict(self.map.modal_filters))

        for expected in reversed(snapshots[:-1]):
            assert self.map.undo() is True
            assert self.map.modal_filters == expected
        assert self.map.undo() is False

        for expected in snapshots[1:]:
            assert self.map.redo() is True
            assert self.map.modal_filters == expected
        assert self.map.redo() is False

    def test_mixed_sequence_matches_direct_mutation(self):
        # Shadow model: a plain stack of filter sets with a pointer
        states = [dict(self.map.modal_filters)]
        pointer = 0
        for _ in range(200):
            choice = self.rng.random()
            if choice < 0.2:
                moved = self.map.undo()
                assert moved == (pointer > 0)
                pointer = max(0, pointer - 1)
            elif choice < 0.35:
                moved = self.map.redo()
                assert moved == (pointer < len(states) - 1)
                pointer = min(len(states) - 1, pointer + 1)
            elif self._random_edit():
                del states[pointer + 1:]
                states.append(dict(self.map.modal_filters))
                pointer += 1
            assert self.map.modal_filters == states[pointer]
            assert self.map.modal_filters == self.map.edit_log.replay()

    def test_edit_after_undo_truncates_redo(self):
        roads = sorted(self.map.roads)
        self.map.add_modal_filter(roads[0], FilterKind.NO_ENTRY)
        self.map.add_modal_filter(roads[1], FilterKind.NO_ENTRY)
        self.map.undo()
        self.map.add_modal_filter(roads[2], FilterKind.NO_ENTRY)

        assert self.map.redo() is False
        assert set(self.map.modal_filters) == {roads[0], roads[2]}

    def test_version_bumps_on_every_change(self):
        versions = [self.map.version]
        self.map.add_modal_filter(0, FilterKind.NO_ENTRY)
        versions.append(self.map.version)
        self.map.undo()
        versions.append(self.map.version)
        self.map.redo()
        versions.append(self.map.version)
        assert versions == sorted(set(versions))

        # No-op edits leave the version alone
        version = self.map.version
        assert self.map.redo() is False
        assert self.map.delete_modal_filter(5) is False
        assert self.map.version == version
