"""
Planning sessions.

An LTNSession pairs one MapModel with at most one active Neighbourhood and
exposes every host-facing operation. All operations on a session run under
its lock, so edits never interleave with reads of derived views.
"""

import logging
import threading
import uuid
from collections import OrderedDict
from typing import Optional

from shapely.geometry import LineString, Point, Polygon

from ltn.core.errors import (
    InvalidBoundary,
    InvalidRoad,
    MalformedSavefile,
    NoNeighbourhood,
)
from ltn.services.cells.cell_partitioner import Cell, compute_cells
from ltn.services.neighbourhood.neighbourhood import Neighbourhood, classify
from ltn.services.network.filters import FilterKind, ModalFilter, TravelMode
from ltn.services.network.map_model import MapModel
from ltn.services.routing.router import RouteComparison, compare_route
from ltn.services.savefile import savefile_codec
from ltn.services.shortcuts.shortcut_finder import ShortcutPath, Shortcuts

logger = logging.getLogger(__name__)


class LTNSession:
    """
    One map being edited, plus the neighbourhood currently selected on it.

    The neighbourhood is absent until set, replaced wholesale when the
    boundary changes and cleared when a savefile without a boundary is
    loaded. Shortcuts are memoised until the filters or the boundary change.
    """

    def __init__(
        self,
        map_model: MapModel,
        name: Optional[str] = None,
        savefile_tolerance: float = savefile_codec.DEFAULT_MATCH_TOLERANCE,
    ):
        self.id = str(uuid.uuid4())[:8]
        self.name = name
        self.map = map_model
        self.neighbourhood: Optional[Neighbourhood] = None
        self.savefile_tolerance = savefile_tolerance
        self.lock = threading.RLock()
        self._shortcuts: dict[TravelMode, Shortcuts] = {}

    # ------------------------------------------------------------------
    # Neighbourhood
    # ------------------------------------------------------------------

    def set_neighbourhood(self, boundary: Polygon) -> Neighbourhood:
        """Select a new neighbourhood. A rejected boundary keeps the old one."""
        with self.lock:
            self.neighbourhood = classify(self.map, boundary)
            self._shortcuts.clear()
            return self.neighbourhood

    def unset_neighbourhood(self) -> None:
        with self.lock:
            self.neighbourhood = None
            self._shortcuts.clear()

    def require_neighbourhood(self) -> Neighbourhood:
        if self.neighbourhood is None:
            raise NoNeighbourhood()
        return self.neighbourhood

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def _check_eligible(self, road_id: int) -> None:
        neighbourhood = self.require_neighbourhood()
        self.map.get_road(road_id)
        if road_id not in neighbourhood.interior_roads:
            raise InvalidRoad(road_id, "is not inside the neighbourhood")

    def add_modal_filter(
        self, road_id: int, kind: FilterKind, percent_along: Optional[float] = None
    ) -> ModalFilter:
        with self.lock:
            self._check_eligible(road_id)
            return self.map.add_modal_filter(road_id, kind, percent_along)

    def add_modal_filter_at(self, point: Point, kind: FilterKind) -> int:
        with self.lock:
            neighbourhood = self.require_neighbourhood()
            return self.map.add_modal_filter_at(point, kind, neighbourhood.interior_roads)

    def add_many_modal_filters(self, line: LineString, kind: FilterKind) -> list[int]:
        with self.lock:
            neighbourhood = self.require_neighbourhood()
            return self.map.add_many_modal_filters(line, kind, neighbourhood.interior_roads)

    def delete_modal_filter(self, road_id: int) -> bool:
        with self.lock:
            return self.map.delete_modal_filter(road_id)

    def undo(self) -> bool:
        with self.lock:
            return self.map.undo()

    def redo(self) -> bool:
        with self.lock:
            return self.map.redo()

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def cells(self, mode: TravelMode = TravelMode.DRIVING) -> list[Cell]:
        with self.lock:
            return compute_cells(self.map, self.require_neighbourhood(), mode)

    def shortcuts(self, mode: TravelMode = TravelMode.DRIVING) -> Shortcuts:
        """All shortcuts, recomputed only after filters or the boundary change."""
        with self.lock:
            neighbourhood = self.require_neighbourhood()
            cached = self._shortcuts.get(mode)
            if cached is None or cached.version != self.map.version:
                cached = Shortcuts(self.map, neighbourhood, mode)
                self._shortcuts[mode] = cached
            return cached

    def shortcuts_crossing(
        self, road_id: int, mode: TravelMode = TravelMode.DRIVING
    ) -> list[ShortcutPath]:
        with self.lock:
            self.map.get_road(road_id)
            return self.shortcuts(mode).subset(road_id)

    def compare_route(
        self, pt1: Point, pt2: Point, mode: TravelMode = TravelMode.DRIVING
    ) -> RouteComparison:
        with self.lock:
            return compare_route(self.map, pt1, pt2, mode)

    # ------------------------------------------------------------------
    # Savefiles
    # ------------------------------------------------------------------

    def to_savefile(self) -> dict:
        with self.lock:
            return savefile_codec.encode(self.map, self.neighbourhood, self.map.projection)

    def load_savefile(self, collection: dict) -> bool:
        """
        Replace filters and neighbourhood from a savefile.

        Everything is decoded and validated before anything changes, so a
        MalformedSavefile leaves the session as it was.

        Returns:
            True if the savefile had a neighbourhood boundary
        """
        with self.lock:
            savefile = savefile_codec.decode(
                self.map,
                collection,
                projection=self.map.projection,
                tolerance=self.savefile_tolerance,
            )

            neighbourhood = None
            if savefile.boundary is not None:
                try:
                    neighbourhood = classify(self.map, savefile.boundary)
                except InvalidBoundary as e:
                    raise MalformedSavefile(str(e))

            self.map.replace_modal_filters(savefile.filters)
            self.neighbourhood = neighbourhood
            self._shortcuts.clear()
            logger.info(
                "Session %s loaded savefile (filters=%d boundary=%s)",
                self.id,
                len(savefile.filters),
                neighbourhood is not None,
            )
            return neighbourhood is not None


class SessionRegistry:
    """In-memory sessions, evicting the least recently used past a limit."""

    def __init__(self, max_sessions: int = 32):
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, LTNSession] = OrderedDict()
        self._lock = threading.Lock()

    def add(self, session: LTNSession) -> LTNSession:
        with self._lock:
            self._sessions[session.id] = session
            while len(self._sessions) > self.max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.info("Evicted session %s", evicted)
        logger.info("Created session %s (%s)", session.id, session.name or "unnamed")
        return session

    def get(self, session_id: str) -> Optional[LTNSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions.move_to_end(session_id)
            return session

    def remove(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)


# Global registry instance - initialized lazily
_registry: Optional[SessionRegistry] = None
_registry_lock = threading.Lock()


def get_session_registry() -> SessionRegistry:
    """Get the global session registry."""
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                from ltn.core.config import get_settings

                _registry = SessionRegistry(max_sessions=get_settings().max_sessions)
    return _registry


def reset_session_registry() -> None:
    """Drop all sessions (useful for testing)."""
    global _registry
    with _registry_lock:
        _registry = None
