"""
Error taxonomy for the LTN planner.

- InvalidInput: the caller asked for something that cannot be done (unknown
  id, degenerate geometry, point too far from the network). Recoverable.
- NoRoute: both endpoints are valid but disconnected. Expected, not a crash.
- MalformedSavefile: a savefile that cannot be applied to this map. Aborts
  only the load.
- InvariantViolation: the map data itself is inconsistent. Signals a bug
  upstream and is never silently tolerated.
"""

from typing import Any, Optional


class LTNError(Exception):
    """Base class for all planner errors."""


class InvalidInput(LTNError, ValueError):
    """A request referenced something unknown or geometrically unusable."""

    def __init__(self, message: str, subject: Optional[Any] = None):
        super().__init__(message)
        self.subject = subject


class InvalidRoad(InvalidInput):
    def __init__(self, road_id: Any, reason: str = "unknown road"):
        super().__init__(f"Road {road_id}: {reason}", subject=road_id)


class AlreadyFiltered(InvalidInput):
    def __init__(self, road_id: int):
        super().__init__(
            f"Road {road_id} already has this modal filter", subject=road_id
        )


class InvalidBoundary(InvalidInput):
    def __init__(self, reason: str):
        super().__init__(f"Invalid neighbourhood boundary: {reason}")


class UnsnappablePoint(InvalidInput):
    def __init__(self, point: Any, max_distance: float):
        super().__init__(
            f"No network within {max_distance:g}m of point {point}",
            subject=point,
        )


class NoNeighbourhood(InvalidInput):
    def __init__(self):
        super().__init__("No neighbourhood has been set")


class NoRoute(LTNError):
    """No path exists between two valid endpoints under the current filters."""

    def __init__(self, start: int, end: int, reason: str = "no route"):
        super().__init__(f"No route from intersection {start} to {end}: {reason}")
        self.start = start
        self.end = end


class MalformedSavefile(LTNError, ValueError):
    """The savefile is unreadable or inconsistent with the loaded map."""


class InvariantViolation(LTNError, RuntimeError):
    """Internal consistency check failed; indicates bad map data or a bug."""
