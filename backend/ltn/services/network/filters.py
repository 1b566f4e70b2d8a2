"""
Modal filter kinds and the travel modes they restrict.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from ltn.core.errors import InvalidInput


class TravelMode(str, Enum):
    """Modes of travel that analysis can be run for."""
    DRIVING = "driving"
    CYCLING = "cycling"


class FilterKind(str, Enum):
    """Types of modal filter that can be placed on a road."""
    WALK_CYCLE_ONLY = "walk_cycle_only"  # Bollards, planters
    NO_ENTRY = "no_entry"  # Signed restriction, no physical barrier
    BUS_GATE = "bus_gate"  # Buses, taxis, cycles only
    SCHOOL_STREET = "school_street"  # Timed closure outside a school
    FULL_CLOSURE = "full_closure"  # Nothing on wheels gets through

    @classmethod
    def parse(cls, value: Any) -> "FilterKind":
        """Parse a stable string into a FilterKind."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise InvalidInput(f"Unknown filter kind: {value!r}", subject=value)

    def blocks(self, mode: TravelMode) -> bool:
        """Whether this kind of filter stops the given travel mode."""
        return mode in FILTER_BLOCKS[self]


FILTER_BLOCKS: dict[FilterKind, frozenset[TravelMode]] = {
    FilterKind.WALK_CYCLE_ONLY: frozenset({TravelMode.DRIVING}),
    FilterKind.NO_ENTRY: frozenset({TravelMode.DRIVING}),
    FilterKind.BUS_GATE: frozenset({TravelMode.DRIVING}),
    FilterKind.SCHOOL_STREET: frozenset({TravelMode.DRIVING}),
    FilterKind.FULL_CLOSURE: frozenset({TravelMode.DRIVING, TravelMode.CYCLING}),
}

DEFAULT_PERCENT_ALONG = 0.5


@dataclass(frozen=True)
class ModalFilter:
    """A filter placed somewhere along a road."""
    kind: FilterKind
    percent_along: float = DEFAULT_PERCENT_ALONG  # 0 = at src_i, 1 = at dst_i

    def __post_init__(self):
        if not isinstance(self.kind, FilterKind):
            object.__setattr__(self, "kind", FilterKind.parse(self.kind))
        try:
            percent = float(self.percent_along)
        except (TypeError, ValueError):
            raise InvalidInput(
                f"percent_along must be a number, got {self.percent_along!r}"
            )
        if not 0.0 <= percent <= 1.0:
            raise InvalidInput(f"percent_along must be within [0, 1], got {percent}")
        object.__setattr__(self, "percent_along", percent)

    def blocks(self, mode: TravelMode) -> bool:
        return self.kind.blocks(mode)

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "percent_along": self.percent_along}
