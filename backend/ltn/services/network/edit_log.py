"""
Edit history for modal filter placement.

The log never patches state incrementally. The live filter set is always
whatever replaying the first `cursor` commands over the baseline produces, so
undo and redo are just cursor moves followed by a replay.
"""

from dataclasses import dataclass
from typing import Optional, Union

from ltn.services.network.filters import ModalFilter


@dataclass(frozen=True)
class SetFilter:
    """Put a filter on a road, or clear it when modal_filter is None."""
    road: int
    modal_filter: Optional[ModalFilter]


@dataclass(frozen=True)
class SetManyFilters:
    """A batch of SetFilter commands undone and redone as one step."""
    commands: tuple[SetFilter, ...]


Command = Union[SetFilter, SetManyFilters]


def apply_command(filters: dict[int, ModalFilter], command: Command) -> None:
    """Apply a command to a filter set in place."""
    if isinstance(command, SetManyFilters):
        for sub in command.commands:
            apply_command(filters, sub)
        return

    if command.modal_filter is None:
        filters.pop(command.road, None)
    else:
        filters[command.road] = command.modal_filter


class EditLog:
    """Append-only command list with an undo/redo cursor."""

    def __init__(self, baseline: Optional[dict[int, ModalFilter]] = None):
        self._baseline: dict[int, ModalFilter] = dict(baseline or {})
        self._commands: list[Command] = []
        self._cursor = 0

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def commands(self) -> tuple[Command, ...]:
        return tuple(self._commands)

    @property
    def baseline(self) -> dict[int, ModalFilter]:
        return dict(self._baseline)

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._commands)

    def __len__(self) -> int:
        return len(self._commands)

    def record(self, command: Command) -> None:
        """Append a command, discarding anything that was undone."""
        del self._commands[self._cursor:]
        self._commands.append(command)
        self._cursor += 1

    def undo(self) -> bool:
        if not self.can_undo:
            return False
        self._cursor -= 1
        return True

    def redo(self) -> bool:
        if not self.can_redo:
            return False
        self._cursor += 1
        return True

    def replay(self) -> dict[int, ModalFilter]:
        """Rebuild the filter set from the baseline up to the cursor."""
        filters = dict(self._baseline)
        for command in self._commands[:self._cursor]:
            apply_command(filters, command)
        return filters

    def reset(self, baseline: dict[int, ModalFilter]) -> None:
        """Start a fresh history from a new baseline."""
        self._baseline = dict(baseline)
        self._commands.clear()
        self._cursor = 0
