"""Single-slot buffer for the most recently deleted alarm group."""

from __future__ import annotations

from collections.abc import Sequence

from .models import Alarm


class UndoBuffer:
    def __init__(self) -> None:
        self._group: tuple[Alarm, ...] | None = None

    def push(self, group: Sequence[Alarm]) -> None:
        """Replace any earlier group; an empty group clears the buffer."""
        self._group = tuple(group) or None

    def take(self) -> tuple[Alarm, ...] | None:
        group, self._group = self._group, None
        return group

    @property
    def pending(self) -> bool:
        return self._group is not None
