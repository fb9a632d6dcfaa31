from __future__ import annotations

from .cell import MAX_U64, ScalarCell
from .errors import CounterExhausted


class IdCounter:
    """Hands out strictly increasing identifiers from a scalar cell.

    The cell stores the next identifier to allocate. ``next`` persists the
    incremented value before returning the old one, so an id is never handed
    out twice, even across restarts.
    """

    def __init__(self, cell: ScalarCell) -> None:
        self._cell = cell

    def peek(self) -> int:
        """Return the id the next call to ``next`` will allocate."""
        current = self._cell.get()
        if current >= MAX_U64:
            raise CounterExhausted("identifier space exhausted")
        return current

    def reload(self) -> None:
        self._cell.reload()

    def next(self) -> int:
        return self._cell.set(self.peek() + 1)
