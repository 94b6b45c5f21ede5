"""Pending-change buffer."""
import logging
from typing import Optional

from ..errors import StagingFullError
from ..interpreter.schema import InterfaceConfig, RouteConfig, StagedEntry

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 64


class StagingBuffer:
    """Two FIFO lists of pending changes sharing one capacity.

    Interfaces and routes are kept apart so commit can apply every
    interface before any route; order within each list is staging order.
    Not thread-safe: the dispatcher serializes access with its lock.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError(f"Staging capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.interfaces: list[InterfaceConfig] = []
        self.routes: list[RouteConfig] = []

    def __len__(self) -> int:
        return len(self.interfaces) + len(self.routes)

    def __bool__(self) -> bool:
        return len(self) > 0

    def add(self, entry: StagedEntry) -> None:
        """Append an entry.

        Raises:
            StagingFullError: Buffer already holds `capacity` entries
        """
        if len(self) >= self.capacity:
            raise StagingFullError(self.capacity)
        if isinstance(entry, InterfaceConfig):
            self.interfaces.append(entry)
        elif isinstance(entry, RouteConfig):
            self.routes.append(entry)
        else:
            raise TypeError(f"Cannot stage {type(entry).__name__}")

    def drain(self) -> tuple[list[InterfaceConfig], list[RouteConfig]]:
        """Return every entry and leave the buffer empty."""
        interfaces, routes = self.interfaces, self.routes
        self.interfaces, self.routes = [], []
        return interfaces, routes

    def clear(self) -> int:
        """Drop every entry; returns how many were dropped."""
        count = len(self)
        self.interfaces.clear()
        self.routes.clear()
        return count

    def entries(self, limit: Optional[int] = None) -> list[StagedEntry]:
        """Pending entries in apply order."""
        ordered: list[StagedEntry] = [*self.interfaces, *self.routes]
        return ordered if limit is None else ordered[:limit]
