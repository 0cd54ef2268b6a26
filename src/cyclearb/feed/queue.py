"""
Bounded, coalescing queue of pending edge updates.

The feed writes into the queue at its own cadence; the exchange graph
drains it once at the start of every evaluation pass.
"""

import logging
import threading
from collections import OrderedDict

from cyclearb.core.types import RateUpdate


logger = logging.getLogger(__name__)


class PendingUpdateQueue:
    """
    Thread-safe pending update queue keyed by directed edge.

    - A newer update for an edge already queued replaces it and moves
      the edge to the back.
    - When full, a new edge key evicts the least recently updated edge.
    - Producers never block; lock hold time is O(1) per put and
      O(pending) per drain.
    """

    __slots__ = ("_max_size", "_pending", "_lock", "_evicted", "_coalesced")

    def __init__(self, max_size: int) -> None:
        """
        Initialize queue.

        Args:
            max_size: Maximum distinct edges held at once.
        """
        if max_size < 1:
            raise ValueError(f"max_size must be positive, got {max_size}")
        self._max_size = max_size
        self._pending: OrderedDict[tuple[str, str], RateUpdate] = OrderedDict()
        self._lock = threading.Lock()
        self._evicted = 0
        self._coalesced = 0

    def put(self, update: RateUpdate) -> bool:
        """
        Queue an update.

        Args:
            update: Normalized update.

        Returns:
            False if an older queued edge had to be evicted to make room.
        """
        key = update.key
        with self._lock:
            if key in self._pending:
                self._pending[key] = update
                self._pending.move_to_end(key)
                self._coalesced += 1
                return True

            evicted = False
            if len(self._pending) >= self._max_size:
                dropped_key, _ = self._pending.popitem(last=False)
                self._evicted += 1
                evicted = True
                logger.debug(f"Pending queue full, evicted {dropped_key[0]}->{dropped_key[1]}")

            self._pending[key] = update
            return not evicted

    def drain(self) -> list[RateUpdate]:
        """
        Remove and return all queued updates, least recently updated first.
        """
        with self._lock:
            updates = list(self._pending.values())
            self._pending.clear()
        return updates

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def max_size(self) -> int:
        """Queue capacity."""
        return self._max_size

    @property
    def evicted(self) -> int:
        """Edges dropped because the queue was full."""
        return self._evicted

    @property
    def coalesced(self) -> int:
        """Updates that replaced an already queued edge."""
        return self._coalesced
