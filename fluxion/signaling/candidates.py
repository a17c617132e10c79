"""
Candidate Queue

Network candidates routinely arrive before the offer/answer round trip
completes. Applying a candidate before the remote description exists is
invalid, so early candidates are parked here and flushed, in arrival
order and exactly once, right after the remote description is set.
Once flushed, the queue stays empty and later candidates bypass it.
"""

import logging
from collections import deque
from typing import Deque, List

logger = logging.getLogger(__name__)


class CandidateQueue:
    """FIFO of not-yet-applicable remote candidates."""

    def __init__(self):
        self._pending: Deque[dict] = deque()
        self._flushed = False
        self.total_queued = 0

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def flushed(self) -> bool:
        """True once drain() has been called."""
        return self._flushed

    def push(self, candidate: dict):
        """Park a candidate until the remote description is known."""
        self._pending.append(candidate)
        self.total_queued += 1
        logger.debug(f"Queued remote candidate ({len(self._pending)} pending)")

    def drain(self) -> List[dict]:
        """
        Remove and return every queued candidate in arrival order.

        Each candidate is returned by exactly one drain() call.
        """
        drained = list(self._pending)
        self._pending.clear()
        self._flushed = True
        if drained:
            logger.debug(f"Flushing {len(drained)} queued candidate(s)")
        return drained

    def clear(self):
        """Discard pending candidates (session closed)."""
        self._pending.clear()
