"""
Family Calendar Assistant — Unknown-sender notice limiter.

Strangers get at most one "private family bot" notice per window, so two
bots cannot ping-pong each other forever. In-memory only; a restart
simply allows one more notice.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable


class RejectionLimiter:
    """Bounded LRU of the last notice time per unknown sender."""

    def __init__(
        self,
        window_seconds: float = 300,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._window = window_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._last_notice: OrderedDict[str, float] = OrderedDict()

    def should_notify(self, sender: str) -> bool:
        """True (and record the notice) if *sender* has not been told recently."""
        now = self._clock()
        last = self._last_notice.get(sender)
        if last is not None and now - last <= self._window:
            return False

        self._last_notice[sender] = now
        self._last_notice.move_to_end(sender)
        while len(self._last_notice) > self._max_entries:
            self._last_notice.popitem(last=False)
        return True

    def __len__(self) -> int:
        return len(self._last_notice)
