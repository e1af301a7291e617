from __future__ import annotations

import time
from typing import Callable


class DedupWindow:
    """Remembers which sale ids were just notified.

    A purchase usually writes a sale row and, in the same transaction, its first
    payment row. The payment must not produce a second message, so payment
    processing checks this window before notifying. Entries expire after
    `window_seconds` and are dropped lazily when looked up.
    """

    def __init__(self, window_seconds: float = 120.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._marked: dict[int, float] = {}

    def __len__(self) -> int:
        return len(self._marked)

    def mark(self, sale_id: int | None) -> None:
        if not sale_id:
            return
        self._marked[int(sale_id)] = self._clock()

    def recently_notified(self, sale_id: int | None) -> bool:
        if not sale_id:
            return False
        key = int(sale_id)
        ts = self._marked.get(key)
        if ts is None:
            return False
        if self._clock() - ts > self.window_seconds:
            del self._marked[key]
            return False
        return True

    def prune(self) -> int:
        """Drops every expired entry; returns how many were removed."""

        now = self._clock()
        expired = [k for k, ts in self._marked.items() if now - ts > self.window_seconds]
        for k in expired:
            del self._marked[k]
        return len(expired)
