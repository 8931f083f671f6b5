"""Rolling observation history and recent-findings feed.

The evaluator is stateless; these containers hold the state around it. A
live feed records every tick into a HistoryStore and hands `snapshot()` to
`evaluate`, so the window is never read while it is being appended to.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Iterable

from core.anomaly.errors import MalformedInputError
from core.types import Finding, Observation

DEFAULT_HISTORY_SIZE = 100
DEFAULT_FEED_SIZE = 50


class HistoryWindow:
    """Bounded, insertion-ordered window of observations for one instrument."""

    def __init__(self, maxlen: int = DEFAULT_HISTORY_SIZE) -> None:
        if maxlen < 1:
            raise ValueError(f"maxlen must be >= 1, got {maxlen}")
        self._items: deque[Observation] = deque(maxlen=maxlen)

    @property
    def maxlen(self) -> int:
        return self._items.maxlen or 0

    def append(self, observation: Observation) -> None:
        self._items.append(observation)

    def extend(self, observations: Iterable[Observation]) -> None:
        self._items.extend(observations)

    def snapshot(self) -> tuple[Observation, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)


class HistoryStore:
    """Thread-safe per-instrument history windows."""

    def __init__(self, maxlen: int = DEFAULT_HISTORY_SIZE) -> None:
        self._maxlen = maxlen
        self._windows: dict[str, HistoryWindow] = {}
        self._lock = threading.Lock()

    def record(self, instrument: str, observation: Observation) -> int:
        """Append an observation and return the window's new length.

        Raises:
            MalformedInputError: If instrument is blank
        """
        if not isinstance(instrument, str) or not instrument.strip():
            raise MalformedInputError("instrument", "instrument must be a non-empty string")
        with self._lock:
            window = self._windows.get(instrument)
            if window is None:
                window = HistoryWindow(self._maxlen)
                self._windows[instrument] = window
            window.append(observation)
            return len(window)

    def snapshot(self, instrument: str) -> tuple[Observation, ...]:
        with self._lock:
            window = self._windows.get(instrument)
            return window.snapshot() if window is not None else ()

    def instruments(self) -> list[str]:
        with self._lock:
            return sorted(self._windows)

    def clear(self, instrument: str | None = None) -> None:
        with self._lock:
            if instrument is None:
                self._windows.clear()
            else:
                self._windows.pop(instrument, None)


class AnomalyFeed:
    """Newest-first buffer of recent findings across instruments."""

    def __init__(self, maxlen: int = DEFAULT_FEED_SIZE) -> None:
        self._items: deque[Finding] = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def publish(self, findings: Iterable[Finding]) -> None:
        # Within one batch the first finding ends up first in the feed.
        with self._lock:
            for finding in reversed(list(findings)):
                self._items.appendleft(finding)

    def recent(self, limit: int | None = None) -> list[Finding]:
        with self._lock:
            items = list(self._items)
        return items if limit is None else items[:limit]

    def __len__(self) -> int:
        return len(self._items)
