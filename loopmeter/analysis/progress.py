"""Bounded progress channel and cooperative cancellation."""

from __future__ import annotations

import threading
from collections import deque

from loopmeter.analysis.models import ProgressEvent
from loopmeter.exceptions import AnalysisCancelled


def raise_if_cancelled(cancel: threading.Event | None) -> None:
    """Raise ``AnalysisCancelled`` if *cancel* has been set."""
    if cancel is not None and cancel.is_set():
        raise AnalysisCancelled("Analysis cancelled")


class ProgressChannel:
    """Fixed-capacity queue of progress events.

    When full, publishing drops the oldest event. Consumers poll with
    :meth:`drain` or :meth:`latest`; producers never block.

    Parameters
    ----------
    maxlen:
        Maximum number of undelivered events. Defaults to 64.
    """

    def __init__(self, maxlen: int = 64) -> None:
        if maxlen < 1:
            raise ValueError(f"maxlen must be positive, got {maxlen}")
        self._events: deque[ProgressEvent] = deque(maxlen=maxlen)
        self._lock = threading.Lock()
        self._dropped = 0

    def publish(self, stage: str, fraction: float, message: str = "") -> None:
        event = ProgressEvent(stage=stage, fraction=min(1.0, max(0.0, fraction)), message=message)
        with self._lock:
            if len(self._events) == self._events.maxlen:
                self._dropped += 1
            self._events.append(event)

    def drain(self) -> list[ProgressEvent]:
        """Return and remove all pending events, oldest first."""
        with self._lock:
            events = list(self._events)
            self._events.clear()
        return events

    def latest(self) -> ProgressEvent | None:
        with self._lock:
            return self._events[-1] if self._events else None

    @property
    def dropped(self) -> int:
        """Number of events discarded because the channel was full."""
        return self._dropped

    def __len__(self) -> int:
        return len(self._events)
