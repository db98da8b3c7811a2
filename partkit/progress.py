from __future__ import annotations

import queue
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

from .errors import Cancelled


@dataclass(frozen=True)
class ProgressEvent:
    phase: str
    processed_bytes: int
    total_bytes: int
    part_index: int
    part_total: int
    message: str = ""

    def to_dict(self) -> Dict:
        return {
            "phase": self.phase,
            "processedBytes": self.processed_bytes,
            "totalBytes": self.total_bytes,
            "partIndex": self.part_index,
            "partTotal": self.part_total,
            "message": self.message,
        }


_CLOSED = object()


class Subscription:
    """Ordered view of a reporter's events, fed through a thread-safe queue."""

    def __init__(self, reporter: "ProgressReporter"):
        self._reporter = reporter
        self._queue: "queue.Queue" = queue.Queue()
        self.closed = False

    def _push(self, item) -> None:
        self._queue.put(item)

    def get(self, timeout: Optional[float] = None) -> Optional[ProgressEvent]:
        """Next event, or None once the reporter is closed.

        Raises queue.Empty when ``timeout`` elapses first.
        """
        if self.closed:
            return None
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            self.closed = True
            return None
        return item

    def drain(self) -> List[ProgressEvent]:
        events: List[ProgressEvent] = []
        while not self.closed:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                break
            if item is _CLOSED:
                self.closed = True
                break
            events.append(item)
        return events

    def __iter__(self) -> Iterator[ProgressEvent]:
        while True:
            ev = self.get()
            if ev is None:
                return
            yield ev

    def unsubscribe(self) -> None:
        self._reporter._remove(self)


class ProgressReporter:
    """Single-writer ordered broadcast of ProgressEvents.

    Subscribers only see events emitted after they subscribe; ``latest`` holds
    the most recent event. Emission order is preserved per subscriber.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._subs: List[Subscription] = []
        self._listeners: List[Callable[[ProgressEvent], None]] = []
        self._latest: Optional[ProgressEvent] = None
        self._closed = False

    def subscribe(self) -> Subscription:
        sub = Subscription(self)
        with self._lock:
            if self._closed:
                sub._push(_CLOSED)
            else:
                self._subs.append(sub)
        return sub

    def add_listener(self, fn: Callable[[ProgressEvent], None]) -> None:
        """Register a callback run synchronously on the emitting thread."""
        with self._lock:
            self._listeners.append(fn)

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subs:
                self._subs.remove(sub)
        sub._push(_CLOSED)

    @property
    def latest(self) -> Optional[ProgressEvent]:
        with self._lock:
            return self._latest

    def begin(self) -> None:
        """Start a new operation; byte counts may restart from zero."""
        with self._lock:
            self._latest = None

    def emit(
        self,
        phase: str,
        processed_bytes: int,
        total_bytes: int,
        part_index: int = 0,
        part_total: int = 0,
        message: str = "",
    ) -> ProgressEvent:
        if part_index < 0 or part_index > part_total:
            raise ValueError(f"part_index {part_index} outside [0, {part_total}]")
        ev = ProgressEvent(phase, int(processed_bytes), int(total_bytes), part_index, part_total, message)
        with self._lock:
            if self._closed:
                raise ValueError("progress reporter is closed")
            prev = self._latest
            if prev is not None and prev.phase == phase and ev.processed_bytes < prev.processed_bytes:
                raise ValueError(
                    f"processed bytes went backwards in phase {phase!r}: {prev.processed_bytes} -> {ev.processed_bytes}"
                )
            self._latest = ev
            for sub in self._subs:
                sub._push(ev)
            listeners = list(self._listeners)
        for fn in listeners:
            fn(ev)
        return ev

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subs = list(self._subs)
            self._subs.clear()
        for sub in subs:
            sub._push(_CLOSED)


class CancelToken:
    """Cooperative cancellation flag, checked by the engines between chunks."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self, *, phase: Optional[str] = None, part_index: Optional[int] = None) -> None:
        if self._event.is_set():
            raise Cancelled("operation cancelled", phase=phase, part_index=part_index)


__all__ = ["ProgressEvent", "ProgressReporter", "Subscription", "CancelToken"]
