"""
Progress reporting for evaluation runs.

Components take a plain ``(percent, message)`` callback. A ``ProgressBus``
hands out one such callback per evaluation stage and forwards the resulting
events to its subscribers (the terminal renderer of the CLI, test recorders).
"""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

ProgressCallback = Callable[[int, str], None]

# Display titles of the stages emitted by loaders and ErrorReport.evaluate
STAGE_TITLES: Dict[str, str] = {
    "ground truth": "load ground truth",
    "reconstruction": "load reconstruction",
    "extract": "extract labels",
    "ted": "tolerant edit distance",
    "correction": "correction",
    "voi_rand": "VOI / RAND",
    "detection": "detection overlap",
}


@dataclass(frozen=True)
class ProgressEvent:
    percent: int
    message: str
    stage: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def finished(self) -> bool:
        return self.percent >= 100

    @property
    def title(self) -> str:
        if self.stage is None:
            return "task"
        return STAGE_TITLES.get(self.stage, self.stage)


class ProgressObserver(Protocol):
    def on_progress(self, event: ProgressEvent) -> None:
        ...


class ProgressBus:
    """Fan progress events of every stage out to the subscribed observers."""

    def __init__(self) -> None:
        self._observers: List[object] = []

    def subscribe(self, observer) -> "ProgressBus":
        """Accepts a callable taking the event or an object with ``on_progress``."""
        self._observers.append(observer)
        return self

    def unsubscribe(self, observer) -> "ProgressBus":
        if observer in self._observers:
            self._observers.remove(observer)
        return self

    def emit(self, event: ProgressEvent) -> None:
        for observer in list(self._observers):
            handler = getattr(observer, "on_progress", observer)
            handler(event)

    def stage_callback(self, stage: str) -> ProgressCallback:
        def callback(percent: int, message: str) -> None:
            clamped = min(100, max(0, int(percent)))
            self.emit(ProgressEvent(percent=clamped, message=message, stage=stage))

        return callback


def noop_progress(_percent: int, _message: str) -> None:
    return None


def scaled_progress(progress: ProgressCallback, start: int, end: int) -> ProgressCallback:
    """Map a sub-step's 0..100 onto ``start..end`` of the enclosing stage."""
    span = end - start

    def callback(percent: int, message: str) -> None:
        progress(start + int(span * int(percent) / 100), message)

    return callback


class TerminalProgressObserver:
    """Single-line progress bar per stage, written to stderr."""

    def __init__(self, bar_width: int = 30, stream=None) -> None:
        self.bar_width = bar_width
        self.stream = stream or sys.stderr

    def on_progress(self, event: ProgressEvent) -> None:
        filled = self.bar_width * event.percent // 100
        bar = "#" * filled + "." * (self.bar_width - filled)
        self.stream.write(f"\r  {event.title:<24} [{bar}] {event.percent:3d}%  {event.message:<40}")
        if event.finished:
            self.stream.write("\n")
        self.stream.flush()


__all__ = [
    "ProgressCallback",
    "ProgressEvent",
    "ProgressObserver",
    "ProgressBus",
    "STAGE_TITLES",
    "TerminalProgressObserver",
    "noop_progress",
    "scaled_progress",
]
