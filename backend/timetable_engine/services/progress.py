from __future__ import annotations

from threading import Lock
from typing import Callable

ProgressCallback = Callable[[float], None]


class ProgressTracker:
    """Monotonic 0..100 progress value readable from another thread."""

    def __init__(self, callback: ProgressCallback | None = None) -> None:
        self._value = 0.0
        self._lock = Lock()
        self._callback = callback

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def update(self, value: float) -> float:
        value = min(100.0, max(0.0, value))
        with self._lock:
            if value <= self._value:
                return self._value
            self._value = value
        if self._callback is not None:
            self._callback(value)
        return value

    def update_generation(self, generation: int, total_generations: int) -> float:
        return self.update(generation / max(1, total_generations) * 100.0)

    def complete(self) -> float:
        return self.update(100.0)
