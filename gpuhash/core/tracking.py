"""
Process-wide acquisition/release counters for device resources.

Used to verify that no context or buffer outlives its request.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace


@dataclass
class ResourceCounters:
    """Counts of device resources acquired and released."""

    contexts_opened: int = 0
    contexts_closed: int = 0
    buffers_allocated: int = 0
    buffers_released: int = 0

    @property
    def open_contexts(self) -> int:
        """Get the number of contexts not yet closed."""
        return self.contexts_opened - self.contexts_closed

    @property
    def live_buffers(self) -> int:
        """Get the number of buffers not yet released."""
        return self.buffers_allocated - self.buffers_released

    @property
    def balanced(self) -> bool:
        """Check that every acquisition has a matching release."""
        return self.open_contexts == 0 and self.live_buffers == 0


_counters = ResourceCounters()
_lock = threading.Lock()


def record(event: str) -> None:
    """Increment one counter by name."""
    with _lock:
        setattr(_counters, event, getattr(_counters, event) + 1)


def resource_counters() -> ResourceCounters:
    """Get a snapshot of the counters."""
    with _lock:
        return replace(_counters)


def reset_resource_counters() -> None:
    """Zero all counters."""
    global _counters

    with _lock:
        _counters = ResourceCounters()
