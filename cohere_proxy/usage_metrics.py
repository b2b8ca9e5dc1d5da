"""In-memory usage counters for realtime usage reporting."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Mapping, Optional


class RequestTracker:
    """Track a single request lifecycle for in-memory counters.

    ``finish`` may be called from several exit paths; only the first call
    counts.
    """

    def __init__(self, counters: "UsageCounters") -> None:
        self._counters = counters
        self._finished = False
        self.streamed = False
        self.upstream_error = False
        self.usage: Optional[Mapping[str, int]] = None

    def mark_streaming(self) -> None:
        self.streamed = True

    def mark_upstream_error(self) -> None:
        self.upstream_error = True

    def record_usage(self, usage: Optional[Mapping[str, int]]) -> None:
        self.usage = usage

    @property
    def finished(self) -> bool:
        return self._finished

    def finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        self._counters.finish_request(self)


@dataclass
class UsageCounters:
    """Thread-safe counters for request lifecycle tracking."""

    _lock: Lock = field(default_factory=Lock, repr=False)
    _started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    _received: int = 0
    _served: int = 0
    _ongoing: int = 0
    _streamed: int = 0
    _upstream_errors: int = 0
    _prompt_tokens: int = 0
    _completion_tokens: int = 0

    def start_request(self) -> RequestTracker:
        with self._lock:
            self._received += 1
            self._ongoing += 1
        return RequestTracker(self)

    def finish_request(self, tracker: RequestTracker) -> None:
        with self._lock:
            self._served += 1
            self._ongoing = max(self._ongoing - 1, 0)
            if tracker.streamed:
                self._streamed += 1
            if tracker.upstream_error:
                self._upstream_errors += 1
            if tracker.usage:
                self._prompt_tokens += int(tracker.usage.get("prompt_tokens", 0))
                self._completion_tokens += int(tracker.usage.get("completion_tokens", 0))

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "started_at": self._started_at,
                "received": self._received,
                "served": self._served,
                "ongoing": self._ongoing,
                "streamed": self._streamed,
                "upstream_errors": self._upstream_errors,
                "prompt_tokens": self._prompt_tokens,
                "completion_tokens": self._completion_tokens,
            }


USAGE_COUNTERS = UsageCounters()


def build_usage_snapshot() -> dict[str, Any]:
    """Build the usage payload with realtime counters."""
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "realtime": USAGE_COUNTERS.snapshot(),
    }
