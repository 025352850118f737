"""Per-action performance tracking."""

import time
from collections import defaultdict, deque
from collections.abc import Callable
from typing import Any

from chandler.actions.models import PerformanceSample
from chandler.observability.metrics import ACTION_CALLS, ACTION_LATENCY


class PerformanceTracker:
    """Keeps recent invocation samples per action.

    Samples older than ``retention_seconds`` are pruned on every write.
    Prometheus counters are updated alongside.
    """

    def __init__(
        self,
        retention_seconds: float = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._retention = retention_seconds
        self._clock = clock
        self._samples: dict[str, deque[PerformanceSample]] = defaultdict(deque)

    def record(
        self,
        action_id: str,
        duration_ms: float,
        success: bool,
        error: str | None = None,
    ) -> PerformanceSample:
        sample = PerformanceSample(
            action_id=action_id,
            duration_ms=duration_ms,
            success=success,
            timestamp=self._clock(),
            error=error,
        )
        samples = self._samples[action_id]
        samples.append(sample)
        self._prune(samples)

        ACTION_CALLS.labels(action_id=action_id, status="success" if success else "error").inc()
        ACTION_LATENCY.labels(action_id=action_id).observe(duration_ms / 1000)
        return sample

    def summary(self, action_id: str) -> dict[str, Any]:
        """Calls, success rate and latency figures for one action."""
        samples = self._samples.get(action_id)
        if samples:
            self._prune(samples)
        if not samples:
            return {
                "action_id": action_id,
                "calls": 0,
                "success_rate": 0.0,
                "avg_duration_ms": 0.0,
                "p95_duration_ms": 0.0,
                "last_error": None,
            }

        durations = sorted(s.duration_ms for s in samples)
        successes = sum(1 for s in samples if s.success)
        p95_index = max(0, int(len(durations) * 0.95) - 1)
        last_error = next((s.error for s in reversed(samples) if not s.success), None)
        return {
            "action_id": action_id,
            "calls": len(samples),
            "success_rate": successes / len(samples),
            "avg_duration_ms": sum(durations) / len(durations),
            "p95_duration_ms": durations[p95_index],
            "last_error": last_error,
        }

    def summaries(self) -> list[dict[str, Any]]:
        return [self.summary(action_id) for action_id in list(self._samples)]

    def forget(self, action_id: str) -> None:
        self._samples.pop(action_id, None)

    def clear(self) -> None:
        self._samples.clear()

    def _prune(self, samples: deque[PerformanceSample]) -> None:
        cutoff = self._clock() - self._retention
        while samples and samples[0].timestamp < cutoff:
            samples.popleft()
