from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

SNAPSHOT_COUNTERS: tuple[str, ...] = (
    "submissions_total",
    "submissions_cleared_total",
    "submissions_invalid_total",
    "submissions_rejected_total",
    "submissions_bypassed_total",
    "webhooks_total",
    "webhooks_rejected_total",
    "webhook_persist_failures_total",
)


def _p95(samples: list[int]) -> int:
    if not samples:
        return 0
    ordered = sorted(samples)
    return ordered[int(0.95 * (len(ordered) - 1))]


@dataclass
class MetricsCollector:
    """In-process counters for one relay instance, reset on restart."""

    counters: Counter[str] = field(default_factory=Counter)
    submission_latencies_ms: list[int] = field(default_factory=list)

    def increment(self, name: str, value: int = 1) -> None:
        self.counters[name] += value

    def observe_latency(self, value_ms: int) -> None:
        self.submission_latencies_ms.append(value_ms)

    def snapshot(self) -> dict[str, Any]:
        snapshot: dict[str, Any] = {name: self.counters.get(name, 0) for name in SNAPSHOT_COUNTERS}
        snapshot["submission_latency_p95_ms"] = _p95(self.submission_latencies_ms)
        return snapshot
