from collections import Counter
from dataclasses import dataclass, field


@dataclass
class MetricBucket:
    total: int = 0
    outcomes: Counter = field(default_factory=Counter)

    def record(self, outcome: str) -> None:
        self.total += 1
        self.outcomes[outcome] += 1

    def snapshot(self) -> dict[str, int]:
        return {"total": self.total, **dict(self.outcomes)}


class ClaimMetrics:
    """Outcome counters for reserve/purchase/release; conflicts show contention."""

    def __init__(self) -> None:
        self.buckets: dict[str, MetricBucket] = {}

    def record(self, verb: str, outcome: str) -> None:
        self.buckets.setdefault(verb, MetricBucket()).record(outcome)

    def snapshot(self) -> dict[str, dict[str, int]]:
        return {verb: bucket.snapshot() for verb, bucket in sorted(self.buckets.items())}


claim_metrics = ClaimMetrics()
