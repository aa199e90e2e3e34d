"""Aggregation of usage rows into per-provider and per-request-type totals."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List

from ..core.models import UsageRecord


@dataclass
class UsageTotals:
    requests: int = 0
    tokens: int = 0
    audio_seconds: int = 0

    def add(self, record: UsageRecord) -> None:
        self.requests += record.request_count or 0
        self.tokens += record.token_count or 0
        self.audio_seconds += record.audio_seconds or 0


@dataclass
class UsageSummary:
    total: UsageTotals = field(default_factory=UsageTotals)
    by_provider: Dict[str, UsageTotals] = field(default_factory=dict)
    by_request_type: Dict[str, UsageTotals] = field(default_factory=dict)
    records: List[UsageRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": asdict(self.total),
            "by_provider": {k: asdict(v) for k, v in self.by_provider.items()},
            "by_request_type": {k: asdict(v) for k, v in self.by_request_type.items()},
            "records": [r.to_dict() for r in self.records],
        }


def summarize_usage(records: Iterable[UsageRecord]) -> UsageSummary:
    summary = UsageSummary()
    for record in records:
        summary.records.append(record)
        summary.total.add(record)
        summary.by_provider.setdefault(record.provider, UsageTotals()).add(record)
        summary.by_request_type.setdefault(record.request_type, UsageTotals()).add(record)
    return summary
