from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from schemas.extracted_fields import FIELD_NAMES

if TYPE_CHECKING:
    from expense_parser.service import ParseOutcome


@dataclass
class MetricsCollector:
    """Batch counters for the review form: how many documents came out prefilled,
    why the rest need a human, and how often each field is read or guessed.
    """

    documents_total: int = 0
    read_failures_total: int = 0
    statuses: Counter[str] = field(default_factory=Counter)
    reasons: Counter[str] = field(default_factory=Counter)
    detected: Counter[str] = field(default_factory=Counter)
    estimated: Counter[str] = field(default_factory=Counter)
    completeness: list[float] = field(default_factory=list)
    latencies_ms: list[int] = field(default_factory=list)

    def record_outcome(self, outcome: ParseOutcome, latency_ms: int) -> None:
        self.documents_total += 1
        self.statuses[outcome.decision.status] += 1
        self.reasons.update(outcome.decision.reason_codes)
        self.detected.update(outcome.fields.detected_fields())
        self.estimated.update(outcome.fields.estimated_fields)
        self.completeness.append(outcome.completeness_score)
        self.latencies_ms.append(latency_ms)

    def record_read_failure(self) -> None:
        self.documents_total += 1
        self.read_failures_total += 1

    def snapshot(self) -> dict[str, Any]:
        p95 = 0
        if self.latencies_ms:
            ordered = sorted(self.latencies_ms)
            p95 = ordered[int(0.95 * (len(ordered) - 1))]
        mean_completeness = 0.0
        if self.completeness:
            mean_completeness = round(sum(self.completeness) / len(self.completeness), 4)

        snapshot: dict[str, Any] = {
            "documents_total": self.documents_total,
            "prefilled_total": self.statuses.get("PREFILLED", 0),
            "review_required_total": self.statuses.get("REVIEW_REQUIRED", 0),
            "read_failures_total": self.read_failures_total,
            "completeness_mean": mean_completeness,
            "latency_p95_ms": p95,
        }
        for name in FIELD_NAMES:
            snapshot[f"field_{name}_detected_total"] = self.detected.get(name, 0)
        for name, hits in sorted(self.estimated.items()):
            snapshot[f"field_{name}_estimated_total"] = hits
        for code, hits in sorted(self.reasons.items()):
            snapshot[f"reason_{code}_total"] = hits
        return snapshot


class JsonlMetricsSink:
    def __init__(self, path: str | Path = "logs/metrics.jsonl") -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, event: dict[str, Any]) -> None:
        payload = {
            "recorded_at_utc": datetime.now(timezone.utc).isoformat(),
            **event,
        }
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(payload, ensure_ascii=True) + "\n")

    def emit_snapshot(self, snapshot: dict[str, Any], *, stage: str) -> None:
        for metric, value in snapshot.items():
            self.emit({"metric": metric, "value": value, "stage": stage})
