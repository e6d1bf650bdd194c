from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import pytest

from expense_parser.logger import JsonFormatter, log_document_event
from expense_parser.metrics import JsonlMetricsSink, MetricsCollector
from expense_parser.review_queue import ReviewDecision
from expense_parser.service import ParseOutcome
from schemas.extracted_fields import ExtractedFields


def test_json_formatter_includes_document_event_fields() -> None:
    logger = logging.getLogger("test-observability")
    record = logger.makeRecord(
        name=logger.name,
        level=logging.INFO,
        fn="test",
        lno=1,
        msg="parsed %s",
        args=("doc-1",),
        exc_info=None,
        extra={
            "document_id": "doc-1",
            "method": "rules",
            "stage": "extraction",
            "latency_ms": 12,
            "outcome": "PREFILLED",
            "fields_detected": ["date", "total_amount"],
        },
    )
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "parsed doc-1"
    assert payload["level"] == "INFO"
    assert payload["document_id"] == "doc-1"
    assert payload["method"] == "rules"
    assert payload["latency_ms"] == 12
    assert payload["fields_detected"] == ["date", "total_amount"]


def test_json_formatter_includes_exception() -> None:
    try:
        raise ValueError("bad total")
    except ValueError:
        exc_info = sys.exc_info()
    record = logging.getLogger("test-observability").makeRecord(
        "test-observability", logging.ERROR, "test", 1, "failed", (), exc_info
    )
    payload = json.loads(JsonFormatter().format(record))
    assert "ValueError: bad total" in payload["exception"]


def test_log_document_event_omits_unset_keys(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("test-observability.events")
    with caplog.at_level(logging.INFO, logger=logger.name):
        log_document_event(logger, logging.INFO, "queued", document_id="doc-2", stage="review")
    record = caplog.records[-1]
    assert record.document_id == "doc-2"
    assert record.stage == "review"
    assert not hasattr(record, "outcome")


def _outcome(status: str, reasons: tuple[str, ...], fields: ExtractedFields, score: float) -> ParseOutcome:
    return ParseOutcome(
        document_id="doc",
        method="rules",
        fields=fields,
        violations=[],
        completeness_score=score,
        decision=ReviewDecision(status=status, reason_codes=reasons),
    )


def test_metrics_collector_snapshot_counts_review_outcomes() -> None:
    metrics = MetricsCollector()
    metrics.record_outcome(
        _outcome("PREFILLED", (), ExtractedFields(date="2024-01-15", total_amount=10.0), 0.5),
        latency_ms=50,
    )
    metrics.record_outcome(
        _outcome(
            "REVIEW_REQUIRED",
            ("insufficient_text", "low_completeness"),
            ExtractedFields(total_amount=12.8, estimated_fields=("total_amount",)),
            0.25,
        ),
        latency_ms=200,
    )
    metrics.record_read_failure()

    snapshot = metrics.snapshot()
    assert snapshot["documents_total"] == 3
    assert snapshot["prefilled_total"] == 1
    assert snapshot["review_required_total"] == 1
    assert snapshot["read_failures_total"] == 1
    assert snapshot["completeness_mean"] == 0.375
    assert snapshot["latency_p95_ms"] == 50
    assert snapshot["field_total_amount_detected_total"] == 2
    assert snapshot["field_date_detected_total"] == 1
    assert snapshot["field_supplier_name_detected_total"] == 0
    assert snapshot["field_total_amount_estimated_total"] == 1
    assert snapshot["reason_insufficient_text_total"] == 1
    assert snapshot["reason_low_completeness_total"] == 1


def test_metrics_collector_empty_snapshot() -> None:
    snapshot = MetricsCollector().snapshot()
    assert snapshot["documents_total"] == 0
    assert snapshot["latency_p95_ms"] == 0
    assert snapshot["completeness_mean"] == 0.0


def test_jsonl_metrics_sink_writes_event(tmp_path: Path) -> None:
    sink = JsonlMetricsSink(path=tmp_path / "logs" / "metrics.jsonl")
    sink.emit({"metric": "documents_total", "value": 1})
    lines = (tmp_path / "logs" / "metrics.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    payload = json.loads(lines[0])
    assert payload["metric"] == "documents_total"
    assert payload["value"] == 1
    assert "recorded_at_utc" in payload


def test_jsonl_metrics_sink_writes_one_line_per_snapshot_entry(tmp_path: Path) -> None:
    sink = JsonlMetricsSink(path=tmp_path / "metrics.jsonl")
    sink.emit_snapshot({"documents_total": 2, "completeness_mean": 0.5}, stage="batch")
    rows = [json.loads(line) for line in (tmp_path / "metrics.jsonl").read_text(encoding="utf-8").splitlines()]
    assert [(r["metric"], r["value"], r["stage"]) for r in rows] == [
        ("documents_total", 2, "batch"),
        ("completeness_mean", 0.5, "batch"),
    ]
