from __future__ import annotations

import json
from pathlib import Path

from expense_parser.review_queue import ReviewDecision, decide_review_status, route_to_review_queue
from schemas.extracted_fields import ExtractedFields


def test_decide_review_status_requires_review_on_invalid() -> None:
    decision = decide_review_status(is_valid=False, completeness_score=1.0)
    assert decision.status == "REVIEW_REQUIRED"
    assert decision.reason_codes == ("validation_failed",)


def test_decide_review_status_requires_review_on_low_completeness() -> None:
    decision = decide_review_status(is_valid=True, completeness_score=0.4, completeness_threshold=0.5)
    assert decision.status == "REVIEW_REQUIRED"
    assert decision.reason_codes == ("low_completeness",)


def test_decide_review_status_keeps_extra_reasons_first() -> None:
    decision = decide_review_status(
        is_valid=False,
        completeness_score=0.0,
        extra_reasons=("insufficient_text",),
    )
    assert decision.reason_codes == ("insufficient_text", "validation_failed", "low_completeness")


def test_decide_review_status_prefilled_when_valid_and_complete() -> None:
    decision = decide_review_status(is_valid=True, completeness_score=0.5)
    assert decision == ReviewDecision(status="PREFILLED", reason_codes=())


def test_route_to_review_queue_writes_record_and_moves_file(tmp_path: Path) -> None:
    src = tmp_path / "ticket.txt"
    src.write_text("TOTAL 12,80", encoding="utf-8")
    queue = tmp_path / "review_queue"
    fields = ExtractedFields(total_amount=12.8, raw_text="TOTAL 12,80", estimated_fields=("total_amount",))

    record = route_to_review_queue(
        document_id="doc-9",
        decision=ReviewDecision(status="REVIEW_REQUIRED", reason_codes=("validation_failed",)),
        fields=fields,
        queue_dir=queue,
        source_file=src,
        metadata={"completeness_score": 0.1429},
    )

    assert record["source_file_moved_to"] == str(queue / "ticket.txt")
    assert (queue / "ticket.txt").exists()
    assert not src.exists()

    payload = json.loads((queue / "doc-9.json").read_text(encoding="utf-8"))
    assert payload["status"] == "REVIEW_REQUIRED"
    assert payload["reason_codes"] == ["validation_failed"]
    assert payload["estimated_fields"] == ["total_amount"]
    assert payload["parsed"]["importe"] == 12.8
    assert payload["parsed"]["fecha"] is None
    assert payload["metadata"] == {"completeness_score": 0.1429}


def test_route_to_review_queue_without_source_file(tmp_path: Path) -> None:
    record = route_to_review_queue(
        document_id="doc-10",
        decision=ReviewDecision(status="PREFILLED", reason_codes=()),
        fields=ExtractedFields(),
        queue_dir=tmp_path / "queue",
    )
    assert record["source_file_moved_to"] is None
    assert "metadata" not in record
    assert (tmp_path / "queue" / "doc-10.json").exists()
