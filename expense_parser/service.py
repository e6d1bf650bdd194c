from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from expense_parser.config import Settings
from expense_parser.extractor import DocumentFieldExtractor
from expense_parser.logger import log_document_event
from expense_parser.model_extraction import TextModelClient, extract_with_model
from expense_parser.review_queue import ReviewDecision, decide_review_status
from expense_parser.validation import validate_and_score
from schemas.extracted_fields import ExtractedFields

logger = logging.getLogger(__name__)

METHODS = ("rules", "model")


def has_extractable_text(text: str | None, min_length: int = 50) -> bool:
    return text is not None and len(text.strip()) >= min_length


@dataclass(frozen=True)
class ParseOutcome:
    document_id: str
    method: str
    fields: ExtractedFields
    violations: list[dict[str, Any]]
    completeness_score: float
    decision: ReviewDecision

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "document_id": self.document_id,
            "method": self.method,
            "parsed": self.fields.to_legacy_dict(),
            "fields": self.fields.model_dump(mode="json"),
            "violations": self.violations,
            "completeness_score": self.completeness_score,
            "review": {
                "status": self.decision.status,
                "reason_codes": list(self.decision.reason_codes),
            },
        }


def parse_document_text(
    text: str | None,
    *,
    extractor: DocumentFieldExtractor,
    settings: Settings,
    document_id: str | None = None,
    method: str = "rules",
    model_client: TextModelClient | None = None,
) -> ParseOutcome:
    """Single entry point for every caller that turns document text into review data.

    ``method="model"`` raises ``ExtractionError`` when the model pass cannot
    run; the rule-based pass never fails on content.
    """
    if method not in METHODS:
        raise ValueError(f"method must be one of: {', '.join(METHODS)}")
    doc_id = document_id or str(uuid4())
    started = time.perf_counter()
    text = text or ""

    extra_reasons: list[str] = []
    if method == "model":
        if model_client is None:
            raise ValueError("model_client is required when method='model'")
        fields: ExtractedFields = extract_with_model(
            text,
            client=model_client,
            model_name=settings.extraction_model,
            min_text_length=settings.min_text_length,
            own_tax_ids=settings.own_tax_ids,
        )
    else:
        fields = extractor.extract(text)
        if not has_extractable_text(text, settings.min_text_length):
            extra_reasons.append("insufficient_text")

    validation = validate_and_score(fields)
    decision = decide_review_status(
        is_valid=validation["is_valid"],
        completeness_score=validation["completeness_score"],
        completeness_threshold=settings.review_completeness_threshold,
        extra_reasons=tuple(extra_reasons),
    )

    log_document_event(
        logger,
        logging.INFO,
        "Parsed document text",
        document_id=doc_id,
        method=method,
        stage="extraction",
        outcome=decision.status,
        latency_ms=int((time.perf_counter() - started) * 1000),
        fields_detected=list(fields.detected_fields()),
    )
    return ParseOutcome(
        document_id=doc_id,
        method=method,
        fields=fields,
        violations=validation["violations"],
        completeness_score=validation["completeness_score"],
        decision=decision,
    )
