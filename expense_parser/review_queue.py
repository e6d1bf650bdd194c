from __future__ import annotations

import json
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from schemas.extracted_fields import ExtractedFields


@dataclass(frozen=True)
class ReviewDecision:
    """Every parsed document goes to the editable review form.

    ``PREFILLED`` means nothing was flagged; ``REVIEW_REQUIRED`` carries the
    reasons the user has to look at first.
    """

    status: str
    reason_codes: tuple[str, ...]


def decide_review_status(
    is_valid: bool,
    completeness_score: float,
    *,
    completeness_threshold: float = 0.5,
    extra_reasons: tuple[str, ...] = (),
) -> ReviewDecision:
    reasons: list[str] = list(extra_reasons)
    if not is_valid:
        reasons.append("validation_failed")
    if completeness_score < completeness_threshold:
        reasons.append("low_completeness")
    if reasons:
        return ReviewDecision(status="REVIEW_REQUIRED", reason_codes=tuple(reasons))
    return ReviewDecision(status="PREFILLED", reason_codes=tuple())


def route_to_review_queue(
    document_id: str,
    decision: ReviewDecision,
    fields: ExtractedFields,
    *,
    queue_dir: str | Path = "review_queue",
    source_file: str | Path | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    target_dir = Path(queue_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    moved_file = None
    if source_file is not None:
        source_path = Path(source_file)
        destination = target_dir / source_path.name
        if source_path.exists():
            shutil.move(str(source_path), str(destination))
            moved_file = str(destination)

    record: dict[str, Any] = {
        "document_id": document_id,
        "status": decision.status,
        "reason_codes": list(decision.reason_codes),
        "estimated_fields": list(fields.estimated_fields),
        "parsed": fields.to_legacy_dict(),
        "created_at_utc": datetime.now(timezone.utc).isoformat(),
        "source_file_moved_to": moved_file,
    }
    if metadata:
        record["metadata"] = metadata

    record_file = target_dir / f"{document_id}.json"
    record_file.write_text(json.dumps(record, ensure_ascii=False, indent=2), encoding="utf-8")
    return record
