from __future__ import annotations

from typing import Any

from schemas.extracted_fields import FIELD_NAMES, ExtractedFields


def evaluate_consistency(
    fields: ExtractedFields,
    *,
    amount_tolerance: float = 0.01,
) -> list[dict[str, Any]]:
    violations: list[dict[str, Any]] = []

    if fields.total_amount is None:
        violations.append(
            {
                "code": "missing_total",
                "severity": "error",
                "message": "no total amount could be read from the document",
            }
        )
    elif fields.tax_base is not None and fields.tax_amount is not None:
        derived = {"tax_base", "tax_amount"}
        if not derived.issubset(fields.estimated_fields):
            computed_total = round(fields.tax_base + fields.tax_amount, 2)
            declared_total = round(fields.total_amount, 2)
            if abs(computed_total - declared_total) > amount_tolerance:
                violations.append(
                    {
                        "code": "amount_mismatch",
                        "severity": "error",
                        "message": "tax_base + tax_amount does not match total_amount",
                        "expected_total": computed_total,
                        "actual_total": declared_total,
                    }
                )

    if not (fields.invoice_number or fields.supplier_tax_id):
        violations.append(
            {
                "code": "missing_identifier",
                "severity": "warning",
                "message": "document should include invoice_number or supplier_tax_id",
            }
        )

    if fields.date is None:
        violations.append(
            {
                "code": "missing_date",
                "severity": "warning",
                "message": "no document date could be read",
            }
        )

    if fields.estimated_fields:
        violations.append(
            {
                "code": "estimated_values",
                "severity": "warning",
                "message": "some values come from low-confidence fallbacks",
                "fields": list(fields.estimated_fields),
            }
        )

    return violations


def completeness_score(fields: ExtractedFields) -> float:
    return round(len(fields.detected_fields()) / len(FIELD_NAMES), 4)


def validate_and_score(
    fields: ExtractedFields,
    *,
    amount_tolerance: float = 0.01,
) -> dict[str, Any]:
    violations = evaluate_consistency(fields, amount_tolerance=amount_tolerance)
    is_valid = not any(v["severity"] == "error" for v in violations)
    return {
        "fields": fields,
        "violations": violations,
        "completeness_score": completeness_score(fields),
        "is_valid": is_valid,
    }
