from __future__ import annotations

import json
import logging

import pytest

from expense_parser.config import Settings
from expense_parser.extractor import DocumentFieldExtractor
from expense_parser.model_extraction import ExtractionError
from expense_parser.service import has_extractable_text, parse_document_text

INVOICE_TEXT = """FERRETERIA LA VEGA S.L.
CIF: B35123456
Factura Nº: FV-2024/0031
Fecha de factura: 12/03/2024
BASE IMPONIBLE: 200,00 €
IGIC 7%: 14,00 €
TOTAL FACTURA: 214,00 €
"""


class FakeModelClient:
    def __init__(self, payload: dict) -> None:
        self.payload = payload
        self.calls: list[str] = []

    def complete_json(self, text: str, model_name: str, prompt: str) -> str:
        self.calls.append(model_name)
        return json.dumps(self.payload)


def test_has_extractable_text() -> None:
    assert has_extractable_text("x" * 50)
    assert not has_extractable_text("  " + "x" * 49 + "  ")
    assert not has_extractable_text(None)
    assert has_extractable_text("", min_length=0)


def test_parse_document_text_prefills_complete_invoice(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO, logger="expense_parser.service")
    outcome = parse_document_text(
        INVOICE_TEXT,
        extractor=DocumentFieldExtractor(),
        settings=Settings(),
        document_id="doc-1",
    )

    assert outcome.method == "rules"
    assert outcome.decision.status == "PREFILLED"
    assert outcome.completeness_score == 1.0
    assert outcome.violations == []

    response = outcome.to_response()
    assert response["success"] is True
    assert response["document_id"] == "doc-1"
    assert response["parsed"]["importe"] == 214.0
    assert response["parsed"]["cif_proveedor"] == "B35123456"
    assert response["fields"]["estimated_fields"] == []
    assert response["review"] == {"status": "PREFILLED", "reason_codes": []}

    record = next(r for r in caplog.records if getattr(r, "document_id", None) == "doc-1")
    assert record.stage == "extraction"
    assert record.outcome == "PREFILLED"
    assert "total_amount" in record.fields_detected


def test_parse_document_text_flags_short_text_for_review() -> None:
    outcome = parse_document_text(
        "TOTAL: 121,00",
        extractor=DocumentFieldExtractor(),
        settings=Settings(),
    )
    assert outcome.fields.total_amount == 121.0
    assert outcome.decision.status == "REVIEW_REQUIRED"
    assert outcome.decision.reason_codes == ("insufficient_text", "low_completeness")
    assert outcome.document_id


def test_parse_document_text_rejects_unknown_method() -> None:
    with pytest.raises(ValueError, match="method"):
        parse_document_text("x", extractor=DocumentFieldExtractor(), settings=Settings(), method="ocr")


def test_parse_document_text_model_requires_client() -> None:
    with pytest.raises(ValueError, match="model_client"):
        parse_document_text(INVOICE_TEXT, extractor=DocumentFieldExtractor(), settings=Settings(), method="model")


def test_parse_document_text_model_method_uses_client() -> None:
    client = FakeModelClient(
        {
            "nombre_proveedor": "Ferreteria La Vega S.L.",
            "cif_proveedor": "B-35123456",
            "fecha": "2024-03-12",
            "numero": "FV-2024/0031",
            "base_imponible": 200,
            "iva_porcentaje": 7,
            "iva": 14,
            "importe": 214,
            "confidence": 92,
        }
    )
    outcome = parse_document_text(
        INVOICE_TEXT,
        extractor=DocumentFieldExtractor(),
        settings=Settings(extraction_model="gpt-4o-mini"),
        method="model",
        model_client=client,
    )
    assert client.calls == ["gpt-4o-mini"]
    assert outcome.method == "model"
    assert outcome.decision.status == "PREFILLED"
    assert outcome.to_response()["parsed"]["confidence"] == 92


def test_parse_document_text_model_method_raises_on_short_text() -> None:
    with pytest.raises(ExtractionError) as exc_info:
        parse_document_text(
            "TOTAL: 121,00",
            extractor=DocumentFieldExtractor(),
            settings=Settings(),
            method="model",
            model_client=FakeModelClient({}),
        )
    assert exc_info.value.code == "insufficient_text"
