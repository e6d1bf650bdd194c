from __future__ import annotations

import pytest
from pydantic import ValidationError

from schemas.extracted_fields import ExtractedFields, ModelExtractedFields


def test_extracted_fields_are_immutable() -> None:
    fields = ExtractedFields(total_amount=10.0, raw_text="TOTAL 10,00")
    with pytest.raises(ValidationError):
        fields.total_amount = 12.0  # type: ignore[misc]


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("date", "1999-01-01"),
        ("date", "2024-13-01"),
        ("date", "15/01/2024"),
        ("total_amount", 0.0),
        ("tax_base", -5.0),
        ("invoice_number", "AB"),
        ("supplier_tax_id", "b-123"),
    ],
)
def test_extracted_fields_reject_out_of_contract_values(field: str, value: object) -> None:
    with pytest.raises(ValidationError):
        ExtractedFields(**{field: value})


def test_tax_amount_must_stay_below_total() -> None:
    with pytest.raises(ValidationError):
        ExtractedFields(total_amount=10.0, tax_amount=10.0)


def test_legacy_dict_uses_review_form_keys() -> None:
    fields = ExtractedFields(
        date="2024-01-15",
        total_amount=107.0,
        invoice_number="F-1",
        supplier_tax_id="B35123456",
        supplier_name="Canaragua",
        tax_base=100.0,
        tax_amount=7.0,
        raw_text="...",
    )
    assert fields.to_legacy_dict() == {
        "fecha": "2024-01-15",
        "importe": 107.0,
        "numero": "F-1",
        "cif_proveedor": "B35123456",
        "nombre_proveedor": "Canaragua",
        "base_imponible": 100.0,
        "iva": 7.0,
        "raw_text": "...",
    }
    assert fields.detected_fields() == (
        "date",
        "total_amount",
        "invoice_number",
        "supplier_tax_id",
        "supplier_name",
        "tax_base",
        "tax_amount",
    )


def test_model_fields_extend_legacy_dict() -> None:
    fields = ModelExtractedFields(total_amount=50.0, tax_rate=21, concept="Material", confidence=88)
    payload = fields.to_legacy_dict()
    assert payload["importe"] == 50.0
    assert payload["iva_porcentaje"] == 21
    assert payload["concepto"] == "Material"
    assert payload["confidence"] == 88
