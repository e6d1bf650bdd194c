from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

FIELD_NAMES: tuple[str, ...] = (
    "date",
    "total_amount",
    "invoice_number",
    "supplier_tax_id",
    "supplier_name",
    "tax_base",
    "tax_amount",
)

_LEGACY_KEYS: dict[str, str] = {
    "date": "fecha",
    "total_amount": "importe",
    "invoice_number": "numero",
    "supplier_tax_id": "cif_proveedor",
    "supplier_name": "nombre_proveedor",
    "tax_base": "base_imponible",
    "tax_amount": "iva",
}


class ExtractedFields(BaseModel):
    """Best-effort fields read from the text of an expense document.

    ``None`` means "not detected" and must be shown to the user as an empty
    input, never as zero.
    """

    model_config = ConfigDict(frozen=True)

    date: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    total_amount: float | None = Field(default=None, gt=0)
    invoice_number: str | None = Field(default=None, min_length=3, max_length=25)
    supplier_tax_id: str | None = Field(default=None, pattern=r"^[A-Z0-9]+$")
    supplier_name: str | None = Field(default=None, min_length=1)
    tax_base: float | None = Field(default=None, gt=0)
    tax_amount: float | None = Field(default=None, gt=0)
    raw_text: str = ""
    estimated_fields: tuple[str, ...] = ()

    @field_validator("date")
    @classmethod
    def _date_in_range(cls, value: str | None) -> str | None:
        if value is None:
            return value
        year, month, day = (int(part) for part in value.split("-"))
        if not (2000 <= year <= 2100 and 1 <= month <= 12 and 1 <= day <= 31):
            raise ValueError(f"date out of accepted range: {value}")
        return value

    @model_validator(mode="after")
    def _tax_below_total(self) -> "ExtractedFields":
        if (
            self.tax_amount is not None
            and self.total_amount is not None
            and self.tax_amount >= self.total_amount
        ):
            raise ValueError("tax_amount must be lower than total_amount")
        return self

    def detected_fields(self) -> tuple[str, ...]:
        return tuple(name for name in FIELD_NAMES if getattr(self, name) is not None)

    def to_legacy_dict(self) -> dict[str, Any]:
        """Shape consumed by the expense review form."""
        payload: dict[str, Any] = {
            legacy: getattr(self, name) for name, legacy in _LEGACY_KEYS.items()
        }
        payload["raw_text"] = self.raw_text
        return payload


class TaxBreakdownEntry(BaseModel):
    """One tax rate line, e.g. the separate 3%, 7% and 15% IGIC blocks of a Makro invoice."""

    model_config = ConfigDict(frozen=True)

    base: float = Field(gt=0)
    rate: float = Field(ge=0, le=100)
    amount: float = Field(gt=0)

    def to_legacy_dict(self) -> dict[str, float]:
        return {"base": self.base, "porcentaje": self.rate, "cuota": self.amount}


_LEGACY_CONTACT_KEYS: dict[str, str] = {
    "supplier_address": "direccion_proveedor",
    "supplier_postal_code": "codigo_postal_proveedor",
    "supplier_city": "ciudad_proveedor",
    "supplier_province": "provincia_proveedor",
    "supplier_phone": "telefono_proveedor",
    "supplier_email": "email_proveedor",
    "supplier_website": "web_proveedor",
}


class ModelExtractedFields(ExtractedFields):
    tax_rate: float | None = Field(default=None, ge=0, le=100)
    tax_breakdown: tuple[TaxBreakdownEntry, ...] = ()
    concept: str | None = None
    supplier_address: str | None = None
    supplier_postal_code: str | None = Field(default=None, pattern=r"^\d{5}$")
    supplier_city: str | None = None
    supplier_province: str | None = None
    supplier_phone: str | None = None
    supplier_email: str | None = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    supplier_website: str | None = None
    confidence: float = Field(default=0.0, ge=0, le=100)

    def to_legacy_dict(self) -> dict[str, Any]:
        payload = super().to_legacy_dict()
        payload["iva_porcentaje"] = self.tax_rate
        payload["desglose_impuestos"] = [entry.to_legacy_dict() for entry in self.tax_breakdown]
        payload["concepto"] = self.concept
        for name, legacy in _LEGACY_CONTACT_KEYS.items():
            payload[legacy] = getattr(self, name)
        payload["confidence"] = self.confidence
        return payload
