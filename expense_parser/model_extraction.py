from __future__ import annotations

import json
import math
import re
from typing import Any, Protocol

from expense_parser.config import Settings, normalize_tax_id
from expense_parser.extractor import format_date
from expense_parser.money import parse_money
from schemas.extracted_fields import ModelExtractedFields, TaxBreakdownEntry


class TextModelClient(Protocol):
    def complete_json(self, text: str, model_name: str, prompt: str) -> str:
        """Return raw model output intended to be one JSON object."""


class ExtractionError(RuntimeError):
    def __init__(self, message: str, code: str = "extraction_failed") -> None:
        super().__init__(message)
        self.code = code


SYSTEM_PROMPT = (
    "Eres un experto en análisis de facturas españolas. Extraes información con "
    "máxima precisión. Los importes deben ser números decimales sin símbolos de "
    "moneda. Las fechas en formato YYYY-MM-DD. Responde solo con JSON."
)

USER_EXTRACTION_PROMPT = """Analiza el texto extraído de una factura española y devuelve un único objeto JSON.
Usa null para cualquier dato que no encuentres.

{
    "nombre_proveedor": "nombre de la empresa que emite la factura",
    "cif_proveedor": "CIF/NIF del proveedor, ej: B12345678",
    "direccion_proveedor": "dirección completa del proveedor",
    "codigo_postal_proveedor": "código postal de 5 dígitos",
    "ciudad_proveedor": "municipio o localidad",
    "provincia_proveedor": "provincia",
    "telefono_proveedor": "teléfono de contacto si aparece",
    "email_proveedor": "email de contacto si aparece",
    "web_proveedor": "página web si aparece",
    "fecha": "fecha de emisión YYYY-MM-DD",
    "numero": "número de factura completo",
    "concepto": "descripción breve de lo facturado",
    "base_imponible": número decimal,
    "iva_porcentaje": porcentaje de impuesto aplicado, ej: 21,
    "iva": importe decimal del impuesto,
    "importe": total a pagar,
    "desglose_impuestos": [
        {"base": 100.0, "porcentaje": 7, "cuota": 7.0}
    ],
    "confidence": confianza de 0 a 100
}

Si la factura aplica varios tipos de impuesto (por ejemplo IGIC al 3%, 7% y 15% en Makro),
incluye una entrada de desglose_impuestos por cada tipo."""

CORRECTIVE_PROMPT = (
    "Tu respuesta anterior no era JSON válido. Devuelve solo un objeto JSON "
    "válido, sin texto adicional."
)

_FENCE = re.compile(r"```(?:json)?\n?")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_TAX_ID_SHAPE = re.compile(r"^[A-Z0-9]+$")
_POSTAL_CODE = re.compile(r"^\d{5}$")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _parse_json_payload(raw_text: str) -> dict[str, Any]:
    cleaned = _FENCE.sub("", raw_text).strip()
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ExtractionError("Model returned invalid JSON", code="invalid_json") from exc
    if not isinstance(payload, dict):
        raise ExtractionError("Model output must be a JSON object", code="invalid_json_shape")
    return payload


class OpenAITextClient:
    def __init__(self, api_key: str) -> None:
        try:
            from openai import OpenAI
        except ImportError as exc:
            raise RuntimeError("openai package is required for model extraction") from exc
        self._client = OpenAI(api_key=api_key)

    def complete_json(self, text: str, model_name: str, prompt: str) -> str:
        response = self._client.chat.completions.create(
            model=model_name,
            response_format={"type": "json_object"},
            temperature=0.1,
            max_tokens=1000,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": f"{prompt}\n\nTEXTO DE LA FACTURA:\n{text}"},
            ],
        )
        content = response.choices[0].message.content
        if not content:
            raise ExtractionError("OpenAI returned empty response", code="empty_response")
        return content


def client_from_settings(settings: Settings) -> TextModelClient:
    if not settings.openai_api_key:
        raise ExtractionError("OPENAI_API_KEY is not configured", code="missing_api_key")
    return OpenAITextClient(api_key=settings.openai_api_key)


def _number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number: float | None = float(value)
        except OverflowError:
            return None
    else:
        number = parse_money(str(value))
    if number is None or not math.isfinite(number):
        return None
    return number


def _amount(value: Any) -> float | None:
    number = _number(value)
    if number is None or number <= 0:
        return None
    return number


def _text(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _date(value: Any) -> str | None:
    m = _ISO_DATE.match(_text(value) or "")
    if not m:
        return None
    return format_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))


def _tax_id(value: Any, own_tax_ids: frozenset[str]) -> str | None:
    raw = _text(value)
    if raw is None:
        return None
    candidate = normalize_tax_id(raw)
    if not _TAX_ID_SHAPE.match(candidate) or candidate in own_tax_ids:
        return None
    return candidate


def _invoice_number(value: Any) -> str | None:
    raw = _text(value)
    if raw is None or not 3 <= len(raw) <= 25:
        return None
    return raw


def _percentage(value: Any) -> float | None:
    number = _number(value)
    if number is None or not 0 <= number <= 100:
        return None
    return number


def _matching(value: Any, pattern: re.Pattern[str]) -> str | None:
    raw = _text(value)
    if raw is None or not pattern.match(raw):
        return None
    return raw


def _tax_breakdown(value: Any) -> tuple[TaxBreakdownEntry, ...]:
    if not isinstance(value, list):
        return ()
    entries: list[TaxBreakdownEntry] = []
    for raw in value:
        if not isinstance(raw, dict):
            continue
        base = _amount(raw.get("base"))
        rate = _percentage(raw.get("porcentaje"))
        amount = _amount(raw.get("cuota"))
        if base is None or rate is None or amount is None:
            continue
        entries.append(TaxBreakdownEntry(base=base, rate=rate, amount=amount))
    return tuple(entries)


def coerce_model_payload(
    payload: dict[str, Any],
    text: str,
    *,
    own_tax_ids: tuple[str, ...] = (),
) -> ModelExtractedFields:
    """Map the model's JSON onto the result schema, dropping values that fail its rules."""
    total = _amount(payload.get("importe"))
    tax = _amount(payload.get("iva"))
    if tax is not None and total is not None and tax >= total:
        tax = None
    return ModelExtractedFields(
        date=_date(payload.get("fecha")),
        total_amount=total,
        invoice_number=_invoice_number(payload.get("numero")),
        supplier_tax_id=_tax_id(payload.get("cif_proveedor"), frozenset(normalize_tax_id(v) for v in own_tax_ids)),
        supplier_name=_text(payload.get("nombre_proveedor")),
        tax_base=_amount(payload.get("base_imponible")),
        tax_amount=tax,
        raw_text=text,
        tax_rate=_percentage(payload.get("iva_porcentaje")),
        tax_breakdown=_tax_breakdown(payload.get("desglose_impuestos")),
        concept=_text(payload.get("concepto")),
        supplier_address=_text(payload.get("direccion_proveedor")),
        supplier_postal_code=_matching(payload.get("codigo_postal_proveedor"), _POSTAL_CODE),
        supplier_city=_text(payload.get("ciudad_proveedor")),
        supplier_province=_text(payload.get("provincia_proveedor")),
        supplier_phone=_text(payload.get("telefono_proveedor")),
        supplier_email=_matching(payload.get("email_proveedor"), _EMAIL),
        supplier_website=_text(payload.get("web_proveedor")),
        confidence=_percentage(payload.get("confidence")) or 0.0,
    )


def extract_with_model(
    text: str,
    *,
    client: TextModelClient,
    model_name: str = "gpt-4o",
    min_text_length: int = 50,
    own_tax_ids: tuple[str, ...] = (),
) -> ModelExtractedFields:
    if len(text.strip()) < min_text_length:
        raise ExtractionError(
            "Document text is too short; it is probably a scanned image without a text layer",
            code="insufficient_text",
        )

    first_text = client.complete_json(text, model_name, USER_EXTRACTION_PROMPT)
    try:
        payload = _parse_json_payload(first_text)
    except ExtractionError:
        corrective_text = client.complete_json(text, model_name, CORRECTIVE_PROMPT)
        payload = _parse_json_payload(corrective_text)
    return coerce_model_payload(payload, text, own_tax_ids=own_tax_ids)
