from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable

from expense_parser.config import DEFAULT_OWN_TAX_IDS, Settings, normalize_tax_id
from expense_parser.money import find_money_tokens, parse_money, round2
from expense_parser.suppliers import (
    DEFAULT_KNOWN_SUPPLIERS,
    KnownSupplier,
    load_known_suppliers,
    match_known_supplier,
)
from schemas.extracted_fields import ExtractedFields

logger = logging.getLogger(__name__)

DateHandler = Callable[[re.Match[str]], str | None]

SPANISH_MONTHS: tuple[tuple[str, int], ...] = (
    ("ENERO", 1),
    ("FEBRERO", 2),
    ("MARZO", 3),
    ("ABRIL", 4),
    ("MAYO", 5),
    ("JUNIO", 6),
    ("JULIO", 7),
    ("AGOSTO", 8),
    ("SEPTIEMBRE", 9),
    ("OCTUBRE", 10),
    ("NOVIEMBRE", 11),
    ("DICIEMBRE", 12),
)
_MONTH_NUMBERS = dict(SPANISH_MONTHS)
_MONTH_ALTERNATION = "|".join(name.capitalize() for name, _ in SPANISH_MONTHS)

# Amounts with no stated total are capped here so stray numbers are not read as tax.
TAX_CEILING_WITHOUT_TOTAL = 10000.0
FALLBACK_TOTAL_MINIMUM = 1.0


def format_date(year: int, month: int, day: int) -> str | None:
    if 1 <= day <= 31 and 1 <= month <= 12 and 2000 <= year <= 2100:
        return f"{year:04d}-{month:02d}-{day:02d}"
    return None


def _numeric_date(match: re.Match[str]) -> str | None:
    parts = re.sub(r"[.\-]", "/", match.group(1)).split("/")
    if len(parts) != 3:
        return None
    if len(parts[0]) == 4:
        year, month, day = int(parts[0]), int(parts[1]), int(parts[2])
    else:
        day, month, year = int(parts[0]), int(parts[1]), int(parts[2])
        if year < 100:
            year += 2000
    return format_date(year, month, day)


def _long_form_date(match: re.Match[str]) -> str | None:
    month = _MONTH_NUMBERS.get(match.group(2).upper())
    if month is None:
        return None
    return format_date(int(match.group(3)), month, int(match.group(1)))


_NUMERIC_DATE = r"(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4})"

_DATE_PATTERNS: tuple[tuple[re.Pattern[str], DateHandler], ...] = (
    (
        re.compile(
            r"(?:Fecha\s*(?:de\s*)?(?:Factura|Emisión|Emision|documento|expedición|expedicion)?)"
            r"\s*[:.]?\s*" + _NUMERIC_DATE,
            re.IGNORECASE,
        ),
        _numeric_date,
    ),
    (
        re.compile(r"(?:F\.\s*(?:Factura|Emisión))\s*[:.]?\s*" + _NUMERIC_DATE, re.IGNORECASE),
        _numeric_date,
    ),
    (re.compile(r"(?:Fecha)\s*[:.]?\s*" + _NUMERIC_DATE, re.IGNORECASE), _numeric_date),
    (
        re.compile(
            r"(\d{1,2})\s*de\s*(" + _MONTH_ALTERNATION + r")\s*(?:de|del)?\s*(\d{4})",
            re.IGNORECASE,
        ),
        _long_form_date,
    ),
    (re.compile(r"^(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{4})", re.MULTILINE), _numeric_date),
    (re.compile(r"(\d{4}[/\-.]\d{1,2}[/\-.]\d{1,2})"), _numeric_date),
    (re.compile(r"(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{4})"), _numeric_date),
)
_BARE_DATE_PATTERN = _DATE_PATTERNS[-1][0]

_TAX_ID_PATTERNS: tuple[re.Pattern[str], ...] = (
    # CIF
    re.compile(r"\b([ABCDEFGHJKLMNPQRSUVW][\-\s]?[0-9]{7}[0-9A-J]?)\b", re.IGNORECASE | re.ASCII),
    # NIF
    re.compile(r"\b([0-9]{8}[A-Z])\b", re.IGNORECASE | re.ASCII),
    # NIE
    re.compile(r"\b([XYZ][0-9]{7}[A-Z])\b", re.IGNORECASE | re.ASCII),
)

_LEGAL_SUFFIX = r"(?:S\.?L\.?U?\.?|S\.?A\.?|S\.?Coop\.?)?"
_SUPPLIER_NAME_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"(?:Razón\s*Social|Razon\s*Social|Nombre|Empresa|Emisor)\s*[:.]?\s*"
        r"([A-ZÁÉÍÓÚÑ][A-Za-záéíóúñ \t,.]+" + _LEGAL_SUFFIX + r")",
        re.IGNORECASE,
    ),
    # Optional \r for CRLF line endings.
    re.compile(r"^([A-ZÁÉÍÓÚÑ][A-ZÁÉÍÓÚÑ \t,.]{5,50}" + _LEGAL_SUFFIX + r")\r?$", re.MULTILINE),
)
_NON_NAME_PREFIX = re.compile(r"^(FACTURA|FECHA|TOTAL|IMPORTE|CLIENTE|DIRECCION)", re.IGNORECASE)

_AMOUNT = r"([\d.,]+)\s*€?"

_TOTAL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"TOTAL\s*(?:FACTURA|A\s*PAGAR|IMPORTE|GENERAL|EUR|€)?\s*[:.]?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"IMPORTE\s*TOTAL\s*[:.]?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"TOTAL\s*[:.]?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"A\s*PAGAR\s*[:.]?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"SUMA\s*TOTAL\s*[:.]?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"IMPORTE\s*[:.]?\s*" + _AMOUNT + r"\s*$", re.IGNORECASE | re.MULTILINE),
)

_BASE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"BASE\s*IMPONIBLE\s*[:.]?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"BASE\s*[:.]?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"SUBTOTAL\s*[:.]?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"NETO\s*[:.]?\s*" + _AMOUNT, re.IGNORECASE),
)

_TAX_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"IVA\s*(?:\d+\s*%?)?\s*[:.]?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"(?:CUOTA\s*)?I\.?V\.?A\.?\s*[:.]?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"IMPUESTO\s*[:.]?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"IGIC\s*(?:\d+\s*%?)?\s*[:.]?\s*" + _AMOUNT, re.IGNORECASE),
)

_INVOICE_TOKEN = r"([A-Z0-9][A-Za-z0-9_\-/]{2,20})"
_INVOICE_NUMBER_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"(?:Factura|Fac\.?|Fra\.?)\s*(?:N[ºo°]?|Num\.?|Número)?\s*[:.]?\s*" + _INVOICE_TOKEN, re.IGNORECASE),
    re.compile(r"N[ºo°]\s*(?:de\s*)?(?:Factura|Fac\.?|Fra\.?)\s*[:.]?\s*" + _INVOICE_TOKEN, re.IGNORECASE),
    re.compile(r"Invoice\s*(?:No\.?|Number)?\s*[:.]?\s*" + _INVOICE_TOKEN, re.IGNORECASE),
    re.compile(r"(?:Documento|Doc\.?)\s*[:.]?\s*([A-Z]{1,3}[\-/]?\d{2,}[\-/]?\d*)", re.IGNORECASE),
    re.compile(r"\b([A-Z]{1,3}[\-/]?\d{4,}[\-/]?\d*)\b"),
    re.compile(r"(?:Factura|Nº)\s*[:.]?\s*(\d{6,12})", re.IGNORECASE),
)
_DATE_SHAPED = re.compile(r"^\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}$")
_CIF_SHAPED = re.compile(r"^[A-Z]\d{8}$")


@dataclass(frozen=True)
class ExtractorConfig:
    own_tax_ids: tuple[str, ...] = DEFAULT_OWN_TAX_IDS
    known_suppliers: tuple[KnownSupplier, ...] = DEFAULT_KNOWN_SUPPLIERS
    default_tax_rate: float = 0.21

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExtractorConfig":
        suppliers = DEFAULT_KNOWN_SUPPLIERS
        if settings.known_suppliers_path:
            suppliers = load_known_suppliers(settings.known_suppliers_path)
        return cls(
            own_tax_ids=settings.own_tax_ids,
            known_suppliers=suppliers,
            default_tax_rate=settings.default_tax_rate,
        )


@dataclass(frozen=True)
class Amounts:
    total: float | None = None
    base: float | None = None
    tax: float | None = None
    estimated: tuple[str, ...] = ()


def _positive_or_none(value: float) -> float | None:
    return value if value > 0 else None


def _first_amount(
    text: str,
    patterns: tuple[re.Pattern[str], ...],
    accept: Callable[[float], bool],
) -> float | None:
    for pattern in patterns:
        m = pattern.search(text)
        if not m:
            continue
        value = parse_money(m.group(1))
        if value is not None and accept(value):
            return value
    return None


class DocumentFieldExtractor:
    """Reads invoice fields from the text layer of an expense document.

    Each pass walks an ordered pattern table and stops at the first usable
    match, so results are deterministic for a given text. Nothing here
    raises for odd input: a field that cannot be read is left as ``None``.
    """

    def __init__(self, config: ExtractorConfig | None = None) -> None:
        self.config = config or ExtractorConfig()
        self._own_tax_ids = frozenset(normalize_tax_id(v) for v in self.config.own_tax_ids)

    def extract_date(self, text: str) -> tuple[str | None, bool]:
        """Return ``(YYYY-MM-DD, estimated)``; ``estimated`` is set for the bare-token fallback."""
        for pattern, handler in _DATE_PATTERNS:
            m = pattern.search(text)
            if not m:
                continue
            value = handler(m)
            if value is not None:
                return value, pattern is _BARE_DATE_PATTERN
        return None, False

    def extract_supplier_tax_id(self, text: str) -> str | None:
        for pattern in _TAX_ID_PATTERNS:
            for m in pattern.finditer(text):
                candidate = normalize_tax_id(m.group(1))
                if candidate not in self._own_tax_ids:
                    return candidate
        return None

    def extract_supplier_name(self, text: str) -> str | None:
        known = match_known_supplier(text, self.config.known_suppliers)
        if known:
            return known
        for pattern in _SUPPLIER_NAME_PATTERNS:
            for m in pattern.finditer(text):
                name = m.group(1).strip()
                if len(name) > 3 and not _NON_NAME_PREFIX.match(name):
                    return name
        return None

    def extract_amounts(self, text: str) -> Amounts:
        total = _first_amount(text, _TOTAL_PATTERNS, lambda v: v > 0)
        base = _first_amount(text, _BASE_PATTERNS, lambda v: v > 0)
        ceiling = total if total is not None else TAX_CEILING_WITHOUT_TOTAL
        tax = _first_amount(text, _TAX_PATTERNS, lambda v: 0 < v < ceiling)
        estimated: list[str] = []

        if total is None and base is not None and tax is not None:
            total = round2(base + tax)

        if total is not None and base is None:
            base = _positive_or_none(round2(total / (1 + self.config.default_tax_rate)))
            tax = _positive_or_none(round2(total - (base or 0.0)))
            estimated.extend(name for name, value in (("tax_base", base), ("tax_amount", tax)) if value is not None)

        if total is None:
            amounts = [
                value
                for value in (parse_money(token) for token in find_money_tokens(text))
                if value is not None and value > FALLBACK_TOTAL_MINIMUM
            ]
            if amounts:
                total = max(amounts)
                estimated.append("total_amount")

        if tax is not None and total is not None and tax >= total:
            tax = None
            if "tax_amount" in estimated:
                estimated.remove("tax_amount")

        return Amounts(total=total, base=base, tax=tax, estimated=tuple(estimated))

    def extract_invoice_number(self, text: str) -> str | None:
        for pattern in _INVOICE_NUMBER_PATTERNS:
            m = pattern.search(text)
            if not m:
                continue
            candidate = m.group(1).strip()
            if not 3 <= len(candidate) <= 25:
                continue
            if _DATE_SHAPED.match(candidate) or _CIF_SHAPED.match(candidate):
                continue
            return candidate
        return None

    def extract(self, raw_text: str | None) -> ExtractedFields:
        text = "" if raw_text is None else str(raw_text)

        date, date_estimated = self.extract_date(text)
        amounts = self.extract_amounts(text)
        estimated = (("date",) if date_estimated else ()) + amounts.estimated

        fields = ExtractedFields(
            date=date,
            total_amount=amounts.total,
            invoice_number=self.extract_invoice_number(text),
            supplier_tax_id=self.extract_supplier_tax_id(text),
            supplier_name=self.extract_supplier_name(text),
            tax_base=amounts.base,
            tax_amount=amounts.tax,
            raw_text=text,
            estimated_fields=estimated,
        )
        logger.debug(
            "Extracted fields=%s estimated=%s",
            ",".join(fields.detected_fields()) or "none",
            ",".join(estimated) or "none",
        )
        return fields


_DEFAULT_EXTRACTOR = DocumentFieldExtractor()


def extract_fields(raw_text: str | None, config: ExtractorConfig | None = None) -> ExtractedFields:
    if config is not None:
        return DocumentFieldExtractor(config).extract(raw_text)
    return _DEFAULT_EXTRACTOR.extract(raw_text)
