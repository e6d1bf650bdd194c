from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class KnownSupplier:
    name: str
    patterns: tuple[str, ...]


def _entry(name: str, *patterns: str) -> KnownSupplier:
    return KnownSupplier(name=name, patterns=patterns)


# Order matters: the first entry with a matching pattern wins.
DEFAULT_KNOWN_SUPPLIERS: tuple[KnownSupplier, ...] = (
    _entry("Makro Autoservicio Mayorista", "MAKRO", "AUTOSERVICIO MAYORISTA"),
    _entry("Mercadona S.A.", "MERCADONA"),
    _entry("Endesa Energía", "ENDESA", "ENERGIA XXI"),
    _entry("Vodafone España", "VODAFONE"),
    _entry("Telefónica de España", "MOVISTAR", "TELEFONICA", "TELEFÓNICA"),
    _entry("Amazon EU Sarl", "AMAZON"),
    _entry("Cencosu (SPAR)", "CENCOSU", "SPAR GRAN CANARIA"),
    _entry("Disa", "DISA PENINSULA", "DISA RED", "DISA"),
    _entry("Aldi Supermercados", "ALDI"),
    _entry("Lidl Supermercados", "LIDL"),
    _entry("Canaragua", "CANARAGUA"),
    _entry("Carrefour", "CARREFOUR"),
    _entry("Alcampo", "ALCAMPO", "AUCHAN"),
    _entry("El Corte Inglés", "EL CORTE INGLES", "CORTE INGLÉS"),
    _entry("Iberdrola", "IBERDROLA"),
    _entry("Naturgy", "NATURGY", "GAS NATURAL"),
    _entry("Orange España", "ORANGE"),
    _entry("Cash & Carry", "CASH & CARRY", "CASH AND CARRY"),
    _entry("Costco Wholesale", "COSTCO"),
    _entry("Consum Cooperativa", "CONSUM"),
    _entry("HiperDino", "HIPERDINO", "DINOSOL"),
    _entry("Covirán", "COVIRAN", "COVIRÁN"),
    _entry("Ahorramás", "AHORRAMÁS", "AHORRAMAS"),
    _entry("Bricomart", "BRICOMART", "BRICODEPOT"),
    _entry("Leroy Merlin", "LEROY MERLIN"),
    _entry("MediaMarkt", "MEDIAMARKT", "MEDIA MARKT"),
    _entry("Decathlon", "DECATHLON"),
    _entry("IKEA", "IKEA"),
    _entry("Inditex", "ZARA", "INDITEX"),
    _entry("Correos", "CORREOS"),
    _entry("Repsol", "REPSOL"),
    _entry("Cepsa", "CEPSA"),
    _entry("BP", "BP ESTACION", "BP STATION"),
    _entry("Shell", "SHELL"),
)


def _parse_entry(raw: Any, index: int) -> KnownSupplier:
    if not isinstance(raw, dict):
        raise ValueError(f"Supplier entry #{index} must be an object")
    name = raw.get("name")
    patterns = raw.get("patterns")
    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"Supplier entry #{index} needs a non-empty name")
    if not isinstance(patterns, list) or not patterns:
        raise ValueError(f"Supplier entry #{index} needs a non-empty patterns list")
    cleaned = tuple(str(p).strip().upper() for p in patterns if str(p).strip())
    if not cleaned:
        raise ValueError(f"Supplier entry #{index} has only blank patterns")
    return KnownSupplier(name=name.strip(), patterns=cleaned)


def load_known_suppliers(path: str | Path) -> tuple[KnownSupplier, ...]:
    """Read an ordered supplier table: ``[{"name": ..., "patterns": [...]}, ...]``."""
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError("Known supplier table must be a JSON list")
    return tuple(_parse_entry(raw, idx) for idx, raw in enumerate(payload))


def match_known_supplier(text: str, suppliers: tuple[KnownSupplier, ...]) -> str | None:
    upper = text.upper()
    for supplier in suppliers:
        if any(pattern in upper for pattern in supplier.patterns):
            return supplier.name
    return None
