from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Context, Decimal

_STRIP = re.compile(r"[€$\s]")
_SPANISH_THOUSANDS = re.compile(r"^\d{1,3}(?:\.\d{3})*,\d{2}$")
_COMMA_DECIMAL = re.compile(r"^\d+,\d{2}$")
_US_THOUSANDS = re.compile(r"^\d{1,3}(?:,\d{3})*\.\d{2}$")
_DOT_DECIMAL = re.compile(r"^\d+\.\d{2}$")
# Leading numeric prefix, the way a lenient float parser reads "1.234.567" as 1.234.
_LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)")
_MONEY_TOKEN = re.compile(r"\d{1,3}(?:[.,]\d{3})*[.,]\d{2}")

_CENT = Decimal("0.01")
# Wide enough to quantize any finite float to the cent.
_WIDE_CONTEXT = Context(prec=400)


def parse_money(token: str | None) -> float | None:
    """Parse an amount written as ``1.234,56``, ``1234,56``, ``1,234.56`` or ``1234.56``.

    Returns ``None`` when the token carries no number at all.
    """
    if not token:
        return None
    clean = _STRIP.sub("", token)

    if _SPANISH_THOUSANDS.match(clean):
        value = float(clean.replace(".", "").replace(",", "."))
    elif _COMMA_DECIMAL.match(clean):
        value = float(clean.replace(",", "."))
    elif _US_THOUSANDS.match(clean):
        value = float(clean.replace(",", ""))
    elif _DOT_DECIMAL.match(clean):
        value = float(clean)
    else:
        m = _LEADING_NUMBER.match(clean.replace(",", ".", 1))
        if not m:
            return None
        value = float(m.group(0))
    return value if math.isfinite(value) else None


def round2(value: float) -> float:
    if not math.isfinite(value):
        return value
    return float(Decimal(repr(value)).quantize(_CENT, rounding=ROUND_HALF_UP, context=_WIDE_CONTEXT))


def find_money_tokens(text: str) -> list[str]:
    return _MONEY_TOKEN.findall(text)
