"""
Number parsing rules shared by the pricing models and the pricing engine.

parse_number() returns None for anything unusable (empty, garbage, NaN, inf)
so callers decide between "0" and "reject".
"""

import math
import re
from decimal import Decimal
from typing import Any, Optional


_DOT_DECIMAL_RE = re.compile(r"^-?\d+\.\d{1,2}$")


def finite_or_none(value: float) -> Optional[float]:
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def parse_number(raw: Any) -> Optional[float]:
    """
    Parse raw input; None when unusable.

    1. Has a comma      -> Brazilian: drop dots, comma becomes the decimal point
    2. digits.d / .dd   -> dot is the decimal point ("29.00", "123.4")
    3. anything else    -> dots are thousands separators ("2.970" -> 2970)
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, (int, float, Decimal)):
        return finite_or_none(float(raw))

    text = str(raw).strip()
    if text.upper().startswith("R$"):
        text = text[2:].strip()
    if not text:
        return None

    if "," in text:
        candidate = text.replace(".", "").replace(",", ".", 1)
    elif _DOT_DECIMAL_RE.match(text):
        candidate = text
    else:
        candidate = text.replace(".", "")

    try:
        return finite_or_none(float(candidate))
    except ValueError:
        return None


def number_or_zero(raw: Any) -> float:
    value = parse_number(raw)
    return value if value is not None else 0.0
