"""
Mileage Resale Platform - Pricing Engine
Cost, price, profit and margin for trips sold with supplier-bought miles.

NUMBER HANDLING:
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
Users type numbers in Brazilian format ("1.234,56") but pasted values and
stored JSON often use a dot decimal ("29.00"). parse_decimal() resolves this
with a fixed heuristic and never raises:

1. Has a comma      -> Brazilian: drop dots, comma becomes the decimal point
2. digits.d / .dd   -> dot is the decimal point ("29.00", "123.4")
3. anything else    -> dots are thousands separators ("2.970" -> 2970)

Known limitation: three digits after a dot without a comma is ALWAYS read as
thousands. "1.500" is 1500, never 1.5.

ROUNDING:
All calculations run on unrounded floats. round_money()/format_currency() are
for display only; never feed their output back into a calculation.
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, List

from number_parser import finite_or_none, parse_number
from pricing_models import (
    MarginScenario,
    MileagePricingInput,
    MileagePricingResult,
)

logger = logging.getLogger(__name__)


DEFAULT_MARGIN_SCENARIOS = (0, 15, 20, 25, 30)


# ============================================================================
# NUMBER PARSING
# ============================================================================

@dataclass
class ParsedNumber:
    """Result of a parse that lets the caller see whether input was usable."""
    value: float
    ok: bool
    raw: Any = None


def parse_decimal(raw: Any) -> float:
    """
    Parse a user-typed number. Returns 0.0 for empty or unparseable input.

    Examples:
        parse_decimal("1.234,56") -> 1234.56
        parse_decimal("29.00")    -> 29.0
        parse_decimal("2.970")    -> 2970.0
        parse_decimal("")         -> 0.0
    """
    value = parse_number(raw)
    return value if value is not None else 0.0


def parse_decimal_result(raw: Any) -> ParsedNumber:
    """
    Same rules as parse_decimal, but reports whether the input was usable.

    Empty input is ok=True with value 0 (nothing typed is not a typo).
    """
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return ParsedNumber(value=0.0, ok=True, raw=raw)

    value = parse_number(raw)
    if value is None:
        logger.warning(f"Could not parse number from {raw!r}, using 0")
        return ParsedNumber(value=0.0, ok=False, raw=raw)
    return ParsedNumber(value=value, ok=True, raw=raw)


def parse_miles(raw: Any) -> int:
    """Parse miles typed with dot thousand separators ("50.000" -> 50000)."""
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return int(raw) if finite_or_none(float(raw)) is not None else 0
    digits = re.sub(r"\D", "", str(raw or ""))
    return int(digits) if digits else 0


def parse_passengers(raw: Any) -> int:
    """Passenger count, at least 1."""
    count = int(parse_decimal(raw))
    return count if count >= 1 else 1


# ============================================================================
# DISPLAY HELPERS
# ============================================================================

def round_money(value: float, decimal_places: int = 2) -> Decimal:
    """Round for display using ROUND_HALF_UP."""
    quantizer = Decimal(10) ** -decimal_places
    return Decimal(str(value or 0)).quantize(quantizer, rounding=ROUND_HALF_UP)


def format_currency(value: float) -> str:
    """Brazilian currency text without symbol: 1234.5 -> "1.234,50"."""
    amount = round_money(value)
    text = f"{amount:,.2f}"
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_miles(value: float) -> str:
    """Miles with dot thousand separators: 50000 -> "50.000"."""
    return f"{int(round(value or 0)):,}".replace(",", ".")


# ============================================================================
# MILEAGE PRICING
# ============================================================================

def calculate_mileage_pricing(inputs: MileagePricingInput) -> MileagePricingResult:
    """
    Derive cost, price, profit, margin and markup for a mileage trip.

    Margin is always profit over PRICE; markup is profit over COST.
    Manual price per passenger, when positive, replaces the suggested price.
    """
    miles = inputs.miles_per_passenger
    passengers = inputs.passenger_count
    fee = inputs.boarding_fee_per_passenger
    manual = inputs.manual_price_per_passenger or 0

    cost_per_passenger_miles = (miles / 1000) * inputs.cost_per_thousand_miles
    cost_per_passenger_total = cost_per_passenger_miles + fee
    total_cost = cost_per_passenger_total * passengers

    suggested_price_per_passenger = (
        cost_per_passenger_miles * (1 + inputs.target_markup_percent / 100) + fee
    )
    final_price_per_passenger = manual if manual > 0 else suggested_price_per_passenger
    final_price_total = final_price_per_passenger * passengers

    profit = final_price_total - total_cost
    profit_margin_percent = (profit / final_price_total * 100) if final_price_total > 0 else 0

    effective_miles_price = max(final_price_per_passenger - fee, 0)
    miles_markup_percent = (
        (effective_miles_price - cost_per_passenger_miles) / cost_per_passenger_miles * 100
        if cost_per_passenger_miles > 0
        else 0
    )

    total_miles = miles * passengers
    effective_cost_per_mile = total_cost / total_miles if total_miles > 0 else 0
    price_per_thousand_miles = final_price_total / total_miles * 1000 if total_miles > 0 else 0

    return MileagePricingResult(
        cost_per_passenger_miles=cost_per_passenger_miles,
        cost_per_passenger_total=cost_per_passenger_total,
        total_cost=total_cost,
        suggested_price_per_passenger=suggested_price_per_passenger,
        final_price_per_passenger=final_price_per_passenger,
        final_price_total=final_price_total,
        profit=profit,
        profit_margin_percent=profit_margin_percent,
        effective_miles_price_per_passenger=effective_miles_price,
        miles_markup_percent=miles_markup_percent,
        total_miles=total_miles,
        effective_cost_per_mile=effective_cost_per_mile,
        price_per_thousand_miles=price_per_thousand_miles,
    )


def price_mileage_trip(
    miles_per_passenger: Any = 0,
    cost_per_thousand_miles: Any = 0,
    boarding_fee_per_passenger: Any = 0,
    passenger_count: Any = 0,
    target_markup_percent: Any = 0,
    manual_price_per_passenger: Any = None,
) -> MileagePricingResult:
    """
    Convenience wrapper taking raw form values.

    Strings go through parse_decimal, so "1.234,56" and "29.00" both work.
    """
    def num(value):
        return parse_decimal(value) if value is not None else 0.0

    return calculate_mileage_pricing(MileagePricingInput(
        miles_per_passenger=num(miles_per_passenger),
        cost_per_thousand_miles=num(cost_per_thousand_miles),
        boarding_fee_per_passenger=num(boarding_fee_per_passenger),
        passenger_count=num(passenger_count),
        target_markup_percent=num(target_markup_percent),
        manual_price_per_passenger=num(manual_price_per_passenger) if manual_price_per_passenger is not None else None,
    ))


def margin_scenarios(
    total_cost: float,
    margins: Iterable[float] = DEFAULT_MARGIN_SCENARIOS,
) -> List[MarginScenario]:
    """
    Price needed to reach each target margin on price: cost / (1 - m/100).

    Margins of 100% or more are impossible and skipped.
    """
    scenarios = []
    for margin in margins:
        if margin >= 100:
            continue
        price = total_cost / (1 - margin / 100)
        scenarios.append(MarginScenario(
            margin_percent=margin,
            price=price,
            profit=price - total_cost,
        ))
    return scenarios
