"""
Mileage Resale Platform - Pricing Models
Pydantic models for mileage pricing, installment interest and trip segments.

Segments are modelled as a tagged union keyed by trip_type:
- OneWaySegments:    one leg, miles per passenger
- RoundTripSegments: one combined record with outbound/return miles per passenger
- MultiCitySegments: N legs, miles per passenger on each leg

Sale-side segments (FlightSegment lists) carry per-trip totals instead.
"""

import os
from enum import Enum
from functools import lru_cache
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from number_parser import number_or_zero, parse_number


# Credit cards in the market top out at 24 installments
MAX_CREDIT_INSTALLMENTS = 24

# Records written with canonical field names carry this tag
SEGMENT_SCHEMA_VERSION = 2


# ============================================================================
# ENUMS - Dropdown/Select Values
# ============================================================================

class TripType(str, Enum):
    """Trip types offered on quotes and sales"""
    ONE_WAY = "one_way"
    ROUND_TRIP = "round_trip"
    MULTI_CITY = "multi_city"


class QuoteStatus(str, Enum):
    """Quote lifecycle: pending -> sent -> converted (terminal)"""
    PENDING = "pending"
    SENT = "sent"
    CONVERTED = "converted"


class PaymentType(str, Enum):
    """Card payment types with interest configuration"""
    DEBIT = "debit"
    CREDIT = "credit"


class InterestConfigType(str, Enum):
    """How a config stores its rate"""
    FLAT = "flat"                        # one rate for the whole config
    PER_INSTALLMENT = "per_installment"  # rate table keyed by installment count


class SegmentShape(str, Enum):
    """Whether segment miles are per passenger (quote) or per trip (sale)"""
    QUOTE = "quote"
    SALE = "sale"


def _optional_number(value):
    if value is None or value == "":
        return None
    return number_or_zero(value)


# ============================================================================
# SEGMENT MODELS
# ============================================================================

class FlightSegment(BaseModel):
    """Single flight leg. Meaning of miles depends on the record holding it."""
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(default="", alias="from", description="Origin airport code")
    to: str = Field(default="", description="Destination airport code")
    date: Optional[str] = Field(default=None, description="Flight date (ISO)")
    miles: float = Field(default=0, description="Miles for this leg")
    boarding_fee: Optional[float] = Field(default=None, description="Boarding fee for this leg")
    airline: Optional[str] = Field(default=None, description="Airline / flight number")
    time: Optional[str] = Field(default=None, description="Departure time")

    @field_validator("from_", "to", mode="before")
    @classmethod
    def strip_code(cls, v):
        if v is None:
            return ""
        return str(v).strip().upper()

    @field_validator("miles", mode="before")
    @classmethod
    def default_miles(cls, v):
        # "50.000" is fifty thousand; NaN and inf are 0
        return number_or_zero(v)

    @field_validator("boarding_fee", mode="before")
    @classmethod
    def parse_fee(cls, v):
        return _optional_number(v)

    @property
    def has_route(self) -> bool:
        return bool(self.from_ and self.to)

    def to_record(self) -> dict:
        """Serialize with the stored field name `from`."""
        return self.model_dump(by_alias=True, exclude_none=True)


class OneWaySegments(BaseModel):
    """Quote-shape one-way trip"""
    trip_type: Literal["one_way"] = "one_way"
    segment: FlightSegment


class RoundTripSegments(BaseModel):
    """Quote-shape round trip stored as a single combined record"""
    trip_type: Literal["round_trip"] = "round_trip"
    origin: str = Field(default="", description="Outbound origin")
    destination: str = Field(default="", description="Outbound destination")
    departure_date: Optional[str] = Field(default=None, description="Outbound date")
    return_date: Optional[str] = Field(default=None, description="Return date")
    miles_outbound: float = Field(default=0, description="Outbound miles per passenger")
    miles_return: float = Field(default=0, description="Return miles per passenger")
    airline: Optional[str] = None

    @field_validator("origin", "destination", mode="before")
    @classmethod
    def strip_code(cls, v):
        if v is None:
            return ""
        return str(v).strip().upper()

    @field_validator("miles_outbound", "miles_return", mode="before")
    @classmethod
    def default_miles(cls, v):
        return number_or_zero(v)

    @property
    def has_route(self) -> bool:
        return bool(self.origin and self.destination)


class MultiCitySegments(BaseModel):
    """Quote-shape multi-city trip"""
    trip_type: Literal["multi_city"] = "multi_city"
    segments: List[FlightSegment] = Field(default_factory=list)


QuoteSegments = Annotated[
    Union[OneWaySegments, RoundTripSegments, MultiCitySegments],
    Field(discriminator="trip_type"),
]


class SegmentTotals(BaseModel):
    """Aggregated mileage for a trip"""
    per_passenger_miles: float = 0
    total_miles: float = 0


# ============================================================================
# MILEAGE PRICING
# ============================================================================

class MileagePricingInput(BaseModel):
    """
    Inputs for mileage cost/price calculation.

    Every field defaults to 0; None, NaN and inf are read as 0: missing inputs give
    degenerate (zero) outputs, never a validation error.
    """
    miles_per_passenger: float = Field(default=0, description="Miles needed per passenger")
    cost_per_thousand_miles: float = Field(default=0, description="Supplier cost per 1000 miles")
    boarding_fee_per_passenger: float = Field(default=0, description="Boarding fee per passenger")
    passenger_count: float = Field(default=0, description="Number of passengers")
    target_markup_percent: float = Field(default=0, description="Markup over miles cost %")
    manual_price_per_passenger: Optional[float] = Field(default=None, description="Manual override price per passenger")

    @field_validator(
        "miles_per_passenger",
        "cost_per_thousand_miles",
        "boarding_fee_per_passenger",
        "passenger_count",
        "target_markup_percent",
        mode="before",
    )
    @classmethod
    def none_to_zero(cls, v):
        return number_or_zero(v)

    @field_validator("manual_price_per_passenger", mode="before")
    @classmethod
    def parse_manual_price(cls, v):
        return _optional_number(v)


class MileagePricingResult(BaseModel):
    """Calculated cost, price and profit figures (unrounded)"""
    cost_per_passenger_miles: float
    cost_per_passenger_total: float
    total_cost: float
    suggested_price_per_passenger: float
    final_price_per_passenger: float
    final_price_total: float
    profit: float
    profit_margin_percent: float = Field(..., description="Profit as % of price")
    effective_miles_price_per_passenger: float
    miles_markup_percent: float = Field(..., description="Profit on miles as % of miles cost")
    total_miles: float = 0
    effective_cost_per_mile: float = 0
    price_per_thousand_miles: float = 0


class MarginScenario(BaseModel):
    """Price needed to hit a target margin on price"""
    margin_percent: float
    price: float
    profit: float


# ============================================================================
# PAYMENT INTEREST
# ============================================================================

def normalize_rates(obj) -> Dict[int, float]:
    """
    Normalize a per-installment rate table read from storage.

    Keys may arrive as strings and values as Brazilian decimals ("1.234,5").
    Entries that cannot be read, NaN and inf are dropped.
    """
    if not obj or not isinstance(obj, dict):
        return {}

    rates: Dict[int, float] = {}
    for key, value in obj.items():
        try:
            installments = int(key)
        except (TypeError, ValueError):
            continue
        rate = parse_number(value)
        if rate is None:
            continue
        rates[installments] = rate
    return rates


class PaymentInterestConfig(BaseModel):
    """
    Interest configuration for card payments.

    Debit configs always have exactly 1 installment; credit configs 1..24.
    """
    id: Optional[str] = None
    supplier_id: Optional[str] = None
    payment_type: PaymentType = Field(..., description="debit or credit")
    installments: int = Field(..., description="Installment count this config applies to")
    interest_rate_percent: float = Field(default=0, ge=0, description="Flat surcharge %")
    config_type: InterestConfigType = Field(default=InterestConfigType.FLAT)
    per_installment_rates: Dict[int, float] = Field(default_factory=dict)
    is_active: bool = True

    @field_validator("config_type", mode="before")
    @classmethod
    def legacy_total_is_flat(cls, v):
        # Older rows stored "total" for the flat model
        if v in (None, "", "total"):
            return InterestConfigType.FLAT
        return v

    @field_validator("interest_rate_percent", mode="before")
    @classmethod
    def rate_default(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0
        rate = parse_number(v)
        if rate is None:
            raise ValueError(f"Interest rate must be a finite number, got {v!r}")
        return rate

    @field_validator("per_installment_rates", mode="before")
    @classmethod
    def normalize_rate_table(cls, v):
        return normalize_rates(v)

    @model_validator(mode="after")
    def check_installments(self):
        if self.payment_type == PaymentType.DEBIT and self.installments != 1:
            raise ValueError("Debit configs must have exactly 1 installment")
        if self.payment_type == PaymentType.CREDIT and not (
            1 <= self.installments <= MAX_CREDIT_INSTALLMENTS
        ):
            raise ValueError(
                f"Credit configs must have between 1 and {MAX_CREDIT_INSTALLMENTS} installments"
            )
        if any(rate < 0 for rate in self.per_installment_rates.values()):
            raise ValueError("Per-installment rates cannot be negative")
        return self


class InstallmentQuote(BaseModel):
    """Flat-fee installment breakdown"""
    payment_type: Optional[PaymentType] = None
    installments: int
    interest_rate_percent: float
    installment_value: float
    final_price: float


# ============================================================================
# SYSTEM SETTINGS
# ============================================================================

class PricingSettings(BaseModel):
    """Admin-controlled pricing defaults"""
    default_markup_percent: float = Field(default=0, ge=0, le=1000, description="Markup used when a quote stores none")
    max_credit_installments: int = Field(default=12, ge=1, le=MAX_CREDIT_INSTALLMENTS, description="Installments offered on payment screens")
    ticket_code_prefix: str = Field(default="TKT", min_length=1, max_length=10)


@lru_cache()
def load_pricing_settings() -> PricingSettings:
    """Read pricing defaults from the environment (cached)."""
    values = {}
    if os.getenv("DEFAULT_MARKUP_PERCENT"):
        values["default_markup_percent"] = os.getenv("DEFAULT_MARKUP_PERCENT")
    if os.getenv("MAX_CREDIT_INSTALLMENTS"):
        values["max_credit_installments"] = os.getenv("MAX_CREDIT_INSTALLMENTS")
    if os.getenv("TICKET_CODE_PREFIX"):
        values["ticket_code_prefix"] = os.getenv("TICKET_CODE_PREFIX")
    return PricingSettings(**values)
