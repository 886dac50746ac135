"""
Trip Segment Mapping Module

This module handles:
- Reading stored flight_segments (JSON string, dict or list) into the tagged
  union OneWaySegments / RoundTripSegments / MultiCitySegments
- Legacy field-name aliases (miles_ida, miles_volta, departureDate, ...)
- Writing canonical records tagged with schema_version
- Aggregating per-passenger and total miles for quote- and sale-shaped data

IMPORTANT: quote-shaped miles are PER PASSENGER, sale-shaped miles are
PER TRIP (already multiplied by passengers). Never mix the two.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from pricing_engine import parse_decimal
from pricing_models import (
    FlightSegment,
    MultiCitySegments,
    OneWaySegments,
    RoundTripSegments,
    SEGMENT_SCHEMA_VERSION,
    SegmentShape,
    SegmentTotals,
    TripType,
)

# Setup logger
logger = logging.getLogger(__name__)

QuoteSegmentsVariant = Union[OneWaySegments, RoundTripSegments, MultiCitySegments]


# ============================================================================
# SAFE CONVERSION UTILITIES
# ============================================================================

def safe_float(value: Any, default: float = 0.0) -> float:
    """Safely convert value to float (Brazilian strings accepted)"""
    if value is None or value == "":
        return default
    return parse_decimal(value)


def safe_int(value: Any, default: int = 0) -> int:
    """Safely convert value to int"""
    if value is None or value == "":
        return default
    return int(parse_decimal(value))


def safe_str(value: Any, default: str = "") -> str:
    """Safely convert value to string"""
    if value is None or value == "":
        return default
    return str(value)


def optional_str(value: Any) -> Optional[str]:
    """String or None for empty values"""
    if value is None or value == "":
        return None
    return str(value)


# ============================================================================
# FIELD ALIASES
# ============================================================================

# Stored records went through several schema changes without a version tag.
# Canonical name first, then the older spellings.
ORIGIN_KEYS = ("origin", "from", "from_code")
DESTINATION_KEYS = ("destination", "to", "to_code")
DEPARTURE_DATE_KEYS = ("departure_date", "departureDate", "date")
RETURN_DATE_KEYS = ("return_date", "returnDate")
MILES_OUTBOUND_KEYS = ("miles_outbound", "milesOutbound", "miles_ida")
MILES_RETURN_KEYS = ("miles_return", "milesReturn", "miles_volta")
SEGMENT_MILES_KEYS = ("miles",) + MILES_OUTBOUND_KEYS
BOARDING_FEE_KEYS = ("boarding_fee", "boardingFee")
AIRLINE_KEYS = ("airline", "flight_number")


def first_value(record: Dict[str, Any], keys: Iterable[str], default: Any = None) -> Any:
    """First non-empty value among keys."""
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return default


def first_miles(record: Dict[str, Any], keys: Iterable[str]) -> float:
    """First non-zero miles value among keys, 0 when none."""
    for key in keys:
        miles = safe_float(record.get(key))
        if miles:
            return miles
    return 0.0


def has_any_key(record: Dict[str, Any], keys: Iterable[str]) -> bool:
    return any(key in record for key in keys)


# ============================================================================
# DECODING
# ============================================================================

def decode_segments(raw: Any) -> List[Dict[str, Any]]:
    """
    Decode stored flight_segments into a list of dicts.

    Older quotes stored the column as a JSON string. A single dict is a
    combined round-trip record. Anything unreadable becomes [].
    """
    if raw is None or raw == "":
        return []

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except (ValueError, TypeError):
            logger.warning(f"flight_segments is not valid JSON: {raw[:80]!r}")
            return []

    if isinstance(raw, dict):
        return [raw]

    if isinstance(raw, (list, tuple)):
        records = []
        for item in raw:
            if isinstance(item, dict):
                records.append(item)
            elif isinstance(item, FlightSegment):
                records.append(item.to_record())
        return records

    logger.warning(f"Unexpected flight_segments type: {type(raw).__name__}")
    return []


def parse_flight_segment(record: Dict[str, Any]) -> FlightSegment:
    """Build a FlightSegment from a stored record, resolving legacy names."""
    fee = first_value(record, BOARDING_FEE_KEYS)
    return FlightSegment(
        from_=safe_str(first_value(record, ORIGIN_KEYS)),
        to=safe_str(first_value(record, DESTINATION_KEYS)),
        date=optional_str(first_value(record, DEPARTURE_DATE_KEYS)),
        miles=first_miles(record, SEGMENT_MILES_KEYS),
        boarding_fee=safe_float(fee) if fee is not None else None,
        airline=optional_str(first_value(record, AIRLINE_KEYS)),
        time=optional_str(first_value(record, ("time",))),
    )


def _is_versioned(records: List[Dict[str, Any]]) -> bool:
    return bool(records) and safe_int(records[0].get("schema_version")) >= SEGMENT_SCHEMA_VERSION


# ============================================================================
# QUOTE-SHAPE PARSING (tagged union)
# ============================================================================

def _parse_round_trip_legacy(records: List[Dict[str, Any]]) -> RoundTripSegments:
    if not records:
        return RoundTripSegments()

    first = records[0]

    # Two discrete legs without outbound/return fields: outbound + return leg
    if len(records) >= 2 and not has_any_key(first, MILES_OUTBOUND_KEYS + MILES_RETURN_KEYS):
        outbound = parse_flight_segment(first)
        inbound = parse_flight_segment(records[1])
        return RoundTripSegments(
            origin=outbound.from_,
            destination=outbound.to,
            departure_date=outbound.date,
            return_date=inbound.date,
            miles_outbound=outbound.miles,
            miles_return=inbound.miles,
            airline=outbound.airline,
        )

    return RoundTripSegments(
        origin=safe_str(first_value(first, ORIGIN_KEYS)),
        destination=safe_str(first_value(first, DESTINATION_KEYS)),
        departure_date=optional_str(first_value(first, DEPARTURE_DATE_KEYS)),
        return_date=optional_str(first_value(first, RETURN_DATE_KEYS)),
        miles_outbound=first_miles(first, MILES_OUTBOUND_KEYS),
        miles_return=first_miles(first, MILES_RETURN_KEYS),
        airline=optional_str(first_value(first, AIRLINE_KEYS)),
    )


def _parse_versioned(trip_type: TripType, records: List[Dict[str, Any]]) -> QuoteSegmentsVariant:
    if trip_type == TripType.ROUND_TRIP:
        return RoundTripSegments.model_validate(records[0])
    if trip_type == TripType.ONE_WAY:
        return OneWaySegments(segment=FlightSegment.model_validate(records[0]))
    return MultiCitySegments(segments=[FlightSegment.model_validate(r) for r in records])


def normalize_trip_type(trip_type: Any) -> TripType:
    """Unknown or missing trip types are handled as multi-city legs."""
    try:
        return TripType(trip_type)
    except ValueError:
        logger.warning(f"Unknown trip_type {trip_type!r}, treating as multi_city")
        return TripType.MULTI_CITY


def parse_quote_segments(
    trip_type: Any,
    raw_segments: Any,
    miles_needed: Any = 0,
) -> QuoteSegmentsVariant:
    """
    Read quote-shaped segments into the matching tagged-union variant.

    Records tagged with schema_version >= 2 are validated against canonical
    field names; untagged records go through alias probing. miles_needed is
    the quote-level fallback for one-way trips whose leg carries no miles.
    """
    trip = normalize_trip_type(trip_type)
    records = decode_segments(raw_segments)

    variant = None
    if _is_versioned(records):
        try:
            variant = _parse_versioned(trip, records)
        except ValidationError as e:
            logger.warning(f"Versioned segments failed validation, reading as legacy: {e}")

    if variant is None:
        if trip == TripType.ROUND_TRIP:
            variant = _parse_round_trip_legacy(records)
        elif trip == TripType.ONE_WAY:
            segment = parse_flight_segment(records[0]) if records else FlightSegment()
            variant = OneWaySegments(segment=segment)
        else:
            variant = MultiCitySegments(segments=[parse_flight_segment(r) for r in records])

    if isinstance(variant, OneWaySegments) and not variant.segment.miles:
        variant.segment.miles = safe_float(miles_needed)

    return variant


def serialize_quote_segments(segments: QuoteSegmentsVariant) -> List[Dict[str, Any]]:
    """Canonical stored form, tagged with schema_version."""
    if isinstance(segments, RoundTripSegments):
        record = segments.model_dump(exclude={"trip_type"}, exclude_none=True)
        records = [record]
    elif isinstance(segments, OneWaySegments):
        records = [segments.segment.to_record()]
    else:
        records = [segment.to_record() for segment in segments.segments]

    for record in records:
        record["schema_version"] = SEGMENT_SCHEMA_VERSION
    return records


# ============================================================================
# AGGREGATION
# ============================================================================

def passenger_miles(segments: QuoteSegmentsVariant) -> float:
    """Per-passenger miles for a quote-shaped trip."""
    if isinstance(segments, RoundTripSegments):
        return safe_float(segments.miles_outbound) + safe_float(segments.miles_return)
    if isinstance(segments, OneWaySegments):
        return safe_float(segments.segment.miles)
    return sum(safe_float(segment.miles) for segment in segments.segments)


def sale_segments_total(segments: Any) -> float:
    """Sum of per-trip miles on sale-shaped segments."""
    if isinstance(segments, (list, tuple)) and segments and isinstance(segments[0], FlightSegment):
        return sum(safe_float(segment.miles) for segment in segments)
    return sum(safe_float(record.get("miles")) for record in decode_segments(segments))


def aggregate_segments(
    trip_type: Any,
    segments: Any,
    passenger_count: Any,
    shape: Union[SegmentShape, str] = SegmentShape.QUOTE,
    miles_needed: Optional[Any] = 0,
) -> SegmentTotals:
    """
    Per-passenger and total miles for a trip. Never raises.

    Quote shape: total = per_passenger * passengers.
    Sale shape:  total = sum of segment miles; per_passenger = total / passengers.

    segments may be a raw stored value or an already parsed variant.
    Missing or invalid passenger counts count as 1.
    """
    passengers = safe_int(passenger_count)
    if passengers < 1:
        passengers = 1

    try:
        shape = SegmentShape(shape)
    except ValueError:
        logger.warning(f"Unknown segment shape {shape!r}, treating as quote")
        shape = SegmentShape.QUOTE

    if shape == SegmentShape.SALE:
        total = sale_segments_total(segments)
        return SegmentTotals(per_passenger_miles=total / passengers, total_miles=total)

    if isinstance(segments, (OneWaySegments, RoundTripSegments, MultiCitySegments)):
        variant = segments
    else:
        variant = parse_quote_segments(trip_type, segments, miles_needed)

    per_passenger = passenger_miles(variant)
    return SegmentTotals(per_passenger_miles=per_passenger, total_miles=per_passenger * passengers)


def segments_have_route(segments: Union[QuoteSegmentsVariant, List[FlightSegment]]) -> bool:
    """True when at least one leg has both origin and destination."""
    if isinstance(segments, RoundTripSegments):
        return segments.has_route
    if isinstance(segments, OneWaySegments):
        return segments.segment.has_route
    if isinstance(segments, MultiCitySegments):
        return any(segment.has_route for segment in segments.segments)
    return any(segment.has_route for segment in segments)
