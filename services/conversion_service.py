"""
Quote to Sale Conversion Service

Promotes a priced quote into a sale.

Two layers:
- convert_quote_to_sale(): pure. Remaps quote-shape segments (miles per
  passenger) into sale-shape segments (miles per trip), recomputes cost,
  profit and margin, and resolves card interest from configs passed in.
- convert_quote(): orchestrated. Fetch quote, convert, insert the sale,
  then link the quote with a conditional write. Safe to retry.

Segment remapping per trip type:
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
round_trip : 1 combined record -> 2 legs (origin->destination, destination->origin),
             miles_outbound * pax and miles_return * pax
one_way    : 1 leg, miles * pax (falls back to quote.miles_needed)
multi_city : 1:1, miles * pax on every leg
━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Union

from pricing_engine import calculate_mileage_pricing, parse_passengers
from pricing_errors import (
    AlreadyConvertedError,
    ConversionError,
    IncompleteSegmentsError,
    ZeroOrNegativePriceError,
)
from pricing_models import (
    FlightSegment,
    MileagePricingInput,
    MultiCitySegments,
    OneWaySegments,
    PaymentType,
    RoundTripSegments,
)
from segment_mapper import aggregate_segments, segments_have_route
from .interest_service import quote_installments
from .quote_service import Quote, effective_markup, get_quote, mark_quote_converted
from .sale_service import Sale, build_route_text, create_sale, delete_sale
from .ticket_service import PassengerIdentity, Ticket, create_tickets_for_sale

logger = logging.getLogger(__name__)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class ConvertQuoteResult:
    """Result of converting a quote into a sale."""
    success: bool
    sale_id: Optional[str] = None
    sale: Optional[Sale] = None
    already_converted: bool = False
    error: Optional[str] = None
    error_code: Optional[str] = None
    tickets: List[Ticket] = field(default_factory=list)
    tickets_error: Optional[str] = None


# ============================================================================
# Segment remapping (pure)
# ============================================================================

def round_trip_to_sale_segments(segments: RoundTripSegments, passengers: int) -> List[FlightSegment]:
    """Combined round-trip record -> outbound and return legs."""
    return [
        FlightSegment(
            from_=segments.origin,
            to=segments.destination,
            date=segments.departure_date,
            miles=segments.miles_outbound * passengers,
            airline=segments.airline,
        ),
        FlightSegment(
            from_=segments.destination,
            to=segments.origin,
            date=segments.return_date,
            miles=segments.miles_return * passengers,
            airline=segments.airline,
        ),
    ]


def one_way_to_sale_segments(segments: OneWaySegments, passengers: int) -> List[FlightSegment]:
    segment = segments.segment
    return [segment.model_copy(update={'miles': segment.miles * passengers})]


def multi_city_to_sale_segments(segments: MultiCitySegments, passengers: int) -> List[FlightSegment]:
    return [
        segment.model_copy(update={'miles': segment.miles * passengers})
        for segment in segments.segments
    ]


def to_sale_segments(
    segments: Union[OneWaySegments, RoundTripSegments, MultiCitySegments],
    passengers: int,
) -> List[FlightSegment]:
    """Sale-shape segments (miles per trip) for any quote variant."""
    if isinstance(segments, RoundTripSegments):
        return round_trip_to_sale_segments(segments, passengers)
    if isinstance(segments, OneWaySegments):
        return one_way_to_sale_segments(segments, passengers)
    return multi_city_to_sale_segments(segments, passengers)


# ============================================================================
# Conversion (pure)
# ============================================================================

def convert_quote_to_sale(
    quote: Quote,
    payment_method: Optional[str] = None,
    installments: int = 1,
    interest_configs: Optional[Iterable[Any]] = None,
    created_by: Optional[str] = None,
) -> Sale:
    """
    Build the sale for a quote. Nothing is persisted.

    The quote's total_price is kept as the sale price (manual price per
    passenger = total / passengers); cost, profit and margin are recomputed.

    Raises:
        AlreadyConvertedError: quote already linked to a sale
        IncompleteSegmentsError: no leg has both origin and destination
        ZeroOrNegativePriceError: final price <= 0
    """
    if quote.converted_to_sale_id:
        raise AlreadyConvertedError(quote.id, quote.converted_to_sale_id)

    passengers = parse_passengers(quote.passengers)
    segments = quote.segments

    if not segments_have_route(segments):
        raise IncompleteSegmentsError()

    totals = aggregate_segments(quote.trip_type, segments, passengers)
    sale_segments = to_sale_segments(segments, passengers)

    manual_price = quote.total_price / passengers if quote.total_price > 0 else None
    pricing = calculate_mileage_pricing(MileagePricingInput(
        miles_per_passenger=totals.per_passenger_miles,
        cost_per_thousand_miles=quote.cost_per_thousand,
        boarding_fee_per_passenger=quote.boarding_fee,
        passenger_count=passengers,
        target_markup_percent=effective_markup(quote),
        manual_price_per_passenger=manual_price,
    ))

    if pricing.final_price_total <= 0:
        raise ZeroOrNegativePriceError(pricing.final_price_total)

    installment_count = installments if installments and installments >= 1 else 1
    if payment_method == PaymentType.DEBIT.value:
        installment_count = 1

    interest_rate = 0.0
    final_price_with_interest = pricing.final_price_total
    if interest_configs is not None and payment_method in (PaymentType.DEBIT.value, PaymentType.CREDIT.value):
        breakdown = quote_installments(
            interest_configs, pricing.final_price_total, payment_method, installment_count
        )
        interest_rate = breakdown.interest_rate_percent
        final_price_with_interest = breakdown.final_price

    return Sale(
        id=None,
        quote_id=quote.id,
        customer_name=quote.client_name,
        customer_phone=quote.client_phone,
        trip_type=quote.trip_type,
        passengers=passengers,
        flight_segments=sale_segments,
        route_text=build_route_text([s for s in sale_segments if s.has_route]),
        price_total=pricing.final_price_total,
        price_per_passenger=pricing.final_price_per_passenger,
        boarding_fee_total=quote.boarding_fee * passengers,
        miles_used_total=sum(s.miles for s in sale_segments),
        cost_per_thousand=quote.cost_per_thousand,
        total_cost=pricing.total_cost,
        profit=pricing.profit,
        profit_margin_percent=pricing.profit_margin_percent,
        payment_method=payment_method,
        installments=installment_count,
        interest_rate_percent=interest_rate,
        final_price_with_interest=final_price_with_interest,
        status='pending',
        created_by=created_by,
    )


# ============================================================================
# Conversion (orchestrated)
# ============================================================================

def convert_quote(
    quote_id: str,
    created_by: Optional[str] = None,
    payment_method: Optional[str] = None,
    installments: int = 1,
    interest_configs: Optional[Iterable[Any]] = None,
    passengers: Optional[Sequence[PassengerIdentity]] = None,
    pnr: Optional[str] = None,
) -> ConvertQuoteResult:
    """
    Convert a stored quote into a sale, exactly once.

    Flow:
    1. Fetch the quote; already linked -> success with the existing sale id
    2. Pure conversion; validation errors -> success=False, nothing written
    3. Insert the sale
    4. Link the quote (only while converted_to_sale_id IS NULL)
    5. Lost the race -> delete our sale, return the winner's sale id
    6. One ticket per sale passenger; identities are optional and a failed
       insert is reported in tickets_error

    Returns:
        ConvertQuoteResult
    """
    quote = get_quote(quote_id)
    if not quote:
        return ConvertQuoteResult(success=False, error="Orçamento não encontrado", error_code="not_found")

    try:
        sale = convert_quote_to_sale(
            quote,
            payment_method=payment_method,
            installments=installments,
            interest_configs=interest_configs,
            created_by=created_by,
        )
    except AlreadyConvertedError as e:
        logger.info(f"Quote {quote_id} already converted to sale {e.sale_id}")
        return ConvertQuoteResult(success=True, sale_id=e.sale_id, already_converted=True)
    except ConversionError as e:
        logger.warning(f"Quote {quote_id} not converted: {e}")
        return ConvertQuoteResult(success=False, error=str(e), error_code=e.code)

    created = create_sale(sale)
    if not created:
        return ConvertQuoteResult(success=False, error="Erro ao criar venda", error_code="persistence_error")

    linked = mark_quote_converted(quote_id, created.id)
    if not linked:
        current = get_quote(quote_id)
        delete_sale(created.id)

        if current and current.converted_to_sale_id:
            logger.warning(
                f"Quote {quote_id} was converted concurrently to sale {current.converted_to_sale_id}; "
                f"sale {created.id} removed"
            )
            return ConvertQuoteResult(
                success=True,
                sale_id=current.converted_to_sale_id,
                already_converted=True,
            )

        return ConvertQuoteResult(
            success=False,
            error="Erro ao vincular orçamento à venda",
            error_code="persistence_error",
        )

    tickets = create_tickets_for_sale(created, passengers, pnr)
    tickets_error = None
    if not tickets:
        tickets_error = "Erro ao criar bilhetes"
        logger.error(f"Sale {created.id} created without tickets")

    logger.info(f"Quote {quote_id} converted to sale {created.id}")
    return ConvertQuoteResult(
        success=True,
        sale_id=created.id,
        sale=created,
        tickets=tickets,
        tickets_error=tickets_error,
    )
