"""
Quote Service

CRUD and status helpers for the quotes table, plus the WhatsApp-ready
messages sent to the client and to the miles supplier.

A quote is a priced draft. Its lifecycle is pending -> sent -> converted;
converted is terminal and is only reached through the conditional write in
mark_quote_converted(), which guarantees a quote links to at most one sale.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pricing_engine import (
    calculate_mileage_pricing,
    format_currency,
    format_miles,
    parse_decimal,
    parse_passengers,
)
from pricing_models import (
    MileagePricingInput,
    MileagePricingResult,
    OneWaySegments,
    RoundTripSegments,
    TripType,
    load_pricing_settings,
)
from segment_mapper import (
    aggregate_segments,
    parse_quote_segments,
    serialize_quote_segments,
)
from .database import get_supabase

logger = logging.getLogger(__name__)


def _decode_json(value: Any, default: Any) -> Any:
    """Some columns were written with JSON.stringify and come back as text."""
    if isinstance(value, str):
        try:
            return json.loads(value) if value.strip() else default
        except ValueError:
            logger.warning(f"Could not decode JSON column: {value[:80]!r}")
            return default
    return value if value is not None else default


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    return value


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class Quote:
    """Represents a mileage quote."""
    id: Optional[str]

    # Client
    client_name: str = ""
    client_phone: str = ""

    # Trip
    trip_type: str = TripType.ONE_WAY.value
    passengers: int = 1
    flight_segments: List[Dict[str, Any]] = field(default_factory=list)  # quote-shape, miles per passenger
    miles_needed: float = 0
    route: str = ""

    # Pricing (per passenger unless noted)
    total_price: float = 0  # whole quote
    boarding_fee: float = 0
    cost_per_thousand: float = 0
    target_markup_percent: Optional[float] = None
    manual_price: Optional[float] = None
    notes: str = ""

    # Lifecycle
    status: str = 'pending'
    converted_to_sale_id: Optional[str] = None
    converted_at: Optional[datetime] = None

    # Audit
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'Quote':
        """Create a Quote from a quotes row."""
        details = _decode_json(data.get('flight_details'), {})
        if not isinstance(details, dict):
            details = {}
        segments = _decode_json(data.get('flight_segments'), [])
        if isinstance(segments, dict):
            segments = [segments]

        markup = details.get('targetMargin', details.get('target_markup_percent'))
        manual = details.get('manualPrice', details.get('manual_price'))

        return cls(
            id=data.get('id'),
            client_name=data.get('client_name') or "",
            client_phone=data.get('client_phone') or "",
            trip_type=data.get('trip_type') or TripType.ONE_WAY.value,
            passengers=parse_passengers(data.get('passengers')),
            flight_segments=segments if isinstance(segments, list) else [],
            miles_needed=parse_decimal(data.get('miles_needed')),
            route=data.get('route') or "",
            total_price=parse_decimal(data.get('total_price')),
            boarding_fee=parse_decimal(data.get('boarding_fee')),
            # Stored under costPerMile but holds the cost per thousand miles
            cost_per_thousand=parse_decimal(details.get('costPerMile', details.get('cost_per_thousand'))),
            target_markup_percent=parse_decimal(markup) if markup is not None else None,
            manual_price=parse_decimal(manual) if manual not in (None, "") else None,
            notes=details.get('notes') or "",
            status=data.get('status') or 'pending',
            converted_to_sale_id=data.get('converted_to_sale_id'),
            converted_at=_parse_timestamp(data.get('converted_at')),
            user_id=data.get('user_id'),
            created_at=_parse_timestamp(data.get('created_at')),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for database operations."""
        return {
            'client_name': self.client_name,
            'client_phone': self.client_phone,
            'trip_type': self.trip_type,
            'passengers': self.passengers,
            'flight_segments': serialize_quote_segments(self.segments),
            'flight_details': {
                'costPerMile': self.cost_per_thousand,
                'targetMargin': self.target_markup_percent,
                'manualPrice': self.manual_price,
                'notes': self.notes,
            },
            'miles_needed': self.miles_needed,
            'route': self.route or format_quote_route(self),
            'total_price': self.total_price,
            'boarding_fee': self.boarding_fee,
            'status': self.status,
            'user_id': self.user_id,
        }

    @property
    def segments(self):
        """Quote-shape segments as a tagged-union variant."""
        return parse_quote_segments(self.trip_type, self.flight_segments, self.miles_needed)

    @property
    def is_converted(self) -> bool:
        return bool(self.converted_to_sale_id)


# Valid quote statuses
QUOTE_STATUSES = ['pending', 'sent', 'converted']

# Status names for display
QUOTE_STATUS_NAMES = {
    'pending': 'Pendente',
    'sent': 'Enviado',
    'converted': 'Convertido',
}

# Allowed status transitions
QUOTE_TRANSITIONS = {
    'pending': ['sent', 'converted'],
    'sent': ['converted'],
    'converted': [],  # Terminal status
}


# ============================================================================
# Status Helper Functions
# ============================================================================

def get_quote_status_name(status: str) -> str:
    """Get human-readable status name."""
    return QUOTE_STATUS_NAMES.get(status, status)


def can_transition_quote(from_status: str, to_status: str) -> bool:
    """Check if a quote can transition between statuses."""
    return to_status in QUOTE_TRANSITIONS.get(from_status, [])


# ============================================================================
# Pricing
# ============================================================================

def effective_markup(quote: Quote) -> float:
    """Quote markup, or the configured default when the quote stores none."""
    if quote.target_markup_percent is None:
        return load_pricing_settings().default_markup_percent
    return quote.target_markup_percent


def calculate_quote_pricing(quote: Quote) -> MileagePricingResult:
    """Cost, price and profit for a stored quote."""
    totals = aggregate_segments(quote.trip_type, quote.segments, quote.passengers)

    return calculate_mileage_pricing(MileagePricingInput(
        miles_per_passenger=totals.per_passenger_miles,
        cost_per_thousand_miles=quote.cost_per_thousand,
        boarding_fee_per_passenger=quote.boarding_fee,
        passenger_count=quote.passengers,
        target_markup_percent=effective_markup(quote),
        manual_price_per_passenger=quote.manual_price,
    ))


# ============================================================================
# Route & Messages
# ============================================================================

def format_date_br(value: Optional[str], placeholder: str = "[DATA]") -> str:
    """ISO date -> dd/mm/yyyy. Unreadable dates are shown as typed."""
    if not value:
        return placeholder
    try:
        return datetime.fromisoformat(str(value)[:10]).strftime('%d/%m/%Y')
    except ValueError:
        return str(value)


def format_quote_route(quote: Quote) -> str:
    """
    One-line route text stored on the quote.

    Round trip "GRU ⇄ LIS", one way "GRU → LIS", multi-city legs joined
    with ", ".
    """
    segments = quote.segments
    if isinstance(segments, RoundTripSegments):
        return f"{segments.origin} ⇄ {segments.destination}"
    if isinstance(segments, OneWaySegments):
        return f"{segments.segment.from_} → {segments.segment.to}"
    return ", ".join(
        f"{s.from_} → {s.to}" for s in segments.segments if s.has_route
    )


def format_route_block(quote: Quote) -> str:
    """Multi-line route section used in both messages."""
    segments = quote.segments

    if isinstance(segments, RoundTripSegments):
        return (
            f"✈️ *Rota:* {segments.origin or '[ORIGEM]'} → {segments.destination or '[DESTINO]'}\n"
            f"📅 *Ida:* {format_date_br(segments.departure_date)}\n"
            f"📅 *Volta:* {format_date_br(segments.return_date)}"
        )

    if isinstance(segments, OneWaySegments):
        segment = segments.segment
        return (
            f"✈️ *Rota:* {segment.from_ or '[ORIGEM]'} → {segment.to or '[DESTINO]'}\n"
            f"📅 *Data:* {format_date_br(segment.date)}"
        )

    legs = [s for s in segments.segments if s.has_route and s.date]
    if not legs:
        return "✈️ *Rota:* [Multi-trechos]"
    lines = [
        f"{idx}. {leg.from_} → {leg.to} ({format_date_br(leg.date)})"
        for idx, leg in enumerate(legs, start=1)
    ]
    return "✈️ *Trechos:*\n" + "\n".join(lines)


def generate_client_message(quote: Quote, pricing: Optional[MileagePricingResult] = None) -> str:
    """Quote message for the client."""
    pricing = pricing or calculate_quote_pricing(quote)

    return (
        "🎫 *ORÇAMENTO DE PASSAGEM AÉREA*\n"
        "\n"
        f"👤 *Cliente:* {quote.client_name or '[Nome]'}\n"
        f"📱 *Contato:* {quote.client_phone or '[Telefone]'}\n"
        "\n"
        f"{format_route_block(quote)}\n"
        "\n"
        f"👥 *Passageiros:* {quote.passengers}\n"
        f"✈️ *Milhas:* {format_miles(pricing.total_miles)}\n"
        "\n"
        "💰 *VALOR TOTAL:*\n"
        f"*R$ {format_currency(pricing.final_price_total)}*\n"
        "\n"
        "📋 Formas de pagamento disponíveis mediante consulta.\n"
        "\n"
        "_Orçamento válido por 24 horas_"
    )


def generate_supplier_message(quote: Quote, pricing: Optional[MileagePricingResult] = None) -> str:
    """Emission request for the miles supplier."""
    pricing = pricing or calculate_quote_pricing(quote)

    return (
        "📊 *SOLICITAÇÃO DE EMISSÃO*\n"
        "\n"
        f"✈️ *Milhas necessárias:* {format_miles(pricing.total_miles)}\n"
        f"💵 *Custo:* R$ {format_currency(pricing.total_cost)}\n"
        f"👤 *Cliente:* {quote.client_name or '[Nome]'}\n"
        f"📞 *Telefone:* {quote.client_phone or '[Telefone]'}\n"
        "\n"
        f"{format_route_block(quote)}\n"
        "\n"
        "_Aguardando confirmação para emissão_"
    )


# ============================================================================
# CREATE Operations
# ============================================================================

def create_quote(quote: Quote) -> Optional[Quote]:
    """
    Save a new quote with status pending.

    Segments are written in canonical form with schema_version.
    """
    supabase = get_supabase()

    data = quote.to_dict()
    data['status'] = 'pending'

    try:
        result = supabase.table('quotes').insert(data).execute()

        if result.data:
            created = Quote.from_dict(result.data[0])
            logger.info(f"Quote {created.id} created for {created.client_name}")
            return created
        return None
    except Exception as e:
        logger.error(f"Error creating quote: {e}")
        return None


# ============================================================================
# READ Operations
# ============================================================================

def get_quote(quote_id: str) -> Optional[Quote]:
    """Get a quote by ID."""
    supabase = get_supabase()

    try:
        result = supabase.table('quotes').select('*').eq('id', quote_id).execute()

        if result.data:
            return Quote.from_dict(result.data[0])
        return None
    except Exception as e:
        logger.error(f"Error getting quote: {e}")
        return None


def get_quotes(
    user_id: Optional[str] = None,
    converted: Optional[bool] = None,
    limit: int = 100,
) -> List[Quote]:
    """
    List quotes, newest first.

    Args:
        user_id: Only quotes created by this user
        converted: True for converted only, False for open only, None for all
        limit: Maximum number of quotes
    """
    supabase = get_supabase()

    try:
        query = supabase.table('quotes').select('*')

        if user_id:
            query = query.eq('user_id', user_id)
        if converted is True:
            query = query.not_.is_('converted_to_sale_id', 'null')
        elif converted is False:
            query = query.is_('converted_to_sale_id', 'null')

        result = query.order('created_at', desc=True).limit(limit).execute()

        return [Quote.from_dict(row) for row in result.data or []]
    except Exception as e:
        logger.error(f"Error getting quotes: {e}")
        return []


# ============================================================================
# UPDATE Operations
# ============================================================================

def mark_quote_sent(quote_id: str) -> Optional[Quote]:
    """Move a pending quote to sent. Other statuses are left unchanged."""
    quote = get_quote(quote_id)
    if not quote:
        return None

    if not can_transition_quote(quote.status, 'sent'):
        logger.warning(f"Quote {quote_id}: cannot move from {quote.status} to sent")
        return quote

    supabase = get_supabase()

    try:
        result = supabase.table('quotes').update({
            'status': 'sent',
        }).eq('id', quote_id).eq('status', quote.status).execute()

        if result.data:
            return Quote.from_dict(result.data[0])
        return get_quote(quote_id)
    except Exception as e:
        logger.error(f"Error marking quote sent: {e}")
        return None


def mark_quote_converted(quote_id: str, sale_id: str) -> Optional[Quote]:
    """
    Link a quote to its sale.

    The write only applies while converted_to_sale_id IS NULL, so a link is
    never overwritten. Returns None when no row was updated: either the
    quote was linked concurrently or the write failed.
    """
    supabase = get_supabase()

    try:
        result = supabase.table('quotes').update({
            'converted_to_sale_id': sale_id,
            'converted_at': datetime.now().isoformat(),
            'status': 'converted',
        }).eq('id', quote_id).is_('converted_to_sale_id', 'null').execute()

        if result.data:
            return Quote.from_dict(result.data[0])
        return None
    except Exception as e:
        logger.error(f"Error linking quote {quote_id} to sale {sale_id}: {e}")
        return None
