"""
Sale Service

CRUD operations for the sales table.

Sales carry SALE-SHAPE segments: each segment's miles are already multiplied
by the passenger count. Financial columns are written under both their
current and legacy names so older reports keep reading them.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from pricing_engine import parse_decimal, parse_passengers
from pricing_models import FlightSegment
from segment_mapper import decode_segments, parse_flight_segment
from .database import get_supabase

logger = logging.getLogger(__name__)


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class Sale:
    """Represents a confirmed mileage sale."""
    id: Optional[str]
    quote_id: Optional[str]

    # Customer
    customer_name: str
    customer_phone: str = ""

    # Trip
    trip_type: str = 'one_way'
    passengers: int = 1
    flight_segments: List[FlightSegment] = field(default_factory=list)  # per-trip miles
    route_text: str = ""

    # Financial details (whole sale unless noted)
    price_total: float = 0
    price_per_passenger: float = 0
    boarding_fee_total: float = 0
    miles_used_total: float = 0
    cost_per_thousand: float = 0
    total_cost: float = 0
    profit: float = 0
    profit_margin_percent: float = 0

    # Payment
    payment_method: Optional[str] = None
    installments: int = 1
    interest_rate_percent: float = 0
    final_price_with_interest: float = 0

    # Status / audit
    status: str = 'pending'
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'Sale':
        """Create a Sale from a sales row. Legacy column names are accepted."""
        passengers = parse_passengers(data.get('passengers'))
        fee_per_passenger = parse_decimal(data.get('boarding_fee'))
        price_total = parse_decimal(data.get('price_total', data.get('sale_price')))

        return cls(
            id=data.get('id'),
            quote_id=data.get('quote_id'),
            customer_name=data.get('customer_name') or data.get('client_name') or "",
            customer_phone=data.get('customer_phone') or "",
            trip_type=data.get('trip_type') or 'one_way',
            passengers=passengers,
            flight_segments=[parse_flight_segment(r) for r in decode_segments(data.get('flight_segments'))],
            route_text=data.get('route_text') or "",
            price_total=price_total,
            price_per_passenger=parse_decimal(data.get('price_per_passenger')) or price_total / passengers,
            boarding_fee_total=fee_per_passenger * passengers,
            miles_used_total=parse_decimal(data.get('miles_used')),
            cost_per_thousand=parse_decimal(data.get('cost_per_thousand')),
            total_cost=parse_decimal(data.get('total_cost')),
            profit=parse_decimal(data.get('profit', data.get('margin_value'))),
            profit_margin_percent=parse_decimal(data.get('profit_margin', data.get('margin_percentage'))),
            payment_method=data.get('payment_method'),
            installments=int(parse_decimal(data.get('installments'))) or 1,
            interest_rate_percent=parse_decimal(data.get('interest_rate')),
            final_price_with_interest=parse_decimal(data.get('final_price_with_interest')) or price_total,
            status=data.get('status') or 'pending',
            created_by=data.get('created_by'),
            created_at=datetime.fromisoformat(data['created_at'].replace('Z', '+00:00')) if isinstance(data.get('created_at'), str) else data.get('created_at'),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for database operations."""
        return {
            'quote_id': self.quote_id,
            'client_name': self.customer_name,
            'customer_name': self.customer_name,
            'customer_phone': self.customer_phone,
            'trip_type': self.trip_type,
            'passengers': self.passengers,
            'flight_segments': [segment.to_record() for segment in self.flight_segments],
            'route_text': self.route_text,
            'miles_used': self.miles_used_total,
            'cost_per_thousand': self.cost_per_thousand,
            'boarding_fee': self.boarding_fee_total / self.passengers if self.passengers else 0,
            'total_cost': self.total_cost,
            'price_total': self.price_total,
            'sale_price': self.price_total,
            'price_per_passenger': self.price_per_passenger,
            'profit': self.profit,
            'margin_value': self.profit,
            'profit_margin': self.profit_margin_percent,
            'margin_percentage': self.profit_margin_percent,
            'payment_method': self.payment_method,
            'installments': self.installments,
            'interest_rate': self.interest_rate_percent,
            'final_price_with_interest': self.final_price_with_interest,
            'status': self.status,
            'created_by': self.created_by,
        }


def build_route_text(segments: List[FlightSegment]) -> str:
    """Route summary such as "FOR-GRU, GRU-GIG"."""
    return ", ".join(f"{s.from_}-{s.to}" for s in segments)


# ============================================================================
# CREATE Operations
# ============================================================================

def create_sale(sale: Sale) -> Optional[Sale]:
    """
    Insert a sale.

    Returns:
        Created Sale with its database id, or None on failure
    """
    supabase = get_supabase()

    try:
        result = supabase.table('sales').insert(sale.to_dict()).execute()

        if result.data:
            created = Sale.from_dict(result.data[0])
            logger.info(f"Sale {created.id} created: {created.route_text} x{created.passengers}")
            return created
        return None
    except Exception as e:
        logger.error(f"Error creating sale: {e}")
        return None


# ============================================================================
# READ Operations
# ============================================================================

def get_sale(sale_id: str) -> Optional[Sale]:
    """Get a sale by ID."""
    supabase = get_supabase()

    try:
        result = supabase.table('sales').select('*').eq('id', sale_id).execute()

        if result.data:
            return Sale.from_dict(result.data[0])
        return None
    except Exception as e:
        logger.error(f"Error getting sale: {e}")
        return None


def get_sale_by_quote(quote_id: str) -> Optional[Sale]:
    """Get the sale created from a quote, if any."""
    supabase = get_supabase()

    try:
        result = supabase.table('sales').select('*').eq('quote_id', quote_id).execute()

        if result.data:
            return Sale.from_dict(result.data[0])
        return None
    except Exception as e:
        logger.error(f"Error getting sale by quote: {e}")
        return None


# ============================================================================
# DELETE Operations
# ============================================================================

def delete_sale(sale_id: str) -> bool:
    """Delete a sale. Used to roll back a conversion that lost a race."""
    supabase = get_supabase()

    try:
        supabase.table('sales').delete().eq('id', sale_id).execute()
        return True
    except Exception as e:
        logger.error(f"Error deleting sale: {e}")
        return False
