"""
Ticket Service

One ticket per passenger on a sale. All tickets of a sale share its route
text and PNR; only the passenger identity differs.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

from pricing_models import TripType, load_pricing_settings
from .database import get_supabase
from .sale_service import Sale

logger = logging.getLogger(__name__)

PassengerIdentity = Union[str, Dict[str, Any], None]


# ============================================================================
# Data Classes
# ============================================================================

@dataclass
class Ticket:
    """Represents an airline ticket issued for one passenger."""
    id: Optional[str]
    sale_id: str
    passenger_name: str
    passenger_cpf_encrypted: Optional[str]
    route: str
    pnr: Optional[str]
    airline: Optional[str]
    departure_date: Optional[str]
    return_date: Optional[str]
    ticket_code: str
    status: str = 'pending'  # 'pending', 'confirmed', 'cancelled'

    @classmethod
    def from_dict(cls, data: dict) -> 'Ticket':
        """Create a Ticket instance from a dictionary."""
        return cls(
            id=data.get('id'),
            sale_id=data['sale_id'],
            passenger_name=data.get('passenger_name') or "",
            passenger_cpf_encrypted=data.get('passenger_cpf_encrypted'),
            route=data.get('route') or "",
            pnr=data.get('pnr'),
            airline=data.get('airline'),
            departure_date=data.get('departure_date'),
            return_date=data.get('return_date'),
            ticket_code=data.get('ticket_code') or "",
            status=data.get('status', 'pending'),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for database operations."""
        return {
            'sale_id': self.sale_id,
            'passenger_name': self.passenger_name,
            'passenger_cpf_encrypted': self.passenger_cpf_encrypted,
            'route': self.route,
            'pnr': self.pnr,
            'airline': self.airline,
            'departure_date': self.departure_date,
            'return_date': self.return_date,
            'ticket_code': self.ticket_code,
            'status': self.status,
        }


# Valid ticket statuses
TICKET_STATUSES = ['pending', 'confirmed', 'cancelled']


# ============================================================================
# Ticket Stubs
# ============================================================================

def generate_ticket_code(sale_id: str, index: int, prefix: Optional[str] = None) -> str:
    """
    Ticket code for the index-th passenger (1-based) of a sale.

    Format: {PREFIX}-{first 8 chars of sale id}-{index:02d}
    Example: TKT-3F2A9C1B-01
    """
    if prefix is None:
        prefix = load_pricing_settings().ticket_code_prefix
    return f"{prefix}-{str(sale_id)[:8].upper()}-{index:02d}"


def _identity(passenger: PassengerIdentity, index: int) -> Dict[str, Optional[str]]:
    if isinstance(passenger, dict):
        name = passenger.get('name') or passenger.get('passenger_name')
        cpf = passenger.get('cpf') or passenger.get('passenger_cpf_encrypted')
    else:
        name, cpf = passenger, None
    return {
        'name': str(name).strip() if name and str(name).strip() else f"Passageiro {index}",
        'cpf': cpf,
    }


def build_ticket_stubs(
    sale: Sale,
    passengers: Optional[Sequence[PassengerIdentity]] = None,
    pnr: Optional[str] = None,
) -> List[Ticket]:
    """
    Build exactly one ticket per passenger of the sale (not persisted).

    Missing identities become numbered placeholders; identities beyond the
    sale's passenger count are ignored.
    """
    passengers = list(passengers or [])
    count = sale.passengers if sale.passengers and sale.passengers >= 1 else 1

    if len(passengers) > count:
        logger.warning(
            f"Sale {sale.id}: {len(passengers)} passenger identities for {count} passengers, extra ignored"
        )

    segments = sale.flight_segments
    first = segments[0] if segments else None
    return_date = None
    if sale.trip_type == TripType.ROUND_TRIP.value and len(segments) >= 2:
        return_date = segments[-1].date

    tickets = []
    for index in range(1, count + 1):
        identity = _identity(passengers[index - 1] if index <= len(passengers) else None, index)
        tickets.append(Ticket(
            id=None,
            sale_id=sale.id,
            passenger_name=identity['name'],
            passenger_cpf_encrypted=identity['cpf'],
            route=sale.route_text,
            pnr=pnr,
            airline=first.airline if first else None,
            departure_date=first.date if first else None,
            return_date=return_date,
            ticket_code=generate_ticket_code(sale.id or "", index),
            status='pending',
        ))
    return tickets


# ============================================================================
# CREATE Operations
# ============================================================================

def create_tickets_for_sale(
    sale: Sale,
    passengers: Optional[Sequence[PassengerIdentity]] = None,
    pnr: Optional[str] = None,
) -> List[Ticket]:
    """
    Persist one ticket per passenger.

    Returns:
        Created tickets, or [] on failure
    """
    if not sale.id:
        logger.error("Cannot create tickets for a sale without id")
        return []

    stubs = build_ticket_stubs(sale, passengers, pnr)
    supabase = get_supabase()

    try:
        result = supabase.table('tickets').insert([t.to_dict() for t in stubs]).execute()

        tickets = [Ticket.from_dict(row) for row in result.data or []]
        logger.info(f"Sale {sale.id}: {len(tickets)} tickets created")
        return tickets
    except Exception as e:
        logger.error(f"Error creating tickets for sale {sale.id}: {e}")
        return []


# ============================================================================
# READ Operations
# ============================================================================

def get_tickets_for_sale(sale_id: str) -> List[Ticket]:
    """Get all tickets of a sale."""
    supabase = get_supabase()

    try:
        result = supabase.table('tickets').select('*').eq('sale_id', sale_id).order('ticket_code').execute()

        return [Ticket.from_dict(row) for row in result.data or []]
    except Exception as e:
        logger.error(f"Error getting tickets: {e}")
        return []
