"""
Milhas Services

Persistence and orchestration around the pricing engine.
Quote lifecycle and client/supplier messages.
Quote to sale conversion with exactly-once link-back.
Card interest configuration and installment quotes.
"""

from .database import get_supabase
from .interest_service import (
    # Row mapping
    config_from_row,
    config_to_row,
    # Resolution
    find_interest_config,
    resolve_interest_rate,
    compute_installment,
    quote_installments,
    build_installment_options,
    get_debit_config,
    get_credit_configs,
    # Validation
    build_interest_config,
    # CRUD
    create_interest_config,
    get_interest_configs,
    get_interest_config,
    update_interest_config,
    deactivate_interest_config,
    delete_interest_config,
)
from .quote_service import (
    # Data class
    Quote,
    # Status metadata
    QUOTE_STATUSES,
    QUOTE_STATUS_NAMES,
    QUOTE_TRANSITIONS,
    get_quote_status_name,
    can_transition_quote,
    # Pricing
    effective_markup,
    calculate_quote_pricing,
    # Messages
    format_quote_route,
    format_route_block,
    generate_client_message,
    generate_supplier_message,
    # CRUD
    create_quote,
    get_quote,
    get_quotes,
    mark_quote_sent,
    mark_quote_converted,
)
from .sale_service import (
    Sale,
    build_route_text,
    create_sale,
    get_sale,
    get_sale_by_quote,
    delete_sale,
)
from .ticket_service import (
    Ticket,
    TICKET_STATUSES,
    generate_ticket_code,
    build_ticket_stubs,
    create_tickets_for_sale,
    get_tickets_for_sale,
)
from .conversion_service import (
    ConvertQuoteResult,
    to_sale_segments,
    convert_quote_to_sale,
    convert_quote,
)

__all__ = [
    "get_supabase",
    # Interest service
    "config_from_row",
    "config_to_row",
    "find_interest_config",
    "resolve_interest_rate",
    "compute_installment",
    "quote_installments",
    "build_installment_options",
    "get_debit_config",
    "get_credit_configs",
    "build_interest_config",
    "create_interest_config",
    "get_interest_configs",
    "get_interest_config",
    "update_interest_config",
    "deactivate_interest_config",
    "delete_interest_config",
    # Quote service
    "Quote",
    "QUOTE_STATUSES",
    "QUOTE_STATUS_NAMES",
    "QUOTE_TRANSITIONS",
    "get_quote_status_name",
    "can_transition_quote",
    "effective_markup",
    "calculate_quote_pricing",
    "format_quote_route",
    "format_route_block",
    "generate_client_message",
    "generate_supplier_message",
    "create_quote",
    "get_quote",
    "get_quotes",
    "mark_quote_sent",
    "mark_quote_converted",
    # Sale service
    "Sale",
    "build_route_text",
    "create_sale",
    "get_sale",
    "get_sale_by_quote",
    "delete_sale",
    # Ticket service
    "Ticket",
    "TICKET_STATUSES",
    "generate_ticket_code",
    "build_ticket_stubs",
    "create_tickets_for_sale",
    "get_tickets_for_sale",
    # Conversion service
    "ConvertQuoteResult",
    "to_sale_segments",
    "convert_quote_to_sale",
    "convert_quote",
]
