"""
Tests for Quote Service

Tests for:
- Quote row decoding (JSON text columns, flight_details keys)
- Status transitions
- Route text and client/supplier messages
- Conditional link to a sale
"""

import pytest
from unittest.mock import patch, MagicMock
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from conftest import make_quote, make_round_trip_quote, make_uuid, MockSupabaseClient

from pricing_models import RoundTripSegments, SEGMENT_SCHEMA_VERSION
from services.quote_service import (
    Quote,
    QUOTE_STATUSES,
    QUOTE_TRANSITIONS,
    get_quote_status_name,
    can_transition_quote,
    effective_markup,
    calculate_quote_pricing,
    format_date_br,
    format_quote_route,
    format_route_block,
    generate_client_message,
    generate_supplier_message,
    create_quote,
    get_quote,
    get_quotes,
    mark_quote_sent,
    mark_quote_converted,
)


# =============================================================================
# QUOTE DATA CLASS TESTS
# =============================================================================

class TestQuoteDataClass:
    """Tests for Quote.from_dict / to_dict."""

    def test_from_dict_reads_flight_details(self):
        quote = Quote.from_dict(make_quote(cost_per_thousand=29, target_margin=20, manual_price=1900))
        assert quote.cost_per_thousand == 29
        assert quote.target_markup_percent == 20
        assert quote.manual_price == 1900
        assert quote.boarding_fee == 35

    def test_from_dict_decodes_json_text(self):
        row = make_round_trip_quote(stringify=True)
        quote = Quote.from_dict(row)
        assert isinstance(quote.flight_segments, list)
        assert quote.cost_per_thousand == 29
        assert isinstance(quote.segments, RoundTripSegments)
        assert quote.segments.miles_outbound == 25000

    def test_from_dict_bad_json(self):
        row = make_quote()
        row["flight_segments"] = "{broken"
        row["flight_details"] = "also broken"
        quote = Quote.from_dict(row)
        assert quote.flight_segments == []
        assert quote.cost_per_thousand == 0
        assert quote.target_markup_percent is None

    def test_from_dict_brazilian_numbers(self):
        row = make_quote()
        row["total_price"] = "1.775,00"
        row["passengers"] = None
        quote = Quote.from_dict(row)
        assert quote.total_price == 1775
        assert quote.passengers == 1

    def test_converted_flag(self):
        sale_id = make_uuid()
        quote = Quote.from_dict(make_quote(converted_to_sale_id=sale_id, status="converted"))
        assert quote.is_converted is True
        assert quote.converted_to_sale_id == sale_id
        assert quote.converted_at is not None

    def test_to_dict_writes_canonical_segments(self):
        quote = Quote.from_dict(make_round_trip_quote())
        data = quote.to_dict()

        assert data["flight_segments"][0]["schema_version"] == SEGMENT_SCHEMA_VERSION
        assert data["flight_details"]["costPerMile"] == 29
        assert data["route"] == "GRU ⇄ LIS"
        assert "id" not in data


class TestQuoteStatus:
    """Tests for status metadata and transitions."""

    def test_statuses(self):
        assert QUOTE_STATUSES == ['pending', 'sent', 'converted']

    def test_converted_is_terminal(self):
        assert QUOTE_TRANSITIONS['converted'] == []
        assert can_transition_quote('converted', 'pending') is False
        assert can_transition_quote('converted', 'sent') is False

    def test_forward_transitions(self):
        assert can_transition_quote('pending', 'sent') is True
        assert can_transition_quote('sent', 'converted') is True
        assert can_transition_quote('sent', 'pending') is False

    def test_status_names(self):
        assert get_quote_status_name('converted') == 'Convertido'
        assert get_quote_status_name('unknown') == 'unknown'


# =============================================================================
# PRICING TESTS
# =============================================================================

class TestQuotePricing:
    """Tests for calculate_quote_pricing."""

    def test_reference_quote(self):
        pricing = calculate_quote_pricing(Quote.from_dict(make_quote()))
        assert pricing.total_cost == pytest.approx(1485)
        assert pricing.final_price_total == pytest.approx(1775)

    def test_manual_price(self):
        pricing = calculate_quote_pricing(Quote.from_dict(make_quote(manual_price=2000)))
        assert pricing.final_price_per_passenger == 2000

    def test_round_trip_two_passengers(self):
        quote = Quote.from_dict(make_round_trip_quote(cost_per_thousand=20, boarding_fee=0, target_margin=0))
        pricing = calculate_quote_pricing(quote)
        assert pricing.total_miles == 100000
        assert pricing.total_cost == pytest.approx(2000)

    def test_default_markup_when_missing(self, pricing_settings_env):
        pricing_settings_env.setenv("DEFAULT_MARKUP_PERCENT", "15")
        quote = Quote.from_dict(make_quote(target_margin=None))
        assert effective_markup(quote) == 15

    def test_stored_markup_wins(self):
        assert effective_markup(Quote.from_dict(make_quote(target_margin=0))) == 0


# =============================================================================
# ROUTE AND MESSAGE TESTS
# =============================================================================

class TestRouteText:
    """Tests for format_quote_route and format_route_block."""

    def test_round_trip(self):
        assert format_quote_route(Quote.from_dict(make_round_trip_quote())) == "GRU ⇄ LIS"

    def test_one_way(self):
        assert format_quote_route(Quote.from_dict(make_quote())) == "GRU → LIS"

    def test_multi_city_skips_incomplete_legs(self):
        segments = [
            {"from": "GRU", "to": "LIS", "date": "2025-03-10", "miles": 1000},
            {"from": "LIS", "to": "", "miles": 1000},
            {"from": "LIS", "to": "MAD", "date": "2025-03-15", "miles": 1000},
        ]
        quote = Quote.from_dict(make_quote(trip_type="multi_city", flight_segments=segments))
        assert format_quote_route(quote) == "GRU → LIS, LIS → MAD"

    def test_round_trip_block(self):
        block = format_route_block(Quote.from_dict(make_round_trip_quote()))
        assert "✈️ *Rota:* GRU → LIS" in block
        assert "📅 *Ida:* 10/03/2025" in block
        assert "📅 *Volta:* 20/03/2025" in block

    def test_multi_city_block_numbered(self):
        segments = [
            {"from": "GRU", "to": "LIS", "date": "2025-03-10"},
            {"from": "LIS", "to": "MAD", "date": "2025-03-15"},
        ]
        block = format_route_block(Quote.from_dict(make_quote(trip_type="multi_city", flight_segments=segments)))
        assert block.startswith("✈️ *Trechos:*")
        assert "1. GRU → LIS (10/03/2025)" in block
        assert "2. LIS → MAD (15/03/2025)" in block

    def test_multi_city_block_without_legs(self):
        block = format_route_block(Quote.from_dict(make_quote(trip_type="multi_city", flight_segments=[])))
        assert block == "✈️ *Rota:* [Multi-trechos]"

    def test_one_way_placeholders(self):
        block = format_route_block(Quote.from_dict(make_quote(flight_segments=[{"miles": 1000}])))
        assert "[ORIGEM]" in block
        assert "[DESTINO]" in block
        assert "[DATA]" in block

    def test_format_date_br(self):
        assert format_date_br("2025-03-10") == "10/03/2025"
        assert format_date_br("2025-03-10T12:00:00") == "10/03/2025"
        assert format_date_br(None) == "[DATA]"
        assert format_date_br("amanhã") == "amanhã"


class TestMessages:
    """Tests for client and supplier messages."""

    def test_client_message(self):
        message = generate_client_message(Quote.from_dict(make_quote()))
        assert message.startswith("🎫 *ORÇAMENTO DE PASSAGEM AÉREA*")
        assert "👤 *Cliente:* Maria Souza" in message
        assert "✈️ *Milhas:* 50.000" in message
        assert "*R$ 1.775,00*" in message
        assert "📅 *Data:* 10/03/2025" in message
        assert message.endswith("_Orçamento válido por 24 horas_")

    def test_client_message_placeholders(self):
        row = make_quote()
        row["client_name"] = ""
        row["client_phone"] = None
        message = generate_client_message(Quote.from_dict(row))
        assert "[Nome]" in message
        assert "[Telefone]" in message

    def test_supplier_message(self):
        message = generate_supplier_message(Quote.from_dict(make_quote()))
        assert message.startswith("📊 *SOLICITAÇÃO DE EMISSÃO*")
        assert "✈️ *Milhas necessárias:* 50.000" in message
        assert "💵 *Custo:* R$ 1.485,00" in message
        assert message.endswith("_Aguardando confirmação para emissão_")

    def test_messages_accept_precomputed_pricing(self):
        quote = Quote.from_dict(make_quote())
        pricing = calculate_quote_pricing(quote).model_copy(update={"final_price_total": 999})
        assert "*R$ 999,00*" in generate_client_message(quote, pricing)


# =============================================================================
# DATABASE OPERATION TESTS
# =============================================================================

class TestQuoteCrud:
    """Tests for quote persistence."""

    @patch('services.quote_service.get_supabase')
    def test_create_quote_is_pending(self, mock_get_supabase):
        client = MockSupabaseClient()
        mock_get_supabase.return_value = client

        quote = Quote.from_dict(make_quote(status="sent"))
        created = create_quote(quote)

        assert created.id
        assert created.status == 'pending'
        assert client.get_table_data('quotes')[0]['route'] == "GRU → LIS"

    @patch('services.quote_service.get_supabase')
    def test_get_quote(self, mock_get_supabase):
        row = make_quote()
        client = MockSupabaseClient()
        client.set_table_data('quotes', [row])
        mock_get_supabase.return_value = client

        assert get_quote(row['id']).client_name == "Maria Souza"
        assert get_quote(make_uuid()) is None

    @patch('services.quote_service.get_supabase')
    def test_get_quote_error(self, mock_get_supabase):
        mock_supabase = MagicMock()
        mock_supabase.table.return_value.select.return_value.eq.return_value.execute.side_effect = Exception("DB error")
        mock_get_supabase.return_value = mock_supabase

        assert get_quote(make_uuid()) is None

    @patch('services.quote_service.get_supabase')
    def test_get_quotes_converted_filter(self, mock_get_supabase):
        open_quote = make_quote()
        converted = make_quote(converted_to_sale_id=make_uuid(), status="converted")
        client = MockSupabaseClient()
        client.set_table_data('quotes', [open_quote, converted])
        mock_get_supabase.return_value = client

        assert [q.id for q in get_quotes(converted=False)] == [open_quote['id']]
        assert [q.id for q in get_quotes(converted=True)] == [converted['id']]
        assert len(get_quotes()) == 2

    @patch('services.quote_service.get_supabase')
    def test_mark_quote_sent(self, mock_get_supabase):
        row = make_quote(status="pending")
        client = MockSupabaseClient()
        client.set_table_data('quotes', [row])
        mock_get_supabase.return_value = client

        assert mark_quote_sent(row['id']).status == 'sent'

    @patch('services.quote_service.get_supabase')
    def test_mark_converted_quote_sent_is_noop(self, mock_get_supabase):
        row = make_quote(status="converted", converted_to_sale_id=make_uuid())
        client = MockSupabaseClient()
        client.set_table_data('quotes', [row])
        mock_get_supabase.return_value = client

        assert mark_quote_sent(row['id']).status == 'converted'
        assert client.get_table_data('quotes')[0]['status'] == 'converted'


class TestMarkQuoteConverted:
    """The link to a sale is written once and never reassigned."""

    @patch('services.quote_service.get_supabase')
    def test_links_open_quote(self, mock_get_supabase):
        row = make_quote()
        sale_id = make_uuid()
        client = MockSupabaseClient()
        client.set_table_data('quotes', [row])
        mock_get_supabase.return_value = client

        linked = mark_quote_converted(row['id'], sale_id)

        assert linked.converted_to_sale_id == sale_id
        assert linked.status == 'converted'
        assert linked.converted_at is not None

    @patch('services.quote_service.get_supabase')
    def test_never_overwrites_existing_link(self, mock_get_supabase):
        existing = make_uuid()
        row = make_quote(converted_to_sale_id=existing, status="converted")
        client = MockSupabaseClient()
        client.set_table_data('quotes', [row])
        mock_get_supabase.return_value = client

        assert mark_quote_converted(row['id'], make_uuid()) is None
        assert client.get_table_data('quotes')[0]['converted_to_sale_id'] == existing

    @patch('services.quote_service.get_supabase')
    def test_uses_null_guard(self, mock_get_supabase):
        mock_supabase = MagicMock()
        mock_get_supabase.return_value = mock_supabase
        chain = mock_supabase.table.return_value.update.return_value.eq.return_value
        chain.is_.return_value.execute.return_value.data = []

        assert mark_quote_converted("quote-1", "sale-1") is None
        chain.is_.assert_called_once_with('converted_to_sale_id', 'null')
