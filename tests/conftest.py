"""
Shared pytest fixtures for pricing engine tests.

Provides:
- Mock Supabase client
- Test data factories for quotes, sales and interest configs
"""

import pytest
import os
import json
from unittest.mock import MagicMock
from datetime import datetime
from uuid import uuid4

# Set test environment before importing services
os.environ["TESTING"] = "true"
os.environ["SUPABASE_URL"] = "https://test.supabase.co"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"


# ============================================================================
# MOCK FACTORIES
# ============================================================================

def make_uuid():
    """Generate a UUID string."""
    return str(uuid4())


def make_quote(
    quote_id=None,
    trip_type="one_way",
    passengers=1,
    flight_segments=None,
    total_price=1775.0,
    boarding_fee=35,
    cost_per_thousand=29,
    target_margin=20,
    manual_price=None,
    miles_needed=50000,
    status="pending",
    converted_to_sale_id=None,
    stringify=False,
):
    """
    Create a mock quotes row.

    stringify=True mimics older rows where flight_segments and
    flight_details were saved as JSON text.
    """
    if flight_segments is None:
        flight_segments = [{"from": "GRU", "to": "LIS", "date": "2025-03-10", "miles": 50000}]

    details = {
        "costPerMile": cost_per_thousand,
        "targetMargin": target_margin,
        "manualPrice": manual_price,
        "notes": "",
    }

    return {
        "id": quote_id or make_uuid(),
        "user_id": make_uuid(),
        "client_name": "Maria Souza",
        "client_phone": "+55 11 99999-0000",
        "route": "",
        "trip_type": trip_type,
        "passengers": passengers,
        "flight_segments": json.dumps(flight_segments) if stringify else flight_segments,
        "flight_details": json.dumps(details) if stringify else details,
        "miles_needed": miles_needed,
        "total_price": total_price,
        "boarding_fee": boarding_fee,
        "status": status,
        "converted_to_sale_id": converted_to_sale_id,
        "converted_at": datetime.now().isoformat() if converted_to_sale_id else None,
        "created_at": datetime.now().isoformat(),
    }


def make_round_trip_quote(miles_outbound=25000, miles_return=25000, passengers=2, **kwargs):
    """Create a round-trip quotes row with one combined segment record."""
    segments = [{
        "origin": "GRU",
        "destination": "LIS",
        "departure_date": "2025-03-10",
        "return_date": "2025-03-20",
        "miles_outbound": miles_outbound,
        "miles_return": miles_return,
    }]
    return make_quote(trip_type="round_trip", passengers=passengers, flight_segments=segments, **kwargs)


def make_sale_row(sale_id=None, quote_id=None, passengers=1, **overrides):
    """Create a mock sales row as returned after insert."""
    row = {
        "id": sale_id or make_uuid(),
        "quote_id": quote_id,
        "client_name": "Maria Souza",
        "customer_name": "Maria Souza",
        "trip_type": "one_way",
        "passengers": passengers,
        "flight_segments": [{"from": "GRU", "to": "LIS", "date": "2025-03-10", "miles": 50000}],
        "route_text": "GRU-LIS",
        "miles_used": 50000,
        "cost_per_thousand": 29,
        "boarding_fee": 35,
        "total_cost": 1485,
        "price_total": 1775,
        "sale_price": 1775,
        "price_per_passenger": 1775,
        "profit": 290,
        "profit_margin": 16.34,
        "payment_method": None,
        "installments": 1,
        "interest_rate": 0,
        "final_price_with_interest": 1775,
        "status": "pending",
        "created_at": datetime.now().isoformat(),
    }
    row.update(overrides)
    return row


def make_interest_config(
    payment_type="credit",
    installments=3,
    interest_rate=6,
    config_type="flat",
    per_installment_rates=None,
    is_active=True,
    supplier_id=None,
):
    """Create a mock credit_interest_config row."""
    return {
        "id": make_uuid(),
        "supplier_id": supplier_id or make_uuid(),
        "payment_type": payment_type,
        "installments": installments,
        "interest_rate": interest_rate,
        "config_type": config_type,
        "per_installment_rates": per_installment_rates or {},
        "is_active": is_active,
    }


# ============================================================================
# SUPABASE MOCK
# ============================================================================

class MockSupabaseResponse:
    """Mock response from Supabase queries."""
    def __init__(self, data=None, error=None):
        self.data = data or []
        self.error = error


class MockSupabaseQuery:
    """
    Mock Supabase query builder backed by an in-memory table.

    Supports the chains used by the services: select/insert/update/delete
    with eq() and is_(..., 'null') filters.
    """

    def __init__(self, client, table_name):
        self.client = client
        self.table_name = table_name
        self._filters = []
        self._action = "select"
        self._payload = None
        self._negate = False

    @property
    def _rows(self):
        return self.client._tables.setdefault(self.table_name, [])

    def select(self, columns="*"):
        return self

    def insert(self, data):
        self._action = "insert"
        self._payload = data
        return self

    def update(self, data):
        self._action = "update"
        self._payload = data
        return self

    def delete(self):
        self._action = "delete"
        return self

    def eq(self, column, value):
        self._filters.append(lambda r: r.get(column) == value)
        return self

    def is_(self, column, value):
        negate = self._negate
        self._negate = False
        if value == "null":
            self._filters.append(lambda r: (r.get(column) is None) != negate)
        return self

    @property
    def not_(self):
        self._negate = True
        return self

    def order(self, column, desc=False):
        return self

    def limit(self, count):
        return self

    def _matches(self, row):
        return all(f(row) for f in self._filters)

    def execute(self):
        if self._action == "insert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            created = []
            for item in payload:
                row = dict(item)
                row.setdefault("id", make_uuid())
                row.setdefault("created_at", datetime.now().isoformat())
                self._rows.append(row)
                created.append(row)
            return MockSupabaseResponse(data=created)

        if self._action == "update":
            updated = []
            for row in self._rows:
                if self._matches(row):
                    row.update(self._payload)
                    updated.append(row)
            return MockSupabaseResponse(data=updated)

        if self._action == "delete":
            removed = [r for r in self._rows if self._matches(r)]
            self.client._tables[self.table_name] = [r for r in self._rows if not self._matches(r)]
            return MockSupabaseResponse(data=removed)

        return MockSupabaseResponse(data=[r for r in self._rows if self._matches(r)])


class MockSupabaseClient:
    """Mock Supabase client for testing."""

    def __init__(self):
        self._tables = {}

    def set_table_data(self, table_name, data):
        """Set mock data for a table."""
        self._tables[table_name] = data

    def get_table_data(self, table_name):
        return self._tables.get(table_name, [])

    def table(self, name):
        """Return a mock query for the table."""
        return MockSupabaseQuery(self, name)

    def auth(self):
        """Mock auth module."""
        return MagicMock()


@pytest.fixture
def mock_supabase():
    """Create a mock Supabase client."""
    return MockSupabaseClient()


@pytest.fixture
def pricing_settings_env(monkeypatch):
    """Reset cached pricing settings around a test that sets env vars."""
    from pricing_models import load_pricing_settings

    load_pricing_settings.cache_clear()
    yield monkeypatch
    load_pricing_settings.cache_clear()
