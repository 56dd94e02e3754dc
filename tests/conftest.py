"""
Shared fixtures: a stub HTTP session and a small fixed data snapshot.
"""

import json

import pytest

from sales_engine.api_client import DataProviderClient
from sales_engine.config import ProviderSettings, ReportConfig


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None, url=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)
        self.url = url

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """
    Stands in for requests.Session.

    `handler(url, params)` returns a FakeResponse or raises; every call is recorded.
    """

    def __init__(self, handler):
        self.handler = handler
        self.headers = {}
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({'url': url, 'params': dict(params or {}), 'timeout': timeout})
        return self.handler(url, dict(params or {}))


@pytest.fixture
def settings():
    return ProviderSettings(base_url="http://provider.test/", token="secret", timeout=5, page_size=2)


@pytest.fixture
def make_client(settings, monkeypatch):
    """Build a client around a FakeSession with backoff sleeps disabled"""
    monkeypatch.setattr("sales_engine.api_client.time.sleep", lambda seconds: None)

    def factory(handler):
        return DataProviderClient(settings=settings, session=FakeSession(handler))

    return factory


@pytest.fixture
def config():
    return ReportConfig.default()


@pytest.fixture
def snapshot():
    """
    Two invoices, one return, a product family and a few orphans.

    Family: P100 (root) <- P101, P102. P100 links to supplier 1 (FOODSPHERE INC).
    P200 is a Lucky Me product with no supplier link at all.
    """
    return {
        'invoices': [
            {'invoice_id': 1, 'invoice_date': '2024-01-05T09:30:00', 'total_amount': 1500,
             'salesman_id': 9, 'customer_code': 'C1'},
            {'invoice_id': 2, 'invoice_date': '2024-01-06', 'total_amount': 700,
             'salesman_id': {'id': 10, 'salesman_name': 'Bea'}, 'customer_code': 'C2'},
        ],
        'invoice_lines': [
            {'invoice_no': 1, 'product_id': 101, 'quantity': 10, 'total_amount': 1000,
             'discount_amount': 0},
            {'invoice_no': {'invoice_id': 1}, 'product_id': 200, 'quantity': 5, 'total_amount': 500},
            {'invoice_no': 2, 'product_id': {'product_id': 102}, 'quantity': 4, 'total_amount': 800,
             'discount_amount': 100},
            # orphan: invoice 99 was not fetched
            {'invoice_no': 99, 'product_id': 101, 'quantity': 1000, 'total_amount': 99999},
        ],
        'returns': [
            {'id': 7, 'return_number': 'SR-001', 'return_date': '2024-01-06'},
        ],
        'return_lines': [
            {'return_no': 'SR-001', 'product_id': 101, 'quantity': 2},
            {'return_no': 7, 'product_id': 200, 'quantity': 1},
            # orphan: header not fetched
            {'return_no': 'SR-404', 'product_id': 101, 'quantity': 50},
        ],
        'products': [
            {'product_id': 100, 'parent_id': None, 'product_name': 'CDO Hotdog Family',
             'product_brand': 1, 'product_section': 2, 'stock': 0},
            {'product_id': 101, 'parent_id': 100, 'product_name': 'CDO Hotdog 1kg',
             'product_brand': 1, 'product_section': 2, 'stock': 30},
            {'product_id': 102, 'parent_id': 100, 'product_name': 'CDO Hotdog 500g',
             'product_brand': 1, 'product_section': 2, 'inventory': 20},
            {'product_id': 200, 'parent_id': 0, 'product_name': 'Lucky Me Pancit Canton',
             'product_brand': 3, 'product_section': 4, 'stock': 45},
        ],
        'product_suppliers': [
            {'product_id': 100, 'supplier_id': 1},
        ],
        'suppliers': [
            {'id': 1, 'supplier_name': 'Foodsphere Inc'},
        ],
        'brands': [
            {'brand_id': 1, 'brand_name': 'CDO'},
            {'brand_id': 3, 'brand_name': 'Lucky Me'},
        ],
        'sections': [
            {'section_id': 2, 'section_name': 'Processed Meat'},
            {'section_id': 4, 'section_name': 'Noodles'},
        ],
        'salesmen': [
            {'id': 9, 'salesman_name': 'Ana'},
            {'id': 10, 'salesman_name': 'Bea'},
        ],
        'customers': [
            {'customer_code': 'C1', 'store_name': 'Sari Store One'},
            {'customer_code': 'C2', 'customer_name': 'Mini Mart Two'},
        ],
    }
