"""
End-to-end tests for snapshot fetching and report computation.
"""

import copy
import json
import threading
from datetime import date

import pytest

from sales_engine.api_client import DataProviderError
from sales_engine.config import ProviderSettings
from sales_engine.pipeline import COLLECTIONS, build_report, compute_report, fetch_snapshot

from conftest import FakeResponse


class StubClient:
    """Client double serving records per collection name"""

    def __init__(self, data, fail_on=None):
        self.settings = ProviderSettings(max_workers=4)
        self.data = data
        self.fail_on = fail_on
        self.requests = []
        self._lock = threading.Lock()

    def _serve(self, collection, fields, filters):
        with self._lock:
            self.requests.append((collection, dict(filters or {})))
        if collection == self.fail_on:
            raise DataProviderError("boom", collection, status=500, body="server error")
        return list(self.data.get(collection, []))

    def fetch_all_pages(self, collection, fields, filters=None, page_size=None):
        return self._serve(collection, fields, filters)

    def fetch_all(self, collection, fields, filters=None):
        return self._serve(collection, fields, filters)


def by_collection(snapshot):
    return {spec.name: snapshot.get(key, []) for key, spec in COLLECTIONS.items()}


# =============================================================================
# compute_report
# =============================================================================

def test_single_invoice_scenario(config):
    snapshot = {
        'invoices': [{'invoice_id': 1, 'salesman_id': 9, 'customer_code': 'C1',
                      'invoice_date': '2024-01-05'}],
        'invoice_lines': [{'invoice_no': 1, 'product_id': 'P1', 'quantity': 10,
                           'total_amount': 1000}],
        'products': [{'product_id': 'P1', 'parent_id': None, 'product_brand': 'B1'}],
        'product_suppliers': [{'product_id': 'P1', 'supplier_id': 'S1'}],
        'suppliers': [{'id': 'S1', 'supplier_name': 'ACME'}],
    }

    report = compute_report(snapshot, config=config)

    assert report['goodStock']['totalOutflow'] == 10
    assert report['goodStock']['velocityRate'] == 100
    assert report['salesBySupplier'] == [{'name': 'ACME', 'value': 1000}]
    assert report['trendData'] == [{'date': '2024-01-05', 'outflow': 10, 'inflow': 0}]
    assert report['salesBySalesman'] == [{'name': 'Unknown Salesman', 'value': 1000}]
    assert report['pareto']['customers'] == [{'name': 'Customer C1', 'value': 1000}]


def test_overview_report(snapshot, config):
    report = compute_report(snapshot, config=config, include_diagnostics=True)

    assert report['division'] == "Overview"
    assert report['goodStock'] == {
        'velocityRate': 16.67, 'status': 'Slow Moving', 'totalOutflow': 19, 'totalInflow': 114,
    }
    assert report['badStock'] == {'accumulated': 3, 'status': 'Critical', 'totalInflow': 3}
    assert report['salesBySupplier'] == [{'name': 'FOODSPHERE INC', 'value': 1700}]
    assert report['salesBySalesman'] == [
        {'name': 'Ana', 'value': 1000}, {'name': 'Bea', 'value': 700},
    ]
    assert report['supplierBreakdown'][0]['salesmen'][0]['percent'] == 58.82
    assert report['pareto']['products'] == [
        {'name': 'CDO Hotdog 1kg', 'value': 1000},
        {'name': 'CDO Hotdog 500g', 'value': 700},
        {'name': 'Lucky Me Pancit Canton', 'value': 500},
    ]
    assert report['pareto']['customers'] == [
        {'name': 'SARI STORE ONE', 'value': 1000}, {'name': 'MINI MART TWO', 'value': 700},
    ]

    divisions = {row['division']: row for row in report['divisionBreakdown']}
    assert divisions['Frozen Goods'] == {
        'division': 'Frozen Goods', 'outflow': 14, 'status': 'Warning', 'inflow': 2,
    }
    assert divisions['Dry Goods']['outflow'] == 5

    diagnostics = report['diagnostics']
    assert diagnostics['unmappedLines'] == 1
    assert diagnostics['unmappedProducts'] == ['Lucky Me Pancit Canton']
    assert diagnostics['counts']['invoice_lines'] == 4
    assert diagnostics['droppedProducts'] == 0
    assert diagnostics['parentCycles'] == 0


def test_division_scoped_report(snapshot, config):
    report = compute_report(snapshot, scope="Frozen Goods", config=config)

    assert report['division'] == "Frozen Goods"
    assert report['goodStock']['velocityRate'] == 21.88
    assert report['goodStock']['status'] == "Healthy"
    assert report['badStock']['accumulated'] == 2
    assert [p['name'] for p in report['pareto']['products']] == ['CDO Hotdog 1kg', 'CDO Hotdog 500g']
    # the division table always covers every division
    assert len(report['divisionBreakdown']) == len(config.divisions)


def test_orphan_return_does_not_add_bad_stock(snapshot, config):
    before = compute_report(snapshot, config=config)['badStock']['totalInflow']

    snapshot['return_lines'].append({'return_no': 'SR-999', 'product_id': 101, 'quantity': 500})
    after = compute_report(snapshot, config=config)['badStock']['totalInflow']

    assert before == after == 3


def test_report_is_deterministic_and_leaves_snapshot_untouched(snapshot, config):
    original = copy.deepcopy(snapshot)

    first = compute_report(snapshot, config=config, include_diagnostics=True)
    second = compute_report(snapshot, config=config, include_diagnostics=True)

    assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)
    assert snapshot == original


def test_date_window_gap_fills_trend(snapshot, config):
    report = compute_report(snapshot, date_from='2024-01-04', date_to='2024-01-07T00:00:00', config=config)

    assert [p['date'] for p in report['trendData']] == [
        '2024-01-04', '2024-01-05', '2024-01-06', '2024-01-07',
    ]
    assert report['trendData'][0] == {'date': '2024-01-04', 'outflow': 0, 'inflow': 0}


def test_parent_cycle_does_not_hang(snapshot, config):
    snapshot['products'][0]['parent_id'] = 101

    report = compute_report(snapshot, config=config, include_diagnostics=True)

    assert report['diagnostics']['parentCycles'] >= 1
    assert report['goodStock']['totalOutflow'] == 19


# =============================================================================
# fetch_snapshot / build_report
# =============================================================================

def test_fetch_snapshot_collects_every_collection(snapshot):
    client = StubClient(by_collection(snapshot))

    result = fetch_snapshot(client, '2024-01-01', '2024-01-31')

    assert list(result) == list(COLLECTIONS)
    assert result['invoice_lines'] == snapshot['invoice_lines']
    filters = dict(client.requests)
    assert filters['sales_invoice'] == {
        'filter[invoice_date][_between]': '[2024-01-01,2024-01-31T23:59:59]'
    }
    assert filters['sales_return'] == {
        'filter[return_date][_between]': '[2024-01-01,2024-01-31T23:59:59]'
    }
    assert filters['sales_invoice_details'] == {}


def test_fetch_snapshot_without_window_sends_no_filters(snapshot):
    client = StubClient(by_collection(snapshot))
    fetch_snapshot(client)
    assert all(filters == {} for _, filters in client.requests)


def test_fetch_snapshot_fails_fast(snapshot):
    client = StubClient(by_collection(snapshot), fail_on="sales_return")

    with pytest.raises(DataProviderError) as exc_info:
        fetch_snapshot(client, max_workers=1)

    assert exc_info.value.collection == "sales_return"
    assert exc_info.value.status == 500


def test_build_report_over_http(snapshot, config, make_client):
    records = by_collection(snapshot)

    def handler(url, params):
        collection = url.rsplit("/", 1)[-1]
        rows = records.get(collection, [])
        if params.get('limit') == -1:
            return FakeResponse(payload={'data': rows})
        offset, limit = params['offset'], params['limit']
        return FakeResponse(payload={'data': rows[offset:offset + limit]})

    client = make_client(handler)
    report = build_report(client=client, config=config, include_diagnostics=True)

    assert report['salesBySupplier'] == [{'name': 'FOODSPHERE INC', 'value': 1700}]
    assert report['goodStock']['totalOutflow'] == 19
    assert report['diagnostics']['providerUrl'] == "http://provider.test/"
    assert report['diagnostics']['hasToken'] is True
    assert report['diagnostics']['counts']['products'] == 4


def test_build_report_propagates_provider_errors(config, make_client):
    client = make_client(lambda url, params: FakeResponse(status_code=401, text="unauthorized"))

    with pytest.raises(DataProviderError) as exc_info:
        build_report(client=client, config=config)

    assert exc_info.value.status == 401


class BlockingClient(StubClient):
    """Stub whose fetch of one collection hangs until released"""

    def __init__(self, data, fail_on, block_on):
        super().__init__(data, fail_on=fail_on)
        self.block_on = block_on
        self.release = threading.Event()
        self.finished = threading.Event()

    def _serve(self, collection, fields, filters):
        if collection == self.block_on:
            self.release.wait(timeout=5)
            self.finished.set()
        return super()._serve(collection, fields, filters)


def test_fetch_snapshot_does_not_wait_for_running_siblings(snapshot):
    client = BlockingClient(by_collection(snapshot), fail_on="sales_return", block_on="products")

    try:
        with pytest.raises(DataProviderError):
            fetch_snapshot(client, max_workers=len(COLLECTIONS))
        assert not client.finished.is_set()
    finally:
        client.release.set()


# =============================================================================
# DATE BOUNDS
# =============================================================================

@pytest.mark.parametrize("bounds, name", [
    ({'date_from': '2024/01/05'}, "date_from"),
    ({'date_to': 'yesterday'}, "date_to"),
])
def test_unparseable_date_bound_is_rejected(snapshot, config, bounds, name):
    with pytest.raises(ValueError, match=name):
        compute_report(snapshot, config=config, **bounds)


def test_build_report_rejects_bad_dates_before_fetching(config, make_client):
    client = make_client(lambda url, params: FakeResponse(payload={'data': []}))

    with pytest.raises(ValueError, match="date_to"):
        build_report(date_from='2024-01-01', date_to='31/01/2024', client=client, config=config)

    assert client.session.calls == []


def test_date_objects_and_blank_bounds(snapshot, config):
    report = compute_report(snapshot, date_from=date(2024, 1, 6), date_to=date(2024, 1, 6), config=config)
    assert report['trendData'] == [{'date': '2024-01-06', 'outflow': 4, 'inflow': 3}]

    open_report = compute_report(snapshot, date_from="", date_to="  ", config=config)
    assert open_report['goodStock']['totalOutflow'] == 19
