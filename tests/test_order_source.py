import json
from datetime import datetime
from decimal import Decimal

import pytest
import requests

from sales_export.backend.services import (
    DataSourceError, JsonFileOrderSource, WooCommerceOrderSource, parse_date_window
)


ORDER = {
    'id': 501,
    'number': '501',
    'status': 'completed',
    'customer_id': 3,
    'date_created': '2024-04-30T20:00:00',
    'date_completed': '2024-05-01T09:15:00',
    'billing': {
        'first_name': 'Mia', 'last_name': 'Ito', 'email': 'mia@example.com', 'phone': '080'
    },
    'line_items': [
        {'product_id': 21, 'name': 'Tote', 'quantity': 2, 'subtotal': '18.00'},
    ],
}

PRODUCT = {'id': 21, 'name': 'Tote bag', 'regular_price': '10.00', 'stock_quantity': 4}


def _order(**overrides):
    order = dict(ORDER)
    order.update(overrides)
    return order


class FakeResponse:
    def __init__(self, payload, status=200, headers=None):
        self.payload = payload
        self.status_code = status
        self.headers = headers or {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f'{self.status_code} error')

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    def __init__(self, responses):
        self.responses = responses
        self.requests = []
        self.auth = None

    def get(self, url, params=None, timeout=None):
        self.requests.append((url, dict(params or {})))
        return self.responses.pop(0)


def test_parse_single_day_window():
    assert parse_date_window('2024-05-01') == (datetime(2024, 5, 1), datetime(2024, 5, 2))


def test_parse_range_window_includes_end_day():
    assert parse_date_window('1984-01-01...2077-01-01') == (
        datetime(1984, 1, 1), datetime(2077, 1, 2)
    )


@pytest.mark.parametrize('window', ['yesterday', '2024-13-01', '2024-05-02...2024-05-01'])
def test_parse_invalid_window(window):
    with pytest.raises(ValueError):
        parse_date_window(window)


def test_woocommerce_source_paginates_and_maps_orders():
    session = FakeSession([
        FakeResponse([_order(), _order(id=502, number='502',
                                       date_completed='2024-05-02T00:00:01')],
                     headers={'X-WP-TotalPages': '2'}),
        FakeResponse([_order(id=503, number='503', customer_id=0)],
                     headers={'X-WP-TotalPages': '2'}),
        FakeResponse([PRODUCT]),
    ])
    source = WooCommerceOrderSource('https://shop.example.com/', 'ck', 'cs', session=session)

    orders = source.get_orders('2024-05-01')

    assert [o.number for o in orders] == ['501', '503']
    first = orders[0]
    assert first.billing_email == 'mia@example.com'
    assert first.has_account is True
    assert orders[1].has_account is False
    item = first.items[0]
    assert item.quantity == 2
    assert item.subtotal == Decimal('18.00')
    assert item.product.regular_price == Decimal('10.00')
    assert item.product.name == 'Tote bag'

    url, params = session.requests[0]
    assert url == 'https://shop.example.com/wp-json/wc/v3/orders'
    assert params['status'] == 'completed'
    assert params['page'] == 1
    assert session.requests[1][1]['page'] == 2
    assert session.requests[2][1]['include'] == '21'
    assert session.auth is not None


def test_woocommerce_source_stops_on_empty_page():
    session = FakeSession([FakeResponse([_order()]), FakeResponse([]), FakeResponse([PRODUCT])])
    source = WooCommerceOrderSource('https://shop.example.com', 'ck', 'cs', session=session)

    assert len(source.get_orders('2024-05-01')) == 1
    assert len(session.requests) == 3


def test_woocommerce_http_error_raises_data_source_error():
    session = FakeSession([FakeResponse({'message': 'nope'}, status=500)])
    source = WooCommerceOrderSource('https://shop.example.com', 'ck', 'cs', session=session)

    with pytest.raises(DataSourceError):
        source.get_orders('2024-05-01')


def test_woocommerce_bad_json_raises_data_source_error():
    session = FakeSession([FakeResponse(ValueError('bad json'))])
    source = WooCommerceOrderSource('https://shop.example.com', 'ck', 'cs', session=session)

    with pytest.raises(DataSourceError):
        source.get_orders('2024-05-01')


def test_json_file_source_filters_by_status_and_window(tmp_path):
    path = tmp_path / 'orders.json'
    path.write_text(json.dumps({
        'orders': [
            _order(),
            _order(id=9, number='9', status='processing'),
            _order(id=10, number='10', date_completed='2023-01-01T00:00:00'),
            _order(id=11, number='11', date_completed=None),
        ],
        'products': [PRODUCT],
    }), encoding='utf-8')

    orders = JsonFileOrderSource(path).get_orders('2024-05-01')

    assert [o.number for o in orders] == ['501']
    assert orders[0].items[0].product.stock_quantity == 4


def test_json_file_source_missing_file(tmp_path):
    with pytest.raises(DataSourceError):
        JsonFileOrderSource(tmp_path / 'nope.json').get_orders('2024-05-01')


@pytest.mark.parametrize('limit, expected', [(0, []), (1, ['501'])])
def test_woocommerce_source_honours_limit(limit, expected):
    session = FakeSession([
        FakeResponse([_order(), _order(id=502, number='502')]),
        FakeResponse([PRODUCT]),
    ])
    source = WooCommerceOrderSource('https://shop.example.com', 'ck', 'cs', session=session)

    orders = source.get_orders('2024-05-01', limit=limit)

    assert [o.number for o in orders] == expected
