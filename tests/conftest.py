import base64
from datetime import datetime
from decimal import Decimal

import pytest

from sales_export.config import TestingConfig
from sales_export.backend.aggregator import LineItem, OrderRecord, ProductSnapshot
from sales_export.backend.services import SettingsStore


class FakeOrderSource:
    """get_orders の呼び出しを記録するだけの受注取得元"""

    def __init__(self, orders=None, error=None):
        self.orders = orders or []
        self.error = error
        self.calls = []

    def get_orders(self, date_window, status='completed', limit=-1):
        self.calls.append((date_window, status, limit))
        if self.error is not None:
            raise self.error
        return list(self.orders)


@pytest.fixture
def make_product():
    def _make(id=1, name='Widget', regular_price='10', stock_quantity=5):
        return ProductSnapshot(
            id=id, name=name, regular_price=Decimal(regular_price),
            stock_quantity=stock_quantity
        )
    return _make


@pytest.fixture
def make_item(make_product):
    def _make(product=None, quantity=1, subtotal='10', name=None):
        product = product or make_product()
        return LineItem(
            product_id=product.id,
            name=name or product.name,
            quantity=quantity,
            subtotal=Decimal(subtotal),
            product=product
        )
    return _make


@pytest.fixture
def make_order():
    def _make(number='100', email='a@example.com', items=None, customer_id=7,
              first_name='Ann', last_name='Lee', phone='555-0100',
              date_completed=datetime(2024, 5, 1, 12, 0, 0)):
        return OrderRecord(
            number=number,
            customer_id=customer_id,
            date_completed=date_completed,
            billing_email=email,
            billing_first_name=first_name,
            billing_last_name=last_name,
            billing_phone=phone,
            items=items or []
        )
    return _make


@pytest.fixture
def fake_source():
    return FakeOrderSource()


@pytest.fixture
def settings_store(tmp_path):
    return SettingsStore(tmp_path / 'settings.json')


@pytest.fixture
def export_base_dir(tmp_path):
    path = tmp_path / 'admin-files'
    path.mkdir()
    return path


@pytest.fixture
def app_config(tmp_path, export_base_dir):
    class _Config(TestingConfig):
        EXPORT_BASE_DIR = export_base_dir
        SETTINGS_PATH = tmp_path / 'settings.json'
    return _Config


@pytest.fixture
def app(app_config, fake_source, settings_store):
    from sales_export.backend.api import create_app
    return create_app(app_config, order_source=fake_source, settings_store=settings_store)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers():
    token = base64.b64encode(b'admin:secret').decode('ascii')
    return {'Authorization': f'Basic {token}'}
