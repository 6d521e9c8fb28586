"""
受注データ取得サービス
WooCommerce REST API（またはエクスポート済みJSON）から完了済み受注を取得する
"""
import json
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple
import logging

import requests
from requests.auth import HTTPBasicAuth

from ..aggregator.orders import LineItem, OrderRecord, ProductSnapshot

logger = logging.getLogger(__name__)

ISO_DATE_FORMAT = '%Y-%m-%d'
# 期間指定の区切り（例: 2024-01-01...2024-01-31）
RANGE_SEPARATOR = '...'


class DataSourceError(Exception):
    """受注データを取得できない場合の例外"""


def parse_date_window(date_window: str) -> Tuple[datetime, datetime]:
    """
    期間文字列を [開始, 終了) の日時に変換

    'YYYY-MM-DD' はその日1日、'YYYY-MM-DD...YYYY-MM-DD' は終了日を含む期間。

    Raises:
        ValueError: 日付の形式が不正な場合
    """
    if RANGE_SEPARATOR in date_window:
        start_str, end_str = date_window.split(RANGE_SEPARATOR, 1)
    else:
        start_str = end_str = date_window

    start = datetime.strptime(start_str.strip(), ISO_DATE_FORMAT)
    end = datetime.strptime(end_str.strip(), ISO_DATE_FORMAT) + timedelta(days=1)
    if end <= start:
        raise ValueError(f"期間の指定が不正です: {date_window}")
    return start, end


def _to_decimal(value) -> Decimal:
    if value in (None, ''):
        return Decimal('0')
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal('0')


def _to_datetime(value) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(str(value))


def product_from_payload(payload: dict) -> ProductSnapshot:
    """REST APIの商品データを ProductSnapshot に変換"""
    return ProductSnapshot(
        id=int(payload['id']),
        name=payload.get('name', ''),
        regular_price=_to_decimal(payload.get('regular_price')),
        stock_quantity=payload.get('stock_quantity')
    )


def order_from_payload(payload: dict, products: Dict[int, ProductSnapshot]) -> OrderRecord:
    """
    REST APIの受注データを OrderRecord に変換

    Args:
        payload: 受注データ（/wp-json/wc/v3/orders の1件）
        products: 商品ID → 商品情報

    Returns:
        OrderRecord: 受注
    """
    billing = payload.get('billing') or {}
    items = []
    for line in payload.get('line_items', []):
        product_id = int(line.get('product_id') or 0)
        items.append(LineItem(
            product_id=product_id,
            name=line.get('name', ''),
            quantity=int(line.get('quantity') or 0),
            subtotal=_to_decimal(line.get('subtotal')),
            product=products.get(product_id)
        ))

    return OrderRecord(
        number=str(payload.get('number') or payload.get('id', '')),
        customer_id=int(payload.get('customer_id') or 0),
        date_completed=_to_datetime(payload.get('date_completed')),
        billing_email=billing.get('email', ''),
        billing_first_name=billing.get('first_name', ''),
        billing_last_name=billing.get('last_name', ''),
        billing_phone=billing.get('phone', ''),
        items=items,
        date_created=_to_datetime(payload.get('date_created'))
    )


def _completed_in_window(payload: dict, status: str, start: datetime, end: datetime) -> bool:
    """ステータスと完了日時で絞り込み"""
    if status and payload.get('status') != status:
        return False
    completed = _to_datetime(payload.get('date_completed'))
    if completed is None:
        return False
    return start <= completed.replace(tzinfo=None) < end


def _product_ids(payloads: Iterable[dict]) -> List[int]:
    """受注に含まれる商品ID（出現順・重複なし）"""
    seen = {}
    for payload in payloads:
        for line in payload.get('line_items', []):
            product_id = int(line.get('product_id') or 0)
            if product_id:
                seen.setdefault(product_id, None)
    return list(seen)


class WooCommerceOrderSource:
    """
    WooCommerce REST API 受注取得クラス

    使用例:
        source = WooCommerceOrderSource("https://shop.example.com", key, secret)
        orders = source.get_orders("2024-05-01")
    """

    ORDERS_PATH = '/wp-json/wc/v3/orders'
    PRODUCTS_PATH = '/wp-json/wc/v3/products'

    def __init__(
        self,
        base_url: str,
        consumer_key: str,
        consumer_secret: str,
        timeout: int = 30,
        per_page: int = 100,
        session: Optional[requests.Session] = None
    ):
        """
        Args:
            base_url: ショップのURL
            consumer_key: REST API コンシューマーキー
            consumer_secret: REST API コンシューマーシークレット
            timeout: リクエストのタイムアウト（秒）
            per_page: 1ページあたりの取得件数（最大100）
            session: requests セッション（省略時は新規作成）
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.per_page = per_page
        self.session = session or requests.Session()
        self.session.auth = HTTPBasicAuth(consumer_key, consumer_secret)

    def get_orders(
        self, date_window: str, status: str = 'completed', limit: int = -1
    ) -> List[OrderRecord]:
        """
        期間内に完了した受注を取得

        Args:
            date_window: 'YYYY-MM-DD' または 'YYYY-MM-DD...YYYY-MM-DD'
            status: 受注ステータス
            limit: 最大件数（-1 で無制限）

        Returns:
            List[OrderRecord]: 受注リスト

        Raises:
            DataSourceError: APIから取得できない場合
        """
        start, end = parse_date_window(date_window)
        logger.info(f"受注取得: {date_window} (status={status})")

        payloads = []
        for payload in self._iter_order_payloads(status, start):
            if not _completed_in_window(payload, status, start, end):
                continue
            if 0 <= limit <= len(payloads):
                break
            payloads.append(payload)

        products = self._fetch_products(_product_ids(payloads))
        orders = [order_from_payload(p, products) for p in payloads]
        logger.info(f"受注取得完了: {len(orders)}件")
        return orders

    def _iter_order_payloads(self, status: str, start: datetime) -> Iterator[dict]:
        """受注を1ページずつ取得"""
        page = 1
        while True:
            params = {
                'per_page': self.per_page,
                'page': page,
                # 完了時に更新日時も更新されるため、開始日以降の更新分に絞る
                'modified_after': start.strftime('%Y-%m-%dT%H:%M:%S'),
                'orderby': 'id',
                'order': 'asc',
            }
            if status:
                params['status'] = status

            orders, headers = self._get(self.ORDERS_PATH, params)
            if not orders:
                break

            yield from orders

            total_pages = headers.get('X-WP-TotalPages')
            if total_pages and page >= int(total_pages):
                break
            page += 1

    def _fetch_products(self, product_ids: List[int]) -> Dict[int, ProductSnapshot]:
        """商品情報をまとめて取得"""
        products = {}
        for i in range(0, len(product_ids), self.per_page):
            chunk = product_ids[i:i + self.per_page]
            params = {
                'include': ','.join(str(pid) for pid in chunk),
                'per_page': self.per_page,
            }
            products_page, _ = self._get(self.PRODUCTS_PATH, params)
            for payload in products_page:
                product = product_from_payload(payload)
                products[product.id] = product

        missing = [pid for pid in product_ids if pid not in products]
        if missing:
            logger.warning(f"商品情報を取得できませんでした: {missing}")
        return products

    def _get(self, path: str, params: dict) -> Tuple[list, dict]:
        """GETしてJSONとレスポンスヘッダーを返す"""
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise DataSourceError(f"受注データの取得に失敗しました: {url} ({e})") from e
        except ValueError as e:
            raise DataSourceError(f"不正なレスポンスです: {url} ({e})") from e
        return data, response.headers


class JsonFileOrderSource:
    """
    JSONファイル受注取得クラス

    REST APIと同じ形式の {"orders": [...], "products": [...]} を読み込む。
    オフラインでの再集計やテストに使用する。
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def get_orders(
        self, date_window: str, status: str = 'completed', limit: int = -1
    ) -> List[OrderRecord]:
        start, end = parse_date_window(date_window)

        try:
            with open(self.path, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise DataSourceError(f"受注ファイルを読み込めません: {self.path} ({e})") from e

        products = {}
        for payload in data.get('products', []):
            product = product_from_payload(payload)
            products[product.id] = product

        payloads = [
            p for p in data.get('orders', [])
            if _completed_in_window(p, status, start, end)
        ]
        if limit >= 0:
            payloads = payloads[:limit]

        orders = [order_from_payload(p, products) for p in payloads]
        logger.info(f"受注ファイル読み込み: {self.path} {len(orders)}件")
        return orders
