"""
受注集計モジュール
完了済み受注から顧客・受注明細・商品の3つの集計表を作成する
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass
class ProductSnapshot:
    """受注時点の商品情報"""
    id: int
    name: str
    regular_price: Decimal
    stock_quantity: Optional[int] = None


@dataclass
class LineItem:
    """受注明細"""
    product_id: int
    name: str
    quantity: int
    subtotal: Decimal
    product: Optional[ProductSnapshot] = None


@dataclass
class OrderRecord:
    """完了済み受注"""
    number: str
    customer_id: int
    date_completed: Optional[datetime]
    billing_email: str = ''
    billing_first_name: str = ''
    billing_last_name: str = ''
    billing_phone: str = ''
    items: List[LineItem] = field(default_factory=list)
    date_created: Optional[datetime] = None

    @property
    def has_account(self) -> bool:
        """会員アカウントに紐づく受注か（ゲスト購入は customer_id = 0）"""
        return bool(self.customer_id)


@dataclass
class CustomerEntry:
    """顧客レコード"""
    first_name: str
    last_name: str
    email: str
    billing_phone: str

    def to_dict(self):
        """辞書形式に変換"""
        return {
            'first_name': self.first_name,
            'last_name': self.last_name,
            'email': self.email,
            'billing_phone': self.billing_phone
        }


@dataclass
class OrderLine:
    """受注明細レコード"""
    date: Optional[datetime]
    order_number: str
    customer: int
    item_name: str
    sold_at_a_discount: bool
    quantity: int
    sum: Decimal

    def to_dict(self):
        """辞書形式に変換"""
        return {
            'date': self.date,
            'order_number': self.order_number,
            'customer': self.customer,
            'item_name': self.item_name,
            'sold_at_a_discount': 'yes' if self.sold_at_a_discount else 'no',
            'quantity': self.quantity,
            'sum': self.sum
        }


@dataclass
class ProductSummary:
    """商品別販売レコード"""
    id: int
    name: str
    remainder: Optional[int]
    number_sold: int = 0
    number_sold_under_discount: int = 0

    def to_dict(self):
        """辞書形式に変換"""
        return {
            'id': self.id,
            'name': self.name,
            'remainder': self.remainder,
            'number_sold': self.number_sold,
            'number_sold_under_discount': self.number_sold_under_discount
        }


@dataclass
class AggregationResult:
    """集計結果全体を格納するデータクラス"""
    customers: List[CustomerEntry] = field(default_factory=list)
    orders: List[OrderLine] = field(default_factory=list)
    products: List[ProductSummary] = field(default_factory=list)


def is_sold_at_a_discount(item: LineItem) -> bool:
    """
    割引販売か判定

    定価 × 数量より実際の小計が小さい場合のみ割引とみなす（同額は割引なし）
    """
    regular_subtotal = Decimal(item.product.regular_price) * item.quantity
    return Decimal(item.subtotal) < regular_subtotal


class OrderAggregator:
    """
    受注データ集計クラス

    使用例:
        aggregator = OrderAggregator(orders)
        result = aggregator.aggregate()
    """

    def __init__(self, orders: Iterable[OrderRecord]):
        """
        Args:
            orders: 完了済み受注のリスト
        """
        self.orders = list(orders)

        # メールアドレス → 顧客（最初に出現したものを採用）
        self._customers: Dict[str, CustomerEntry] = {}
        # 商品ID → 商品別販売（名称・在庫は最初の出現時点の値）
        self._products: Dict[int, ProductSummary] = {}
        self._lines: List[OrderLine] = []

    def aggregate(self) -> AggregationResult:
        """
        全ての集計を実行

        Returns:
            AggregationResult: 集計結果

        Raises:
            ValueError: 商品情報が取得できない明細がある場合
        """
        logger.info(f"集計開始: 受注{len(self.orders)}件")

        for order in self.orders:
            if order.has_account:
                self._add_customer(order)

            for item in order.items:
                self._add_item(order, item)

        logger.info(
            f"集計完了: 顧客{len(self._customers)}件, "
            f"明細{len(self._lines)}件, 商品{len(self._products)}件"
        )
        return AggregationResult(
            customers=list(self._customers.values()),
            orders=self._lines,
            products=list(self._products.values())
        )

    def _add_customer(self, order: OrderRecord) -> None:
        """顧客を登録（同一メールアドレスは上書きしない）"""
        if order.billing_email in self._customers:
            return

        self._customers[order.billing_email] = CustomerEntry(
            first_name=order.billing_first_name,
            last_name=order.billing_last_name,
            email=order.billing_email,
            billing_phone=order.billing_phone
        )

    def _add_item(self, order: OrderRecord, item: LineItem) -> None:
        """明細を受注明細・商品別販売に反映"""
        product = item.product
        if product is None:
            raise ValueError(
                f"受注 {order.number} の明細「{item.name}」に商品情報がありません"
            )

        sold_at_a_discount = is_sold_at_a_discount(item)

        self._lines.append(OrderLine(
            date=order.date_completed,
            order_number=order.number,
            customer=order.customer_id,
            item_name=item.name,
            sold_at_a_discount=sold_at_a_discount,
            quantity=item.quantity,
            sum=item.subtotal
        ))

        summary = self._products.get(product.id)
        if summary is None:
            summary = ProductSummary(
                id=product.id,
                name=product.name,
                remainder=product.stock_quantity
            )
            self._products[product.id] = summary

        summary.number_sold += item.quantity
        if sold_at_a_discount:
            summary.number_sold_under_discount += item.quantity


def aggregate(orders: Iterable[OrderRecord]) -> AggregationResult:
    """受注リストを集計する（OrderAggregator のショートカット）"""
    return OrderAggregator(orders).aggregate()
