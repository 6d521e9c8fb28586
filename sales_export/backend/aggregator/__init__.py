"""
集計ロジック（割引販売データの集計・Excel出力）
"""

from .orders import (
    OrderAggregator, AggregationResult, OrderRecord, LineItem, ProductSnapshot,
    CustomerEntry, OrderLine, ProductSummary, aggregate
)
from .excel_output import (
    ExcelExporter, OutputWriteError, ColumnSpec, to_grid, cell_reference,
    CUSTOMER_COLUMNS, ORDER_COLUMNS, PRODUCT_COLUMNS, SHEET_NAMES
)

__all__ = [
    'OrderAggregator', 'AggregationResult', 'OrderRecord', 'LineItem', 'ProductSnapshot',
    'CustomerEntry', 'OrderLine', 'ProductSummary', 'aggregate',
    'ExcelExporter', 'OutputWriteError', 'ColumnSpec', 'to_grid', 'cell_reference',
    'CUSTOMER_COLUMNS', 'ORDER_COLUMNS', 'PRODUCT_COLUMNS', 'SHEET_NAMES'
]
