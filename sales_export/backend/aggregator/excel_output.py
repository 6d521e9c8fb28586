"""
Excel出力モジュール
集計結果を Customers / Orders / Products の3シート構成で出力する
"""
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence
import logging

import pandas as pd
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Border, Font, Side
from openpyxl.utils import get_column_letter

from .orders import AggregationResult

logger = logging.getLogger(__name__)


class OutputWriteError(OSError):
    """出力ファイルを書き込めない場合の例外"""


@dataclass(frozen=True)
class ColumnSpec:
    """列定義（行データのキーと見出し）"""
    key: str
    header: str


CUSTOMER_COLUMNS = [
    ColumnSpec('first_name', 'First name'),
    ColumnSpec('last_name', 'Last name'),
    ColumnSpec('email', 'email'),
    ColumnSpec('billing_phone', 'Billing phone'),
]

ORDER_COLUMNS = [
    ColumnSpec('date', 'Date completed'),
    ColumnSpec('order_number', 'Order number'),
    ColumnSpec('customer', 'Customer ID'),
    ColumnSpec('item_name', 'Item name'),
    ColumnSpec('sold_at_a_discount', 'Sold at a discount'),
    ColumnSpec('quantity', 'Quantity sold'),
    # 既存の取り込み側が見出し文字列で照合しているため綴りはそのまま
    ColumnSpec('sum', 'Toal value'),
]

PRODUCT_COLUMNS = [
    ColumnSpec('id', 'ID'),
    ColumnSpec('name', 'Name'),
    ColumnSpec('remainder', 'Remainder'),
    ColumnSpec('number_sold', 'Number sold'),
    ColumnSpec('number_sold_under_discount', 'Number sold under discount'),
]

# シート順は固定
SHEET_NAMES = ('Customers', 'Orders', 'Products')


def to_grid(
    rows: Sequence[Mapping[str, Any]],
    columns: Sequence[ColumnSpec],
    skip_falsy: bool = True
) -> List[List[Any]]:
    """
    行データを2次元の表に変換

    1行目は見出し、2行目以降が各レコード。skip_falsy が True の場合、
    0 や空文字などの偽値は空セル（None）として出力する。

    Args:
        rows: 行データ（キー → 値）
        columns: 列定義
        skip_falsy: 偽値を空セルにするか

    Returns:
        List[List[Any]]: 見出し行 + データ行
    """
    grid = [[column.header for column in columns]]

    for row in rows:
        cells = []
        for column in columns:
            value = row.get(column.key)
            if skip_falsy and not value:
                value = None
            cells.append(value)
        grid.append(cells)

    return grid


def cell_reference(column_index: int, row_index: int) -> str:
    """1始まりの列・行番号からセル番地（例: B2）を返す"""
    return f"{get_column_letter(column_index)}{row_index}"


def _excel_value(value):
    """Excelに書き込める型に変換"""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime) and value.tzinfo is not None:
        # Excelはタイムゾーンを保持できない
        return value.replace(tzinfo=None)
    if isinstance(value, str):
        # 制御文字はワークシートに書き込めない
        return ILLEGAL_CHARACTERS_RE.sub('', value)
    return value


class ExcelExporter:
    """
    Excel出力クラス

    使用例:
        exporter = ExcelExporter(result, output_path=Path("exports/2024-05-01.xlsx"))
        filepath = exporter.export()
    """

    def __init__(self, result: AggregationResult, output_path: Path):
        """
        Args:
            result: 集計結果
            output_path: 出力ファイルパス（既存ファイルは上書き）
        """
        self.result = result
        self.filepath = Path(output_path)
        self.output_dir = self.filepath.parent

    def build_grids(self) -> Dict[str, List[List[Any]]]:
        """シート名 → 表データ"""
        return {
            'Customers': to_grid(
                [c.to_dict() for c in self.result.customers], CUSTOMER_COLUMNS
            ),
            'Orders': to_grid(
                [o.to_dict() for o in self.result.orders], ORDER_COLUMNS
            ),
            'Products': to_grid(
                [p.to_dict() for p in self.result.products], PRODUCT_COLUMNS
            ),
        }

    def export(self) -> Path:
        """
        Excelファイルを出力

        一時ファイルに書き込んでから置き換えるため、途中で失敗しても
        書きかけのファイルは残らない。

        Returns:
            Path: 出力ファイルパス

        Raises:
            OutputWriteError: 出力ディレクトリが存在しない・書き込めない場合
        """
        logger.info(f"Excel出力開始: {self.filepath}")
        grids = self.build_grids()

        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=str(self.output_dir), prefix='.tmp-', suffix='.xlsx'
            )
        except OSError as e:
            raise OutputWriteError(
                f"出力ディレクトリに書き込めません: {self.output_dir} ({e})"
            ) from e
        os.close(fd)
        tmp_path = Path(tmp_name)

        try:
            self._write_workbook(tmp_path, grids)
            os.replace(tmp_path, self.filepath)
        except (OSError, ValueError) as e:
            raise OutputWriteError(
                f"Excelファイルを書き込めません: {self.filepath} ({e})"
            ) from e
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

        logger.info(f"Excel出力完了: {self.filepath}")
        return self.filepath

    def _write_workbook(self, path: Path, grids: Dict[str, List[List[Any]]]) -> None:
        """全シートを書き込み"""
        with pd.ExcelWriter(path, engine='openpyxl') as writer:
            for sheet_name in SHEET_NAMES:
                self._write_sheet(writer, sheet_name, grids[sheet_name])

    def _write_sheet(
        self, writer: pd.ExcelWriter, sheet_name: str, grid: List[List[Any]]
    ) -> None:
        """1シート分を書き込み（データが0件でも見出し行は出力する）"""
        header, rows = grid[0], grid[1:]
        data = [[_excel_value(v) for v in row] for row in rows]
        df = pd.DataFrame(data, columns=header, dtype=object)
        df.to_excel(writer, sheet_name=sheet_name, index=False)

        self._apply_styles(writer.sheets[sheet_name])
        logger.debug(f"{sheet_name}シート: {len(rows)}行")

    def _apply_styles(self, ws) -> None:
        """見出しの書式・列幅・ウィンドウ枠の固定"""
        thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )

        for cell in ws[1]:
            cell.font = Font(bold=True)
            cell.alignment = Alignment(horizontal='center')
            cell.border = thin_border

        # 列幅の自動調整
        for column in ws.columns:
            max_length = 0
            column_letter = column[0].column_letter
            for cell in column:
                if cell.value is not None:
                    max_length = max(max_length, len(str(cell.value)))
            ws.column_dimensions[column_letter].width = min(max_length + 2, 50)

        ws.freeze_panes = 'A2'
