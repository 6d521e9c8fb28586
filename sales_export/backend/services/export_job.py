"""
割引販売データのエクスポート処理
受注取得 → 集計 → Excel出力 を1回分実行する
"""
from datetime import date, timedelta
from pathlib import Path
from typing import Optional
import logging

from ..aggregator import ExcelExporter, OrderAggregator
from .file_handler import canonicalize_path, resolve_output_dir
from .settings_store import ExportSettings

logger = logging.getLogger(__name__)

ISO_DATE_FORMAT = '%Y-%m-%d'
# デバッグモード時の集計期間（過去の完了済み受注をすべて対象にする）
DEBUG_DATE_WINDOW = '1984-01-01...2077-01-01'


def resolve_date_window(debug: bool, today: Optional[date] = None) -> str:
    """
    集計対象期間を決定

    Args:
        debug: デバッグモード
        today: 基準日（省略時は今日）

    Returns:
        str: 前日の 'YYYY-MM-DD'、デバッグモードでは DEBUG_DATE_WINDOW
    """
    if debug:
        return DEBUG_DATE_WINDOW

    today = today or date.today()
    return (today - timedelta(days=1)).strftime(ISO_DATE_FORMAT)


def build_output_path(output_dir, date_window: str) -> Path:
    """出力ファイルパス '{output_dir}/{date_window}.xlsx'"""
    return Path(canonicalize_path(f"{output_dir}/{date_window}.xlsx"))


class ExportJob:
    """
    エクスポート処理クラス

    使用例:
        job = ExportJob(settings, order_source, export_base_dir=Path("uploads/admin-files"))
        filepath = job.run_export("2024-05-01")
    """

    ORDER_STATUS = 'completed'

    def __init__(self, settings: ExportSettings, order_source, export_base_dir: Path):
        """
        Args:
            settings: エクスポート設定
            order_source: 受注取得元（get_orders を持つオブジェクト）
            export_base_dir: 出力先のベースディレクトリ
        """
        self.settings = settings
        self.order_source = order_source
        self.export_base_dir = Path(export_base_dir)

    @property
    def output_dir(self) -> Path:
        return resolve_output_dir(self.export_base_dir, self.settings.output_dir)

    def _debug_log(self, message: str) -> None:
        """デバッグモード時のみ INFO で出力"""
        if self.settings.debug:
            logger.info(message)
        else:
            logger.debug(message)

    def run_export(self, date_window: str) -> Path:
        """
        エクスポートを実行

        Args:
            date_window: 集計期間（'YYYY-MM-DD' または 'YYYY-MM-DD...YYYY-MM-DD'）

        Returns:
            Path: 出力ファイルパス

        Raises:
            DataSourceError: 受注データを取得できない場合
            OutputWriteError: 出力ファイルを書き込めない場合
        """
        self._debug_log(f"受注取得中 ({date_window})")
        orders = self.order_source.get_orders(
            date_window, status=self.ORDER_STATUS, limit=-1
        )

        self._debug_log("集計中...")
        result = OrderAggregator(orders).aggregate()

        output_dir = self.output_dir
        self._debug_log(f"出力ディレクトリ: {output_dir}")
        output_path = build_output_path(output_dir, date_window)

        self._debug_log(f"ファイル書き込み: {output_path}")
        return ExcelExporter(result, output_path).export()

    def run_scheduled(self, today: Optional[date] = None) -> Path:
        """定期実行（前日分、デバッグモードでは全期間）"""
        date_window = resolve_date_window(self.settings.debug, today)
        return self.run_export(date_window)
