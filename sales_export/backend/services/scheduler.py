"""
定期実行サービス
毎日 0:10 にエクスポートを実行するタイマーを管理する
"""
import threading
from datetime import datetime, time, timedelta
from pathlib import Path
from typing import Callable, Optional
import logging

from ..aggregator import OutputWriteError
from .order_source import DataSourceError
from .settings_store import ExportSettings, SettingsStore

logger = logging.getLogger(__name__)

# 翌日0時からの実行オフセット
EXECUTION_OFFSET = timedelta(seconds=600)
# 実行間隔
RECURRENCE = timedelta(days=1)

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


def format_datetime(value: Optional[datetime]) -> str:
    """ログ用の日時文字列"""
    return value.strftime(TIMESTAMP_FORMAT) if value else '-'


def expected_run_time(now: datetime) -> datetime:
    """本来の実行予定時刻（翌日0時 + 600秒）"""
    tomorrow = now.date() + timedelta(days=1)
    return datetime.combine(tomorrow, time.min, tzinfo=now.tzinfo) + EXECUTION_OFFSET


def next_trigger(
    now: datetime, scheduled_at: Optional[datetime], force: bool = False
) -> Optional[datetime]:
    """
    次回実行時刻を決定

    Args:
        now: 現在時刻
        scheduled_at: 現在の予約時刻（未予約は None）
        force: 強制実行フラグ

    Returns:
        datetime: 予約し直す時刻。変更不要の場合は None
    """
    if force:
        return now

    expected = expected_run_time(now)
    if scheduled_at != expected:
        return expected
    return None


class ExportScheduler:
    """
    エクスポート定期実行クラス

    sync() を起動時（および設定変更時）に呼び出すと、予約時刻を確認して
    必要な場合のみタイマーを再設定する。同じ状態で何度呼んでも再設定しない。

    使用例:
        scheduler = ExportScheduler(job_factory, settings_store)
        scheduler.sync()
    """

    def __init__(
        self,
        job_factory: Callable[[ExportSettings], object],
        settings_store: SettingsStore,
        clock: Callable[[], datetime] = datetime.now,
        timer_factory=threading.Timer
    ):
        """
        Args:
            job_factory: 設定から ExportJob を作成する関数
            settings_store: 設定保存先
            clock: 現在時刻を返す関数
            timer_factory: タイマー（threading.Timer 互換）
        """
        self.job_factory = job_factory
        self.settings_store = settings_store
        self.clock = clock
        self.timer_factory = timer_factory

        self.scheduled_at: Optional[datetime] = None
        self._timer = None
        self._lock = threading.Lock()

    @property
    def is_scheduled(self) -> bool:
        return self.scheduled_at is not None

    def sync(self) -> Optional[datetime]:
        """
        予約状態を確認・更新

        Returns:
            datetime: 現在の予約時刻
        """
        now = self.clock()

        force = self.settings_store.consume_force()
        if force:
            logger.info("強制実行: 既存の予約を解除して即時実行します")
            self.unschedule()

        run_at = next_trigger(now, self.scheduled_at, force)
        if run_at is None:
            logger.debug(f"実行は予約済みです: {format_datetime(self.scheduled_at)}")
            return self.scheduled_at

        logger.info(f"実行を予約します: {format_datetime(run_at)}")
        self._arm(run_at, now)
        return run_at

    def unschedule(self) -> None:
        """予約を解除"""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = None
            self.scheduled_at = None

    def shutdown(self) -> None:
        """停止"""
        self.unschedule()
        logger.info("定期実行を停止しました")

    def run_now(self) -> Optional[Path]:
        """
        エクスポートを1回実行

        失敗時はログを出力して終了する（再試行せず次回の予約を待つ）。

        Returns:
            Path: 出力ファイルパス。失敗時は None
        """
        settings = self.settings_store.load()
        job = self.job_factory(settings)
        try:
            return job.run_scheduled()
        except DataSourceError as e:
            logger.error(f"受注データ取得エラー: {e}")
        except OutputWriteError as e:
            logger.error(f"ファイル書き込みエラー: {e}")
        except Exception as e:
            logger.exception(f"定期実行エラー: {e}")
        return None

    def _arm(self, run_at: datetime, now: datetime) -> None:
        """タイマーを設定（既存のタイマーは解除）"""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()

            delay = max((run_at - now).total_seconds(), 0)
            self.scheduled_at = run_at
            self._timer = self.timer_factory(delay, self._fire)
            self._timer.daemon = True
            self._timer.start()

    def _fire(self) -> None:
        """予約時刻に実行し、翌日分を予約"""
        run_at = self.scheduled_at or self.clock()
        logger.info(f"定期実行開始: {format_datetime(run_at)}")
        try:
            self.run_now()
        finally:
            now = self.clock()
            next_run = run_at + RECURRENCE
            while next_run <= now:
                next_run += RECURRENCE
            self._arm(next_run, now)
