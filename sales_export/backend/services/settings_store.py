"""
設定値保存サービス
debug / output_dir / force をJSONファイルに保存する（再起動後も保持）
"""
import json
import os
import tempfile
import threading
from dataclasses import asdict, dataclass, fields
from pathlib import Path
import logging

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """設定値が不正な場合の例外"""


@dataclass
class ExportSettings:
    """エクスポート設定"""
    debug: bool = False         # デバッグモード（全期間を集計・ログ詳細化）
    output_dir: str = ''        # 出力先（EXPORT_BASE_DIR からの相対パス）
    force: bool = False         # 次回起動時に即時実行（実行後に自動でオフ）

    def to_dict(self):
        """辞書形式に変換"""
        return asdict(self)


SETTING_TYPES = {f.name: f.type for f in fields(ExportSettings)}


class SettingsStore:
    """
    設定値の保存・読み込みクラス

    使用例:
        store = SettingsStore(Path("settings.json"))
        settings = store.load()
        store.update(debug=True)
    """

    def __init__(self, path: Path):
        """
        Args:
            path: 設定ファイルパス
        """
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> ExportSettings:
        """
        設定を読み込み

        ファイルや項目がない場合は既定値を使用する。

        Returns:
            ExportSettings: 設定
        """
        with self._lock:
            return self._read()

    def update(self, **values) -> ExportSettings:
        """
        設定を更新して保存

        Raises:
            ConfigError: 不明な項目・型が不正な値の場合
        """
        for key, value in values.items():
            if key not in SETTING_TYPES:
                raise ConfigError(f"不明な設定項目です: {key}")
            if SETTING_TYPES[key] is bool and not isinstance(value, bool):
                raise ConfigError(f"{key} は true/false で指定してください")
            if SETTING_TYPES[key] is str and not isinstance(value, str):
                raise ConfigError(f"{key} は文字列で指定してください")
            if key == 'output_dir' and '..' in value.replace('\\', '/').split('/'):
                raise ConfigError("output_dir に '..' は使用できません")

        with self._lock:
            current = self._read().to_dict()
            current.update(values)
            settings = ExportSettings(**current)
            self._write(settings)

        logger.info(f"設定を保存しました: {values}")
        return settings

    def consume_force(self) -> bool:
        """強制実行フラグを読み出してオフにする"""
        with self._lock:
            settings = self._read()
            if not settings.force:
                return False
            settings.force = False
            self._write(settings)

        logger.info("強制実行フラグを消費しました")
        return True

    def _read(self) -> ExportSettings:
        if not self.path.exists():
            return ExportSettings()

        try:
            with open(self.path, encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"設定ファイルを読み込めません（既定値を使用）: {self.path} - {e}")
            return ExportSettings()

        if not isinstance(data, dict):
            logger.warning(f"設定ファイルの形式が不正です（既定値を使用）: {self.path}")
            return ExportSettings()

        known = {}
        for key, expected in SETTING_TYPES.items():
            if key not in data:
                continue
            if not isinstance(data[key], expected):
                logger.warning(f"設定値 {key} の型が不正です（既定値を使用）: {data[key]!r}")
                continue
            known[key] = data[key]
        return ExportSettings(**known)

    def _write(self, settings: ExportSettings) -> None:
        """ファイル全体を置き換えて保存"""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(settings.to_dict(), f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        finally:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
