"""
ファイル処理サービス
"""
import os
import re
from pathlib import Path
from typing import List
import logging

logger = logging.getLogger(__name__)


def canonicalize_path(path: str) -> str:
    """
    パスを正規化

    '/./' を取り除き、連続する '/' を1つにまとめる。
    例: 'a//b/./c.xlsx' → 'a/b/c.xlsx'
    """
    path = re.sub(r'/(?:\./)+', '/', path)
    path = re.sub(r'/+', '/', path)
    return path


def resolve_output_dir(export_base_dir, output_dir: str) -> Path:
    """出力先ディレクトリ（ベースディレクトリ + 設定値）"""
    return Path(canonicalize_path(f"{export_base_dir}/{output_dir}"))


class FileHandler:
    """
    ファイル処理クラス

    出力済みExcelファイルの一覧取得とダウンロード対象の解決を担当
    """

    def __init__(self, output_dir: Path):
        """
        Args:
            output_dir: 出力ディレクトリ
        """
        self.output_dir = Path(output_dir)

    def list_files(self) -> List[str]:
        """
        出力ディレクトリ内のファイル一覧を取得

        ディレクトリが存在しない場合は空リストを返す。

        Returns:
            List[str]: ファイル名（降順＝新しい日付が先頭）
        """
        if not self.output_dir.is_dir():
            logger.info(f"出力ディレクトリがありません: {self.output_dir}")
            return []

        files = [
            entry.name for entry in os.scandir(self.output_dir)
            if entry.is_file() and not entry.name.startswith('.')
        ]
        return sorted(files, reverse=True)

    def resolve_download(self, filename: str) -> Path:
        """
        ダウンロード対象のパスを取得

        ファイル名部分のみを使用するため、ディレクトリをまたぐ指定はできない。

        Args:
            filename: ファイル名

        Returns:
            Path: ファイルパス

        Raises:
            FileNotFoundError: ファイルが存在しない場合
        """
        name = os.path.basename(filename.replace('\\', '/'))
        filepath = self.output_dir / name
        if not name or name in ('.', '..') or not filepath.is_file():
            raise FileNotFoundError(f"ファイルが存在しません: {name}")
        return filepath
