"""
ビジネスロジックサービス
"""

from .file_handler import FileHandler, canonicalize_path, resolve_output_dir
from .order_source import (
    DataSourceError, WooCommerceOrderSource, JsonFileOrderSource, parse_date_window
)
from .settings_store import ConfigError, ExportSettings, SettingsStore
from .export_job import ExportJob, DEBUG_DATE_WINDOW, resolve_date_window, build_output_path
from .scheduler import ExportScheduler, expected_run_time, next_trigger

__all__ = [
    'FileHandler', 'canonicalize_path', 'resolve_output_dir',
    'DataSourceError', 'WooCommerceOrderSource', 'JsonFileOrderSource', 'parse_date_window',
    'ConfigError', 'ExportSettings', 'SettingsStore',
    'ExportJob', 'DEBUG_DATE_WINDOW', 'resolve_date_window', 'build_output_path',
    'ExportScheduler', 'expected_run_time', 'next_trigger'
]
