"""
アプリケーション設定
"""
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


class Config:
    """アプリケーション設定クラス"""

    # サーバー設定
    HOST = os.getenv('HOST', '127.0.0.1')
    PORT = int(os.getenv('PORT', 8080))
    DEBUG = os.getenv('DEBUG', 'false').lower() == 'true'
    TESTING = False

    # パス設定
    APP_DIR = Path(__file__).parent
    BASE_DIR = APP_DIR.parent
    # 出力先のベースディレクトリ（設定の output_dir はこの配下）
    EXPORT_BASE_DIR = Path(os.getenv('EXPORT_BASE_DIR', BASE_DIR / 'uploads' / 'admin-files'))
    # 設定値（debug / output_dir / force）の保存先
    SETTINGS_PATH = Path(os.getenv('SETTINGS_PATH', BASE_DIR / 'settings.json'))

    # 受注データ取得元（WooCommerce REST API）
    WC_BASE_URL = os.getenv('WC_BASE_URL', '')
    WC_CONSUMER_KEY = os.getenv('WC_CONSUMER_KEY', '')
    WC_CONSUMER_SECRET = os.getenv('WC_CONSUMER_SECRET', '')
    WC_TIMEOUT = int(os.getenv('WC_TIMEOUT', 30))
    # オフライン実行用: 受注JSONファイル（指定時はAPIより優先）
    ORDER_SOURCE_FILE = os.getenv('ORDER_SOURCE_FILE', '')

    # 管理画面の認証
    ADMIN_USER = os.getenv('ADMIN_USER', 'admin')
    ADMIN_PASSWORD = os.getenv('ADMIN_PASSWORD', '')
    SECRET_KEY = os.getenv('SECRET_KEY', 'change-me-sales-export-secret')
    # 強制実行フォームのトークン有効期限（秒）
    CSRF_MAX_AGE = int(os.getenv('CSRF_MAX_AGE', 3600))

    # 定期実行
    SCHEDULER_ENABLED = os.getenv('SCHEDULER_ENABLED', 'true').lower() == 'true'

    # ログ設定
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

    @classmethod
    def init_app(cls):
        """アプリケーション初期化時の設定"""
        # 出力ディレクトリ作成
        Path(cls.EXPORT_BASE_DIR).mkdir(parents=True, exist_ok=True)


class DevelopmentConfig(Config):
    """開発環境設定"""
    DEBUG = True


class ProductionConfig(Config):
    """本番環境設定"""
    DEBUG = False


class TestingConfig(Config):
    """テスト環境設定"""
    TESTING = True
    SCHEDULER_ENABLED = False
    ADMIN_USER = 'admin'
    ADMIN_PASSWORD = 'secret'
    SECRET_KEY = 'testing-secret-key'


# 設定マッピング
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    """現在の設定を取得"""
    env = os.getenv('FLASK_ENV', 'development')
    return config.get(env, config['default'])


def configure_logging(level=None):
    """ロギング設定（ISO形式のタイムスタンプ）"""
    logging.basicConfig(
        level=level or Config.LOG_LEVEL,
        format=Config.LOG_FORMAT,
        datefmt=Config.LOG_DATEFMT
    )
