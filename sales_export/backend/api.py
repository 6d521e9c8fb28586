"""
Flask APIエンドポイント（管理画面）
"""
from flask import Flask, request, jsonify, send_file, redirect, url_for, render_template_string
from flask_cors import CORS
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from datetime import datetime
from functools import wraps
from pathlib import Path
import hmac
import logging

from ..config import configure_logging, get_config
from .aggregator import OutputWriteError
from .services import (
    ConfigError, DataSourceError, ExportJob, ExportScheduler, FileHandler,
    JsonFileOrderSource, SettingsStore, WooCommerceOrderSource,
    parse_date_window, resolve_date_window, resolve_output_dir
)

logger = logging.getLogger(__name__)

CSRF_SALT = 'force-execution'

ADMIN_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>Discounted sales data aggregation files</title></head>
<body>
<div class="wrap">
  <h1>Discounted sales data aggregation files</h1>
  <p>Output path: {{ output_dir }}</p>

  <h2>Force execution</h2>
  <form method="post" action="{{ url_for('force_execution') }}">
    <input type="hidden" name="csrf_token" value="{{ csrf_token }}"/>
    <div>
      <p>Date completed: </p>
      <input type="text" name="date_completed" value="{{ yesterday }}"/>
    </div>
    <div><button type="submit">Force execution</button></div>
  </form>

  <h2>Existing files</h2>
  <table>
    {% for file in files %}
    <tr><td><a href="{{ url_for('download_file', file=file) }}">{{ file }}</a></td></tr>
    {% endfor %}
  </table>

  <h2>Settings</h2>
  <form method="post" action="{{ url_for('update_settings') }}">
    <p><label><input type="checkbox" name="debug" value="1" {% if settings.debug %}checked{% endif %}/> Debug mode</label></p>
    <p><label>Path to output directory <input type="text" name="output_dir" value="{{ settings.output_dir }}"/></label></p>
    <p><label><input type="checkbox" name="force" value="1"/> Run on next check</label></p>
    <button type="submit">Save Changes</button>
  </form>
</div>
</body>
</html>
"""


def build_order_source(config):
    """設定から受注取得元を作成"""
    if config.get('ORDER_SOURCE_FILE'):
        return JsonFileOrderSource(Path(config['ORDER_SOURCE_FILE']))

    return WooCommerceOrderSource(
        config.get('WC_BASE_URL', ''),
        config.get('WC_CONSUMER_KEY', ''),
        config.get('WC_CONSUMER_SECRET', ''),
        timeout=config.get('WC_TIMEOUT', 30)
    )


def create_app(config=None, order_source=None, settings_store=None, scheduler=None):
    """
    Flaskアプリケーションファクトリ

    Args:
        config: 設定オブジェクト
        order_source: 受注取得元（省略時は設定から作成）
        settings_store: 設定保存先（省略時は SETTINGS_PATH）
        scheduler: 定期実行（省略時は作成）

    Returns:
        Flask: アプリケーションインスタンス
    """
    app = Flask(__name__)

    # CORS設定（フロントエンドからのアクセス許可）
    CORS(app, origins=["http://localhost:*", "http://127.0.0.1:*"])

    # 設定読み込み
    app.config.from_object(config or get_config())
    configure_logging(logging.DEBUG if app.config.get('DEBUG') else None)

    Path(app.config['EXPORT_BASE_DIR']).mkdir(parents=True, exist_ok=True)

    # サービス初期化
    export_base_dir = Path(app.config['EXPORT_BASE_DIR'])
    settings_store = settings_store or SettingsStore(Path(app.config['SETTINGS_PATH']))
    order_source = order_source or build_order_source(app.config)
    serializer = URLSafeTimedSerializer(app.config['SECRET_KEY'], salt=CSRF_SALT)

    def job_factory(settings):
        return ExportJob(settings, order_source, export_base_dir)

    scheduler = scheduler or ExportScheduler(job_factory, settings_store)
    app.settings_store = settings_store
    app.scheduler = scheduler

    if app.config.get('SCHEDULER_ENABLED'):
        scheduler.sync()

    def current_output_dir() -> Path:
        return resolve_output_dir(export_base_dir, settings_store.load().output_dir)

    def error(message, status):
        return jsonify({'status': 'error', 'message': message}), status

    def require_admin(view):
        """管理者のBasic認証"""
        @wraps(view)
        def wrapper(*args, **kwargs):
            auth = request.authorization
            user = app.config.get('ADMIN_USER', '')
            password = app.config.get('ADMIN_PASSWORD', '')
            authorized = (
                auth is not None
                and bool(password)
                and hmac.compare_digest((auth.username or '').encode(), user.encode())
                and hmac.compare_digest((auth.password or '').encode(), password.encode())
            )
            if not authorized:
                response = jsonify({'status': 'error', 'message': 'Unauthorized'})
                response.status_code = 401
                response.headers['WWW-Authenticate'] = 'Basic realm="sales-export"'
                return response
            return view(*args, **kwargs)
        return wrapper

    def verify_csrf(token) -> bool:
        if not token:
            return False
        try:
            return serializer.loads(token, max_age=app.config['CSRF_MAX_AGE']) == CSRF_SALT
        except SignatureExpired:
            logger.warning("強制実行トークンの有効期限切れ")
            return False
        except BadSignature:
            logger.warning("強制実行トークンが不正です")
            return False

    def wants_json() -> bool:
        return request.is_json or request.accept_mimetypes.best == 'application/json'

    @app.route('/api/health', methods=['GET'])
    def health_check():
        """ヘルスチェック"""
        return jsonify({'status': 'ok', 'timestamp': datetime.now().isoformat()})

    @app.route('/', methods=['GET'])
    @require_admin
    def index():
        """管理画面（出力ファイル一覧・強制実行・設定）"""
        return render_template_string(
            ADMIN_PAGE,
            output_dir=current_output_dir(),
            files=FileHandler(current_output_dir()).list_files(),
            csrf_token=serializer.dumps(CSRF_SALT),
            yesterday=resolve_date_window(False),
            settings=settings_store.load()
        )

    @app.route('/api/settings', methods=['GET'])
    @require_admin
    def get_settings():
        """設定取得"""
        data = settings_store.load().to_dict()
        data['scheduled_at'] = (
            scheduler.scheduled_at.isoformat() if scheduler.scheduled_at else None
        )
        return jsonify({'status': 'success', 'settings': data})

    @app.route('/api/settings', methods=['POST'])
    @require_admin
    def update_settings():
        """設定保存"""
        if request.is_json:
            values = request.get_json(silent=True)
            if not isinstance(values, dict):
                return error('設定はJSONオブジェクトで指定してください', 400)
        else:
            # フォーム送信（未チェックのチェックボックスは送信されない）
            values = {
                'debug': request.form.get('debug') == '1',
                'output_dir': request.form.get('output_dir', ''),
                'force': request.form.get('force') == '1',
            }

        try:
            settings = settings_store.update(**values)
        except ConfigError as e:
            return error(str(e), 400)

        if app.config.get('SCHEDULER_ENABLED'):
            scheduler.sync()

        if not wants_json():
            return redirect(url_for('index'))
        return jsonify({'status': 'success', 'settings': settings.to_dict()})

    @app.route('/api/files', methods=['GET'])
    @require_admin
    def list_files():
        """出力ファイル一覧"""
        output_dir = current_output_dir()
        return jsonify({
            'status': 'success',
            'output_dir': str(output_dir),
            'files': FileHandler(output_dir).list_files()
        })

    @app.route('/api/files/download', methods=['GET'])
    @require_admin
    def download_file():
        """Excelファイルダウンロード"""
        filename = request.args.get('file')
        if not filename:
            return error('ファイルが指定されていません', 400)

        try:
            filepath = FileHandler(current_output_dir()).resolve_download(filename)
        except FileNotFoundError as e:
            return error(str(e), 404)

        return send_file(
            filepath,
            as_attachment=True,
            download_name=filepath.name,
            mimetype='application/octet-stream'
        )

    @app.route('/api/csrf-token', methods=['GET'])
    @require_admin
    def csrf_token():
        """強制実行用トークン発行"""
        return jsonify({'status': 'success', 'csrf_token': serializer.dumps(CSRF_SALT)})

    @app.route('/api/force-execution', methods=['POST'])
    @require_admin
    def force_execution():
        """エクスポートの強制実行（同期）"""
        data = request.get_json(silent=True) or request.form
        token = data.get('csrf_token') or request.headers.get('X-CSRF-Token')
        if not verify_csrf(token):
            return error('Unauthorized', 403)

        date_completed = (data.get('date_completed') or '').strip()
        if not date_completed:
            return error('日付がありません', 400)

        try:
            parse_date_window(date_completed)
        except ValueError:
            return error(f'日付の形式が不正です: {date_completed}', 400)

        job = job_factory(settings_store.load())
        try:
            output_path = job.run_export(date_completed)
        except DataSourceError as e:
            logger.error(f"受注データ取得エラー: {e}")
            return error(str(e), 502)
        except OutputWriteError as e:
            logger.error(f"ファイル書き込みエラー: {e}")
            return error(str(e), 500)
        except ValueError as e:
            logger.error(f"集計エラー: {e}")
            return error(str(e), 500)

        if not wants_json():
            return redirect(url_for('index'))
        return jsonify({'status': 'success', 'output_file': output_path.name})

    return app
