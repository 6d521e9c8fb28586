"""
アプリケーション起動スクリプト
"""
import argparse
import os
import sys
from pathlib import Path


def _serve(args):
    """管理画面サーバー起動"""
    # 環境変数に設定
    os.environ['PORT'] = str(args.port)
    os.environ['HOST'] = args.host
    if args.debug:
        os.environ['DEBUG'] = 'true'

    # アプリケーション作成
    from .backend.api import create_app
    app = create_app()

    print(f"""
============================================================
  割引販売データ集計
============================================================
  サーバー起動中...
  URL: http://{args.host}:{args.port}

  停止するには Ctrl+C を押してください
============================================================
    """)

    try:
        # リローダーはタイマーを二重に起動するため使用しない
        app.run(host=args.host, port=args.port, debug=args.debug, use_reloader=False)
    finally:
        app.scheduler.shutdown()
    return 0


def _export(args):
    """エクスポートを1回実行"""
    from .config import configure_logging, get_config
    from .backend.aggregator import OutputWriteError
    from .backend.api import build_order_source
    from .backend.services import (
        DataSourceError, ExportJob, SettingsStore, resolve_date_window
    )

    config = get_config()
    configure_logging()
    config.init_app()

    settings = SettingsStore(Path(config.SETTINGS_PATH)).load()
    order_source = build_order_source({
        key: getattr(config, key) for key in dir(config) if key.isupper()
    })
    job = ExportJob(settings, order_source, Path(config.EXPORT_BASE_DIR))

    date_window = args.date or resolve_date_window(settings.debug)
    try:
        output_path = job.run_export(date_window)
    except (DataSourceError, OutputWriteError, ValueError) as e:
        print(f"エラー: {e}", file=sys.stderr)
        return 1

    print(f"出力ファイル: {output_path}")
    return 0


def _settings(args):
    """設定の表示・変更"""
    from .config import get_config
    from .backend.services import ConfigError, SettingsStore

    store = SettingsStore(Path(get_config().SETTINGS_PATH))
    values = {}
    if args.debug is not None:
        values['debug'] = args.debug
    if args.output_dir is not None:
        values['output_dir'] = args.output_dir
    if args.force:
        values['force'] = True

    try:
        settings = store.update(**values) if values else store.load()
    except ConfigError as e:
        print(f"エラー: {e}", file=sys.stderr)
        return 1

    for key, value in settings.to_dict().items():
        print(f"{key}: {value}")
    return 0


def main(argv=None):
    """メイン関数"""
    parser = argparse.ArgumentParser(
        description='割引販売データ集計（完了済み受注のExcel出力）'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    serve = subparsers.add_parser('serve', help='管理画面サーバーを起動（定期実行を含む）')
    serve.add_argument(
        '--port', '-p',
        type=int,
        default=int(os.getenv('PORT', 8080)),
        help='サーバーポート番号（デフォルト: 8080）'
    )
    serve.add_argument(
        '--host',
        type=str,
        default=os.getenv('HOST', '127.0.0.1'),
        help='ホストアドレス（デフォルト: 127.0.0.1）'
    )
    serve.add_argument(
        '--debug',
        action='store_true',
        help='デバッグモードで起動'
    )
    serve.set_defaults(func=_serve)

    export = subparsers.add_parser('export', help='エクスポートを1回実行')
    export.add_argument(
        '--date', '-d',
        help='集計期間（YYYY-MM-DD または YYYY-MM-DD...YYYY-MM-DD、デフォルト: 前日）'
    )
    export.set_defaults(func=_export)

    settings = subparsers.add_parser('settings', help='設定の表示・変更')
    settings.add_argument(
        '--debug', dest='debug', action='store_true', default=None,
        help='デバッグモードを有効化'
    )
    settings.add_argument(
        '--no-debug', dest='debug', action='store_false',
        help='デバッグモードを無効化'
    )
    settings.add_argument('--output-dir', help='出力先ディレクトリ')
    settings.add_argument('--force', action='store_true', help='次回起動時に即時実行')
    settings.set_defaults(func=_settings)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
