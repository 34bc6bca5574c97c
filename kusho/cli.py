"""
CLI エントリポイント — Typer ベースのコマンドラインインターフェース

kusho コマンドとして以下のサブコマンドを提供する:
  - record: Playwright codegen で操作を記録し、テストとして保存
  - demo: デモサイトで record を実行
  - credentials: KushoAI の認証情報を更新
  - extend: 既存のテストファイルを KushoAI API で拡張
"""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import typer

from .config import (
    DEFAULT_TARGET,
    DEFAULT_VIEWPORT,
    SUPPORTED_TARGETS,
    RecordOptions,
    RecorderConfig,
    load_config,
)

if TYPE_CHECKING:
    from .api import ExtensionClient

logger = logging.getLogger(__name__)

DEMO_URL = "https://demo.playwright.dev/todomvc"

# ---------------------------------------------------------------------------
# Typer アプリ定義
# ---------------------------------------------------------------------------

app = typer.Typer(
    help=(
        "kusho — ブラウザ操作を Playwright テストとして記録する CLI\n\n"
        "基本の流れ:\n"
        "  1. kusho record URL     操作を記録（ブラウザが開きます）\n"
        "  2. ブラウザを閉じる      ファイル名を入力して保存・編集\n"
        "  3. 自動で KushoAI API によりテストバリエーションを追加\n\n"
        "詳しくは各コマンドに --help を付けてください。"
    ),
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-V", help="デバッグログを表示する",
    ),
) -> None:
    """ログ出力を設定する。"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s - %(message)s",
    )


# ---------------------------------------------------------------------------
# 組み立てヘルパー
# ---------------------------------------------------------------------------

def _load_config() -> RecorderConfig:
    """設定を読み込む。失敗時はエラーを表示して終了する。"""
    try:
        return load_config()
    except ValueError as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


def _build_extension_client(config: RecorderConfig) -> ExtensionClient:
    """設定から ExtensionClient を生成する。"""
    from .api import CredentialStore, ExtensionClient

    store = CredentialStore(config.credentials_file)
    return ExtensionClient(
        store,
        base_url=config.api_base_url,
        timeout=config.api_timeout,
    )


async def _run_recording(
    config: RecorderConfig,
    url: Optional[str],
    options: RecordOptions,
) -> None:
    """記録セッションを 1 回実行する。

    記録中（codegen の終了待ち）に SIGINT を受け取った場合は対話入力なしで
    セッションを終了する。記録後の入力待ち・エディタ・API 呼び出し中は
    ハンドラを外し、通常の KeyboardInterrupt として中断させる。

    Args:
        config: レコーダー設定
        url: 記録開始 URL
        options: 記録オプション
    """
    from .core import RecordingSession

    session = RecordingSession(
        config,
        extension_client=_build_extension_client(config),
    )

    # --output 指定時は更新のたびに保存
    if options.output:
        output = options.output
        session.on_update(lambda _code: session.save_code_to_file(output))

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.interrupt)
    except NotImplementedError:
        # Windows のイベントループは add_signal_handler 非対応
        pass

    try:
        await session.start(url, options)
        await session.wait_closed()
    finally:
        # 同期的な typer.prompt 中でも SIGINT が KeyboardInterrupt になるよう戻す
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass

    await session.complete()


def _record(config: RecorderConfig, url: Optional[str], options: RecordOptions) -> None:
    """_run_recording を実行し、起動失敗とその他のエラーを終了コード 1 に変換する。

    記録後の中断（Ctrl+C）は利用者の操作として終了コード 0 で終える。
    """
    from .core import LaunchError

    try:
        asyncio.run(_run_recording(config, url, options))
    except LaunchError:
        raise typer.Exit(code=1)
    except (KeyboardInterrupt, typer.Abort):
        typer.echo("\n🛑 中断しました")
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# record コマンド
# ---------------------------------------------------------------------------

@app.command()
def record(
    url: Optional[str] = typer.Argument(
        None, help="記録を開始する URL（省略可）",
    ),
    device: Optional[str] = typer.Option(
        None, "--device", "-d", help='エミュレートするデバイス（例: "iPhone 13"）',
    ),
    viewport: str = typer.Option(
        DEFAULT_VIEWPORT, "--viewport", "-v", help="ビューポートサイズ（幅,高さ）",
    ),
    target: str = typer.Option(
        DEFAULT_TARGET, "--target", "-t",
        help="生成コードの言語（javascript / playwright-test / python 等）",
    ),
    output: Optional[str] = typer.Option(
        None, "--output", "-o", help="更新のたびに保存する出力ファイル名",
    ),
    wait_enhancement: bool = typer.Option(
        True, "--wait-enhancement/--no-wait-enhancement",
        help="待機処理の自動挿入を行うか",
    ),
) -> None:
    """ブラウザ操作を記録し、Playwright テストとして保存する。

    ブラウザを閉じるとファイル名の入力を求め、保存後にエディタを開きます。
    エディタを正常終了すると KushoAI API でテストバリエーションを追加します。
    """
    if target not in SUPPORTED_TARGETS:
        raise typer.BadParameter(
            f"未対応のターゲットです: {target}"
            f"（{', '.join(SUPPORTED_TARGETS)} のいずれか）",
            param_hint="--target",
        )

    config = _load_config()
    options = RecordOptions(
        target=target,
        viewport=viewport,
        device=device,
        output=output,
        wait_enhancement=wait_enhancement,
    )
    _record(config, url, options)


# ---------------------------------------------------------------------------
# demo コマンド
# ---------------------------------------------------------------------------

@app.command()
def demo() -> None:
    """デモサイトで記録を試す。"""
    typer.echo("🚀 KushoAI のデモを開始します...")
    config = _load_config()
    _record(config, DEMO_URL, RecordOptions())


# ---------------------------------------------------------------------------
# credentials コマンド
# ---------------------------------------------------------------------------

@app.command()
def credentials() -> None:
    """KushoAI の認証情報を更新する。"""
    from .api import CredentialStore

    config = _load_config()
    try:
        CredentialStore(config.credentials_file).update()
    except (KeyboardInterrupt, typer.Abort):
        typer.echo("\n🛑 中断しました")
        return
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)

    typer.echo("✅ 認証情報を更新しました！")


# ---------------------------------------------------------------------------
# extend コマンド
# ---------------------------------------------------------------------------

@app.command()
def extend(
    file: Path = typer.Argument(..., help="拡張するテストファイルのパス"),
) -> None:
    """既存のテストファイルを KushoAI API で拡張する。"""
    if not file.exists():
        typer.echo(f"❌ ファイルが見つかりません: {file}", err=True)
        raise typer.Exit(code=1)

    config = _load_config()
    try:
        typer.echo("📁 既存のテストファイルを拡張します...")
        client = _build_extension_client(config)
        asyncio.run(client.extend_file(file))
    except (KeyboardInterrupt, typer.Abort):
        typer.echo("\n🛑 中断しました")
    except Exception as exc:
        typer.echo(f"エラー: {exc}", err=True)
        raise typer.Exit(code=1)
