"""
ExtensionClient — KushoAI API によるテストスクリプト拡張

保存済みスクリプトをリモートサービスに送り、テストバリエーションを
追加したスクリプトを受け取ってファイルを上書きする。

状態遷移: Idle → AcquireCredentials → Request → {Success | Failure}
  - 2xx 応答: JSON の extendedScript / script を採用し、無ければ本文全体を採用
  - それ以外の応答・通信エラー・不正なリクエスト: ExtensionError を送出し、ファイルは変更しない

自己署名証明書のローカル / 開発環境を想定し、証明書検証は無効にしている。
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Callable, Optional

import httpx
import typer

from .credentials import CredentialStore, Credentials

logger = logging.getLogger(__name__)

EXTEND_PATH = "/ui-testing-v2/extend-script"

# 応答 JSON でスクリプトを探すキー（優先順）
_SCRIPT_FIELDS = ("extendedScript", "script")

_SPINNER_FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")


# ---------------------------------------------------------------------------
# 例外
# ---------------------------------------------------------------------------

class ExtensionError(Exception):
    """スクリプト拡張 API の呼び出しに失敗した。

    Attributes:
        status_code: HTTP ステータス（通信エラー時は None）
        body: 応答本文（取得できた場合）
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


# ---------------------------------------------------------------------------
# 応答の解釈
# ---------------------------------------------------------------------------

def decode_extended_script(body: str) -> str:
    """応答本文から拡張後のスクリプトを取り出す。

    1. JSON として解釈し、既知のフィールドに値があればそれを返す
    2. JSON でない・既知のフィールドが無い場合は本文全体を返す

    Args:
        body: 応答本文

    Returns:
        拡張後のスクリプト
    """
    try:
        data = json.loads(body)
    except ValueError:
        logger.debug("応答が JSON ではないため本文全体を採用します")
        return body

    if isinstance(data, dict):
        for key in _SCRIPT_FIELDS:
            value = data.get(key)
            if value:
                return str(value)

    logger.debug("応答に既知のフィールドが無いため本文全体を採用します")
    return body


# ---------------------------------------------------------------------------
# 進捗表示
# ---------------------------------------------------------------------------

class Spinner:
    """リクエスト中に表示する簡易アニメーション。

    async with で使い、抜けるときに必ずタスクを止めて改行する::

        async with Spinner("生成中..."):
            await request()
    """

    def __init__(
        self,
        label: str,
        interval: float = 0.1,
        echo: Optional[Callable[..., None]] = None,
    ) -> None:
        self.label = label
        self.interval = interval
        self._echo = echo or typer.echo
        self._task: Optional[asyncio.Task[None]] = None

    async def _animate(self) -> None:
        index = 0
        while True:
            frame = _SPINNER_FRAMES[index % len(_SPINNER_FRAMES)]
            self._echo(f"\r{frame} {self.label}", nl=False)
            index += 1
            await asyncio.sleep(self.interval)

    async def __aenter__(self) -> Spinner:
        self._task = asyncio.get_running_loop().create_task(self._animate())
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._echo("")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()


def _replace_file(path: Path, text: str) -> None:
    """一時ファイル経由でファイルを置き換える（途中までの上書きを残さない）。"""
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        tmp_path.write_text(text, encoding="utf-8")
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


# ---------------------------------------------------------------------------
# ExtensionClient 本体
# ---------------------------------------------------------------------------

class ExtensionClient:
    """スクリプト拡張 API のクライアント。

    使用例::

        client = ExtensionClient(store, base_url="https://localhost:8080")
        ok = await client.extend_file(Path("recordings/login.js"))
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        base_url: str = "https://localhost:8080",
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        echo: Optional[Callable[..., None]] = None,
    ) -> None:
        self.credential_store = credential_store
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport
        self._echo = echo or typer.echo

    async def request_extension(self, script: str, credentials: Credentials) -> str:
        """スクリプトを送信し、拡張後のスクリプトを返す。

        Args:
            script: 拡張対象のスクリプト本文
            credentials: 認証情報

        Returns:
            拡張後のスクリプト

        Raises:
            ExtensionError: 2xx 以外の応答、通信エラー、またはリクエストを作成できない場合
        """
        payload = json.dumps({"script": script}).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Content-Length": str(len(payload)),
            "X-User-Email": credentials.email,
            "X-Auth-Token": credentials.token,
        }

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                verify=False,
                transport=self._transport,
            ) as client:
                response = await client.post(EXTEND_PATH, content=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise ExtensionError(f"API への接続に失敗しました: {exc}") from exc
        except (httpx.InvalidURL, UnicodeEncodeError) as exc:
            # 不正な API URL、ヘッダーに使えない文字を含む認証情報
            raise ExtensionError(f"API リクエストを作成できませんでした: {exc}") from exc

        body = response.text
        logger.info("拡張 API の応答: status=%d", response.status_code)
        if not response.is_success:
            raise ExtensionError(
                f"API がステータス {response.status_code} を返しました: {body}",
                status_code=response.status_code,
                body=body,
            )

        return decode_extended_script(body)

    async def extend_file(self, path: Path) -> bool:
        """ファイルの内容を拡張し、成功時のみ同じファイルを上書きする。

        失敗はすべてここで報告し、元のファイルには手を付けない。

        Args:
            path: 拡張対象のスクリプトファイル

        Returns:
            拡張に成功したか
        """
        path = Path(path)
        self._echo("🚀 KushoAI でテストバリエーションを生成します...")

        try:
            credentials = self.credential_store.get()
            script = path.read_text(encoding="utf-8")

            async with Spinner("テストバリエーションを生成中...", echo=self._echo):
                extended = await self.request_extension(script, credentials)

            _replace_file(path, extended)
        except (ExtensionError, OSError, UnicodeDecodeError) as exc:
            logger.warning("スクリプト拡張に失敗しました: %s", exc)
            self._echo(f"❌ スクリプトの拡張に失敗しました: {exc}")
            self._echo(f"📁 元のファイルは保持されています: {path}")
            return False

        self._echo("🎉 スクリプトを拡張しました!")
        self._echo(f"📁 更新したファイル: {path}")
        return True
