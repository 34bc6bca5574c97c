"""
CredentialStore — 拡張 API 用認証情報のローカルキャッシュ

ホームディレクトリの小さな JSON ファイルに email / token を保存する。
ファイルが存在しない・読めない・壊れている場合は対話入力にフォールバックし、
入力された値はその場でファイルに書き戻す（write-through）。

セキュリティ境界ではなく、再入力の手間を省くための最小限のキャッシュである。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

import typer
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 認証情報モデル
# ---------------------------------------------------------------------------

class Credentials(BaseModel):
    """拡張 API の認証情報。"""

    email: str = Field(..., description="ユーザーのメールアドレス")
    token: str = Field(..., description="認証トークン")


# ---------------------------------------------------------------------------
# CredentialStore 本体
# ---------------------------------------------------------------------------

class CredentialStore:
    """認証情報ファイルの読み書きと対話入力を担当する。

    prompt / echo を差し替えることで、テスト時に標準入出力を使わずに済む。
    """

    def __init__(
        self,
        path: Path,
        prompt: Optional[Callable[..., str]] = None,
        echo: Optional[Callable[..., None]] = None,
    ) -> None:
        self.path = Path(path)
        self._prompt = prompt or typer.prompt
        self._echo = echo or typer.echo

    def get(self) -> Credentials:
        """保存済みの認証情報を返す。読めなければ対話入力に切り替える。

        呼び出し元に例外は送出しない。

        Returns:
            認証情報
        """
        if self.path.exists():
            try:
                return Credentials.model_validate_json(
                    self.path.read_text(encoding="utf-8"),
                )
            except (OSError, UnicodeDecodeError, ValidationError) as exc:
                logger.warning("認証情報ファイルを読み込めません: %s", exc)
                self._echo("⚠️  認証情報ファイルの読み込みに失敗しました")

        return self.prompt()

    def prompt(self) -> Credentials:
        """email と token を順に入力させ、ファイルに保存する。

        保存に失敗しても入力値はそのまま返す。

        Returns:
            入力された認証情報
        """
        self._echo("🔐 スクリプト拡張には KushoAI の認証情報が必要です")
        email = self._prompt("📧 メールアドレスを入力してください")
        token = self._prompt("🔑 認証トークンを入力してください", hide_input=True)

        credentials = Credentials(email=email, token=token)
        self.save(credentials)
        return credentials

    def update(self) -> Credentials:
        """キャッシュを無視して再入力させ、ファイルを上書きする。"""
        self._echo("🔐 KushoAI の認証情報を更新します")
        return self.prompt()

    def save(self, credentials: Credentials) -> bool:
        """認証情報をファイルに書き込む。

        Returns:
            保存に成功したか
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                credentials.model_dump_json(indent=2), encoding="utf-8",
            )
        except OSError as exc:
            logger.warning("認証情報を保存できません: %s", exc)
            self._echo("⚠️  警告: 認証情報を保存できませんでした")
            return False

        self._echo("✅ 認証情報を保存しました")
        return True
