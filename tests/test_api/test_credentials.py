"""
CredentialStore のユニットテスト

テスト対象:
  - get: 保存済みファイルの読み込みと、失敗時の対話入力への切り替え
  - prompt / update: 入力値の書き戻し
  - save: 書き込み失敗時の警告
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

from kusho.api.credentials import CredentialStore, Credentials


def _prompt(*answers: str) -> MagicMock:
    return MagicMock(side_effect=list(answers))


class TestGet:
    """get() のテスト。"""

    def test_reads_saved_file(self, tmp_path: Path, echo) -> None:  # type: ignore[no-untyped-def]
        path = tmp_path / ".kusho-credentials"
        path.write_text(json.dumps({"email": "a@example.com", "token": "t"}), encoding="utf-8")
        prompt = _prompt()

        credentials = CredentialStore(path, prompt=prompt, echo=echo).get()

        assert credentials == Credentials(email="a@example.com", token="t")
        prompt.assert_not_called()

    def test_missing_file_prompts_and_saves(self, tmp_path: Path, echo) -> None:  # type: ignore[no-untyped-def]
        path = tmp_path / "nested" / ".kusho-credentials"
        prompt = _prompt("a@example.com", "secret")

        credentials = CredentialStore(path, prompt=prompt, echo=echo).get()

        assert credentials.email == "a@example.com"
        assert json.loads(path.read_text(encoding="utf-8")) == {
            "email": "a@example.com",
            "token": "secret",
        }
        assert prompt.call_args_list[1].kwargs == {"hide_input": True}
        assert "✅ 認証情報を保存しました" in echo.lines

    def test_corrupt_file_falls_back_to_prompt(self, tmp_path: Path, echo) -> None:  # type: ignore[no-untyped-def]
        """壊れたファイルでも例外を出さず、入力し直した値で上書きすること。"""
        path = tmp_path / ".kusho-credentials"
        path.write_text("{not json", encoding="utf-8")

        credentials = CredentialStore(path, prompt=_prompt("b@example.com", "t2"), echo=echo).get()

        assert credentials.token == "t2"
        assert "⚠️  認証情報ファイルの読み込みに失敗しました" in echo.lines
        assert Credentials.model_validate_json(path.read_text(encoding="utf-8")) == credentials

    def test_missing_field_falls_back_to_prompt(self, tmp_path: Path, echo) -> None:  # type: ignore[no-untyped-def]
        path = tmp_path / ".kusho-credentials"
        path.write_text(json.dumps({"email": "a@example.com"}), encoding="utf-8")
        prompt = _prompt("a@example.com", "t")

        CredentialStore(path, prompt=prompt, echo=echo).get()

        assert prompt.call_count == 2


class TestUpdate:
    """update() のテスト。"""

    def test_ignores_cache(self, tmp_path: Path, echo) -> None:  # type: ignore[no-untyped-def]
        path = tmp_path / ".kusho-credentials"
        path.write_text(json.dumps({"email": "old@example.com", "token": "old"}), encoding="utf-8")

        store = CredentialStore(path, prompt=_prompt("new@example.com", "new"), echo=echo)
        credentials = store.update()

        assert credentials.email == "new@example.com"
        assert json.loads(path.read_text(encoding="utf-8"))["token"] == "new"
        assert echo.lines[0] == "🔐 KushoAI の認証情報を更新します"


class TestSave:
    """save() のテスト。"""

    def test_write_failure_returns_input(self, tmp_path: Path, echo) -> None:  # type: ignore[no-untyped-def]
        """保存できなくても入力値は返ること。"""
        blocker = tmp_path / "file"
        blocker.write_text("", encoding="utf-8")
        store = CredentialStore(blocker / ".kusho-credentials", prompt=_prompt("a@example.com", "t"), echo=echo)

        credentials = store.prompt()

        assert credentials == Credentials(email="a@example.com", token="t")
        assert "⚠️  警告: 認証情報を保存できませんでした" in echo.lines

    def test_save_returns_status(self, tmp_path: Path, echo) -> None:  # type: ignore[no-untyped-def]
        store = CredentialStore(tmp_path / ".kusho-credentials", echo=echo)

        assert store.save(Credentials(email="a@example.com", token="t")) is True
