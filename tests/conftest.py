"""
テスト共通フィクスチャ

全テストモジュールで共有するフィクスチャを提供する。
FakeProcess や Hypothesis ストラテジーは helpers.py にある。
"""

from pathlib import Path

import pytest
from hypothesis import settings

from kusho.config import RecorderConfig

# ファイル I/O を伴うプロパティテストの実行時間が環境によってばらつくため、
# Hypothesis のデッドラインを無効にする
settings.register_profile("kusho", deadline=None)
settings.load_profile("kusho")


# ---------------------------------------------------------------------------
# 環境変数の隔離
# ---------------------------------------------------------------------------

_KUSHO_ENV_VARS = [
    "KUSHO_RECORDINGS_DIR",
    "KUSHO_CREDENTIALS_FILE",
    "KUSHO_API_URL",
    "KUSHO_API_TIMEOUT",
    "KUSHO_CODEGEN_COMMAND",
    "KUSHO_EDITORS",
    "KUSHO_SETTLE_DELAY",
]


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """開発者の環境変数がテスト結果に影響しないようにする。"""
    for name in _KUSHO_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# pytest フィクスチャ
# ---------------------------------------------------------------------------

@pytest.fixture
def config(tmp_path: Path) -> RecorderConfig:
    """一時ディレクトリを使い、待ち時間を短くしたレコーダー設定。"""
    return RecorderConfig(
        recordings_dir=tmp_path / "recordings",
        credentials_file=tmp_path / ".kusho-credentials",
        poll_interval=0.01,
        watch_interval=0.01,
        settle_delay=0,
    )


class EchoLog:
    """typer.echo の代わりに出力を記録する。"""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def __call__(self, message: str = "", **kwargs: object) -> None:
        self.lines.append(message)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


@pytest.fixture
def echo() -> EchoLog:
    """出力を記録する echo 関数。"""
    return EchoLog()
