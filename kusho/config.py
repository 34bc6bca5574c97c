"""
レコーダー設定 — 設定ファイル・環境変数からの設定読み込み

kusho.yaml（任意）と環境変数で CLI の動作を制御する。
CLI 引数 > 環境変数 > kusho.yaml > デフォルト値 の優先順位で適用される。

環境変数一覧:
  KUSHO_RECORDINGS_DIR  : 記録ファイルの保存ディレクトリ（デフォルト: recordings）
  KUSHO_CREDENTIALS_FILE: 認証情報ファイル（デフォルト: ~/.kusho-credentials）
  KUSHO_API_URL         : 拡張 API のベース URL（デフォルト: https://localhost:8080）
  KUSHO_API_TIMEOUT     : 拡張 API のタイムアウト秒数（デフォルト: 120）
  KUSHO_CODEGEN_COMMAND : codegen 起動コマンド（デフォルト: playwright）
  KUSHO_EDITORS         : 試行するエディタ（カンマ区切り、デフォルト: nano,vim,vi）
  KUSHO_SETTLE_DELAY    : 起動後の待機秒数（デフォルト: 2）
"""

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 定数
# ---------------------------------------------------------------------------

CONFIG_FILENAME = "kusho.yaml"

_ENV_RECORDINGS_DIR = "KUSHO_RECORDINGS_DIR"
_ENV_CREDENTIALS_FILE = "KUSHO_CREDENTIALS_FILE"
_ENV_API_URL = "KUSHO_API_URL"
_ENV_API_TIMEOUT = "KUSHO_API_TIMEOUT"
_ENV_CODEGEN_COMMAND = "KUSHO_CODEGEN_COMMAND"
_ENV_EDITORS = "KUSHO_EDITORS"
_ENV_SETTLE_DELAY = "KUSHO_SETTLE_DELAY"

# codegen の --target に渡せる言語と、生成ファイルの拡張子
SUPPORTED_TARGETS: dict[str, str] = {
    "javascript": ".js",
    "playwright-test": ".js",
    "python": ".py",
    "python-async": ".py",
    "python-pytest": ".py",
}

DEFAULT_TARGET = "javascript"
DEFAULT_VIEWPORT = "1280,720"


def suffix_for_target(target: str) -> str:
    """ターゲット言語に対応するファイル拡張子を返す。"""
    return SUPPORTED_TARGETS.get(target, ".js")


def is_python_target(target: str) -> bool:
    """ターゲット言語が Python 系かどうかを返す。"""
    return suffix_for_target(target) == ".py"


# ---------------------------------------------------------------------------
# 設定データクラス
# ---------------------------------------------------------------------------

@dataclass
class RecorderConfig:
    """レコーダーの実行時設定。

    Attributes:
        recordings_dir: 記録ファイルの保存ディレクトリ
        credentials_file: 認証情報ファイルのパス
        api_base_url: スクリプト拡張 API のベース URL
        api_timeout: 拡張 API のタイムアウト（秒）
        codegen_command: codegen 起動コマンド（"codegen" より前の部分）
        editors: 試行するターミナルエディタ（優先順）
        poll_interval: 生成ファイルの存在確認間隔（秒）
        watch_interval: 生成ファイルの変更確認間隔（秒）
        settle_delay: codegen 起動後、開始完了とみなすまでの待機（秒）
    """

    recordings_dir: Path = Path("recordings")
    credentials_file: Path = field(
        default_factory=lambda: Path.home() / ".kusho-credentials",
    )
    api_base_url: str = "https://localhost:8080"
    api_timeout: float = 120.0
    codegen_command: list[str] = field(default_factory=lambda: ["playwright"])
    editors: list[str] = field(default_factory=lambda: ["nano", "vim", "vi"])
    poll_interval: float = 0.5
    watch_interval: float = 0.1
    settle_delay: float = 2.0

    def artifact_path(self, target: str = DEFAULT_TARGET) -> Path:
        """codegen が書き出す生成ファイルのパスを返す。"""
        return self.recordings_dir / f"generated-test{suffix_for_target(target)}"


@dataclass
class RecordOptions:
    """record コマンド 1 回分のオプション。

    Attributes:
        target: codegen のターゲット言語
        viewport: ビューポートサイズ（"幅,高さ"）
        device: エミュレートするデバイス名
        output: 更新のたびに保存する追加の出力ファイル名
        wait_enhancement: 待機処理の自動挿入を行うか
    """

    target: str = DEFAULT_TARGET
    viewport: str = DEFAULT_VIEWPORT
    device: Optional[str] = None
    output: Optional[str] = None
    wait_enhancement: bool = True


# ---------------------------------------------------------------------------
# kusho.yaml からの読み込み
# ---------------------------------------------------------------------------

def _coerce(name: str, value: object) -> object:
    """設定ファイルの値をフィールドの型に合わせて変換する。"""
    if name in ("recordings_dir", "credentials_file"):
        return Path(str(value)).expanduser()
    if name in ("api_timeout", "poll_interval", "watch_interval", "settle_delay"):
        return float(value)  # type: ignore[arg-type]
    if name == "codegen_command":
        return shlex.split(value) if isinstance(value, str) else [str(v) for v in value]  # type: ignore[union-attr]
    if name == "editors":
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return [str(v) for v in value]  # type: ignore[union-attr]
    return str(value)


def load_config_file(config: RecorderConfig, path: Path) -> RecorderConfig:
    """kusho.yaml を読み込み、設定に反映する。

    ファイルが存在しない場合は何もしない。

    Args:
        config: ベースとなる設定
        path: 設定ファイルのパス

    Returns:
        設定ファイルが適用された設定

    Raises:
        ValueError: YAML 構文エラー、またはトップレベルがマッピングでない場合
    """
    path = Path(path)
    if not path.exists():
        return config

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = YAML(typ="safe").load(f)
    except YAMLError as e:
        line_info = ""
        if hasattr(e, "problem_mark") and e.problem_mark is not None:
            mark = e.problem_mark
            line_info = f" (行 {mark.line + 1}, 列 {mark.column + 1})"
        raise ValueError(f"設定ファイルの構文エラー{line_info}: {e}") from e

    if data is None:
        return config
    if not isinstance(data, dict):
        raise ValueError(f"設定ファイルの形式が不正です: {path}")

    known = {f.name for f in fields(RecorderConfig)}
    for key, value in data.items():
        if key not in known:
            logger.warning("未知の設定キーを無視します: %s", key)
            continue
        try:
            setattr(config, key, _coerce(key, value))
        except (TypeError, ValueError):
            logger.warning("設定値が不正です: %s=%r", key, value)

    logger.info("設定ファイルを読み込みました: %s", path)
    return config


# ---------------------------------------------------------------------------
# 環境変数からの読み込み
# ---------------------------------------------------------------------------

def _env_float(name: str) -> Optional[float]:
    """環境変数を float として読む。不正な値は警告して無視する。"""
    raw = os.environ.get(name)
    if raw is None:
        return None
    try:
        return float(raw)
    except ValueError:
        logger.warning("%s の値が不正です: %s", name, raw)
        return None


def apply_env(config: RecorderConfig) -> RecorderConfig:
    """環境変数を設定に反映する。

    設定されていない環境変数は無視する。
    """
    if _ENV_RECORDINGS_DIR in os.environ:
        config.recordings_dir = Path(os.environ[_ENV_RECORDINGS_DIR])

    if _ENV_CREDENTIALS_FILE in os.environ:
        config.credentials_file = Path(os.environ[_ENV_CREDENTIALS_FILE]).expanduser()

    if _ENV_API_URL in os.environ:
        config.api_base_url = os.environ[_ENV_API_URL]

    timeout = _env_float(_ENV_API_TIMEOUT)
    if timeout is not None:
        config.api_timeout = timeout

    if os.environ.get(_ENV_CODEGEN_COMMAND):
        config.codegen_command = shlex.split(os.environ[_ENV_CODEGEN_COMMAND])

    if os.environ.get(_ENV_EDITORS):
        config.editors = _coerce("editors", os.environ[_ENV_EDITORS])  # type: ignore[assignment]

    settle = _env_float(_ENV_SETTLE_DELAY)
    if settle is not None:
        config.settle_delay = settle

    return config


def load_config(config_path: Optional[Path] = None) -> RecorderConfig:
    """デフォルト値 → kusho.yaml → 環境変数 の順で設定を構築する。

    Args:
        config_path: 設定ファイルのパス（None でカレントの kusho.yaml）

    Returns:
        構築された設定
    """
    config = RecorderConfig()
    config = load_config_file(config, config_path or Path(CONFIG_FILENAME))
    config = apply_env(config)
    logger.debug("設定を読み込みました: %s", config)
    return config
