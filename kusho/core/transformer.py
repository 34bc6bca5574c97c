"""
ScriptTransformer — 記録コードを実行可能なテストに変換

codegen が書き出した生のコードに対して、以下の 2 段階を順に適用する:
  1. 待機補強（有効時のみ）: WaitAnalyzer に委譲し、提案も収集する
  2. ラップ: 既にテスト構文を含むコードはそのまま、含まない場合は
     先頭の import / 宣言行を外に出し、残りをテスト関数の本体に入れる

ラップは汎用パーサーではなく行頭パターンによる走査で行う。
走査は before-body / in-body の 2 状態のみを持ち、最初の本体行以降に
現れる宣言行は巻き上げない。
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader

from ..config import DEFAULT_TARGET, is_python_target
from .waits import WaitAnalyzer, WaitEnhancer

logger = logging.getLogger(__name__)

# テンプレートディレクトリのパス
_TEMPLATES_DIR = Path(__file__).parent.parent / "templates"

TEST_TITLE = "KushoAI Generated Test"
TEST_FUNCTION_NAME = "test_kusho_generated"

# 既にテストとして書かれていることを示す部分文字列
_JS_TEST_MARKERS = ("test(", "describe(")
_PY_TEST_MARKERS = ("def test_",)

# 巻き上げ対象の行頭キーワード
_JS_DECLARATION_PREFIXES = ("import ", "const ", "require(")
_PY_DECLARATION_PREFIXES = ("import ", "from ")

# 巻き上げ対象のセットアップ束縛
_SETUP_BINDINGS = ("test =", "browser =", "context =")


# ---------------------------------------------------------------------------
# データクラス
# ---------------------------------------------------------------------------

class ScanState(enum.Enum):
    """ラップ時の行走査の状態。"""

    BEFORE_BODY = "before-body"
    IN_BODY = "in-body"


@dataclass
class TransformedScript:
    """変換結果。

    Attributes:
        code: テストとしてラップされたコード
        suggestions: 解析器からの改善提案
        enhanced: 待機補強が適用されたか
    """

    code: str
    suggestions: list[str] = field(default_factory=list)
    enhanced: bool = False


# ---------------------------------------------------------------------------
# ScriptTransformer 本体
# ---------------------------------------------------------------------------

class ScriptTransformer:
    """生コードをテストスクリプトに変換する。

    同じ入力と同じ enable_wait_enhancement に対して常に同じ出力を返す
    （解析器自体の非決定性を除く）。

    使用例::

        transformer = ScriptTransformer()
        result = transformer.transform(raw_code)
        print(result.code)
    """

    def __init__(
        self,
        analyzer: Optional[WaitAnalyzer] = None,
        enable_wait_enhancement: bool = True,
        target: str = DEFAULT_TARGET,
    ) -> None:
        self.analyzer: WaitAnalyzer = analyzer or WaitEnhancer()
        self.enable_wait_enhancement = enable_wait_enhancement
        self.target = target
        self._env = Environment(
            loader=FileSystemLoader(str(_TEMPLATES_DIR)),
            autoescape=False,
        )

    # ----- transform -----

    def transform(self, code: str) -> TransformedScript:
        """待機補強とラップを順に適用する。

        解析器の例外は変更イベント単位の失敗として扱い、
        補強なしのコードをラップして返す。

        Args:
            code: codegen が出力した生コード

        Returns:
            変換結果
        """
        if not self.enable_wait_enhancement:
            return TransformedScript(code=self.wrap(code))

        try:
            enhanced = self.analyzer.enhance(code)
            suggestions = list(self.analyzer.suggest_waits(code))
        except Exception as exc:
            logger.warning("待機補強に失敗したため補強なしで続行します: %s", exc)
            return TransformedScript(code=self.wrap(code))

        return TransformedScript(
            code=self.wrap(enhanced),
            suggestions=suggestions,
            enhanced=True,
        )

    # ----- wrap -----

    def is_wrapped(self, code: str) -> bool:
        """コードが既にテスト構文を含むかどうかを返す。"""
        markers = _PY_TEST_MARKERS if self._python else _JS_TEST_MARKERS
        return any(marker in code for marker in markers)

    def wrap(self, code: str) -> str:
        """コードをテスト関数でラップする。

        既にテスト構文を含む場合は二重にラップせずそのまま返す。

        Args:
            code: ラップ対象のコード

        Returns:
            テスト関数でラップされたコード
        """
        if self.is_wrapped(code):
            return code

        hoisted, body = self.split_declarations(code)
        indent = "    " if self._python else "  "
        body_lines = [indent + line if line.strip() else line for line in body]

        if self._python:
            if not any(line.strip() for line in body_lines):
                body_lines = [indent + "pass"]
            template = self._env.get_template("wrapped_test.py.j2")
            return template.render(
                hoisted="\n".join(hoisted),
                body="\n".join(body_lines),
                function_name=TEST_FUNCTION_NAME,
            )

        template = self._env.get_template("wrapped_test.js.j2")
        return template.render(
            hoisted="\n".join(hoisted),
            body="\n".join(body_lines),
            title=TEST_TITLE,
        )

    def split_declarations(self, code: str) -> tuple[list[str], list[str]]:
        """先頭の連続した宣言・セットアップ行と本体行に分割する。

        宣言行の間にある空行は捨て、最後の宣言行より後ろはすべて本体とする。

        Args:
            code: 分割対象のコード

        Returns:
            (巻き上げる行, 本体の行) のタプル
        """
        lines = code.split("\n")
        hoisted: list[str] = []
        body_start = 0
        state = ScanState.BEFORE_BODY

        for index, line in enumerate(lines):
            if state is ScanState.IN_BODY:
                break
            if self._is_declaration(line):
                hoisted.append(line)
                body_start = index + 1
            elif line.strip():
                state = ScanState.IN_BODY

        return hoisted, lines[body_start:]

    def _is_declaration(self, line: str) -> bool:
        """行が巻き上げ対象の宣言・セットアップ行かどうかを判定する。"""
        stripped = line.strip()
        prefixes = _PY_DECLARATION_PREFIXES if self._python else _JS_DECLARATION_PREFIXES
        if stripped.startswith(prefixes):
            return True
        return any(binding in stripped for binding in _SETUP_BINDINGS)

    @property
    def _python(self) -> bool:
        return is_python_target(self.target)
