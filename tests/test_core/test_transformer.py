"""
ScriptTransformer のユニットテスト

テスト対象:
  - wrap: テスト関数でのラップ、二重ラップ防止、宣言行の巻き上げ
  - split_declarations: before-body / in-body の行走査
  - transform: 待機補強の有無と解析器エラー時のフォールバック
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from hypothesis import given

from helpers import code_strategy, free_text_strategy
from kusho.core.transformer import ScriptTransformer, TransformedScript


JS_HEADER = "const { test, expect } = require('@playwright/test');"
JS_TEST_OPEN = "test('KushoAI Generated Test', async ({ page }) => {"


def _analyzer(enhanced: str = "", suggestions: list[str] | None = None) -> MagicMock:
    """WaitAnalyzer のモックを生成する。"""
    analyzer = MagicMock()
    analyzer.enhance.return_value = enhanced
    analyzer.suggest_waits.return_value = suggestions or []
    return analyzer


# ===========================================================================
# テスト: wrap（JavaScript）
# ===========================================================================

class TestWrapJavaScript:
    """JavaScript ターゲットのラップ。"""

    def test_hoists_require_and_wraps_body(self) -> None:
        """先頭の const 行が外に出て、本体がテスト関数に入ること。"""
        transformer = ScriptTransformer(enable_wait_enhancement=False)
        code = "const { chromium } = require('x');\nawait page.click('#a');"

        assert transformer.wrap(code) == (
            "const { chromium } = require('x');\n"
            "\n"
            f"{JS_HEADER}\n"
            "\n"
            f"{JS_TEST_OPEN}\n"
            "  await page.click('#a');\n"
            "});"
        )

    def test_without_declarations(self) -> None:
        """宣言行がない場合はヘッダーから始まること。"""
        transformer = ScriptTransformer()
        wrapped = transformer.wrap("await page.click('#a');")

        assert wrapped.startswith(JS_HEADER)
        assert "  await page.click('#a');\n});" in wrapped

    def test_existing_test_is_left_untouched(self) -> None:
        """test( を含むコードはそのまま返ること。"""
        transformer = ScriptTransformer()
        code = "test('login', async ({ page }) => {\n  await page.goto('/');\n});"

        assert transformer.wrap(code) == code

    def test_existing_describe_is_left_untouched(self) -> None:
        """describe( を含むコードはそのまま返ること。"""
        transformer = ScriptTransformer()
        code = "describe('suite', () => {});"

        assert transformer.wrap(code) == code

    def test_blank_lines_keep_their_position_in_body(self) -> None:
        """本体内の空行はインデントされずに残ること。"""
        transformer = ScriptTransformer()
        wrapped = transformer.wrap("await a();\n\nawait b();")

        assert "  await a();\n\n  await b();" in wrapped

    def test_setup_bindings_are_hoisted(self) -> None:
        """browser = / context = を含む行も巻き上げられること。"""
        transformer = ScriptTransformer()
        code = (
            "let browser = await chromium.launch();\n"
            "context = await browser.newContext();\n"
            "await page.click('#a');"
        )
        wrapped = transformer.wrap(code)

        header_index = wrapped.index(JS_HEADER)
        assert wrapped.index("let browser =") < header_index
        assert wrapped.index("context = await") < header_index
        assert "  await page.click('#a');" in wrapped


# ===========================================================================
# テスト: split_declarations
# ===========================================================================

class TestSplitDeclarations:
    """先頭の宣言行と本体の分割。"""

    def test_stops_at_first_body_line(self) -> None:
        """本体行より後ろの宣言行は巻き上げないこと。"""
        transformer = ScriptTransformer()
        hoisted, body = transformer.split_declarations(
            "import a from 'a';\nawait x();\nconst b = 1;\nawait y();"
        )

        assert hoisted == ["import a from 'a';"]
        assert body == ["await x();", "const b = 1;", "await y();"]

    def test_blank_lines_between_declarations_are_dropped(self) -> None:
        """宣言行の間の空行は捨て、最後の宣言行以降は本体になること。"""
        transformer = ScriptTransformer()
        hoisted, body = transformer.split_declarations(
            "import a from 'a';\n\nimport b from 'b';\n\nawait x();"
        )

        assert hoisted == ["import a from 'a';", "import b from 'b';"]
        assert body == ["", "await x();"]

    def test_only_declarations(self) -> None:
        """宣言行だけのコードは本体が空になること。"""
        transformer = ScriptTransformer()
        hoisted, body = transformer.split_declarations("const a = 1;\nconst b = 2;")

        assert hoisted == ["const a = 1;", "const b = 2;"]
        assert body == []


# ===========================================================================
# テスト: wrap（Python）
# ===========================================================================

class TestWrapPython:
    """Python ターゲットのラップ。"""

    def test_wraps_in_test_function(self) -> None:
        """import 行を残し、本体を test 関数に入れること。"""
        transformer = ScriptTransformer(target="python")
        wrapped = transformer.wrap(
            "import re\nfrom playwright.sync_api import Page\npage.goto('https://x/')"
        )

        assert wrapped.startswith("import re\nfrom playwright.sync_api import Page\n\n")
        assert "def test_kusho_generated(page: Page) -> None:\n    page.goto('https://x/')" in wrapped

    def test_pytest_output_is_left_untouched(self) -> None:
        """既に def test_ を含むコードはそのまま返ること。"""
        transformer = ScriptTransformer(target="python-pytest")
        code = "def test_example(page: Page) -> None:\n    page.goto('/')\n"

        assert transformer.wrap(code) == code

    def test_empty_body_gets_pass(self) -> None:
        """本体が空の場合は pass が入ること。"""
        transformer = ScriptTransformer(target="python")
        wrapped = transformer.wrap("import re")

        assert wrapped.endswith("def test_kusho_generated(page: Page) -> None:\n    pass")

    def test_wrap_is_idempotent(self) -> None:
        """Python のラップも二重に適用されないこと。"""
        transformer = ScriptTransformer(target="python")
        once = transformer.wrap("page.click('#a')")

        assert transformer.wrap(once) == once


# ===========================================================================
# テスト: wrap の冪等性（Hypothesis）
# ===========================================================================

class TestWrapIdempotence:
    """wrap(wrap(c)) == wrap(c) の性質。"""

    @given(code=code_strategy())
    def test_codegen_like_code(self, code: str) -> None:
        transformer = ScriptTransformer()
        once = transformer.wrap(code)
        assert transformer.wrap(once) == once

    @given(code=free_text_strategy())
    def test_arbitrary_text(self, code: str) -> None:
        transformer = ScriptTransformer()
        once = transformer.wrap(code)
        assert transformer.wrap(once) == once


# ===========================================================================
# テスト: transform
# ===========================================================================

class TestTransform:
    """待機補強とラップの組み合わせ。"""

    def test_disabled_enhancement_equals_wrap(self) -> None:
        """補強無効時は wrap と同じ結果で、解析器を呼ばないこと。"""
        analyzer = _analyzer()
        transformer = ScriptTransformer(analyzer=analyzer, enable_wait_enhancement=False)
        code = "await page.goto('https://example.com/');"

        result = transformer.transform(code)

        assert result == TransformedScript(code=transformer.wrap(code))
        analyzer.enhance.assert_not_called()
        analyzer.suggest_waits.assert_not_called()

    @given(code=code_strategy())
    def test_disabled_enhancement_equals_wrap_property(self, code: str) -> None:
        transformer = ScriptTransformer(enable_wait_enhancement=False)
        assert transformer.transform(code).code == transformer.wrap(code)

    def test_enhanced_code_is_wrapped(self) -> None:
        """補強後のコードがラップされ、提案は生コードから取られること。"""
        analyzer = _analyzer(enhanced="await enhanced();", suggestions=["hint"])
        transformer = ScriptTransformer(analyzer=analyzer)

        result = transformer.transform("await raw();")

        assert result.enhanced is True
        assert result.suggestions == ["hint"]
        assert "  await enhanced();" in result.code
        analyzer.enhance.assert_called_once_with("await raw();")
        analyzer.suggest_waits.assert_called_once_with("await raw();")

    def test_analyzer_failure_falls_back_to_raw(self) -> None:
        """解析器が例外を投げても補強なしでラップされること。"""
        analyzer = _analyzer()
        analyzer.enhance.side_effect = RuntimeError("解析器エラー")
        transformer = ScriptTransformer(analyzer=analyzer)

        result = transformer.transform("await raw();")

        assert result.enhanced is False
        assert result.code == transformer.wrap("await raw();")

    def test_is_deterministic(self) -> None:
        """同じ入力には同じ出力を返すこと。"""
        transformer = ScriptTransformer()
        code = "await page.goto('https://example.com/');\nawait page.click('#a');"

        assert transformer.transform(code) == transformer.transform(code)

    @pytest.mark.parametrize("target", ["javascript", "playwright-test"])
    def test_javascript_targets_use_js_template(self, target: str) -> None:
        transformer = ScriptTransformer(target=target)
        assert JS_HEADER in transformer.transform("await a();").code
