"""
待機処理の補強 — 記録コードへの待機挿入と改善提案

codegen が出力するコードは操作の羅列で、画面遷移やネットワーク完了を
待たないため、再生時に不安定になりやすい。ここでは行単位の簡易な
ヒューリスティックで待機を補い、人が判断すべき箇所を提案として返す。

主な機能:
  - WaitAnalyzer: 解析器の Protocol 定義（テスト時に差し替え可能）
  - WaitEnhancer: デフォルト実装
      - suggest_waits: 改善提案の一覧
      - enhance: page.goto の直後に load state 待機を挿入
"""

from __future__ import annotations

import logging
import re
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# 解析器 Protocol
# ---------------------------------------------------------------------------

@runtime_checkable
class WaitAnalyzer(Protocol):
    """待機解析器の抽象インターフェース。"""

    def suggest_waits(self, code: str) -> list[str]:
        """コードを解析し、人向けの改善提案を返す（空リスト可）。"""
        ...

    def enhance(self, code: str) -> str:
        """待機処理を補ったコードを返す。"""
        ...


# ---------------------------------------------------------------------------
# 判定パターン
# ---------------------------------------------------------------------------

_GOTO_PATTERN = re.compile(r"\bpage\.goto\(")
_CLICK_PATTERN = re.compile(r"\.(click|dblclick)\(")
_FILL_PATTERN = re.compile(r"\.fill\(")
_FIXED_SLEEP_PATTERN = re.compile(r"\.(waitForTimeout|wait_for_timeout)\(")
_WAIT_PATTERN = re.compile(
    r"\.(waitForLoadState|wait_for_load_state|waitForURL|wait_for_url"
    r"|waitForSelector|wait_for_selector|waitForResponse|wait_for_response)\("
)
_SECRET_PATTERN = re.compile(r"password|passwd|secret|token|パスワード", re.IGNORECASE)

_JS_LOAD_WAIT = "await page.waitForLoadState('networkidle');"
_PY_LOAD_WAIT = 'page.wait_for_load_state("networkidle")'


def _is_javascript_line(line: str) -> bool:
    """行が JavaScript の文かどうかを推定する。"""
    stripped = line.strip()
    return stripped.endswith(";") or stripped.startswith("await ")


def _next_code_line(lines: list[str], index: int) -> str:
    """index より後ろにある最初の空でない行を返す。"""
    for line in lines[index + 1:]:
        if line.strip():
            return line
    return ""


# ---------------------------------------------------------------------------
# WaitEnhancer 本体
# ---------------------------------------------------------------------------

class WaitEnhancer:
    """行単位のヒューリスティックによる待機補強。

    enhance() は冪等で、既に待機が入っている箇所には再挿入しない。

    使用例::

        enhancer = WaitEnhancer()
        code = enhancer.enhance(raw_code)
        for hint in enhancer.suggest_waits(raw_code):
            print(hint)
    """

    def suggest_waits(self, code: str) -> list[str]:
        """コードを解析し、待機に関する改善提案を返す。

        Args:
            code: codegen が出力したコード

        Returns:
            出現順に並んだ提案メッセージのリスト
        """
        suggestions: list[str] = []
        lines = code.split("\n")

        for index, line in enumerate(lines):
            stripped = line.strip()
            line_no = index + 1

            if _FIXED_SLEEP_PATTERN.search(stripped):
                suggestions.append(
                    f"{line_no} 行目: 固定時間の待機は不安定です。"
                    "要素や URL の状態を待つ処理に置き換えてください"
                )
            elif _CLICK_PATTERN.search(stripped):
                following = _next_code_line(lines, index)
                if following and not _WAIT_PATTERN.search(following):
                    suggestions.append(
                        f"{line_no} 行目: クリックで画面遷移する場合は "
                        "URL またはロード状態の待機を追加してください"
                    )
            elif _FILL_PATTERN.search(stripped) and _SECRET_PATTERN.search(stripped):
                suggestions.append(
                    f"{line_no} 行目: 秘密情報らしき値が直接書かれています。"
                    "環境変数から読み込むようにしてください"
                )

        logger.debug("提案を %d 件生成しました", len(suggestions))
        return suggestions

    def enhance(self, code: str) -> str:
        """page.goto の直後にロード状態の待機を挿入する。

        Args:
            code: codegen が出力したコード

        Returns:
            待機を補ったコード
        """
        lines = code.split("\n")
        result: list[str] = []
        inserted = 0

        for index, line in enumerate(lines):
            result.append(line)
            if not _GOTO_PATTERN.search(line):
                continue
            # 直後が既に待機なら挿入しない（冪等性の維持）
            if _WAIT_PATTERN.search(_next_code_line(lines, index)):
                continue

            indent = line[: len(line) - len(line.lstrip())]
            wait_line = _JS_LOAD_WAIT if _is_javascript_line(line) else _PY_LOAD_WAIT
            result.append(f"{indent}{wait_line}")
            inserted += 1

        if inserted:
            logger.debug("待機処理を %d 箇所に挿入しました", inserted)
        return "\n".join(result)
