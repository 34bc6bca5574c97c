"""
テスト用ヘルパー

codegen やエディタのサブプロセスは FakeProcess で代替し、実際には起動しない。
"""

import asyncio
from typing import Optional

from hypothesis import strategies as st


class FakeProcess:
    """asyncio.subprocess.Process の代替。

    finish() を呼ぶまで wait() は戻らない。
    """

    def __init__(self, returncode: Optional[int] = None) -> None:
        self.returncode = returncode
        self.killed = False
        self._done = asyncio.Event()
        if returncode is not None:
            self._done.set()

    async def wait(self) -> int:
        await self._done.wait()
        return self.returncode  # type: ignore[return-value]

    def finish(self, returncode: int = 0) -> None:
        self.returncode = returncode
        self._done.set()

    def kill(self) -> None:
        self.killed = True
        self.finish(-9)


async def wait_until(predicate, timeout: float = 2.0) -> None:  # type: ignore[no-untyped-def]
    """predicate が真になるまでイベントループを回す。"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            raise AssertionError("条件が時間内に満たされませんでした")
        await asyncio.sleep(0.01)


# ---------------------------------------------------------------------------
# Hypothesis ストラテジー
# ---------------------------------------------------------------------------

# テスト構文を含まない codegen 風の行
_CODE_LINES = [
    "const { chromium } = require('playwright');",
    "import { expect } from '@playwright/test';",
    "const browser = await chromium.launch({ headless: false });",
    "const context = await browser.newContext();",
    "const page = await context.newPage();",
    "await page.goto('https://example.com/');",
    "await page.getByRole('button', { name: 'Login' }).click();",
    "await page.getByLabel('Email').fill('user@example.com');",
    "await page.waitForTimeout(500);",
    "  await page.locator('#item').dblclick();",
    "await context.close();",
    "",
]


def code_strategy() -> st.SearchStrategy[str]:
    """テスト構文を含まない JavaScript コード片を生成するストラテジー。"""
    return st.lists(st.sampled_from(_CODE_LINES), max_size=12).map("\n".join)


def free_text_strategy() -> st.SearchStrategy[str]:
    """テストマーカーを含まない任意テキストを生成するストラテジー。"""
    return st.text(max_size=200).filter(
        lambda s: "test(" not in s and "describe(" not in s
    )
