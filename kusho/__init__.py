"""
kusho — ブラウザ操作を記録して Playwright テストを生成する CLI

Playwright codegen で記録したコードをテスト関数にラップして保存し、
KushoAI API でテストバリエーションを追加する。
"""

__version__ = "1.0.0"
