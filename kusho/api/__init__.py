"""
KushoAI API モジュール

- Credentials / CredentialStore: 認証情報のローカルキャッシュと対話入力
- ExtensionClient: スクリプト拡張 API のクライアント
"""

from .credentials import CredentialStore, Credentials  # noqa: F401
from .extend import ExtensionClient, ExtensionError, decode_extended_script  # noqa: F401

__all__ = [
    "CredentialStore",
    "Credentials",
    "ExtensionClient",
    "ExtensionError",
    "decode_extended_script",
]
