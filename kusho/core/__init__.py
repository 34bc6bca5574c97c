# コアモジュール
# 記録セッション、生成ファイル監視、スクリプト変換、待機補強を提供

from .session import LaunchError, RecordingSession, SessionState, build_codegen_args, unique_path
from .transformer import ScriptTransformer, TransformedScript
from .waits import WaitAnalyzer, WaitEnhancer
from .watcher import ArtifactWatcher

__all__ = [
    "ArtifactWatcher",
    "LaunchError",
    "RecordingSession",
    "ScriptTransformer",
    "SessionState",
    "TransformedScript",
    "WaitAnalyzer",
    "WaitEnhancer",
    "build_codegen_args",
    "unique_path",
]
