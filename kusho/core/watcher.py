"""
ArtifactWatcher — codegen 生成ファイルの出現と変更の監視

「まだ存在しないかもしれないファイル」と「少しずつ書き換えられるファイル」を
1 本の変更イベント列にまとめる。

  - フェーズ 1: poll_interval ごとにファイルの存在を確認する
  - フェーズ 2: stat（更新時刻・サイズ）の変化を変更通知として扱い、
    通知のたびにファイル全体を読み直す

直前に通知した内容と完全一致する内容は通知しない。空の内容は、まだ何も
通知していない間（作成直後）に限り通知しない。
読み込みに失敗した場合（書き込み途中でロックされている等）は
そのイベントを取りこぼしとして扱い、次の変更通知で回復する。
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ArtifactWatcher:
    """生成ファイルの変更を検出し、内容をコールバックに渡す。

    使用例::

        watcher = ArtifactWatcher(path, on_change=queue.put_nowait)
        watcher.start()
        ...
        await watcher.close()
    """

    def __init__(
        self,
        path: Path,
        on_change: Callable[[str], None],
        poll_interval: float = 0.5,
        watch_interval: float = 0.1,
    ) -> None:
        self.path = Path(path)
        self._on_change = on_change
        self._poll_interval = poll_interval
        self._watch_interval = watch_interval
        self._task: Optional[asyncio.Task[None]] = None
        self._last_content: Optional[str] = None
        self._attached = False

    @property
    def is_running(self) -> bool:
        """監視タスクが動作中かどうかを返す。"""
        return self._task is not None and not self._task.done()

    @property
    def attached(self) -> bool:
        """ファイルを発見し、変更監視に移行済みかどうかを返す。"""
        return self._attached

    def start(self) -> None:
        """監視タスクを開始する。既に動作中なら何もしない。"""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        """監視タスクの停止を要求する（完了は待たない）。

        シグナルハンドラなど await できない箇所から呼べるよう同期関数にしている。
        """
        if self._task is not None:
            self._task.cancel()
        self._task = None

    async def close(self) -> None:
        """監視タスクを停止し、終了を待つ。"""
        task = self._task
        self.stop()
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ----- 監視ループ -----

    async def _run(self) -> None:
        """存在確認 → 変更監視 の順に実行する。"""
        while not self.path.exists():
            await asyncio.sleep(self._poll_interval)

        self._attached = True
        logger.info("生成ファイルを検出しました: %s", self.path)

        signature: Optional[tuple[int, int]] = None
        while True:
            current = self._stat_signature()
            if current is not None and current != signature:
                signature = current
                self._read_and_dispatch()
            await asyncio.sleep(self._watch_interval)

    def _stat_signature(self) -> Optional[tuple[int, int]]:
        """変更検出に使う (更新時刻, サイズ) を返す。取得できなければ None。"""
        try:
            st = os.stat(self.path)
        except OSError:
            return None
        return (st.st_mtime_ns, st.st_size)

    def _read_and_dispatch(self) -> None:
        """ファイル全体を読み直し、前回と異なる内容であれば通知する。"""
        try:
            content = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("生成ファイルの読み込みをスキップ: %s", exc)
            return

        # 最初の通知前の空ファイルは codegen が作成しただけの状態
        if not content and self._last_content is None:
            return
        if content == self._last_content:
            return

        self._last_content = content
        self._on_change(content)
