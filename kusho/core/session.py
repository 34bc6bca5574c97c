"""
RecordingSession — 記録セッション全体のオーケストレーション

Playwright codegen をサブプロセスとして起動し、生成ファイルの変更を
ScriptTransformer に通して現在のテストコードを保持する。codegen が
終了したら ファイル名入力 → 保存 → エディタ → API 拡張 を順に進める。

主な機能:
  - codegen サブプロセスのライフサイクル管理（起動・終了検知・強制終了）
  - ArtifactWatcher → キュー → 単一ポンプタスク による変更イベントの逐次処理
  - 上書きしないファイル名（x.js, x-1.js, x-2.js ...）での保存
  - ターミナルエディタの起動（nano → vim → vi の順に試行）

サブプロセスとウォッチャーはこのセッションだけが保持し、
終了系の遷移（CLOSED / STOPPED / FAILED）では必ず両方を解放する。
"""

from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import typer

from ..api.extend import ExtensionClient
from ..config import RecordOptions, RecorderConfig, suffix_for_target
from .transformer import ScriptTransformer
from .watcher import ArtifactWatcher

logger = logging.getLogger(__name__)

_SEPARATOR = "─" * 50


# ---------------------------------------------------------------------------
# 例外・状態
# ---------------------------------------------------------------------------

class LaunchError(Exception):
    """codegen サブプロセスを起動できなかった。"""


class SessionState(enum.Enum):
    """記録セッションの状態。"""

    IDLE = "idle"
    LAUNCHING = "launching"
    RECORDING = "recording"
    CLOSED = "closed"
    STOPPED = "stopped"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# ヘルパー関数
# ---------------------------------------------------------------------------

def build_codegen_args(
    config: RecorderConfig,
    output_file: Path,
    url: Optional[str] = None,
    options: Optional[RecordOptions] = None,
) -> list[str]:
    """codegen の起動コマンドを組み立てる。

    Args:
        config: レコーダー設定
        output_file: codegen の出力先
        url: 記録開始 URL（省略可）
        options: 記録オプション

    Returns:
        コマンドと引数のリスト
    """
    options = options or RecordOptions()
    args = [
        *config.codegen_command,
        "codegen",
        "--output", str(output_file),
        "--target", options.target,
        "--viewport-size", options.viewport,
    ]

    if options.device:
        args.extend(["--device", options.device])

    if url:
        args.append(url)

    return args


def unique_path(directory: Path, filename: str) -> Path:
    """既存ファイルと衝突しないパスを返す。

    x.js が存在すれば x-1.js、それも存在すれば x-2.js ... とする。
    """
    path = directory / filename
    stem = Path(filename).stem
    suffix = Path(filename).suffix
    counter = 1
    while path.exists():
        path = directory / f"{stem}-{counter}{suffix}"
        counter += 1
    return path


def default_filename(now: Optional[datetime] = None) -> str:
    """ファイル名が未入力のときのタイムスタンプ付きファイル名を返す。"""
    timestamp = (now or datetime.now()).isoformat()
    return "kusho-test-" + timestamp.replace(":", "-").replace(".", "-")


# ---------------------------------------------------------------------------
# RecordingSession 本体
# ---------------------------------------------------------------------------

class RecordingSession:
    """1 回の記録セッションを管理する。

    使用例::

        session = RecordingSession(config, extension_client=client)
        session.on_update(lambda code: print(len(code)))
        await session.start("https://example.com", RecordOptions())
        await session.wait_closed()
        await session.complete()
    """

    def __init__(
        self,
        config: Optional[RecorderConfig] = None,
        transformer: Optional[ScriptTransformer] = None,
        extension_client: Optional[ExtensionClient] = None,
        echo: Optional[Callable[..., None]] = None,
        prompt: Optional[Callable[..., str]] = None,
    ) -> None:
        self.config = config or RecorderConfig()
        self.transformer = transformer or ScriptTransformer()
        self.extension_client = extension_client
        self._echo = echo or typer.echo
        self._prompt = prompt or typer.prompt

        self.state = SessionState.IDLE
        self.options = RecordOptions()
        self.output_file = self.config.artifact_path()
        self.return_code: Optional[int] = None

        # 最後に受け取った生コードと、変換後の現在のコード
        self.raw_code = ""
        self.current_code = ""

        self._process: Optional[asyncio.subprocess.Process] = None
        self._watcher: Optional[ArtifactWatcher] = None
        self._queue: Optional[asyncio.Queue[str]] = None
        self._pump_task: Optional[asyncio.Task[None]] = None
        self._supervisor: Optional[asyncio.Task[None]] = None
        self._closed = asyncio.Event()
        self._on_code_update: Optional[Callable[[str], None]] = None

    @property
    def enable_wait_enhancement(self) -> bool:
        return self.transformer.enable_wait_enhancement

    @enable_wait_enhancement.setter
    def enable_wait_enhancement(self, value: bool) -> None:
        self.transformer.enable_wait_enhancement = value

    def on_update(self, callback: Optional[Callable[[str], None]]) -> None:
        """変換後のコードを受け取るオブザーバーを登録する。

        登録できるのは 1 つだけで、後から登録したものが優先される。
        """
        self._on_code_update = callback

    # ----- start -----

    async def start(
        self,
        url: Optional[str] = None,
        options: Optional[RecordOptions] = None,
    ) -> None:
        """codegen を起動し、生成ファイルの監視を開始する。

        Args:
            url: 記録開始 URL（省略可）
            options: 記録オプション

        Raises:
            LaunchError: codegen を起動できなかった場合
        """
        self.options = options or RecordOptions()
        self.transformer.target = self.options.target
        self.transformer.enable_wait_enhancement = self.options.wait_enhancement
        self.output_file = self.config.artifact_path(self.options.target)

        # 保存先の用意と前回の生成ファイルの削除
        self.config.recordings_dir.mkdir(parents=True, exist_ok=True)
        if self.output_file.exists():
            self.output_file.unlink()

        self._echo("🎬 KushoAI レコーダーを起動しています...")
        args = build_codegen_args(self.config, self.output_file, url, self.options)
        logger.info("codegen を起動します: %s", " ".join(args))

        self.state = SessionState.LAUNCHING
        try:
            process = await asyncio.create_subprocess_exec(*args)
        except OSError as exc:
            self.state = SessionState.FAILED
            self._closed.set()
            self._echo(f"❌ レコーダーの起動に失敗しました: {exc}", err=True)
            raise LaunchError(str(exc)) from exc

        if self.state is not SessionState.LAUNCHING:
            # 起動中に stop() された
            process.kill()
            return

        self._process = process
        self.state = SessionState.RECORDING

        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._pump_task = loop.create_task(self._pump(self._queue))
        self._watcher = ArtifactWatcher(
            self.output_file,
            on_change=self._queue.put_nowait,
            poll_interval=self.config.poll_interval,
            watch_interval=self.config.watch_interval,
        )
        self._watcher.start()
        self._supervisor = loop.create_task(self._supervise(process))

        await asyncio.sleep(self.config.settle_delay)
        if self.state is SessionState.RECORDING:
            self._echo("✅ KushoAI レコーダーを起動しました！ブラウザを操作するとコードが生成されます。")

    # ----- 変更イベント処理 -----

    async def _pump(self, queue: asyncio.Queue[str]) -> None:
        """キューに届いた変更を到着順に 1 件ずつ処理する。"""
        while True:
            raw = await queue.get()
            try:
                self.handle_code_update(raw)
            except Exception:
                logger.exception("コード更新の処理に失敗しました")
            finally:
                queue.task_done()

    def handle_code_update(self, raw: str) -> str:
        """生コードを変換し、現在のコードとして保持・表示する。

        Args:
            raw: 生成ファイルの内容

        Returns:
            変換後のコード
        """
        self.raw_code = raw
        result = self.transformer.transform(raw)

        if result.suggestions:
            self._echo("💡 提案:")
            for suggestion in result.suggestions:
                self._echo(f"  • {suggestion}")

        self._echo(_SEPARATOR)
        self._echo(result.code)
        self._echo(_SEPARATOR)

        self.current_code = result.code

        if self._on_code_update is not None:
            self._on_code_update(result.code)
        return result.code

    # ----- 終了検知 -----

    async def _supervise(self, process: asyncio.subprocess.Process) -> None:
        """codegen の終了を待ち、ウォッチャーを解放してから CLOSED に遷移する。"""
        returncode = await process.wait()
        logger.info("codegen が終了しました: returncode=%s", returncode)

        if self.state is not SessionState.RECORDING:
            return

        await self._teardown()
        if self.state is not SessionState.RECORDING:
            # 解放中に stop() された
            return

        # 監視間隔内に書かれた最後の変更を取りこぼさない
        pending = self._unprocessed_artifact()
        if pending is not None:
            try:
                self.handle_code_update(pending)
            except Exception:
                logger.exception("コード更新の処理に失敗しました")

        self.return_code = returncode
        self.state = SessionState.CLOSED
        self._closed.set()

    async def _teardown(self) -> None:
        """ウォッチャーを止め、処理待ちの変更を消化してからポンプを止める。"""
        watcher, self._watcher = self._watcher, None
        if watcher is not None:
            await watcher.close()

        if self._queue is not None:
            await self._queue.join()

        pump, self._pump_task = self._pump_task, None
        if pump is not None:
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass

        self._process = None

    async def wait_closed(self) -> Optional[int]:
        """セッションが終了系の状態になるまで待つ。

        Returns:
            codegen の終了コード（stop() で終了した場合は None）
        """
        await self._closed.wait()
        return self.return_code

    # ----- stop -----

    def stop(self) -> str:
        """codegen を強制終了し、監視を止めて現在のコードを返す。

        シグナルハンドラから呼ばれるため同期的に完了し、何度呼んでもよい。
        ディスク上の生成ファイルがまだ変換されていない内容であれば、
        ここで変換してから返す。

        Returns:
            現在のテストコード
        """
        process, self._process = self._process, None
        if process is not None and process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass

        watcher, self._watcher = self._watcher, None
        if watcher is not None:
            watcher.stop()

        pump, self._pump_task = self._pump_task, None
        if pump is not None:
            pump.cancel()

        if self.state in (SessionState.LAUNCHING, SessionState.RECORDING):
            self.state = SessionState.STOPPED
        self._closed.set()

        pending = self._unprocessed_artifact()
        if pending is not None:
            self.raw_code = pending
            self.current_code = self.transformer.transform(pending).code
        return self.current_code

    def _unprocessed_artifact(self) -> Optional[str]:
        """生成ファイルがまだ処理していない内容であればそれを返す。"""
        try:
            on_disk = self.output_file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None

        if on_disk == self.raw_code:
            return None
        return on_disk

    def interrupt(self) -> str:
        """中断シグナル時の終了処理。対話入力は一切行わない。"""
        self._echo("\n🛑 中断シグナルを受信しました...")
        code = self.stop()

        if code and self.options.output:
            try:
                self.save_code_to_file(self.options.output)
            except OSError as exc:
                self._echo(f"⚠️  コードを保存できませんでした: {exc}", err=True)

        self._echo("✅ 記録セッションを終了しました")
        return code

    # ----- 保存 -----

    def save_code_to_file(self, filename: str) -> Path:
        """現在のコードを recordings_dir/filename に上書き保存する。"""
        full_path = self.config.recordings_dir / filename
        full_path.parent.mkdir(parents=True, exist_ok=True)
        full_path.write_text(self.current_code, encoding="utf-8")
        self._echo(f"💾 コードを保存しました: {full_path}")
        return full_path

    def save_code_to_unique_file(self, filename: str) -> Path:
        """既存ファイルを上書きしない名前で現在のコードを保存する。"""
        self.config.recordings_dir.mkdir(parents=True, exist_ok=True)
        full_path = unique_path(self.config.recordings_dir, filename)
        full_path.write_text(self.current_code, encoding="utf-8")
        logger.info("テストを保存しました: %s", full_path)
        return full_path

    def prompt_and_save(self) -> Optional[Path]:
        """ファイル名を入力させ、衝突しない名前で保存する。

        Returns:
            保存先のパス（保存するコードが無い場合は None）
        """
        if not self.current_code.strip():
            self._echo("⚠️  保存するコードがありません")
            return None

        self._echo("✅ 記録が完了しました！")
        filename = self._prompt(
            "💾 テストのファイル名を入力してください（拡張子なし）",
            default="",
            show_default=False,
        ).strip()
        if not filename:
            filename = default_filename()

        suffix = suffix_for_target(self.options.target)
        if not filename.endswith(suffix):
            filename += suffix

        path = self.save_code_to_unique_file(filename)
        self._echo("🎉 テストを保存しました！")
        self._echo(f"📁 保存先: {path}")
        return path

    # ----- エディタ -----

    async def open_editor(self, path: Path) -> Optional[int]:
        """ターミナルエディタでファイルを開き、終了を待つ。

        起動できないエディタは飛ばして次の候補を試す。

        Args:
            path: 編集するファイル

        Returns:
            エディタの終了コード（どのエディタも起動できなければ None）
        """
        self._echo("📝 エディタを開きます...")
        self._echo("nano は Ctrl+X、vim は :wq で終了します")

        for editor in self.config.editors:
            try:
                process = await asyncio.create_subprocess_exec(editor, str(path))
            except OSError as exc:
                logger.debug("エディタ %s を起動できません: %s", editor, exc)
                continue

            returncode = await process.wait()
            if returncode == 0:
                self._echo("✅ ファイルを編集しました！")
            else:
                self._echo("⚠️  エディタがエラーで終了しました")
            return returncode

        self._echo("⚠️  ターミナルエディタが見つかりません")
        self._echo(f"📁 手動で編集してください: {path}")
        return None

    # ----- 記録後の一連の処理 -----

    async def complete(self) -> Optional[Path]:
        """ファイル名入力 → 保存 → 編集 → 拡張 を順に実行する。

        codegen が正常に閉じられた（CLOSED）場合のみ実行する。

        Returns:
            保存したファイルのパス（保存しなかった場合は None）
        """
        if self.state is not SessionState.CLOSED:
            return None

        path = self.prompt_and_save()
        if path is None:
            return None

        returncode = await self.open_editor(path)
        if returncode == 0 and self.extension_client is not None:
            await self.extension_client.extend_file(path)
        return path
