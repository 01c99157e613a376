"""進捗表示およびログ出力のインターフェース定義

このモジュールは、wadcliのインデックス作成の進捗表示とログ出力のためのインターフェースを定義する。
VerboseLevel (詳細ログレベル)に応じた出力制御を行い、
WADのスキャン状況をユーザーにわかりやすく表示するために使用される。
"""

from __future__ import annotations

import re
import sys
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, TextIO

if TYPE_CHECKING:
    from wadcli.index import IndexPhase


class VerboseLevel(IntEnum):
    """詳細ログレベル

    ログ出力の詳細度を制御するための列挙型。
    QUIET: エラーのみ出力
    NORMAL: 進捗とサマリ出力
    VERBOSE: 解析したファイル一覧も出力（-vオプション）
    DEBUG: キャッシュヒットも出力（-vvオプション）
    """

    QUIET = -1
    NORMAL = 0
    VERBOSE = 1
    DEBUG = 2


class ProgressDisplay(Protocol):
    """進捗表示のプロトコル

    インデックス作成の各フェーズの進捗を表示するためのインターフェース。
    """

    def start(self, phase: IndexPhase, total: int) -> None:
        """フェーズ開始を表示する

        Args:
            phase: 開始するフェーズ
            total: 処理対象の総数
        """
        ...

    def update(self, current: int, message: str = "") -> None:
        """進捗を更新する

        Args:
            current: 現在の進捗（処理済みファイル数）
            message: 追加の進捗メッセージ（オプション）
        """
        ...

    def finish(self, success: bool, message: str = "") -> None:
        """フェーズ終了を表示する

        Args:
            success: フェーズが成功したか
            message: 終了メッセージ（オプション）
        """
        ...


@dataclass
class LogConfig:
    """ログ設定

    Attributes:
        verbose_level: ログの詳細度レベル
        log_file: ログ出力先ファイルパス（Noneの場合はファイル出力なし）
        use_color: カラー出力を使用するか
        use_emoji: emoji表示を使用するか
    """

    verbose_level: VerboseLevel = VerboseLevel.NORMAL
    log_file: Path | None = None
    use_color: bool = True
    use_emoji: bool = True


class IndexLogger:
    """インデックス作成のログ出力クラス

    VerboseLevelに応じてメッセージのフィルタリングを行い、
    進捗表示インスタンスの作成も担当する。

    使用例:
        >>> logger = IndexLogger(LogConfig(verbose_level=VerboseLevel.VERBOSE))
        >>> logger.info("WADを読み込んでいます")
        >>> logger.verbose("doom2.wad を解析中")
    """

    _ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-9;]*m")

    def __init__(self, config: LogConfig | None = None) -> None:
        """ロガーを初期化する

        Args:
            config: ログ設定（省略時はデフォルト）
        """
        self._config = config or LogConfig()
        self._log_file: TextIO | None = None
        if self._config.log_file:
            # クラス自体がコンテキストマネージャとして動作し、__exit__でファイルを閉じる
            self._log_file = open(self._config.log_file, "w", encoding="utf-8")  # noqa: SIM115

    def __enter__(self) -> IndexLogger:
        return self

    def __exit__(self, *args: object) -> None:
        if self._log_file:
            self._log_file.close()
            self._log_file = None

    @property
    def config(self) -> LogConfig:
        """ログ設定を取得する"""
        return self._config

    def _print(self, message: str, file: TextIO | None = None) -> None:
        if file is None:
            file = sys.stdout
        print(message, file=file)

    def _log_to_file(self, level: str, message: str) -> None:
        """ファイルにログ出力する

        Args:
            level: ログレベル文字列
            message: 出力するメッセージ
        """
        if self._log_file:
            timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            clean_message = self._strip_ansi(message)
            self._log_file.write(f"[{timestamp}] {level}: {clean_message}\n")
            self._log_file.flush()

    def _strip_ansi(self, text: str) -> str:
        return self._ANSI_ESCAPE_PATTERN.sub("", text)

    def info(self, message: str) -> None:
        """情報メッセージを出力する（NORMAL以上）"""
        if self._config.verbose_level >= VerboseLevel.NORMAL:
            self._print(message)
        self._log_to_file("INFO", message)

    def verbose(self, message: str) -> None:
        """詳細メッセージを出力する（VERBOSE以上）"""
        if self._config.verbose_level >= VerboseLevel.VERBOSE:
            self._print(message)
        self._log_to_file("VERBOSE", message)

    def debug(self, message: str) -> None:
        """デバッグメッセージを出力する（DEBUG以上）"""
        if self._config.verbose_level >= VerboseLevel.DEBUG:
            self._print(message)
        self._log_to_file("DEBUG", message)

    def error(self, message: str) -> None:
        """エラーメッセージを出力する（常に出力）"""
        self._print(f"エラー: {message}", file=sys.stderr)
        self._log_to_file("ERROR", message)

    def warning(self, message: str) -> None:
        """警告メッセージを出力する（QUIET以上）

        標準エラー出力に出すため、一覧表示を妨げない。
        """
        if self._config.verbose_level > VerboseLevel.QUIET:
            self._print(f"警告: {message}", file=sys.stderr)
        self._log_to_file("WARNING", message)

    def create_progress(self) -> ProgressDisplay:
        """進捗表示インスタンスを作成する"""
        if self._config.verbose_level < VerboseLevel.NORMAL:
            return NullProgressDisplay()
        return ConsoleProgressDisplay(
            use_color=self._config.use_color,
            use_emoji=self._config.use_emoji,
        )

    def log_cache_hit(self, path: Path, key: str) -> None:
        """キャッシュヒットをログする（DEBUG以上）"""
        self.debug(f"キャッシュ: {path.name} [{key}]")

    def log_parsed(self, path: Path, display_name: str) -> None:
        """解析したファイルをログする（VERBOSE以上）

        Args:
            path: 解析したファイルパス
            display_name: 抽出されたタイトルまたは名前
        """
        self.verbose(f"解析: {path.name} -> {display_name}")

    def log_summary(self, statistics: dict[str, Any]) -> None:
        """スキャン結果のサマリを出力する（NORMAL以上）

        Args:
            statistics: total, parsed, cached, evicted, skipped を含む統計情報
        """
        emoji = "✅" if self._config.use_emoji else "[OK]"
        self.info(f"{emoji} Loaded {statistics.get('total', 0)} WADs")
        self.info(
            f"   Parsed: {statistics.get('parsed', 0)}, "
            f"cached: {statistics.get('cached', 0)}, "
            f"evicted: {statistics.get('evicted', 0)}"
        )
        if statistics.get("skipped"):
            self.info(f"   Skipped: {statistics['skipped']}")


class NullProgressDisplay:
    """何も表示しない進捗表示（QUIET用）"""

    def start(self, phase: IndexPhase, total: int) -> None:
        pass

    def update(self, current: int, message: str = "") -> None:
        pass

    def finish(self, success: bool, message: str = "") -> None:
        pass


class ConsoleProgressDisplay:
    """コンソール進捗表示

    各フェーズの進捗を進捗バーと絵文字で標準エラー出力に表示する。
    """

    PHASE_EMOJI: dict[str, str] = {
        "load": "\U0001f4c2",
        "scan": "\U0001f50d",
        "save": "\U0001f4be",
    }

    PHASE_NAME: dict[str, str] = {
        "load": "Loading cache",
        "scan": "Loading WADs",
        "save": "Updating cache",
    }

    def __init__(self, use_color: bool = True, use_emoji: bool = True) -> None:
        self._use_color = use_color
        self._use_emoji = use_emoji
        self._phase: IndexPhase | None = None
        self._total = 0
        self._current = 0

    def start(self, phase: IndexPhase, total: int) -> None:
        self._phase = phase
        self._total = total
        self._current = 0
        emoji = self.PHASE_EMOJI.get(phase.value, "") if self._use_emoji else ""
        name = self.PHASE_NAME.get(phase.value, str(phase))
        prefix = f"{emoji} " if emoji else ""
        print(f"{prefix}{name}...", file=sys.stderr)

    def update(self, current: int, message: str = "") -> None:
        self._current = current
        if self._total > 0:
            percent = int((current / self._total) * 100)
            bar_width = 40
            filled = int(bar_width * current / self._total)
            bar = "█" * filled + "░" * (bar_width - filled)
            msg_part = f" {message}" if message else ""
            print(f"\r   [{bar}] {percent}%{msg_part}", end="", flush=True, file=sys.stderr)

    def finish(self, success: bool, message: str = "") -> None:
        bar_width = 40
        full_bar = "█" * bar_width
        if success:
            mark = "✓" if self._use_emoji else "done"
            print(f"\r   [{full_bar}] 100% {mark}", file=sys.stderr)
        else:
            mark = "✗" if self._use_emoji else "failed"
            msg_part = f": {message}" if message else ""
            print(f"\r   [{full_bar}] {mark}{msg_part}", file=sys.stderr)
