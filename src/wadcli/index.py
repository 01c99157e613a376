"""WADインデックスモジュール

ディレクトリを再帰的に走査してWAD/zip/pk3ファイルを見つけ、
キャッシュを参照しながら各ファイルのメタデータを解決する。

キャッシュ（キーからWadDataへの辞書）は呼び出し側から渡され、
スキャン後に entries として呼び出し側へ返される。
"""

from __future__ import annotations

import fnmatch
import zipfile
import zlib
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from wadcli.cache import load_cache, save_cache
from wadcli.identity import compute_key, get_last_modified
from wadcli.logger import IndexLogger
from wadcli.parser.metadata import WadData, WadDataBuilder
from wadcli.parser.wad import WadArchive, WadFormatError

ZIP_EXTENSIONS: tuple[str, ...] = (".pk3", ".zip")
WAD_EXTENSIONS: tuple[str, ...] = (".wad",)
SUPPORTED_EXTENSIONS: tuple[str, ...] = ZIP_EXTENSIONS + WAD_EXTENSIONS

# 1ファイルの読み込みで発生しうる例外。zipエントリの展開失敗も含む
CONTAINER_READ_ERRORS: tuple[type[Exception], ...] = (
    OSError,
    EOFError,
    zipfile.BadZipFile,
    zlib.error,
    NotImplementedError,
    RuntimeError,
    WadFormatError,
)


class IndexPhase(Enum):
    """インデックス作成のフェーズ"""

    LOAD = "load"
    SCAN = "scan"
    SAVE = "save"


class UnsupportedFileError(ValueError):
    """対応していない拡張子のファイルが指定された場合に発生する例外"""

    pass


@dataclass(frozen=True)
class WadFile:
    """ディスク上の1ファイル

    Attributes:
        path: ファイルパス
        key: キャッシュキー
        last_modified: 最終更新日時
        wad: メタデータ（キャッシュ由来の場合は他のWadFileと共有される）
    """

    path: Path
    key: str
    last_modified: datetime
    wad: WadData


@dataclass
class ScanStatistics:
    """スキャン結果の統計"""

    total: int = 0
    parsed: int = 0
    cached: int = 0
    evicted: int = 0
    skipped: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "parsed": self.parsed,
            "cached": self.cached,
            "evicted": self.evicted,
            "skipped": self.skipped,
        }


def parse_wad_file(path: Path) -> WadData:
    """WADファイルを解析してメタデータを返す

    Raises:
        WadFormatError: 不正なWAD形式の場合
    """
    return WadDataBuilder(path).add_wad(WadArchive.open(path)).build()


def parse_zip_file(path: Path) -> WadData:
    """zip/pk3ファイルを解析してメタデータを返す

    zip直下のlumpを先に、続いてzip内の各WADのlumpをディレクトリ順に取り込む。

    Raises:
        zipfile.BadZipFile: 不正なzip形式の場合
        WadFormatError: zip内のWADが不正な形式の場合
        zlib.error: 圧縮データが壊れている場合
        RuntimeError: 暗号化されたエントリ、または未対応の圧縮方式の場合
    """
    builder = WadDataBuilder(path)

    with zipfile.ZipFile(path) as zip_file:
        builder.add_zip(zip_file)

        for info in zip_file.infolist():
            if info.is_dir() or not info.filename.lower().endswith(WAD_EXTENSIONS):
                continue
            inner = WadArchive(zip_file.read(info), source=f"{path}!{info.filename}")
            builder.add_wad(inner)

    return builder.build()


class WadIndex:
    """WADファイルのインデックス

    使用例:
        >>> index = WadIndex(Path.cwd(), load_cache(cache_path))
        >>> index.scan()
        >>> index.save(cache_path)
    """

    def __init__(
        self,
        root: Path,
        entries: dict[str, WadData] | None = None,
        *,
        exclude: Iterable[str] = (),
        logger: IndexLogger | None = None,
    ) -> None:
        """インデックスを初期化する

        Args:
            root: スキャン対象ディレクトリ
            entries: 読み込み済みのキャッシュ（この辞書はインデックスが所有する）
            exclude: スキャン対象外にするfnmatchパターン
            logger: ロガー（省略時は既定設定）
        """
        self._root = root
        self._entries: dict[str, WadData] = entries if entries is not None else {}
        self._exclude_patterns = list(exclude)
        self._logger = logger or IndexLogger()
        self._wads: list[WadFile] = []
        self._dirty = False
        self._statistics = ScanStatistics()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def wads(self) -> list[WadFile]:
        """解決済みのファイル一覧（更新日時の新しい順）"""
        return list(self._wads)

    @property
    def entries(self) -> dict[str, WadData]:
        """キャッシュキーからWadDataへの辞書"""
        return self._entries

    @property
    def is_dirty(self) -> bool:
        """キャッシュの保存が必要かどうか"""
        return self._dirty

    @property
    def statistics(self) -> ScanStatistics:
        return self._statistics

    def discover_files(self) -> list[Path]:
        """スキャン対象のファイルを列挙する

        zip/pk3を先に、WADを後に並べる。拡張子は大文字小文字を区別しない。
        """
        zips: list[Path] = []
        wads: list[Path] = []

        for file_path in sorted(self._root.rglob("*")):
            if not file_path.is_file():
                continue
            if self._should_exclude(file_path):
                continue

            suffix = file_path.suffix.lower()
            if suffix in ZIP_EXTENSIONS:
                zips.append(file_path)
            elif suffix in WAD_EXTENSIONS:
                wads.append(file_path)

        return zips + wads

    def _should_exclude(self, file_path: Path) -> bool:
        relative_path = str(file_path.relative_to(self._root))
        for pattern in self._exclude_patterns:
            if fnmatch.fnmatch(relative_path, pattern):
                return True
            if fnmatch.fnmatch(file_path.name, pattern):
                return True
        return False

    def scan(self) -> list[WadFile]:
        """ディレクトリをスキャンしてファイル一覧を解決する

        解析できないファイルは警告を出してスキップし、キャッシュには登録しない。
        スキャン後、見つからなかったファイルのキャッシュは削除する。

        Returns:
            解決済みのファイル一覧（更新日時の新しい順）
        """
        self._statistics = ScanStatistics()
        cached_keys = set(self._entries)
        files = self.discover_files()

        progress = self._logger.create_progress()
        progress.start(IndexPhase.SCAN, len(files))
        if cached_keys:
            self._logger.debug(f"キャッシュに {len(cached_keys)} 件のWADがあります")

        wads: list[WadFile] = []
        for i, file_path in enumerate(files, start=1):
            try:
                wads.append(self._resolve(file_path))
            except CONTAINER_READ_ERRORS as e:
                self._statistics.skipped += 1
                self._logger.warning(f"{file_path} を読み込めません: {e}")
            progress.update(i, file_path.name)
        progress.finish(True)

        found_keys = {wad.key for wad in wads}
        for key in cached_keys - found_keys:
            del self._entries[key]
            self._statistics.evicted += 1
            self._dirty = True

        wads.sort(key=lambda w: w.last_modified, reverse=True)
        self._wads = wads
        self._statistics.total = len(wads)
        self._logger.log_summary(self._statistics.as_dict())
        return self.wads

    def add_file(self, path: Path) -> WadFile:
        """1ファイルをインデックスに追加する

        ダウンロード直後のファイルなどを、全体を再スキャンせずに追加する。

        Args:
            path: 追加するファイルのパス

        Returns:
            解決済みのWadFile

        Raises:
            UnsupportedFileError: 対応していない拡張子の場合
            FileNotFoundError: ファイルが存在しない場合
            CONTAINER_READ_ERRORS: ファイルを読み込めない場合
        """
        if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
            raise UnsupportedFileError(f"対応していないファイル形式です: {path}")
        if not path.is_file():
            raise FileNotFoundError(f"ファイルが見つかりません: {path}")

        wad_file = self._resolve(path)
        self._wads = [w for w in self._wads if w.path != path]
        self._wads.insert(0, wad_file)
        return wad_file

    def _resolve(self, path: Path) -> WadFile:
        """キャッシュを参照してファイルのメタデータを解決する"""
        last_modified = get_last_modified(path)
        key = compute_key(path.name, last_modified)

        wad = self._entries.get(key)
        if wad is not None:
            self._statistics.cached += 1
            self._logger.log_cache_hit(path, key)
        else:
            if path.suffix.lower() in ZIP_EXTENSIONS:
                wad = parse_zip_file(path)
            else:
                wad = parse_wad_file(path)
            self._entries[key] = wad
            self._dirty = True
            self._statistics.parsed += 1
            self._logger.log_parsed(path, wad.display_name)

        return WadFile(path=path, key=key, last_modified=last_modified, wad=wad)

    def save(self, cache_path: Path) -> bool:
        """変更がある場合にキャッシュを保存する

        Returns:
            保存した場合True。変更がない場合や失敗した場合False
        """
        if not self._dirty:
            return False

        progress = self._logger.create_progress()
        progress.start(IndexPhase.SAVE, 1)
        saved = save_cache(cache_path, self._entries, self._logger)
        progress.finish(saved, "" if saved else "キャッシュを保存できませんでした")
        if saved:
            self._dirty = False
        return saved

    def iwads(self) -> list[WadFile]:
        """IWADのみをパス順で取得する"""
        return sorted((w for w in self._wads if w.wad.is_iwad), key=lambda w: str(w.path))

    def find_iwad(self, iwad_name: str) -> WadFile | None:
        """IWAD名からIWADファイルを検索する

        Args:
            iwad_name: IWAD名（拡張子は省略可、大文字小文字は区別しない）
        """
        target = iwad_name.upper()
        if not target.endswith(".WAD"):
            target += ".WAD"
        for wad_file in self._wads:
            if wad_file.wad.is_iwad and wad_file.wad.iwad_name == target:
                return wad_file
        return None

    def find_by_filename(self, filename: str, size: int | None = None) -> WadFile | None:
        """ファイル名（とサイズ）から既存のファイルを検索する

        ダウンロード前に、同じファイルが既にあるか確認するために使う。
        """
        for wad_file in self._wads:
            if wad_file.path.name.lower() != filename.lower():
                continue
            if size is not None and wad_file.path.stat().st_size != size:
                continue
            return wad_file
        return None


def load_wads(
    root: Path,
    cache_path: Path,
    *,
    exclude: Iterable[str] = (),
    logger: IndexLogger | None = None,
    use_cache: bool = True,
) -> WadIndex:
    """キャッシュを読み込んでスキャンし、変更があればキャッシュを保存する

    Args:
        root: スキャン対象ディレクトリ
        cache_path: キャッシュファイルのパス
        exclude: スキャン対象外にするfnmatchパターン
        logger: ロガー
        use_cache: Falseの場合は既存のキャッシュを読まずに再構築する

    Returns:
        スキャン済みのWadIndex
    """
    logger = logger or IndexLogger()

    entries = load_cache(cache_path, logger) if use_cache else {}
    if entries:
        logger.verbose(f"キャッシュから {len(entries)} 件を読み込みました")

    index = WadIndex(root, entries, exclude=exclude, logger=logger)
    index.scan()
    index.save(cache_path)
    return index
