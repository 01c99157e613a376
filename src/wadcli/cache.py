"""Cache module for wadcli.

WADメタデータのキャッシュをJSONファイルとして保存・読み込みする。
キャッシュのバージョンが一致しない場合は、内容にかかわらず破棄する。
"""

from __future__ import annotations

import json
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from wadcli.parser.metadata import WadData

if TYPE_CHECKING:
    from wadcli.logger import IndexLogger

CACHE_VERSION = 1
CACHE_FILE_NAME = "wadcli_cache.json"


@dataclass
class WadCache:
    """永続化されるキャッシュ構造

    Attributes:
        version: キャッシュのスキーマバージョン
        wads: キャッシュキーからWadDataへの対応
    """

    version: int = CACHE_VERSION
    wads: dict[str, WadData] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "wads": {key: wad.to_dict() for key, wad in self.wads.items()},
        }

    @classmethod
    def from_dict(cls, data: Any) -> WadCache:
        """JSONから読み込んだデータを復元する

        Raises:
            ValueError: 構造が不正な場合
        """
        if not isinstance(data, dict):
            raise ValueError("キャッシュはJSONオブジェクトである必要があります")

        version = data.get("version")
        if isinstance(version, bool) or not isinstance(version, int):
            raise ValueError(f"versionが不正です: {version!r}")

        raw_wads = data.get("wads", {})
        if not isinstance(raw_wads, dict):
            raise ValueError("wadsはJSONオブジェクトである必要があります")

        wads: dict[str, WadData] = {}
        for key, value in raw_wads.items():
            if not isinstance(value, dict):
                raise ValueError(f"エントリが不正です: {key}")
            wads[key] = WadData.from_dict(value)

        return cls(version=version, wads=wads)


@dataclass(frozen=True)
class CacheInfo:
    """キャッシュ情報"""

    path: Path
    exists: bool
    size_bytes: int
    version: int | None
    entry_count: int


def _is_current_version(version: Any) -> bool:
    # true は 1 と等しいが、バージョンとしては扱わない
    return not isinstance(version, bool) and version == CACHE_VERSION


def get_cache_path() -> Path:
    """一時ディレクトリ内のキャッシュファイルパスを取得する"""
    return Path(tempfile.gettempdir()) / CACHE_FILE_NAME


def load_cache(path: Path, logger: IndexLogger | None = None) -> dict[str, WadData]:
    """キャッシュファイルを読み込む

    ファイルが存在しない・空・破損している・バージョンが異なる場合は
    空の辞書を返す。例外は発生させない。

    Args:
        path: キャッシュファイルのパス
        logger: 情報出力用のロガー（オプション）

    Returns:
        キャッシュキーからWadDataへの辞書
    """
    try:
        if not path.is_file() or path.stat().st_size <= 0:
            return {}

        with path.open(encoding="utf-8") as f:
            data = json.load(f)

        # バージョンが異なる場合はエントリの形式を解釈しない
        if isinstance(data, dict) and not _is_current_version(data.get("version")):
            if logger:
                logger.info("キャッシュのバージョンが異なるため再構築します")
            return {}

        cache = WadCache.from_dict(data)
    except (OSError, ValueError) as e:
        # json.JSONDecodeError と UnicodeDecodeError も ValueError のサブクラス
        if logger:
            logger.info(f"キャッシュを読み込めないため再構築します: {e}")
        return {}

    return cache.wads


def save_cache(
    path: Path, wads: dict[str, WadData], logger: IndexLogger | None = None
) -> bool:
    """キャッシュファイルを書き込む

    書き込みに失敗しても例外は発生させず、警告を出してFalseを返す。

    Args:
        path: キャッシュファイルのパス
        wads: 保存するキャッシュキーからWadDataへの辞書
        logger: 警告出力用のロガー（オプション）

    Returns:
        保存に成功した場合True
    """
    cache = WadCache(version=CACHE_VERSION, wads=dict(wads))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(cache.to_dict(), f, ensure_ascii=False, indent=2)
    except (OSError, TypeError) as e:
        if logger:
            logger.warning(f"キャッシュの更新に失敗しました: {e}")
        return False
    return True


def clear_cache(path: Path) -> bool:
    """キャッシュファイルを削除する

    Returns:
        削除した場合True、存在しなかった場合False
    """
    if not path.exists():
        return False
    path.unlink()
    return True


def get_cache_info(path: Path) -> CacheInfo:
    """キャッシュ情報を取得する"""
    if not path.is_file():
        return CacheInfo(path=path, exists=False, size_bytes=0, version=None, entry_count=0)

    size = path.stat().st_size
    version: int | None = None
    entry_count = 0
    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            raw_version = data.get("version")
            valid = isinstance(raw_version, int) and not isinstance(raw_version, bool)
            version = raw_version if valid else None
            raw_wads = data.get("wads")
            entry_count = len(raw_wads) if isinstance(raw_wads, dict) else 0
    except (OSError, ValueError):
        pass

    return CacheInfo(
        path=path,
        exists=True,
        size_bytes=size,
        version=version,
        entry_count=entry_count,
    )
