"""WADメタデータ抽出モジュール

WAD/zip内のCOMPLVL・GAMEINFO・WADINFO lumpを解析し、
WADの表示名や必要なIWAD、互換レベルなどのメタデータを組み立てる。
複数のlumpソースから値を集める際は、最初に見つかった値を優先する。
"""

from __future__ import annotations

import re
import zipfile
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from wadcli.parser.lumps import LumpSource, WadLumpSource, ZipLumpSource
from wadcli.parser.wad import WadArchive

WAD_EXTENSION = ".WAD"

# 既知のIWADファイル名（大文字で保持し、比較時に大文字化する）
KNOWN_IWADS: frozenset[str] = frozenset(
    {
        "DOOM1.WAD",
        "DOOM.WAD",
        "DOOM2.WAD",
        "TNT.WAD",
        "PLUTONIA.WAD",
        "HERETIC1.WAD",
        "HERETIC.WAD",
        "HEXEN.WAD",
        "HEXDD.WAD",
        "STRIFE0.WAD",
        "STRIFE1.WAD",
        "VOICES.WAD",
    }
)

ULTIMATE_DOOM_IWAD = "DOOM.WAD"
DOOM2_IWAD = "DOOM2.WAD"

_FLAGS = re.MULTILINE | re.IGNORECASE

# GAMEINFO (key=value形式)
_GAMEINFO_STARTUP_TITLE = re.compile(r"^startuptitle\s*=\s*(?P<text>.+)$", _FLAGS)
_GAMEINFO_IWAD = re.compile(r"^iwad\s*=\s*(?P<text>.+)$", _FLAGS)

# WADINFO (idgamesテキストファイル形式)
_WADINFO_TITLE = re.compile(r"^Title\s*:\s*(?P<text>.+)$", _FLAGS)
_WADINFO_ADVANCED_ENGINE = re.compile(r"^Advanced\s+engine\s+needed\s*:\s*(?P<text>.+)$", _FLAGS)
_WADINFO_GAME = re.compile(r"^Game\s*:\s*(?P<text>.+)$", _FLAGS)


@dataclass(frozen=True)
class WadData:
    """WADのメタデータ

    Attributes:
        name: ファイル名（拡張子なし）
        title: 表示用タイトル
        is_iwad: 既知のIWADファイルかどうか
        iwad_name: IWADの正規名、またはPWADが必要とするIWAD名
        complevel: COMPLVL lumpで明示された互換レベル
        complevel_hint: 互換レベル推定用のヒント文字列
    """

    name: str
    title: str | None = None
    is_iwad: bool = False
    iwad_name: str | None = None
    complevel: str | None = None
    complevel_hint: str | None = None

    @property
    def display_name(self) -> str:
        """タイトルがあればタイトル、なければファイル名"""
        return self.title or self.name

    def to_dict(self) -> dict[str, Any]:
        """キャッシュ保存用の辞書に変換する"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WadData:
        """キャッシュの辞書から復元する

        Raises:
            ValueError: 必須項目がない、または型が不正な場合
        """
        name = data.get("name")
        if not isinstance(name, str):
            raise ValueError(f"nameが不正です: {name!r}")

        return cls(
            name=name,
            title=_optional_str(data.get("title")),
            is_iwad=_bool_field(data.get("is_iwad", False)),
            iwad_name=_optional_str(data.get("iwad_name")),
            complevel=_optional_str(data.get("complevel")),
            complevel_hint=_optional_str(data.get("complevel_hint")),
        )


def _bool_field(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"真偽値ではありません: {value!r}")
    return value


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"文字列ではありません: {value!r}")
    return value


def _with_wad_extension(name: str) -> str:
    return name if name.endswith(WAD_EXTENSION) else name + WAD_EXTENSION


def _extract_value(pattern: re.Pattern[str], lump: str) -> str | None:
    """パターンに一致した行の値を取り出す

    Args:
        pattern: textグループを持つ正規表現
        lump: lumpのテキスト

    Returns:
        前後の空白と二重引用符を除いた値。一致しないか空の場合None
    """
    match = pattern.search(lump)
    if match is None:
        return None
    value = match.group("text").strip().strip('"')
    return value if value.strip() else None


def normalize_wadinfo_game(game: str) -> str | None:
    """WADINFOのGame:の値をIWAD名に変換する

    Args:
        game: Game:行の値

    Returns:
        既知のIWAD名。既知のIWADに該当しない場合None
    """
    if "ultimate doom" in game.lower():
        return ULTIMATE_DOOM_IWAD
    if game.lower() == "doom ii":
        return DOOM2_IWAD

    candidate = _with_wad_extension(game.replace(" ", "").upper())
    return candidate if candidate in KNOWN_IWADS else None


class WadDataBuilder:
    """WadDataを組み立てるビルダー

    各フィールドは一度設定されたら上書きされない。
    lumpソースはzip直下、zip内の各WADの順に追加される。

    使用例:
        >>> builder = WadDataBuilder(Path("eviternity.wad"))
        >>> builder.add_wad(WadArchive.open(Path("eviternity.wad")))
        >>> data = builder.build()
    """

    def __init__(self, path: Path) -> None:
        """ファイルパスから名前とIWAD判定を設定する

        Args:
            path: WADまたはzipファイルのパス
        """
        self._fields: dict[str, Any] = {"name": path.stem}

        file_name = path.name.upper()
        if file_name in KNOWN_IWADS:
            self._set_if_absent("is_iwad", True)
            self._set_if_absent("iwad_name", file_name)

    def _set_if_absent(self, field_name: str, value: Any) -> None:
        if self._fields.get(field_name) is None and value is not None:
            self._fields[field_name] = value

    def _is_set(self, field_name: str) -> bool:
        return self._fields.get(field_name) is not None

    def add_wad(self, archive: WadArchive) -> WadDataBuilder:
        """WADアーカイブのlumpを追加する"""
        return self.add(WadLumpSource(archive))

    def add_zip(self, zip_file: zipfile.ZipFile) -> WadDataBuilder:
        """zipアーカイブ直下のlumpを追加する"""
        return self.add(ZipLumpSource(zip_file))

    def add(self, source: LumpSource) -> WadDataBuilder:
        """lumpソースからメタデータを取り込む

        Args:
            source: lumpソース

        Returns:
            メソッドチェーン用に自身を返す
        """
        if not self._is_set("complevel"):
            complvl = source.try_read("COMPLVL")
            if complvl is not None and complvl.strip():
                self._set_if_absent("complevel", complvl.strip())

        gameinfo = source.try_read("GAMEINFO")
        if gameinfo is not None:
            self._parse_gameinfo(gameinfo)

        wadinfo = source.try_read("WADINFO")
        if wadinfo is not None:
            self._parse_wadinfo(wadinfo)

        return self

    def _parse_gameinfo(self, lump: str) -> None:
        """GAMEINFO lumpを解析する"""
        self._set_if_absent("title", _extract_value(_GAMEINFO_STARTUP_TITLE, lump))

        if not self._is_set("iwad_name"):
            iwad = _extract_value(_GAMEINFO_IWAD, lump)
            if iwad is not None:
                self._set_if_absent("iwad_name", _with_wad_extension(iwad.upper()))

    def _parse_wadinfo(self, lump: str) -> None:
        """WADINFO lumpを解析する"""
        self._set_if_absent("title", _extract_value(_WADINFO_TITLE, lump))

        if not self._is_set("complevel") and not self._is_set("complevel_hint"):
            self._set_if_absent(
                "complevel_hint", _extract_value(_WADINFO_ADVANCED_ENGINE, lump)
            )

        if not self._is_set("iwad_name"):
            game = _extract_value(_WADINFO_GAME, lump)
            if game is not None:
                self._set_if_absent("iwad_name", normalize_wadinfo_game(game))

    def build(self) -> WadData:
        """組み立てたWadDataを返す"""
        return WadData(
            name=self._fields["name"],
            title=self._fields.get("title"),
            is_iwad=bool(self._fields.get("is_iwad", False)),
            iwad_name=self._fields.get("iwad_name"),
            complevel=self._fields.get("complevel"),
            complevel_hint=self._fields.get("complevel_hint"),
        )
