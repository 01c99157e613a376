"""互換レベル・IWAD解決モジュール

選択されたWADの組み合わせから、起動に必要なIWADと互換レベル(complevel)を
決定するための補助関数を提供する。対話的な選択はこのモジュールの外で行う。
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wadcli.index import WadFile, WadIndex

# IWADごとのバニラ互換レベル
_VANILLA_COMPLEVELS: dict[str, int] = {
    "DOOM2.WAD": 2,
    "DOOM.WAD": 3,
    "DOOM1.WAD": 3,
    "TNT.WAD": 4,
    "PLUTONIA.WAD": 4,
}

BOOM_COMPLEVEL = 9
MBF_COMPLEVEL = 11
MBF21_COMPLEVEL = 21


def vanilla_complevel(iwad_name: str | None) -> int:
    """IWADに対応するバニラ互換レベルを取得する

    Args:
        iwad_name: IWAD名（DOOM2.WADなど）

    Returns:
        互換レベル。不明なIWADの場合は0
    """
    if iwad_name is None:
        return 0
    return _VANILLA_COMPLEVELS.get(iwad_name.upper(), 0)


def complevel_choices(vanilla_level: int) -> list[tuple[str, int | None]]:
    """選択肢として提示する互換レベルの一覧を取得する

    Noneは互換レベルを指定しないことを、-1は任意入力を表す。
    """
    return [
        ("Default or ZDoom", None),
        (f"Vanilla or Limit removing ({vanilla_level})", vanilla_level),
        (f"Boom ({BOOM_COMPLEVEL})", BOOM_COMPLEVEL),
        (f"MBF ({MBF_COMPLEVEL})", MBF_COMPLEVEL),
        (f"MBF21 ({MBF21_COMPLEVEL})", MBF21_COMPLEVEL),
        ("Custom...", -1),
    ]


def complevel_from_hint(hint: str, vanilla_level: int) -> int | None:
    """WADINFOのヒント文字列から互換レベルを推定する

    Args:
        hint: "Advanced engine needed" の値
        vanilla_level: 選択中IWADのバニラ互換レベル

    Returns:
        推定した互換レベル。推定できない場合None
    """
    lowered = hint.lower()
    if "mbf21" in lowered or "mbf 21" in lowered:
        return MBF21_COMPLEVEL
    if "mbf" in lowered:
        return MBF_COMPLEVEL
    if "boom" in lowered:
        return BOOM_COMPLEVEL
    if "vanilla" in lowered or "limit removing" in lowered:
        return vanilla_level
    return None


def _pwads(selected: Iterable[WadFile]) -> list[WadFile]:
    return [w for w in selected if not w.wad.is_iwad]


def resolve_iwad(selected: Iterable[WadFile], index: WadIndex) -> WadFile | None:
    """選択されたWADから使用するIWADを決定する

    選択にIWADが含まれていればそれを使う。含まれていなければ、
    PWADが宣言する最初のIWAD名でインデックスを検索する。

    Returns:
        IWADのWadFile。IWADが宣言されていない、
        または宣言されたIWADが見つからない場合None
    """
    selected = list(selected)
    for wad_file in selected:
        if wad_file.wad.is_iwad:
            return wad_file

    iwad_name = declared_iwad(selected)
    if iwad_name is None:
        return None
    return index.find_iwad(iwad_name)


def declared_iwad(selected: Iterable[WadFile]) -> str | None:
    """PWADが宣言している最初のIWAD名を取得する"""
    return next((w.wad.iwad_name for w in _pwads(selected) if w.wad.iwad_name), None)


def resolve_complevel(selected: Iterable[WadFile]) -> str | None:
    """PWADで明示されている最初の互換レベルを取得する"""
    return next((w.wad.complevel for w in _pwads(selected) if w.wad.complevel), None)


def complevel_hint(selected: Iterable[WadFile]) -> str | None:
    """PWADの最初の互換レベルヒントを取得する"""
    return next((w.wad.complevel_hint for w in _pwads(selected) if w.wad.complevel_hint), None)
