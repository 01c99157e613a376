"""Parser module for wadcli.

WAD/zipアーカイブからlumpを読み取り、メタデータを抽出するためのモジュール。
"""

from wadcli.parser.lumps import LumpSource, WadLumpSource, ZipLumpSource, decode_lump
from wadcli.parser.metadata import KNOWN_IWADS, WadData, WadDataBuilder
from wadcli.parser.wad import WadArchive, WadFormatError, WadLumpEntry

__all__ = [
    "KNOWN_IWADS",
    "LumpSource",
    "WadArchive",
    "WadData",
    "WadDataBuilder",
    "WadFormatError",
    "WadLumpEntry",
    "WadLumpSource",
    "ZipLumpSource",
    "decode_lump",
]
