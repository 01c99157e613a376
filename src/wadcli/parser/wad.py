"""WADアーカイブ読み込みモジュール

Doomエンジン形式のWADファイル（IWAD/PWAD）のヘッダーとlumpディレクトリを
読み込み、名前を指定してlumpを取り出す機能を提供する。
"""

import struct
from dataclasses import dataclass
from pathlib import Path

# ヘッダー: 識別子(4) + lump数(int32) + ディレクトリオフセット(int32)
WAD_HEADER = struct.Struct("<4sii")

# ディレクトリエントリ: オフセット(int32) + サイズ(int32) + 名前(8)
WAD_DIRECTORY_ENTRY = struct.Struct("<ii8s")

IWAD_MAGIC = b"IWAD"
PWAD_MAGIC = b"PWAD"

LUMP_NAME_LENGTH = 8


class WadFormatError(ValueError):
    """不正なWAD形式の場合に発生する例外"""

    pass


@dataclass(frozen=True)
class WadLumpEntry:
    """WADディレクトリ内のlumpエントリ情報

    Attributes:
        name: lump名（NULパディング除去済み）
        offset: lumpデータのオフセット
        size: lumpデータのサイズ
    """

    name: str
    offset: int
    size: int


class WadArchive:
    """WADアーカイブを操作するクラス

    ファイル全体をメモリに読み込み、ディレクトリを解析する。
    zip内に格納されたWADも同じクラスで扱えるよう、bytesからも構築できる。

    使用例:
        >>> archive = WadArchive.open(Path("map01.wad"))
        >>> archive.read_lump("COMPLVL")
        b'11'
    """

    def __init__(self, data: bytes, source: str = "<memory>") -> None:
        """WADデータを解析する

        Args:
            data: WADファイルの内容
            source: エラーメッセージに使う識別名

        Raises:
            WadFormatError: 不正なWAD形式の場合
        """
        self._data = data
        self._source = source
        self._identification = b""
        self._entries: list[WadLumpEntry] = []

        self._parse()

    @classmethod
    def open(cls, path: Path) -> "WadArchive":
        """ファイルパスからWADを開く

        Args:
            path: WADファイルのパス

        Returns:
            解析済みのWadArchive

        Raises:
            FileNotFoundError: ファイルが存在しない場合
            WadFormatError: 不正なWAD形式の場合
        """
        if not path.exists():
            raise FileNotFoundError(f"WADファイルが見つかりません: {path}")
        return cls(path.read_bytes(), source=str(path))

    def _parse(self) -> None:
        """ヘッダーとディレクトリを解析する"""
        if len(self._data) < WAD_HEADER.size:
            raise WadFormatError(f"WADヘッダーが短すぎます: {self._source}")

        identification, num_lumps, directory_offset = WAD_HEADER.unpack_from(self._data, 0)
        if identification not in (IWAD_MAGIC, PWAD_MAGIC):
            raise WadFormatError(f"不正なWAD識別子です: {identification!r} ({self._source})")

        directory_end = directory_offset + num_lumps * WAD_DIRECTORY_ENTRY.size
        if num_lumps < 0 or directory_offset < 0 or directory_end > len(self._data):
            raise WadFormatError(f"WADディレクトリが範囲外です: {self._source}")

        self._identification = identification
        for index in range(num_lumps):
            position = directory_offset + index * WAD_DIRECTORY_ENTRY.size
            offset, size, raw_name = WAD_DIRECTORY_ENTRY.unpack_from(self._data, position)
            name = raw_name.split(b"\x00", 1)[0].decode("ascii", errors="replace")
            self._entries.append(WadLumpEntry(name=name, offset=offset, size=size))

    @property
    def is_iwad(self) -> bool:
        """IWAD識別子を持つかどうか"""
        return self._identification == IWAD_MAGIC

    @property
    def entries(self) -> list[WadLumpEntry]:
        """ディレクトリ順のlumpエントリ一覧"""
        return list(self._entries)

    def lump_names(self) -> list[str]:
        """lump名の一覧を取得する

        Returns:
            ディレクトリ順のlump名リスト
        """
        return [entry.name for entry in self._entries]

    def find_lump(self, name: str) -> WadLumpEntry | None:
        """名前からlumpを検索する

        同名のlumpが複数ある場合は、エンジンの挙動に合わせて最後のものを返す。
        名前の比較は大文字小文字を区別する。

        Args:
            name: lump名

        Returns:
            見つかったエントリ、または見つからない場合None
        """
        for entry in reversed(self._entries):
            if entry.name == name:
                return entry
        return None

    def read_lump(self, name: str) -> bytes | None:
        """lumpの内容を読み取る

        Args:
            name: lump名

        Returns:
            lumpのバイト列。存在しないか範囲外の場合None
        """
        entry = self.find_lump(name)
        if entry is None:
            return None

        end = entry.offset + entry.size
        if entry.offset < 0 or entry.size < 0 or end > len(self._data):
            return None
        return self._data[entry.offset : end]
