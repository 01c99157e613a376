"""lump読み取りインターフェース

WADとzipの両方に対して、名前を指定してテキストlumpを読み取る
共通のインターフェースを提供する。lumpが存在しない場合はNoneを返し、
例外は発生させない。
"""

from __future__ import annotations

import zipfile
from typing import Protocol

import chardet

from wadcli.parser.wad import WadArchive


class LumpSource(Protocol):
    """lump読み取りのプロトコル"""

    def try_read(self, name: str) -> str | None:
        """lumpをテキストとして読み取る

        Args:
            name: lump名（zipの場合はエントリ名）

        Returns:
            デコード済みのテキスト。存在しない場合None
        """
        ...


def decode_lump(data: bytes) -> str:
    """lumpのバイト列をテキストにデコードする

    UTF-8を優先し、失敗した場合はchardetで検出した文字コードを使う。
    どちらも失敗した場合はlatin-1で置換デコードする。

    Args:
        data: lumpのバイト列

    Returns:
        デコードされたテキスト
    """
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass

    encoding = chardet.detect(data).get("encoding")
    if encoding:
        try:
            return data.decode(encoding)
        except (UnicodeDecodeError, LookupError):
            pass

    return data.decode("latin-1", errors="replace")


class WadLumpSource:
    """WADアーカイブのlumpを読み取る"""

    def __init__(self, archive: WadArchive) -> None:
        self._archive = archive

    def try_read(self, name: str) -> str | None:
        data = self._archive.read_lump(name)
        if data is None:
            return None
        return decode_lump(data)


class ZipLumpSource:
    """zipアーカイブ直下のエントリを読み取る

    エントリ名は完全一致で検索する。
    """

    def __init__(self, zip_file: zipfile.ZipFile) -> None:
        self._zip_file = zip_file

    def try_read(self, name: str) -> str | None:
        try:
            info = self._zip_file.getinfo(name)
        except KeyError:
            return None
        return decode_lump(self._zip_file.read(info))
