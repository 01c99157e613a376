"""共通フィクスチャ"""

import os
import struct
import zipfile
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pytest


def build_wad(lumps: list[tuple[str, bytes]], identification: bytes = b"PWAD") -> bytes:
    """lumpのリストからWADのバイト列を組み立てる

    Args:
        lumps: (lump名, 内容) のリスト
        identification: IWAD または PWAD

    Returns:
        WADファイルの内容
    """
    body = b""
    directory = b""
    offset = 12
    for name, content in lumps:
        directory += struct.pack("<ii8s", offset, len(content), name.encode("ascii"))
        body += content
        offset += len(content)

    header = struct.pack("<4sii", identification, len(lumps), offset)
    return header + body + directory


def build_zip(path: Path, members: dict[str, bytes]) -> Path:
    """メンバーを指定してzipファイルを作成する"""
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, content in members.items():
            zf.writestr(name, content)
    return path


def set_mtime(path: Path, when: datetime) -> None:
    """ファイルの更新日時を設定する"""
    timestamp = when.timestamp()
    os.utime(path, (timestamp, timestamp))


@pytest.fixture
def wad_factory(tmp_path: Path) -> Callable[..., Path]:
    """WADファイルを作成するファクトリ"""

    def _create(
        relative_path: str,
        lumps: list[tuple[str, bytes]] | None = None,
        identification: bytes = b"PWAD",
    ) -> Path:
        path = tmp_path / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(build_wad(lumps or [], identification))
        return path

    return _create


@pytest.fixture
def zip_factory(tmp_path: Path) -> Callable[..., Path]:
    """zip/pk3ファイルを作成するファクトリ"""

    def _create(relative_path: str, members: dict[str, bytes]) -> Path:
        path = tmp_path / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        return build_zip(path, members)

    return _create


@pytest.fixture
def wad_bytes() -> Callable[..., bytes]:
    """WADのバイト列を組み立てる関数"""
    return build_wad


@pytest.fixture
def touch() -> Callable[[Path, datetime], None]:
    """ファイルの更新日時を設定する関数"""
    return set_mtime


def corrupt_zip(path: Path, kind: str) -> Path:
    """zipの先頭エントリを壊す

    Args:
        path: 単一エントリのzipファイル
        kind: "deflate" は圧縮データを不正なブロック型にし、
            "encrypted" は暗号化フラグを立てる
    """
    data = bytearray(path.read_bytes())
    name_length, extra_length = struct.unpack_from("<HH", data, 26)
    if kind == "deflate":
        # BFINAL=1, BTYPE=11 (予約済み) で展開に失敗させる
        data[30 + name_length + extra_length] = 0xFF
    elif kind == "encrypted":
        central = data.rfind(b"PK\x01\x02")
        for flag_offset in (6, central + 8):
            (flags,) = struct.unpack_from("<H", data, flag_offset)
            struct.pack_into("<H", data, flag_offset, flags | 0x1)
    else:
        raise ValueError(kind)
    path.write_bytes(bytes(data))
    return path


@pytest.fixture
def broken_zip_factory(tmp_path: Path) -> Callable[[str, str], Path]:
    """展開できないエントリを持つzipを作成するファクトリ"""

    def _create(relative_path: str, kind: str) -> Path:
        path = tmp_path / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        inner = build_wad([("WADINFO", b"Title: Broken Map\n" * 64)])
        return corrupt_zip(build_zip(path, {"map.wad": inner}), kind)

    return _create
