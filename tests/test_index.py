"""WADインデックスのテスト"""

from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from wadcli.cache import load_cache, save_cache
from wadcli.identity import compute_key
from wadcli.index import (
    CONTAINER_READ_ERRORS,
    UnsupportedFileError,
    WadIndex,
    load_wads,
    parse_wad_file,
    parse_zip_file,
)
from wadcli.logger import IndexLogger, LogConfig, VerboseLevel
from wadcli.parser import WadData, WadFormatError


@pytest.fixture
def quiet_logger() -> IndexLogger:
    """出力しないロガー"""
    return IndexLogger(LogConfig(verbose_level=VerboseLevel.QUIET))


class TestParseFiles:
    """単一ファイル解析のテスト"""

    def test_complevel_and_doom2_scenario(self, wad_factory: Callable[..., Path]) -> None:
        """COMPLVLとGame: Doom IIを持つWADの解析結果"""
        path = wad_factory(
            "mymap.wad",
            [("COMPLVL", b"11"), ("WADINFO", b"Game: Doom II\nAdvanced engine needed: MBF")],
        )

        data = parse_wad_file(path)

        assert data.complevel == "11"
        assert data.iwad_name == "DOOM2.WAD"
        assert data.complevel_hint is None

    def test_base_asset_scenario(self, wad_factory: Callable[..., Path]) -> None:
        """doom2.wadはlumpの内容にかかわらずIWADになる"""
        path = wad_factory("DooM2.wad", [("WADINFO", b"Game: Heretic")], b"IWAD")

        data = parse_wad_file(path)

        assert data.is_iwad is True
        assert data.iwad_name == "DOOM2.WAD"

    def test_zip_root_lumps_before_inner_wads(
        self, zip_factory: Callable[..., Path], wad_bytes: Callable[..., bytes]
    ) -> None:
        """zip直下のlumpが内部WADより優先される"""
        inner = wad_bytes([("WADINFO", b"Title: Inner Title\nGame: TNT"), ("COMPLVL", b"9")])
        path = zip_factory(
            "pack.pk3",
            {
                "maps/inner.WAD": inner,
                "GAMEINFO": b"startuptitle = Outer Title",
                "readme.txt": b"Title: Not a lump",
            },
        )

        data = parse_zip_file(path)

        assert data.name == "pack"
        assert data.title == "Outer Title"
        assert data.iwad_name == "TNT.WAD"
        assert data.complevel == "9"

    def test_zip_without_wads(self, zip_factory: Callable[..., Path]) -> None:
        """WADを含まないzipもファイル名だけで解析される"""
        path = zip_factory("textures.zip", {"textures/wall.png": b"\x89PNG"})

        assert parse_zip_file(path) == WadData(name="textures")

    def test_corrupt_inner_wad_raises(self, zip_factory: Callable[..., Path]) -> None:
        """不正な内部WADはWadFormatError"""
        path = zip_factory("bad.zip", {"broken.wad": b"not a wad"})

        with pytest.raises(WadFormatError):
            parse_zip_file(path)


class TestScan:
    """スキャンのテスト"""

    def test_discovers_all_extensions_recursively(
        self,
        tmp_path: Path,
        wad_factory: Callable[..., Path],
        zip_factory: Callable[..., Path],
        quiet_logger: IndexLogger,
    ) -> None:
        """zip/pk3/wadを大文字小文字を区別せず再帰的に見つける"""
        wad_factory("a.wad")
        wad_factory("sub/B.WAD")
        zip_factory("deep/er/c.PK3", {"x": b""})
        zip_factory("d.Zip", {"x": b""})
        (tmp_path / "notes.txt").write_text("Title: no")
        (tmp_path / "e.wad.bak").write_bytes(b"PWAD")

        index = WadIndex(tmp_path, logger=quiet_logger)
        names = sorted(w.path.name for w in index.scan())

        assert names == ["B.WAD", "a.wad", "c.PK3", "d.Zip"]

    def test_zips_listed_before_wads(
        self,
        tmp_path: Path,
        wad_factory: Callable[..., Path],
        zip_factory: Callable[..., Path],
        quiet_logger: IndexLogger,
    ) -> None:
        """zip/pk3がWADより先に列挙される"""
        wad_factory("a.wad")
        zip_factory("z.pk3", {"x": b""})

        files = WadIndex(tmp_path, logger=quiet_logger).discover_files()

        assert [f.name for f in files] == ["z.pk3", "a.wad"]

    def test_exclude_patterns(
        self, tmp_path: Path, wad_factory: Callable[..., Path], quiet_logger: IndexLogger
    ) -> None:
        """excludeパターンに一致するファイルはスキップされる"""
        wad_factory("keep.wad")
        wad_factory("backup/old.wad")
        wad_factory("skip.bak.wad")

        index = WadIndex(tmp_path, exclude=["backup/*", "*.bak.wad"], logger=quiet_logger)

        assert [w.path.name for w in index.scan()] == ["keep.wad"]

    def test_sorted_newest_first(
        self,
        wad_factory: Callable[..., Path],
        touch: Callable[[Path, datetime], None],
        tmp_path: Path,
        quiet_logger: IndexLogger,
    ) -> None:
        """結果は更新日時の新しい順に並ぶ"""
        touch(wad_factory("old.wad"), datetime(2020, 1, 1))
        touch(wad_factory("new.wad"), datetime(2024, 1, 1))
        touch(wad_factory("mid.wad"), datetime(2022, 1, 1))

        wads = WadIndex(tmp_path, logger=quiet_logger).scan()

        assert [w.path.name for w in wads] == ["new.wad", "mid.wad", "old.wad"]

    def test_new_files_mark_dirty(
        self, tmp_path: Path, wad_factory: Callable[..., Path], quiet_logger: IndexLogger
    ) -> None:
        """解析したファイルはキャッシュに追加され、dirtyになる"""
        path = wad_factory("map.wad", [("COMPLVL", b"21")])
        index = WadIndex(tmp_path, logger=quiet_logger)

        (wad_file,) = index.scan()

        assert index.is_dirty is True
        assert index.entries == {wad_file.key: wad_file.wad}
        assert wad_file.path == path
        assert wad_file.wad.complevel == "21"
        assert index.statistics.parsed == 1

    def test_empty_directory(self, tmp_path: Path, quiet_logger: IndexLogger) -> None:
        """空のディレクトリでは何も見つからずdirtyにならない"""
        index = WadIndex(tmp_path, logger=quiet_logger)

        assert index.scan() == []
        assert index.is_dirty is False


class TestCacheReuse:
    """キャッシュ再利用のテスト"""

    def test_cache_hit_skips_parsing(
        self,
        tmp_path: Path,
        wad_factory: Callable[..., Path],
        touch: Callable[[Path, datetime], None],
        quiet_logger: IndexLogger,
    ) -> None:
        """キャッシュにヒットしたファイルは解析されない"""
        when = datetime(2023, 5, 5, 5, 5, 5)
        path = wad_factory("map.wad", [("COMPLVL", b"21")])
        touch(path, when)
        cached = WadData(name="map", title="From Cache")
        entries = {compute_key("map.wad", when): cached}

        index = WadIndex(tmp_path, entries, logger=quiet_logger)
        with patch("wadcli.index.parse_wad_file") as mock_parse:
            (wad_file,) = index.scan()

        mock_parse.assert_not_called()
        assert wad_file.wad is cached
        assert index.is_dirty is False
        assert index.statistics.cached == 1

    def test_second_scan_is_idempotent(
        self, tmp_path: Path, wad_factory: Callable[..., Path], quiet_logger: IndexLogger
    ) -> None:
        """2回目のスキャンはキャッシュの同じWadDataを返す"""
        wad_factory("map.wad", [("WADINFO", b"Title: Map")])
        first = WadIndex(tmp_path, logger=quiet_logger)
        (first_file,) = first.scan()

        second = WadIndex(tmp_path, dict(first.entries), logger=quiet_logger)
        with patch("wadcli.index.parse_wad_file") as mock_parse:
            (second_file,) = second.scan()

        mock_parse.assert_not_called()
        assert second_file.wad is first_file.wad
        assert second.is_dirty is False

    def test_touched_file_is_reparsed(
        self,
        tmp_path: Path,
        wad_factory: Callable[..., Path],
        touch: Callable[[Path, datetime], None],
        quiet_logger: IndexLogger,
    ) -> None:
        """更新日時が変わったファイルは再解析され、古いキーは削除される"""
        path = wad_factory("map.wad", [("WADINFO", b"Title: Map")])
        touch(path, datetime(2020, 1, 1))
        index = WadIndex(tmp_path, logger=quiet_logger)
        (old_file,) = index.scan()

        touch(path, datetime(2021, 1, 1))
        rescan = WadIndex(tmp_path, dict(index.entries), logger=quiet_logger)
        (new_file,) = rescan.scan()

        assert new_file.key != old_file.key
        assert set(rescan.entries) == {new_file.key}
        assert rescan.is_dirty is True

    def test_identical_copies_share_record(
        self,
        tmp_path: Path,
        wad_factory: Callable[..., Path],
        touch: Callable[[Path, datetime], None],
        quiet_logger: IndexLogger,
    ) -> None:
        """同名・同日時のコピーは同じWadDataを共有する"""
        when = datetime(2022, 2, 2)
        touch(wad_factory("a/map.wad", [("WADINFO", b"Title: Map")]), when)
        touch(wad_factory("b/map.wad", [("WADINFO", b"Title: Map")]), when)

        index = WadIndex(tmp_path, logger=quiet_logger)
        first, second = index.scan()

        assert first.key == second.key
        assert first.wad is second.wad
        assert len(index.entries) == 1
        assert index.statistics.parsed == 1
        assert index.statistics.cached == 1


class TestEviction:
    """古いキャッシュの削除のテスト"""

    def test_missing_file_evicted(
        self, tmp_path: Path, wad_factory: Callable[..., Path], quiet_logger: IndexLogger
    ) -> None:
        """見つからなくなったファイルのエントリは削除される"""
        wad_factory("keep.wad")
        removed = wad_factory("removed.wad")
        first = WadIndex(tmp_path, logger=quiet_logger)
        first.scan()
        removed_key = next(w.key for w in first.wads if w.path == removed)

        removed.unlink()
        second = WadIndex(tmp_path, dict(first.entries), logger=quiet_logger)
        second.scan()

        assert removed_key not in second.entries
        assert len(second.entries) == 1
        assert second.is_dirty is True
        assert second.statistics.evicted == 1

    def test_stale_entries_from_injected_cache_evicted(
        self, tmp_path: Path, quiet_logger: IndexLogger
    ) -> None:
        """渡されたキャッシュの不要なエントリはすべて削除される"""
        entries = {"gone.wad:20000101000000": WadData(name="gone")}
        index = WadIndex(tmp_path, entries, logger=quiet_logger)

        index.scan()

        assert index.entries == {}
        assert index.is_dirty is True


class TestCorruptFiles:
    """壊れたファイルの扱いのテスト"""

    def test_corrupt_files_skipped_with_warning(
        self,
        tmp_path: Path,
        wad_factory: Callable[..., Path],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """壊れたファイルは警告を出してスキップされ、キャッシュされない"""
        wad_factory("good.wad")
        (tmp_path / "bad.wad").write_bytes(b"garbage")
        (tmp_path / "bad.pk3").write_bytes(b"not a zip")
        logger = IndexLogger(LogConfig(verbose_level=VerboseLevel.NORMAL))

        index = WadIndex(tmp_path, logger=logger)
        wads = index.scan()

        assert [w.path.name for w in wads] == ["good.wad"]
        assert len(index.entries) == 1
        assert index.statistics.skipped == 2
        err = capsys.readouterr().err
        assert "bad.wad" in err
        assert "bad.pk3" in err

    @pytest.mark.parametrize(
        "kind",
        [
            pytest.param("deflate", id="異常系: 圧縮データの破損"),
            pytest.param("encrypted", id="異常系: 暗号化されたエントリ"),
        ],
    )
    def test_unreadable_zip_entry_skipped(
        self,
        tmp_path: Path,
        wad_factory: Callable[..., Path],
        broken_zip_factory: Callable[[str, str], Path],
        capsys: pytest.CaptureFixture[str],
        kind: str,
    ) -> None:
        """展開できないエントリを持つzipもスキップされ、スキャンは続行する"""
        wad_factory("good.wad")
        broken_zip_factory("bad.pk3", kind)

        index = WadIndex(tmp_path, logger=IndexLogger(LogConfig()))
        wads = index.scan()

        assert [w.path.name for w in wads] == ["good.wad"]
        assert index.statistics.skipped == 1
        assert len(index.entries) == 1
        assert "bad.pk3" in capsys.readouterr().err

    @pytest.mark.parametrize(
        "kind",
        [
            pytest.param("deflate", id="異常系: 圧縮データの破損"),
            pytest.param("encrypted", id="異常系: 暗号化されたエントリ"),
        ],
    )
    def test_add_unreadable_zip_raises_read_error(
        self,
        tmp_path: Path,
        broken_zip_factory: Callable[[str, str], Path],
        quiet_logger: IndexLogger,
        kind: str,
    ) -> None:
        """add_fileでは展開エラーが読み込みエラーとして伝わる"""
        path = broken_zip_factory("bad.pk3", kind)
        index = WadIndex(tmp_path, logger=quiet_logger)

        with pytest.raises(CONTAINER_READ_ERRORS):
            index.add_file(path)
        assert index.entries == {}


class TestAddFile:
    """add_fileのテスト"""

    def test_add_wad_file(
        self, tmp_path: Path, wad_factory: Callable[..., Path], quiet_logger: IndexLogger
    ) -> None:
        """WADを追加するとWadFileが返され、dirtyになる"""
        index = WadIndex(tmp_path, logger=quiet_logger)
        path = wad_factory("downloads/new.wad", [("WADINFO", b"Title: New Map\nGame: Doom II")])

        wad_file = index.add_file(path)

        assert wad_file.path == path
        assert wad_file.wad.title == "New Map"
        assert wad_file.wad.iwad_name == "DOOM2.WAD"
        assert index.is_dirty is True
        assert index.entries[wad_file.key] == wad_file.wad
        assert index.wads[0] == wad_file

    def test_add_zip_file(
        self,
        tmp_path: Path,
        zip_factory: Callable[..., Path],
        wad_bytes: Callable[..., bytes],
        quiet_logger: IndexLogger,
    ) -> None:
        """zipも追加できる"""
        path = zip_factory("new.zip", {"new.wad": wad_bytes([("COMPLVL", b"9")])})

        wad_file = WadIndex(tmp_path, logger=quiet_logger).add_file(path)

        assert wad_file.wad.complevel == "9"

    @pytest.mark.parametrize(
        "file_name",
        [
            pytest.param("readme.txt", id="異常系: テキスト"),
            pytest.param("map.wad.txt", id="異常系: 二重拡張子"),
            pytest.param("archive.7z", id="異常系: 7z"),
        ],
    )
    def test_unsupported_extension(
        self, tmp_path: Path, file_name: str, quiet_logger: IndexLogger
    ) -> None:
        """対応していない拡張子でUnsupportedFileError"""
        path = tmp_path / file_name
        path.write_text("hello")
        index = WadIndex(tmp_path, logger=quiet_logger)

        with pytest.raises(UnsupportedFileError):
            index.add_file(path)
        assert index.is_dirty is False

    def test_unsupported_is_value_error(self, tmp_path: Path, quiet_logger: IndexLogger) -> None:
        """UnsupportedFileErrorはValueErrorのサブクラス"""
        with pytest.raises(ValueError):
            WadIndex(tmp_path, logger=quiet_logger).add_file(tmp_path / "x.txt")

    def test_missing_file(self, tmp_path: Path, quiet_logger: IndexLogger) -> None:
        """存在しないファイルでFileNotFoundError"""
        with pytest.raises(FileNotFoundError):
            WadIndex(tmp_path, logger=quiet_logger).add_file(tmp_path / "missing.wad")

    def test_corrupt_file_propagates(self, tmp_path: Path, quiet_logger: IndexLogger) -> None:
        """add_fileでは解析エラーが呼び出し側に伝わる"""
        path = tmp_path / "broken.wad"
        path.write_bytes(b"garbage")

        with pytest.raises(WadFormatError):
            WadIndex(tmp_path, logger=quiet_logger).add_file(path)

    def test_add_existing_file_replaces_entry(
        self, tmp_path: Path, wad_factory: Callable[..., Path], quiet_logger: IndexLogger
    ) -> None:
        """スキャン済みのファイルを追加しても重複しない"""
        path = wad_factory("map.wad")
        index = WadIndex(tmp_path, logger=quiet_logger)
        index.scan()

        index.add_file(path)

        assert [w.path for w in index.wads] == [path]


class TestLookups:
    """検索系メソッドのテスト"""

    @pytest.fixture
    def index(
        self,
        tmp_path: Path,
        wad_factory: Callable[..., Path],
        quiet_logger: IndexLogger,
    ) -> WadIndex:
        wad_factory("iwads/doom2.wad", identification=b"IWAD")
        wad_factory("iwads/TNT.WAD", identification=b"IWAD")
        wad_factory("pwads/sunlust.wad", [("WADINFO", b"Game: Doom II")])
        index = WadIndex(tmp_path, logger=quiet_logger)
        index.scan()
        return index

    def test_iwads(self, index: WadIndex) -> None:
        """IWADのみがパス順に返される"""
        assert [w.path.name for w in index.iwads()] == ["TNT.WAD", "doom2.wad"]

    @pytest.mark.parametrize(
        "name, expected",
        [
            pytest.param("DOOM2.WAD", "doom2.wad", id="正常系: 正規名"),
            pytest.param("doom2", "doom2.wad", id="正常系: 拡張子なし小文字"),
            pytest.param("PLUTONIA.WAD", None, id="異常系: 存在しないIWAD"),
        ],
    )
    def test_find_iwad(self, index: WadIndex, name: str, expected: str | None) -> None:
        """IWAD名からIWADを検索できる"""
        found = index.find_iwad(name)
        assert (found.path.name if found else None) == expected

    def test_find_by_filename(self, index: WadIndex) -> None:
        """ファイル名とサイズで既存ファイルを検索できる"""
        found = index.find_by_filename("SUNLUST.WAD")
        assert found is not None
        size = found.path.stat().st_size

        assert index.find_by_filename("sunlust.wad", size) == found
        assert index.find_by_filename("sunlust.wad", size + 1) is None
        assert index.find_by_filename("missing.wad") is None


class TestLoadWads:
    """load_wads関数のテスト"""

    def test_persists_and_reuses_cache(
        self, tmp_path: Path, wad_factory: Callable[..., Path], quiet_logger: IndexLogger
    ) -> None:
        """1回目で保存したキャッシュが2回目に使われる"""
        root = wad_factory("wads/map.wad", [("COMPLVL", b"11")]).parent
        cache_file = tmp_path / "cache.json"

        first = load_wads(root, cache_file, logger=quiet_logger)
        assert cache_file.exists()
        assert first.is_dirty is False

        with patch("wadcli.index.parse_wad_file") as mock_parse:
            second = load_wads(root, cache_file, logger=quiet_logger)

        mock_parse.assert_not_called()
        assert second.wads[0].wad.complevel == "11"

    def test_unchanged_cache_not_rewritten(
        self, tmp_path: Path, wad_factory: Callable[..., Path], quiet_logger: IndexLogger
    ) -> None:
        """変更がなければキャッシュは書き直されない"""
        wad_factory("wads/map.wad")
        cache_file = tmp_path / "cache.json"
        load_wads(tmp_path / "wads", cache_file, logger=quiet_logger)

        with patch("wadcli.index.save_cache") as mock_save:
            load_wads(tmp_path / "wads", cache_file, logger=quiet_logger)

        mock_save.assert_not_called()

    def test_version_mismatch_rebuilds(
        self, tmp_path: Path, wad_factory: Callable[..., Path], quiet_logger: IndexLogger
    ) -> None:
        """バージョンの異なるキャッシュは破棄して再構築される"""
        wad_factory("wads/map.wad", [("WADINFO", b"Title: Real")])
        cache_file = tmp_path / "cache.json"
        cache_file.write_text('{"version": 0, "wads": {}}')

        index = load_wads(tmp_path / "wads", cache_file, logger=quiet_logger)

        assert index.wads[0].wad.title == "Real"
        assert load_cache(cache_file) == index.entries

    def test_no_cache_ignores_existing(
        self, tmp_path: Path, wad_factory: Callable[..., Path], quiet_logger: IndexLogger
    ) -> None:
        """use_cache=Falseでは既存のキャッシュを読まない"""
        path = wad_factory("wads/map.wad", [("WADINFO", b"Title: Real")])
        cache_file = tmp_path / "cache.json"
        key = compute_key(path.name, datetime.fromtimestamp(path.stat().st_mtime))
        save_cache(cache_file, {key: WadData(name="map", title="Stale")})

        index = load_wads(tmp_path / "wads", cache_file, logger=quiet_logger, use_cache=False)

        assert index.wads[0].wad.title == "Real"

    def test_save_failure_is_not_fatal(
        self, tmp_path: Path, wad_factory: Callable[..., Path], quiet_logger: IndexLogger
    ) -> None:
        """キャッシュの保存に失敗してもインデックスは使える"""
        wad_factory("wads/map.wad")

        with patch("wadcli.index.save_cache", return_value=False):
            index = load_wads(tmp_path / "wads", tmp_path / "cache.json", logger=quiet_logger)

        assert len(index.wads) == 1
        assert index.is_dirty is True
