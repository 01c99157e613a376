"""CLI entry point for wadcli."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from wadcli import __version__
from wadcli.cache import clear_cache, get_cache_info, load_cache, save_cache
from wadcli.compat import complevel_from_hint, vanilla_complevel
from wadcli.config import ConfigError, WadCliConfig, get_config_path, get_default_config, load_config
from wadcli.index import (
    CONTAINER_READ_ERRORS,
    UnsupportedFileError,
    WadFile,
    WadIndex,
    load_wads,
)
from wadcli.logger import IndexLogger, LogConfig, VerboseLevel

app = typer.Typer(help="Doom WADファイルを一覧・管理するCLIツール")
console = Console()


def _format_size(size_bytes: int) -> str:
    """バイト数を人間が読みやすい形式に変換する"""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    else:
        return f"{size_bytes / (1024 * 1024):.1f} MB"


def _load_settings(config_file: Path | None) -> WadCliConfig:
    """設定ファイルを読み込む（未指定で既定パスもなければデフォルト）"""
    if config_file is None:
        default_path = get_config_path()
        if not default_path.exists():
            return get_default_config()
        config_file = default_path

    try:
        return load_config(config_file)
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e


def _create_logger(settings: WadCliConfig, verbose: int, log_file: Path | None) -> IndexLogger:
    level = min(max(verbose or settings.verbose, VerboseLevel.QUIET), VerboseLevel.DEBUG)
    return IndexLogger(
        LogConfig(
            verbose_level=VerboseLevel(level),
            log_file=log_file or settings.log_file,
        )
    )


def _complevel_text(wad_file: WadFile) -> str:
    """互換レベル列の表示文字列"""
    if wad_file.wad.complevel:
        return wad_file.wad.complevel
    if wad_file.wad.complevel_hint:
        guess = complevel_from_hint(
            wad_file.wad.complevel_hint, vanilla_complevel(wad_file.wad.iwad_name)
        )
        suffix = f" (~{guess})" if guess is not None else ""
        return f"[dim]{wad_file.wad.complevel_hint}{suffix}[/dim]"
    return "-"


def _render_wads(wads: list[WadFile], root: Path) -> Table:
    table = Table(title=f"WADs ({len(wads)})")
    table.add_column("Name", style="cyan")
    table.add_column("IWAD", justify="center")
    table.add_column("Requires", justify="left")
    table.add_column("Complevel", justify="left")
    table.add_column("Path", style="dim")

    for wad_file in wads:
        iwad_mark = "[green]✓[/green]" if wad_file.wad.is_iwad else ""
        requires = "" if wad_file.wad.is_iwad else (wad_file.wad.iwad_name or "-")
        try:
            path_str = str(wad_file.path.relative_to(root))
        except ValueError:
            path_str = str(wad_file.path)
        table.add_row(
            wad_file.wad.display_name,
            iwad_mark,
            requires,
            _complevel_text(wad_file),
            path_str,
        )
    return table


@app.command()
def scan(
    root: Annotated[Path | None, typer.Option("--root", help="スキャン対象ディレクトリ")] = None,
    config_file: Annotated[Path | None, typer.Option("--config", help="設定ファイル")] = None,
    verbose: Annotated[int, typer.Option("-v", "--verbose", count=True, help="詳細ログ出力")] = 0,
    log_file: Annotated[Path | None, typer.Option(help="ログファイル出力先")] = None,
    no_cache: Annotated[bool, typer.Option("--no-cache", help="キャッシュを使わず再構築")] = False,
) -> None:
    """WADをスキャンして一覧を表示する"""
    settings = _load_settings(config_file)
    scan_root = root or settings.scan_root

    if not scan_root.is_dir():
        console.print(f"[red]Error: ディレクトリが見つかりません: {scan_root}[/red]")
        raise typer.Exit(1)

    with _create_logger(settings, verbose, log_file) as logger:
        index = load_wads(
            scan_root,
            settings.cache_file,
            exclude=settings.exclude,
            logger=logger,
            use_cache=not no_cache,
        )

    if not index.wads:
        console.print("[yellow]WADが見つかりませんでした[/yellow]")
        raise typer.Exit(0)

    console.print(_render_wads(index.wads, scan_root))
    raise typer.Exit(0)


@app.command()
def add(
    path: Annotated[Path, typer.Argument(help="追加するファイル（wad/zip/pk3）")],
    config_file: Annotated[Path | None, typer.Option("--config", help="設定ファイル")] = None,
) -> None:
    """1ファイルをキャッシュに追加する"""
    settings = _load_settings(config_file)
    logger = IndexLogger(LogConfig(verbose_level=VerboseLevel.QUIET))

    index = WadIndex(
        settings.scan_root, load_cache(settings.cache_file, logger), logger=logger
    )
    try:
        wad_file = index.add_file(path.resolve())
    except UnsupportedFileError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e
    except CONTAINER_READ_ERRORS as e:
        console.print(f"[red]Error: ファイルを読み込めません: {e}[/red]")
        raise typer.Exit(1) from e

    if index.is_dirty and not save_cache(settings.cache_file, index.entries, logger):
        console.print("[yellow]キャッシュを更新できませんでした[/yellow]")

    console.print(_render_wads([wad_file], wad_file.path.parent))
    raise typer.Exit(0)


# cache サブコマンドグループ
cache_app = typer.Typer(help="キャッシュ管理")
app.add_typer(cache_app, name="cache")


@cache_app.command("clean")
def cache_clean(
    force: Annotated[bool, typer.Option("-f", "--force", help="確認なしで削除")] = False,
    config_file: Annotated[Path | None, typer.Option("--config", help="設定ファイル")] = None,
) -> None:
    """キャッシュを削除する"""
    settings = _load_settings(config_file)

    if not force:
        confirmed = typer.confirm("キャッシュを削除しますか?")
        if not confirmed:
            console.print("[yellow]キャンセルしました[/yellow]")
            raise typer.Exit(0)

    if clear_cache(settings.cache_file):
        console.print("[green]キャッシュを削除しました[/green]")
    else:
        console.print("[dim]キャッシュはありません[/dim]")
    raise typer.Exit(0)


@cache_app.command("info")
def cache_info(
    config_file: Annotated[Path | None, typer.Option("--config", help="設定ファイル")] = None,
) -> None:
    """キャッシュ情報を表示する"""
    settings = _load_settings(config_file)
    info = get_cache_info(settings.cache_file)

    table = Table(title="キャッシュ情報", show_header=False)
    table.add_column("項目", style="cyan")
    table.add_column("値", style="white")

    table.add_row("ファイル", str(info.path))
    if info.exists:
        table.add_row("サイズ", _format_size(info.size_bytes))
        table.add_row("バージョン", str(info.version) if info.version is not None else "[red]不明[/red]")
        table.add_row("エントリ数", str(info.entry_count))
    else:
        table.add_row("状態", "[dim]なし[/dim]")

    console.print(Panel(table, border_style="blue"))
    raise typer.Exit(0)


def version_callback(value: bool) -> None:
    """バージョン表示コールバック"""
    if value:
        typer.echo(f"wadcli {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="バージョンを表示する",
        ),
    ] = False,
) -> None:
    """wadcli - Doom WADのインデックスとキャッシュ"""
    pass
