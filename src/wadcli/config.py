"""Configuration module for wadcli."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from wadcli.cache import get_cache_path

CONFIG_FILE_NAME = ".wadcli.yml"


class ConfigError(Exception):
    """設定ファイル読み込みエラー"""

    pass


@dataclass(frozen=True)
class WadCliConfig:
    """ルート設定

    Attributes:
        wads_directory: スキャン対象ディレクトリ（Noneの場合はカレントディレクトリ）
        cache_file: キャッシュファイルのパス
        exclude: スキャン対象外にするfnmatchパターン
        log_file: ログ出力先ファイル
        verbose: 詳細ログレベル
    """

    wads_directory: Path | None = None
    cache_file: Path = field(default_factory=get_cache_path)
    exclude: list[str] = field(default_factory=list)
    log_file: Path | None = None
    verbose: int = 0

    @property
    def scan_root(self) -> Path:
        """スキャン対象ディレクトリを取得する"""
        return self.wads_directory if self.wads_directory is not None else Path.cwd()


def get_config_path() -> Path:
    """ユーザー設定ファイルのパスを取得する"""
    return Path.home() / CONFIG_FILE_NAME


def load_config(path: Path) -> WadCliConfig:
    """設定ファイルを読み込む

    Args:
        path: 設定ファイルパス

    Returns:
        WadCliConfig: 読み込んだ設定（デフォルトとマージ済み）

    Raises:
        ConfigError: ファイル読み込みまたはパースエラー
    """
    if not path.exists():
        raise ConfigError(f"設定ファイルが見つかりません: {path}")

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML解析エラー: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("設定ファイルはYAMLのマッピング形式である必要があります")

    default = get_default_config()

    return WadCliConfig(
        wads_directory=_parse_path(data.get("wads_directory"), default.wads_directory),
        cache_file=_parse_path(data.get("cache_file"), default.cache_file) or default.cache_file,
        exclude=_parse_exclude(data.get("exclude", default.exclude)),
        log_file=_parse_path(data.get("log_file"), default.log_file),
        verbose=_parse_verbose(data.get("verbose", default.verbose)),
    )


def get_default_config() -> WadCliConfig:
    """デフォルト設定を取得する"""
    return WadCliConfig()


def _parse_path(value: Any, default: Path | None) -> Path | None:
    """パス設定をパースする（~ を展開する）"""
    if value is None:
        return default
    if not isinstance(value, str):
        raise ConfigError(f"パスは文字列で指定してください: {value!r}")
    return Path(value).expanduser()


def _parse_exclude(data: Any) -> list[str]:
    """除外パターンをパースする"""
    if not isinstance(data, list):
        return []
    return [str(item) for item in data if isinstance(item, str)]


def _parse_verbose(value: Any) -> int:
    """詳細ログレベルをパースする"""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"verboseは整数で指定してください: {value!r}")
    return value
