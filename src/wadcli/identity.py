"""ファイル識別キーモジュール

キャッシュのキーとして、ファイル名と最終更新日時を組み合わせた文字列を使う。
内容のハッシュは使わないため、更新日時を保ったまま内容が変わった場合は検出できない。
"""

from datetime import datetime
from pathlib import Path

KEY_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


def compute_key(file_name: str, last_modified: datetime) -> str:
    """キャッシュキーを計算する

    Args:
        file_name: ファイル名（ディレクトリ部分は無視される）
        last_modified: 最終更新日時

    Returns:
        "ファイル名:YYYYmmddHHMMSS" 形式のキー
    """
    base_name = Path(file_name).name
    return f"{base_name}:{last_modified.strftime(KEY_TIMESTAMP_FORMAT)}"


def get_last_modified(path: Path) -> datetime:
    """ファイルの最終更新日時（ローカル時刻）を取得する"""
    return datetime.fromtimestamp(path.stat().st_mtime)


def file_key(path: Path) -> str:
    """ディスク上のファイルのキャッシュキーを計算する"""
    return compute_key(path.name, get_last_modified(path))
