"""wadcli - Doom WAD indexing CLI tool."""

from wadcli.cache import CACHE_VERSION, WadCache, get_cache_path, load_cache, save_cache
from wadcli.index import (
    IndexPhase,
    UnsupportedFileError,
    WadFile,
    WadIndex,
    load_wads,
)
from wadcli.logger import IndexLogger, LogConfig, VerboseLevel
from wadcli.parser import WadData, WadDataBuilder

__version__ = "0.1.0"

__all__ = [
    "CACHE_VERSION",
    "IndexLogger",
    "IndexPhase",
    "LogConfig",
    "UnsupportedFileError",
    "VerboseLevel",
    "WadCache",
    "WadData",
    "WadDataBuilder",
    "WadFile",
    "WadIndex",
    "get_cache_path",
    "load_cache",
    "load_wads",
    "save_cache",
]
