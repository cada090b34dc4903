"""
Database Oracle

Offline lookups in the SQLite color cache written by build_color_cache.py.
"""

import asyncio
import logging
import os
import sqlite3
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Optional

from ..colors import ColorDescriptor, HSLValue, RGBValue, normalize_hue
from .base import BaseOracle, OracleError

_logger = logging.getLogger(__name__)

DEFAULT_DATABASE_PATH = Path("data") / "colors.sqlite"
DATABASE_PATH_ENV = "COLOR_DATABASE_PATH"

SCHEMA = """
CREATE TABLE IF NOT EXISTS colors (
    hue INTEGER NOT NULL,
    saturation INTEGER NOT NULL,
    lightness INTEGER NOT NULL,
    name TEXT NOT NULL,
    rgb_value TEXT NOT NULL,
    rgb_r INTEGER NOT NULL,
    rgb_g INTEGER NOT NULL,
    rgb_b INTEGER NOT NULL,
    hsl_value TEXT NOT NULL,
    hsl_h INTEGER NOT NULL,
    hsl_s INTEGER NOT NULL,
    hsl_l INTEGER NOT NULL,
    PRIMARY KEY (hue, saturation, lightness)
);
CREATE INDEX IF NOT EXISTS idx_colors_hsl ON colors(hue, saturation, lightness);
"""

SELECT_COLOR = (
    "SELECT name, rgb_value, rgb_r, rgb_g, rgb_b, hsl_value, hsl_h, hsl_s, hsl_l "
    "FROM colors WHERE hue = ? AND saturation = ? AND lightness = ? LIMIT 1"
)


def resolve_database_path(configured: Optional[str] = None) -> Path:
    """Environment override first, then config, then the default."""
    override = os.environ.get(DATABASE_PATH_ENV)
    if override:
        return Path(override).expanduser()
    if configured:
        return Path(configured).expanduser()
    return DEFAULT_DATABASE_PATH


def cache_coordinates(hue: float, saturation: float, lightness: float):
    """Round an HSL point onto the integer grid the cache is keyed by."""
    h = int(round(normalize_hue(hue))) % 360
    s = max(0, min(100, int(round(saturation))))
    l = max(0, min(100, int(round(lightness))))  # noqa: E741
    return h, s, l


class DatabaseOracle(BaseOracle):
    """
    Oracle backed by a read-only SQLite cache.

    One connection is shared by the worker threads that run lookups,
    serialized with a lock.
    """

    name = "database"
    description = "Offline lookup in the SQLite color cache"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.path = resolve_database_path(self.config.get("database_path"))
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = Lock()
        self.hits = 0
        self.misses = 0

    def _open(self) -> Optional[sqlite3.Connection]:
        if self._connection is not None:
            return self._connection
        if not self.path.is_file():
            return None
        uri = f"{self.path.resolve().as_uri()}?mode=ro"
        self._connection = sqlite3.connect(uri, uri=True, check_same_thread=False)
        _logger.info(f"[HUEMAP] Opened color cache: {self.path}")
        return self._connection

    def is_available(self) -> bool:
        with self._lock:
            return self._open() is not None

    def get(self, hue: float, saturation: float, lightness: float) -> Optional[ColorDescriptor]:
        """Blocking lookup; None when the cache has no row for this point."""
        h, s, l = cache_coordinates(hue, saturation, lightness)  # noqa: E741
        with self._lock:
            conn = self._open()
            if conn is None:
                raise OracleError(f"Color cache not found: {self.path}", hue=hue)
            try:
                row = conn.execute(SELECT_COLOR, (h, s, l)).fetchone()
            except sqlite3.Error as e:
                raise OracleError(f"Color cache query failed: {e}", hue=hue) from e

        if row is None:
            self.misses += 1
            return None

        self.hits += 1
        name, rgb_value, r, g, b, hsl_value, hh, hs, hl = row
        return ColorDescriptor(
            name=name,
            rgb=RGBValue(value=rgb_value, r=r, g=g, b=b),
            hsl=HSLValue(value=hsl_value, h=hh, s=hs, l=hl),
        )

    async def lookup(self, hue: float, saturation: float, lightness: float) -> ColorDescriptor:
        color = await asyncio.to_thread(self.get, hue, saturation, lightness)
        if color is None:
            raise OracleError(
                f"No cached color for hsl({hue}, {saturation}%, {lightness}%)", hue=hue
            )
        return color

    async def close(self) -> None:
        await asyncio.to_thread(self._close)

    def _close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": str(self.path),
            "available": self.is_available(),
            "hits": self.hits,
            "misses": self.misses,
        }
