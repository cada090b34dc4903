"""
Cached Oracle

SQLite cache first, live Color API for anything the cache lacks.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from ..colors import ColorDescriptor
from .base import BaseOracle
from .color_api import ColorApiOracle
from .database import DatabaseOracle

_logger = logging.getLogger(__name__)


class CachedOracle(BaseOracle):
    name = "cached"
    description = "SQLite color cache with live API fallback"

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        database: Optional[DatabaseOracle] = None,
        api: Optional[BaseOracle] = None,
    ):
        super().__init__(config)
        self.database = database or DatabaseOracle(self.config)
        self.api = api or ColorApiOracle(self.config)
        self.fallbacks = 0

    async def lookup(self, hue: float, saturation: float, lightness: float) -> ColorDescriptor:
        color = await asyncio.to_thread(self._from_database, hue, saturation, lightness)
        if color is not None:
            return color

        self.fallbacks += 1
        _logger.debug(f"[HUEMAP] Cache miss for hue {hue}, falling back to {self.api.name}")
        return await self.api.lookup(hue, saturation, lightness)

    def _from_database(self, hue: float, saturation: float, lightness: float) -> Optional[ColorDescriptor]:
        """Blocking cache read; None when the cache file is missing or lacks the point."""
        if not self.database.is_available():
            return None
        return self.database.get(hue, saturation, lightness)

    async def close(self) -> None:
        await self.database.close()
        await self.api.close()

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "fallbacks": self.fallbacks,
            "database": self.database.status(),
            "api": self.api.status(),
        }
