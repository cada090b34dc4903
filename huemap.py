"""
HUEMAP - Hue map service

The conductor - imports from huemap_lib and serves segmentations.

Owns the configured oracle and the cross-run segment memo; everything
below it (sampler, subdivision, segment building) is per-run.
"""

from __future__ import annotations

__version__ = "1.0.0"

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from huemap_lib import (
    EventType, HueSegment, SegmentMemo, Traversal,
    clamp_percentage, collect_segments, stream_segments, sort_swatches,
)
from huemap_lib.oracles import BaseOracle, ColorApiOracle, create_oracle, list_oracles
from huemap_lib.settings import HueMapSettings, load_settings

_logger = logging.getLogger(__name__)


class HueMap:
    """
    HUEMAP Service - The Conductor

    Turns (saturation, lightness) requests into hue segment lists, either
    all at once (memoized) or as a stream of progressive snapshots.
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        oracle: Optional[BaseOracle] = None,
        memo: Optional[SegmentMemo] = None,
        settings: Optional[HueMapSettings] = None,
    ) -> None:
        self.config_path = config_path
        self.settings = HueMapSettings()
        self.config_warnings: List[str] = []
        self._injected_oracle = oracle is not None
        self.oracle: Optional[BaseOracle] = oracle
        self.memo = memo if memo is not None else SegmentMemo()

        # Counters reported by status()
        self._streams = 0
        self.requests = 0
        self.failures = 0

        if settings is not None:
            self.settings = settings
        else:
            self.settings, self.config_warnings = self._load_config()
        if self.oracle is None:
            self.oracle = self._create_oracle(self.settings)

        self._log_info(
            f"Initialized with oracle '{self.oracle.name}', traversal {self.settings.traversal}, "
            f"min_span {self.settings.min_span:g}"
        )
        for warn in self.config_warnings:
            self._log_warning(warn)

    # ─────────────────────────────────────────────────────────────
    # Logging Helpers (respects debug setting)
    # ─────────────────────────────────────────────────────────────

    def _log_debug(self, msg: str) -> None:
        """Log debug message (only if debug enabled)."""
        if not self.settings.debug:
            return
        _logger.info(f"[HUEMAP] {msg}")

    def _log_info(self, msg: str) -> None:
        _logger.info(f"[HUEMAP] {msg}")

    def _log_warning(self, msg: str) -> None:
        _logger.warning(f"[HUEMAP] {msg}")

    def _log_error(self, msg: str) -> None:
        _logger.error(f"[HUEMAP] {msg}")

    # ─────────────────────────────────────────────────────────────
    # Config Loading
    # ─────────────────────────────────────────────────────────────

    def _load_config(self) -> Tuple[HueMapSettings, List[str]]:
        """Read huemap.cfg; problems become warnings, never exceptions."""
        try:
            settings, warnings = load_settings(self.config_path)
        except OSError as e:
            self._log_error(f"Config error: {e}")
            return HueMapSettings(), [f"Config error: {e}"]

        if settings.oracle not in list_oracles():
            warnings.append(
                f"Unknown oracle '{settings.oracle}' (valid: {', '.join(list_oracles())}), using api"
            )
        return settings, warnings

    def _create_oracle(self, settings: HueMapSettings) -> BaseOracle:
        oracle = create_oracle(settings.oracle, settings.oracle_config)
        if oracle is None:
            oracle = ColorApiOracle(settings.oracle_config)
        self._log_debug(f"Created oracle: {oracle.description}")
        return oracle

    def _clamp_request(self, saturation: Optional[float], lightness: Optional[float]):
        if saturation is None:
            saturation = self.settings.default_saturation
        if lightness is None:
            lightness = self.settings.default_lightness
        return (
            clamp_percentage(saturation, self.settings.default_saturation),
            clamp_percentage(lightness, self.settings.default_lightness),
        )

    # ─────────────────────────────────────────────────────────────
    # Segmentation
    # ─────────────────────────────────────────────────────────────

    async def segments(
        self,
        saturation: Optional[float] = None,
        lightness: Optional[float] = None,
        sort: bool = False,
    ) -> List[HueSegment]:
        """Collect-all segmentation, shared through the memo when enabled."""
        saturation, lightness = self._clamp_request(saturation, lightness)
        self.requests += 1
        self._log_debug(f"Segments requested: s={saturation:g} l={lightness:g}")

        try:
            result = await collect_segments(
                saturation,
                lightness,
                self.oracle.bind(saturation, lightness),
                memo=self.memo if self.settings.memo else None,
                min_span=self.settings.min_span,
                traversal=Traversal(self.settings.traversal),
            )
        except Exception as e:
            self.failures += 1
            self._log_error(f"Segmentation s={saturation:g} l={lightness:g} failed: {e}")
            raise

        self._log_debug(f"Segments ready: s={saturation:g} l={lightness:g} ({len(result)} colors)")
        return sort_swatches(result) if sort else result

    async def stream(
        self,
        saturation: Optional[float] = None,
        lightness: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """
        Stream NDJSON lines for one segmentation.

        Each line is {"segments": [...]} or, on failure, a single
        {"error": "..."} line. Closing the iterator cancels the run.
        """
        saturation, lightness = self._clamp_request(saturation, lightness)
        self.requests += 1
        self._streams += 1
        self._log_debug(f"Stream started: s={saturation:g} l={lightness:g}")

        events = stream_segments(
            saturation,
            lightness,
            self.oracle.bind(saturation, lightness),
            min_span=self.settings.min_span,
            traversal=Traversal(self.settings.traversal),
        )
        try:
            async for event in events:
                if event.type is EventType.ERROR:
                    self.failures += 1
                line = event.to_line()
                if line is not None:
                    yield line
        finally:
            self._streams -= 1
            await events.aclose()
            self._log_debug(f"Stream closed: s={saturation:g} l={lightness:g}")

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    def clear_cache(self) -> int:
        """Drop every memoized segmentation (call on the service event loop)."""
        cleared = self.memo.clear()
        self._log_info(f"Cleared {cleared} cached segmentations")
        return cleared

    async def reload(self) -> Dict[str, Any]:
        """
        Re-read the config file, rebuild the oracle and clear the memo.

        The new settings and oracle are built before either replaces the
        current ones, so a failure leaves the service as it was.
        """
        self._log_info("Reloading configuration...")
        settings, warnings = self._load_config()
        oracle = self.oracle if self._injected_oracle else self._create_oracle(settings)

        old = self.oracle
        self.settings, self.config_warnings = settings, warnings
        self.oracle = oracle
        self.clear_cache()
        if old is not None and old is not oracle:
            await old.close()
        for warn in warnings:
            self._log_warning(warn)

        result: Dict[str, Any] = {
            "result": "ok",
            "oracle": self.oracle.name,
            "traversal": self.settings.traversal,
            "min_span": self.settings.min_span,
        }
        if self.config_warnings:
            result["warnings"] = self.config_warnings
        return result

    async def close(self) -> None:
        self._log_info("Shutting down")
        self.memo.clear()
        if self.oracle is not None:
            await self.oracle.close()

    def status(self) -> Dict[str, Any]:
        return {
            "version": __version__,
            "oracle": self.oracle.status(),
            "config": {
                "min_span": self.settings.min_span,
                "traversal": self.settings.traversal,
                "default_saturation": self.settings.default_saturation,
                "default_lightness": self.settings.default_lightness,
                "memo": self.settings.memo,
                "debug": self.settings.debug,
            },
            "memo": self.memo.stats(),
            "requests": self.requests,
            "failures": self.failures,
            "active_streams": self._streams,
            "warnings": self.config_warnings,
        }


def load_service(config_path: Optional[str] = None) -> HueMap:
    return HueMap(config_path)
