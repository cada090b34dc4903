"""
Color API Oracle

Live lookups against The Color API (https://www.thecolorapi.com).
"""

import asyncio
import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, Optional

from ..colors import ColorDescriptor, clamp_percentage, normalize_hue
from .base import BaseOracle, OracleError

_logger = logging.getLogger(__name__)

# Base endpoint documented by The Color API for looking up an HSL tuple
COLOR_API_ENDPOINT = "https://www.thecolorapi.com/id"
DEFAULT_TIMEOUT = 10.0
# Requests slower than this are worth a warning
SLOW_REQUEST = 2.0


class ColorApiOracle(BaseOracle):
    """
    Oracle backed by The Color API.

    urllib is blocking, so each request runs in a worker thread and the
    event loop stays free to issue the other samples of a range.
    """

    name = "api"
    description = "Live lookup via The Color API"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.endpoint = self.config.get("endpoint") or COLOR_API_ENDPOINT
        self.timeout = float(self.config.get("timeout", DEFAULT_TIMEOUT))
        self.requests = 0

    def build_url(self, hue: float, saturation: float, lightness: float) -> str:
        hsl = f"{_fmt(normalize_hue(hue))},{_fmt(clamp_percentage(saturation))}%,{_fmt(clamp_percentage(lightness))}%"
        return f"{self.endpoint}?{urllib.parse.urlencode({'hsl': hsl})}"

    async def lookup(self, hue: float, saturation: float, lightness: float) -> ColorDescriptor:
        url = self.build_url(hue, saturation, lightness)
        self.requests += 1
        payload = await asyncio.to_thread(self._fetch_json, url, hue)
        try:
            return parse_color_payload(payload)
        except (KeyError, TypeError, ValueError) as e:
            raise OracleError(f"Malformed color payload for hue {hue}: {e}", hue=hue) from e

    def _fetch_json(self, url: str, hue: float) -> Dict[str, Any]:
        """Blocking GET returning the decoded JSON body."""
        start_time = time.time()
        req = urllib.request.Request(url, headers={"Accept": "application/json"})
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                body = resp.read()
        except urllib.error.HTTPError as e:
            _logger.warning(f"[HUEMAP] Color API returned {e.code} for hue {hue}")
            raise OracleError(f"Failed to fetch color information ({e.code})", status=e.code, hue=hue) from e
        except (urllib.error.URLError, OSError) as e:
            elapsed = time.time() - start_time
            _logger.warning(f"[HUEMAP] Color API error after {elapsed*1000:.1f}ms for hue {hue}: {e}")
            raise OracleError(f"Failed to reach color API: {e}", hue=hue) from e

        elapsed = time.time() - start_time
        if elapsed > SLOW_REQUEST:
            _logger.warning(f"[HUEMAP] Slow color API response: {elapsed*1000:.1f}ms for hue {hue}")

        try:
            return json.loads(body)
        except ValueError as e:
            raise OracleError(f"Color API returned invalid JSON for hue {hue}", hue=hue) from e

    def status(self) -> Dict[str, Any]:
        return {"name": self.name, "endpoint": self.endpoint, "requests": self.requests}


def parse_color_payload(data: Dict[str, Any]) -> ColorDescriptor:
    """Convert a Color API response body into a ColorDescriptor."""
    return ColorDescriptor.from_dict({
        "name": data["name"]["value"],
        "rgb": data["rgb"],
        "hsl": data["hsl"],
    })


def _fmt(value: float) -> str:
    """Render 120.0 as '120' and 12.5 as '12.5'."""
    return f"{value:g}" if value == int(value) else repr(value)
