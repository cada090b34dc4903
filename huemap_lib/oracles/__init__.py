"""
HUEMAP Oracles Package

Pluggable color-naming lookups. The segmentation core only sees the
SampleFn produced by BaseOracle.bind(); each backend lives in its own
module.
"""

import logging
from typing import Any, Dict, List, Optional, Type

from .base import BaseOracle, OracleError, SampleFn
from .cached import CachedOracle
from .color_api import COLOR_API_ENDPOINT, ColorApiOracle
from .database import SCHEMA, DatabaseOracle

_logger = logging.getLogger(__name__)

# Oracle registry - maps oracle names to classes
ORACLE_REGISTRY: Dict[str, Type[BaseOracle]] = {
    'api': ColorApiOracle,
    'database': DatabaseOracle,
    'cached': CachedOracle,
}


def get_oracle(name: str) -> Type[BaseOracle]:
    """
    Get oracle class by name.

    Raises:
        ValueError: If oracle name is unknown
    """
    if name not in ORACLE_REGISTRY:
        raise ValueError(
            f"Unknown oracle '{name}'. "
            f"Available: {', '.join(ORACLE_REGISTRY.keys())}"
        )
    return ORACLE_REGISTRY[name]


def list_oracles() -> List[str]:
    """Return list of available oracle names."""
    return sorted(ORACLE_REGISTRY.keys())


def create_oracle(name: str, config: Optional[Dict[str, Any]] = None) -> Optional[BaseOracle]:
    """Factory function to create the configured oracle (None if unknown)."""
    oracle_class = ORACLE_REGISTRY.get(name)
    if oracle_class is None:
        _logger.error(f"[HUEMAP] Unknown oracle '{name}' (valid: {', '.join(list_oracles())})")
        return None
    return oracle_class(config)


__all__ = [
    'BaseOracle',
    'OracleError',
    'SampleFn',
    'ORACLE_REGISTRY',
    'COLOR_API_ENDPOINT',
    'SCHEMA',
    'get_oracle',
    'list_oracles',
    'create_oracle',
    # Individual oracles
    'ColorApiOracle',
    'DatabaseOracle',
    'CachedOracle',
]
