"""
Base Oracle Class

All color oracles inherit from this base class.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

from ..colors import ColorDescriptor

# The only thing the segmentation core knows about an oracle
SampleFn = Callable[[float], Awaitable[ColorDescriptor]]


class OracleError(Exception):
    """
    A color lookup failed (network, service or cache miss).

    Attributes:
        status: HTTP status code when the failure came from a response,
            None for transport failures and local lookups
        hue: Hue that was being sampled, if known
    """

    def __init__(self, message: str, status: Optional[int] = None, hue: Optional[float] = None):
        super().__init__(message)
        self.status = status
        self.hue = hue

    @property
    def retryable(self) -> bool:
        """Transport failures and 5xx responses are worth another attempt."""
        return self.status is None or self.status >= 500


class BaseOracle(ABC):
    """
    Base class for all color oracles.

    An oracle names the color at one HSL point. It is expensive to call,
    so the segmentation core binds it to a (saturation, lightness) pair
    and samples it as few times as possible.
    """

    # Oracle metadata
    name: str = "unknown"
    description: str = "No description"

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}

    @abstractmethod
    async def lookup(self, hue: float, saturation: float, lightness: float) -> ColorDescriptor:
        """
        Name the color at one HSL point.

        Args:
            hue: Hue in degrees, already normalized to [0, 360)
            saturation: Saturation percentage (0-100)
            lightness: Lightness percentage (0-100)

        Returns:
            ColorDescriptor for that point

        Raises:
            OracleError: If the lookup failed
        """
        raise NotImplementedError(f"Oracle '{self.name}' must implement lookup()")

    def bind(self, saturation: float, lightness: float) -> SampleFn:
        """Return a sample(hue) function fixed to one saturation/lightness."""
        async def sample(hue: float) -> ColorDescriptor:
            return await self.lookup(hue, saturation, lightness)

        return sample

    async def close(self) -> None:
        """Release any held resources."""

    def status(self) -> Dict[str, Any]:
        return {"name": self.name}

    def __str__(self) -> str:
        return f"{self.name} oracle"

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self.name}>"
