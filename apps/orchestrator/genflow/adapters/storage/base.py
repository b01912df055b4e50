"""Object storage presigning interfaces."""

from abc import ABC, abstractmethod


class ObjectPresigner(ABC):
    """Issues time-bounded, externally fetchable URLs for stored objects."""

    @abstractmethod
    async def presign(self, key: str, *, expires_in: int) -> str:
        """Return a GET URL for ``key`` valid for ``expires_in`` seconds."""


__all__ = ["ObjectPresigner"]
