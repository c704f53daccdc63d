"""Abstract cache store interface.

Defines the storage primitives the rate cache is built on: a plain
key/value slot and a score-ordered collection of string members.
RateCache depends only on this interface, keeping Redis and SQLite
details isolated in the concrete backends.
"""

from abc import ABC, abstractmethod


class CacheStore(ABC):
    """Abstract base class for cache store backends.

    All methods raise ConnectivityError when the backend is unreachable
    or an operation exceeds its timeout.
    """

    @abstractmethod
    async def ping(self) -> None:
        """Verify the backend is reachable."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release connections held by the backend."""
        ...

    @abstractmethod
    async def get_value(self, key: str) -> str | None:
        """Return the value stored under key, or None."""
        ...

    @abstractmethod
    async def set_value(self, key: str, value: str) -> None:
        """Store value under key, overwriting any previous value."""
        ...

    @abstractmethod
    async def add_scored(self, key: str, member: str, score: int) -> None:
        """Add member to the sorted collection at key with the given score."""
        ...

    @abstractmethod
    async def replace_at_score(self, key: str, member: str, score: int) -> None:
        """Atomically drop every member scored exactly ``score`` and add member there."""
        ...

    @abstractmethod
    async def range_by_score(self, key: str, min_score: int, max_score: int) -> list[str]:
        """Return members scored in [min_score, max_score], ascending by score."""
        ...

    @abstractmethod
    async def remove_below_score(self, key: str, cutoff: int) -> int:
        """Remove members scored strictly below cutoff, returning the count removed."""
        ...

    @abstractmethod
    async def last_scored(self, key: str) -> tuple[str, int] | None:
        """Return the highest-scored (member, score) pair, or None if empty."""
        ...
