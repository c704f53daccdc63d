"""Abstract chain reader interface.

Defines the read-only chain capabilities the sampler, backfill engine and
point-in-time fetcher rely on. Web3-specific details stay in the concrete
implementation.
"""

from abc import ABC, abstractmethod
from typing import Any

BlockTag = int | str


class ChainReader(ABC):
    """Abstract base class for JSON-RPC chain readers.

    Implementations raise ConnectivityError for transport failures and
    timeouts, and DecodeError for responses that cannot be decoded.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Verify the endpoint is reachable."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release transport resources."""
        ...

    @abstractmethod
    async def call_uint(
        self, method: str, address: str | None = None, block: BlockTag = "latest"
    ) -> int:
        """Call a no-argument uint256 view method, on the vault unless address is given."""
        ...

    @abstractmethod
    async def latest_block_number(self) -> int:
        """Return the number of the current head block."""
        ...

    @abstractmethod
    async def get_logs(
        self, address: str, from_block: int, to_block: int
    ) -> list[dict[str, Any]]:
        """Return raw logs emitted by address within [from_block, to_block]."""
        ...

    @abstractmethod
    async def get_block_timestamp(self, block_number: int) -> int:
        """Return the block's timestamp in epoch seconds."""
        ...

    @abstractmethod
    async def get_storage_at(self, address: str, slot: int, block: BlockTag = "latest") -> bytes:
        """Read a raw 32-byte storage slot of address at block."""
        ...
