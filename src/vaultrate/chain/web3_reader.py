"""JSON-RPC chain reader implementation via web3.py's AsyncWeb3.

Every call is bounded by ChainSettings.timeout; none are retried here.
Retrying is left to the next sampler tick.
"""

import asyncio
from collections.abc import Awaitable
from typing import Any, TypeVar

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import BadFunctionCallOutput, Web3Exception

from vaultrate.chain.abi import VAULT_ABI
from vaultrate.chain.reader import BlockTag, ChainReader
from vaultrate.config import ChainSettings
from vaultrate.exceptions import ConnectivityError, DecodeError
from vaultrate.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class Web3ChainReader(ChainReader):
    """Concrete chain reader over an HTTP JSON-RPC endpoint."""

    def __init__(self, settings: ChainSettings, w3: AsyncWeb3 | None = None) -> None:
        self._settings = settings
        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(settings.rpc_url))
        self._vault = Web3.to_checksum_address(settings.vault_address)

    @property
    def vault_address(self) -> str:
        return self._vault

    async def _run(self, operation: str, awaitable: Awaitable[T]) -> T:
        """Await an RPC call under the configured timeout, mapping failures."""
        try:
            return await asyncio.wait_for(awaitable, self._settings.timeout)
        except asyncio.TimeoutError as exc:
            raise ConnectivityError(f"{operation} timed out") from exc
        except BadFunctionCallOutput as exc:
            raise DecodeError(f"{operation} returned undecodable output") from exc
        except (Web3Exception, aiohttp.ClientError, OSError) as exc:
            raise ConnectivityError(f"{operation} failed: {exc}") from exc

    async def connect(self) -> None:
        head = await self.latest_block_number()
        logger.info("chain_connected", head_block=head, vault=self._vault)

    async def close(self) -> None:
        await self._w3.provider.disconnect()
        logger.info("chain_connection_closed")

    async def call_uint(
        self, method: str, address: str | None = None, block: BlockTag = "latest"
    ) -> int:
        target = Web3.to_checksum_address(address) if address else self._vault
        contract = self._w3.eth.contract(address=target, abi=VAULT_ABI)
        function = getattr(contract.functions, method)()
        value = await self._run(method, function.call(block_identifier=block))
        if not isinstance(value, int):
            raise DecodeError(f"{method} returned non-integer {value!r}")
        return value

    async def latest_block_number(self) -> int:
        return int(await self._run("eth_blockNumber", self._w3.eth.get_block_number()))

    async def get_logs(
        self, address: str, from_block: int, to_block: int
    ) -> list[dict[str, Any]]:
        logs = await self._run(
            "eth_getLogs",
            self._w3.eth.get_logs(
                {
                    "address": Web3.to_checksum_address(address),
                    "fromBlock": from_block,
                    "toBlock": to_block,
                }
            ),
        )
        return [dict(log) for log in logs]

    async def get_block_timestamp(self, block_number: int) -> int:
        block = await self._run("eth_getBlockByNumber", self._w3.eth.get_block(block_number))
        try:
            return int(block["timestamp"])
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"block {block_number} has no timestamp") from exc

    async def get_storage_at(self, address: str, slot: int, block: BlockTag = "latest") -> bytes:
        raw = await self._run(
            "eth_getStorageAt",
            self._w3.eth.get_storage_at(
                Web3.to_checksum_address(address), slot, block_identifier=block
            ),
        )
        return bytes(raw)
