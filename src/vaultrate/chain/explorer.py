"""Etherscan-compatible block explorer client via aiohttp.

Covers the three endpoints the tracker uses: timestamp to block
resolution, eth_call at a historical block tag through the proxy module,
and paginated transaction listing for an address.
"""

import asyncio
from typing import Any

import aiohttp

from vaultrate.chain.abi import function_selector
from vaultrate.config import ExplorerSettings
from vaultrate.exceptions import ConnectivityError, DecodeError, ExplorerError
from vaultrate.logging import get_logger

logger = get_logger(__name__)

_NO_TRANSACTIONS = "No transactions found"


class ExplorerClient:
    """Async REST client for an Etherscan-style API.

    Usage:
        async with ExplorerClient(settings) as explorer:
            block = await explorer.get_block_number_by_time(1_700_000_000)
    """

    def __init__(
        self,
        settings: ExplorerSettings,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._settings = settings
        self._session = session

    async def connect(self) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._settings.timeout)
            )

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "ExplorerClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()

    async def _get(self, params: dict[str, Any]) -> dict[str, Any]:
        """Issue one GET against the API root and return the decoded JSON object."""
        await self.connect()
        assert self._session is not None
        query = {**params, "apikey": self._settings.api_key.get_secret_value()}
        try:
            async with self._session.get(self._settings.base_url, params=query) as resp:
                resp.raise_for_status()
                payload = await resp.json(content_type=None)
        except asyncio.TimeoutError as exc:
            raise ConnectivityError(f"explorer {params.get('action')} timed out") from exc
        except aiohttp.ClientError as exc:
            raise ConnectivityError(f"explorer {params.get('action')} failed: {exc}") from exc
        except ValueError as exc:
            raise DecodeError(f"explorer {params.get('action')} returned invalid JSON") from exc

        if not isinstance(payload, dict):
            raise DecodeError(f"explorer returned {type(payload).__name__}, expected object")
        return payload

    async def get_block_number_by_time(self, timestamp: int, closest: str = "before") -> int:
        """Return the block closest to timestamp (the last one before it by default)."""
        payload = await self._get(
            {
                "module": "block",
                "action": "getblocknobytime",
                "timestamp": int(timestamp),
                "closest": closest,
            }
        )
        if payload.get("status") != "1":
            raise ExplorerError(
                f"getblocknobytime: {payload.get('message')} ({payload.get('result')})"
            )
        try:
            return int(payload["result"])
        except (KeyError, TypeError, ValueError) as exc:
            raise DecodeError(f"getblocknobytime result {payload.get('result')!r}") from exc

    async def call_at_block(self, to: str, data: str, block: int | str = "latest") -> str:
        """Run eth_call against ``to`` at a block tag, returning the raw hex result."""
        tag = hex(block) if isinstance(block, int) else block
        payload = await self._get(
            {"module": "proxy", "action": "eth_call", "to": to, "data": data, "tag": tag}
        )
        if "error" in payload:
            error = payload["error"]
            message = error.get("message") if isinstance(error, dict) else error
            raise ExplorerError(f"eth_call: {message}")
        if payload.get("status") == "0":
            raise ExplorerError(f"eth_call: {payload.get('message')} ({payload.get('result')})")

        result = payload.get("result")
        if not isinstance(result, str) or not result.startswith("0x"):
            raise DecodeError(f"eth_call result {result!r}")
        return result

    async def call_uint_at_block(self, to: str, method: str, block: int | str) -> int:
        """Call a no-argument uint256 view method at block and decode the word."""
        result = await self.call_at_block(to, function_selector(method), block)
        if len(result) < 3:
            raise DecodeError(f"{method} returned empty output at block {block}")
        try:
            return int(result, 16)
        except ValueError as exc:
            raise DecodeError(f"{method} returned {result!r}") from exc

    async def get_transactions(
        self,
        address: str,
        start_block: int = 0,
        end_block: int = 99_999_999,
        page: int = 1,
        offset: int = 100,
        sort: str = "asc",
    ) -> list[dict[str, Any]]:
        """Return one page of normal transactions for address."""
        payload = await self._get(
            {
                "module": "account",
                "action": "txlist",
                "address": address,
                "startblock": start_block,
                "endblock": end_block,
                "page": page,
                "offset": offset,
                "sort": sort,
            }
        )
        result = payload.get("result")
        if payload.get("status") != "1":
            if payload.get("message") == _NO_TRANSACTIONS:
                return []
            raise ExplorerError(f"txlist: {payload.get('message')} ({result})")
        if isinstance(result, list):
            return result
        if isinstance(result, str):
            return []
        raise DecodeError(f"unexpected txlist result type {type(result).__name__}")
