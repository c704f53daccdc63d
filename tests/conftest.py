"""Shared test fixtures for the vault rate tracker."""

from collections.abc import Mapping
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from vaultrate.cache.rate_cache import RateCache
from vaultrate.cache.sqlite_store import SqliteCacheStore
from vaultrate.chain.abi import TOTAL_ASSETS, TOTAL_SUPPLY, TRANSFER_TOPIC
from vaultrate.chain.reader import ChainReader
from vaultrate.config import AppSettings, BackfillSettings, CacheSettings, ChainSettings
from vaultrate.exceptions import ConnectivityError

# 2023-11-14T22:00:00Z, an hour boundary
NOW_HOUR = 1_699_999_200
ONE_ETH = 10**18

VAULT = "0xD9A442856C234a39a81a089C06451EBAa4306a72"
ALICE = "0x00000000000000000000000000000000000A11cE"
BOB = "0x0000000000000000000000000000000000000B0b"
ZERO = "0x" + "0" * 40


def address_topic(address: str) -> bytes:
    """Left-pad a 20-byte address into a 32-byte indexed topic."""
    return bytes(12) + bytes.fromhex(address.removeprefix("0x"))


def transfer_log(
    from_address: str,
    to_address: str,
    amount: int,
    block_number: int,
    log_index: int = 0,
) -> dict:
    """Build a raw Transfer log shaped like eth_getLogs output."""
    return {
        "address": VAULT,
        "topics": [TRANSFER_TOPIC, address_topic(from_address), address_topic(to_address)],
        "data": amount.to_bytes(32, "big"),
        "blockNumber": block_number,
        "logIndex": log_index,
    }


def make_chain(
    assets: int = 1_050 * ONE_ETH,
    supply: int = 1_000 * ONE_ETH,
    head: int = 5_000,
    logs: list[dict] | None = None,
    block_times: Mapping[int, int] | None = None,
) -> AsyncMock:
    """Mock ChainReader serving fixed totals, logs and block timestamps."""
    chain = AsyncMock(spec=ChainReader)
    totals = {TOTAL_ASSETS: assets, TOTAL_SUPPLY: supply}
    chain.call_uint.side_effect = lambda method, **kwargs: totals[method]
    chain.latest_block_number.return_value = head
    chain.get_logs.return_value = logs or []
    times = dict(block_times or {})

    async def _block_timestamp(block_number: int) -> int:
        if block_number not in times:
            raise ConnectivityError(f"block {block_number} unavailable")
        return times[block_number]

    chain.get_block_timestamp.side_effect = _block_timestamp
    return chain


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (SQLite backend, no explorer)."""
    return AppSettings(
        log_level="DEBUG",
        chain=ChainSettings(rpc_url="http://localhost:8545", vault_address=VAULT),
        cache=CacheSettings(backend="sqlite"),
        backfill=BackfillSettings(),
    )


@pytest_asyncio.fixture
async def sqlite_store(tmp_path) -> SqliteCacheStore:
    """Connected SQLite store in a temporary directory."""
    store = SqliteCacheStore(str(tmp_path / "rates.db"))
    await store.connect()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def rate_cache(sqlite_store: SqliteCacheStore) -> RateCache:
    """RateCache over a fresh SQLite store."""
    return RateCache(sqlite_store, CacheSettings())
