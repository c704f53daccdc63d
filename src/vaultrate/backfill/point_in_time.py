"""Point-in-time historical reads for a single hour.

Secondary path next to the event backfill: resolves the block preceding an
hour through the block explorer and reads the vault totals at that block via
the explorer's eth_call proxy. Also resolves the vault's ERC-1967
implementation address for direct calls at a historical block.
"""

from web3 import Web3

from vaultrate.cache.rate_cache import RateCache
from vaultrate.chain.abi import IMPLEMENTATION_SLOT, TOTAL_ASSETS, TOTAL_SUPPLY
from vaultrate.chain.explorer import ExplorerClient
from vaultrate.chain.reader import BlockTag, ChainReader
from vaultrate.exceptions import DecodeError, RateTrackerError
from vaultrate.logging import get_logger
from vaultrate.models import DAY_SECONDS, HOUR_SECONDS, BalanceState, RateSample, align_to_hour

logger = get_logger(__name__)


class PointInTimeFetcher:
    """Fetches and records vault state as of the start of a given hour."""

    def __init__(
        self,
        explorer: ExplorerClient,
        chain: ChainReader,
        cache: RateCache,
        vault_address: str,
        decimals: int = 18,
        retention_seconds: int = DAY_SECONDS,
    ) -> None:
        self._explorer = explorer
        self._chain = chain
        self._cache = cache
        self._vault_address = vault_address
        self._decimals = decimals
        self._retention_seconds = retention_seconds

    async def fetch_hour(self, hour_ts: int) -> RateSample:
        """Read totals at the last block before hour_ts and build its sample.

        Raises:
            ConnectivityError: Explorer unreachable or answered with an error.
            DecodeError: Explorer result could not be decoded.
        """
        hour = align_to_hour(hour_ts)
        block = await self._explorer.get_block_number_by_time(hour, closest="before")
        state = BalanceState(
            total_assets=await self._explorer.call_uint_at_block(
                self._vault_address, TOTAL_ASSETS, block
            ),
            total_supply=await self._explorer.call_uint_at_block(
                self._vault_address, TOTAL_SUPPLY, block
            ),
        )
        logger.debug(
            "point_in_time_state",
            hour=hour,
            block=block,
            assets=str(state.total_assets),
            supply=str(state.total_supply),
        )
        return state.to_sample(hour, self._decimals)

    async def record_hour(self, hour_ts: int) -> bool:
        """Fetch one hour and write it to the cache. Never raises RateTrackerError."""
        hour = align_to_hour(hour_ts)
        try:
            sample = await self.fetch_hour(hour)
            await self._cache.add_historical(sample)
            await self._cache.cleanup(hour + HOUR_SECONDS - self._retention_seconds)
        except RateTrackerError as exc:
            logger.warning("hourly_historical_failed", hour=hour, error=str(exc))
            return False
        logger.info("hourly_historical_recorded", hour=hour, rate=sample.rate)
        return True

    async def resolve_implementation(self, block: BlockTag) -> str:
        """Return the implementation address stored in the vault's ERC-1967 slot."""
        raw = await self._chain.get_storage_at(self._vault_address, IMPLEMENTATION_SLOT, block)
        if len(raw) < 32:
            raise DecodeError(f"implementation slot returned {len(raw)} bytes")
        return Web3.to_checksum_address(raw[-20:])

    async def fetch_via_implementation(self, method: str, block: int) -> int | None:
        """Call method on the vault's implementation contract at block.

        Returns None when the implementation or the call cannot be resolved.
        """
        try:
            implementation = await self.resolve_implementation(block)
            return await self._chain.call_uint(method, address=implementation, block=block)
        except RateTrackerError as exc:
            logger.warning(
                "implementation_call_failed",
                method=method,
                block=block,
                error=str(exc),
            )
            return None
