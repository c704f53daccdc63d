"""Live rate sampler -- polls the vault totals and feeds the rate cache.

Each tick reads totalAssets and totalSupply at one head block, stores
the resulting sample as the latest value and in the current hour bucket, and
trims the history to the retention window. A failed chain read skips the
tick without writing anything; the next tick starts from scratch.
"""

import asyncio
import time
from collections.abc import Callable

from vaultrate.backfill.point_in_time import PointInTimeFetcher
from vaultrate.cache.rate_cache import RateCache
from vaultrate.chain.abi import TOTAL_ASSETS, TOTAL_SUPPLY
from vaultrate.chain.reader import ChainReader
from vaultrate.config import SamplerSettings
from vaultrate.exceptions import RateTrackerError
from vaultrate.logging import get_logger
from vaultrate.models import HOUR_SECONDS, BalanceState, RateSample, align_to_hour

logger = get_logger(__name__)


class RateSampler:
    """Periodic sampler running as a supervised asyncio task.

    When a PointInTimeFetcher is supplied, each newly completed hour is also
    recorded from the state at the block preceding its start.
    """

    def __init__(
        self,
        chain: ChainReader,
        cache: RateCache,
        settings: SamplerSettings | None = None,
        decimals: int = 18,
        fetcher: PointInTimeFetcher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._chain = chain
        self._cache = cache
        self._settings = settings or SamplerSettings()
        self._decimals = decimals
        self._fetcher = fetcher
        self._clock = clock
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._last_completed_hour = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Begin sampling in the background."""
        if self._running:
            logger.warning("rate_sampler_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._sample_loop())
        logger.info("rate_sampler_started", interval=self._settings.interval)

    async def stop(self) -> None:
        """Stop the sampler and wait for the loop to exit."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("rate_sampler_stopped")

    async def _sample_loop(self) -> None:
        while self._running:
            try:
                await self.sample_once()
                await self._record_completed_hour()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("rate_sampler_tick_error", exc_info=True)
            if self._running:
                await asyncio.sleep(self._settings.interval)

    async def sample_once(self) -> RateSample | None:
        """Take one sample. Returns None when the chain read failed."""
        now = int(self._clock())
        try:
            # both totals come from one block
            block = await self._chain.latest_block_number()
            state = BalanceState(
                total_assets=await self._chain.call_uint(TOTAL_ASSETS, block=block),
                total_supply=await self._chain.call_uint(TOTAL_SUPPLY, block=block),
            )
        except RateTrackerError as exc:
            logger.warning("rate_sample_read_failed", error=str(exc))
            return None

        sample = state.to_sample(align_to_hour(now), self._decimals)
        try:
            await self._cache.set_latest(sample)
            await self._cache.add_historical(sample)
            await self._cache.cleanup(now - self._settings.retention_hours * HOUR_SECONDS)
        except RateTrackerError as exc:
            logger.warning("rate_sample_write_failed", error=str(exc))
            return sample

        logger.debug(
            "rate_sampled",
            block=block,
            rate=sample.rate,
            assets=sample.assets,
            total_supply=sample.total_supply,
        )
        return sample

    async def _record_completed_hour(self) -> None:
        """Record the hour that just closed, once per hour."""
        if self._fetcher is None:
            return
        completed = align_to_hour(int(self._clock())) - HOUR_SECONDS
        if completed <= self._last_completed_hour:
            return
        await self._fetcher.record_hour(completed)
        self._last_completed_hour = completed
