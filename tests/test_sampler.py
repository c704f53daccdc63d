"""Tests for RateSampler."""

import asyncio
from unittest.mock import AsyncMock, call

import pytest

from vaultrate.backfill.point_in_time import PointInTimeFetcher
from vaultrate.cache.rate_cache import RateCache
from vaultrate.chain.abi import TOTAL_ASSETS, TOTAL_SUPPLY
from vaultrate.config import SamplerSettings
from vaultrate.exceptions import ConnectivityError
from vaultrate.sampler import RateSampler

from conftest import NOW_HOUR, ONE_ETH, make_chain


class _Clock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestSampleOnce:
    @pytest.mark.asyncio
    async def test_writes_latest_and_current_hour(self, rate_cache: RateCache) -> None:
        sampler = RateSampler(make_chain(), rate_cache, clock=lambda: NOW_HOUR + 1_800)

        sample = await sampler.sample_once()

        assert sample is not None
        assert sample.timestamp == NOW_HOUR
        assert sample.rate == pytest.approx(1.05)
        assert await rate_cache.get_latest() == sample
        assert await rate_cache.get_range(0, NOW_HOUR + 3_600) == [sample]

    @pytest.mark.asyncio
    async def test_repeat_ticks_replace_hour_bucket(self, rate_cache: RateCache) -> None:
        clock = _Clock(NOW_HOUR + 5)
        sampler = RateSampler(make_chain(), rate_cache, clock=clock)
        await sampler.sample_once()

        clock.now = NOW_HOUR + 50
        sampler._chain = make_chain(assets=1_100 * ONE_ETH)
        await sampler.sample_once()

        history = await rate_cache.get_range(0, NOW_HOUR + 3_600)
        assert len(history) == 1
        assert history[0].rate == pytest.approx(1.1)

    @pytest.mark.asyncio
    async def test_zero_supply_yields_zero_rate(self, rate_cache: RateCache) -> None:
        sampler = RateSampler(make_chain(assets=5, supply=0), rate_cache, clock=lambda: NOW_HOUR)
        sample = await sampler.sample_once()
        assert sample is not None
        assert sample.rate == 0.0

    @pytest.mark.asyncio
    async def test_totals_read_at_one_block(self) -> None:
        chain = make_chain(head=7_777)
        sampler = RateSampler(chain, AsyncMock(spec=RateCache), clock=lambda: NOW_HOUR)

        await sampler.sample_once()

        assert chain.call_uint.await_args_list == [
            call(TOTAL_ASSETS, block=7_777),
            call(TOTAL_SUPPLY, block=7_777),
        ]

    @pytest.mark.asyncio
    async def test_head_read_failure_writes_nothing(self) -> None:
        chain = make_chain()
        chain.latest_block_number.side_effect = ConnectivityError("rpc down")
        cache = AsyncMock(spec=RateCache)
        sampler = RateSampler(chain, cache, clock=lambda: NOW_HOUR)

        assert await sampler.sample_once() is None
        chain.call_uint.assert_not_awaited()
        cache.set_latest.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_read_failure_writes_nothing(self) -> None:
        chain = make_chain()
        chain.call_uint.side_effect = ConnectivityError("rpc down")
        cache = AsyncMock(spec=RateCache)
        sampler = RateSampler(chain, cache, clock=lambda: NOW_HOUR)

        assert await sampler.sample_once() is None
        cache.set_latest.assert_not_awaited()
        cache.add_historical.assert_not_awaited()
        cache.cleanup.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cleanup_uses_retention(self) -> None:
        cache = AsyncMock(spec=RateCache)
        sampler = RateSampler(
            make_chain(),
            cache,
            SamplerSettings(retention_hours=6),
            clock=lambda: NOW_HOUR + 100,
        )

        await sampler.sample_once()

        cache.cleanup.assert_awaited_once_with(NOW_HOUR + 100 - 6 * 3_600)

    @pytest.mark.asyncio
    async def test_write_failure_is_contained(self) -> None:
        cache = AsyncMock(spec=RateCache)
        cache.set_latest.side_effect = ConnectivityError("redis down")
        sampler = RateSampler(make_chain(), cache, clock=lambda: NOW_HOUR)

        sample = await sampler.sample_once()

        assert sample is not None
        cache.add_historical.assert_not_awaited()


class TestCompletedHour:
    @pytest.mark.asyncio
    async def test_records_each_completed_hour_once(self) -> None:
        fetcher = AsyncMock(spec=PointInTimeFetcher)
        clock = _Clock(NOW_HOUR + 10)
        sampler = RateSampler(
            make_chain(), AsyncMock(spec=RateCache), fetcher=fetcher, clock=clock
        )

        await sampler._record_completed_hour()
        clock.now = NOW_HOUR + 900
        await sampler._record_completed_hour()
        clock.now = NOW_HOUR + 3_600 + 1
        await sampler._record_completed_hour()

        assert [c.args[0] for c in fetcher.record_hour.await_args_list] == [
            NOW_HOUR - 3_600,
            NOW_HOUR,
        ]

    @pytest.mark.asyncio
    async def test_no_fetcher_is_noop(self) -> None:
        sampler = RateSampler(make_chain(), AsyncMock(spec=RateCache), clock=lambda: NOW_HOUR)
        await sampler._record_completed_hour()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_stop(self, rate_cache: RateCache) -> None:
        sampler = RateSampler(
            make_chain(),
            rate_cache,
            SamplerSettings(interval=0.01),
            clock=lambda: NOW_HOUR,
        )

        await sampler.start()
        assert sampler.is_running
        await asyncio.sleep(0.05)
        await sampler.stop()

        assert not sampler.is_running
        assert (await rate_cache.get_latest()).timestamp == NOW_HOUR

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, rate_cache: RateCache) -> None:
        sampler = RateSampler(
            make_chain(), rate_cache, SamplerSettings(interval=60), clock=lambda: NOW_HOUR
        )
        await sampler.start()
        task = sampler._task
        await sampler.start()
        assert sampler._task is task
        await sampler.stop()
