"""Hourly time-series cache for vault exchange-rate samples.

Holds a single "latest" sample plus a history of at most one sample per
hour bucket, scored by the hour-aligned timestamp. Retention is enforced
by an explicit cleanup call from the writers, not by TTLs.
"""

from dataclasses import replace

from vaultrate.cache.store import CacheStore
from vaultrate.config import CacheSettings
from vaultrate.exceptions import DecodeError, NotFoundError
from vaultrate.logging import get_logger
from vaultrate.models import RateSample, align_to_hour

logger = get_logger(__name__)


class RateCache:
    """Typed read/write API over a CacheStore.

    Both the live sampler and the backfill engine write through this class;
    the HTTP layer only reads from it.
    """

    def __init__(self, store: CacheStore, settings: CacheSettings | None = None) -> None:
        settings = settings or CacheSettings()
        self._store = store
        self._latest_key = settings.latest_key
        self._history_key = settings.history_key

    @property
    def store(self) -> CacheStore:
        return self._store

    async def set_latest(self, sample: RateSample) -> None:
        await self._store.set_value(self._latest_key, sample.to_json())

    async def get_latest(self) -> RateSample:
        """Return the latest sample.

        Raises:
            NotFoundError: Nothing has been sampled yet.
            DecodeError: The stored payload is malformed.
        """
        raw = await self._store.get_value(self._latest_key)
        if raw is None:
            raise NotFoundError("no latest rate cached")
        return RateSample.from_json(raw)

    async def add_historical(self, sample: RateSample) -> RateSample:
        """Store sample in its hour bucket, replacing whatever that bucket held.

        The sample's timestamp is rewritten to the start of its hour. Returns
        the sample as stored.
        """
        hour = align_to_hour(sample.timestamp)
        stored = replace(sample, timestamp=hour)
        await self._store.replace_at_score(self._history_key, stored.to_json(), hour)
        return stored

    async def get_range(self, from_ts: int, to_ts: int) -> list[RateSample]:
        """Return one sample per hour scored within [from_ts, to_ts], ascending.

        When a bucket holds more than one entry the last one read wins.
        """
        members = await self._store.range_by_score(self._history_key, from_ts, to_ts)
        by_hour: dict[int, RateSample] = {}
        for member in members:
            try:
                sample = RateSample.from_json(member)
            except DecodeError:
                logger.warning("skipping_malformed_history_entry", member=member)
                continue
            by_hour[sample.timestamp] = sample

        samples = sorted(by_hour.values(), key=lambda s: s.timestamp)
        logger.debug(
            "history_range_read",
            points=len(samples),
            from_ts=from_ts,
            to_ts=to_ts,
        )
        return samples

    async def cleanup(self, cutoff: int) -> int:
        """Drop history entries scored strictly below cutoff."""
        removed = await self._store.remove_below_score(self._history_key, cutoff)
        if removed:
            logger.debug("history_cleaned_up", removed=removed, cutoff=cutoff)
        return removed

    async def get_last_timestamp(self) -> int:
        """Return the newest history score, or 0 when the history is empty."""
        last = await self._store.last_scored(self._history_key)
        return last[1] if last is not None else 0
