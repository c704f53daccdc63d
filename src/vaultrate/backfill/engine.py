"""Event-log backfill -- rebuilds the last 24 hourly samples at startup.

Historical point-in-time calls are slow and often unavailable on plain RPC
nodes, so the hourly history is reconstructed from the present instead:

1. Read totalAssets/totalSupply at the head block (ground truth).
2. Fetch the vault's logs over the ``block_window`` blocks ending at that head.
3. Resolve each referenced block's timestamp once.
4. Walk the Transfer events newest-first. Every hour newer than an event
   keeps the running state; the event is then undone (mint subtracts,
   burn adds, plain transfers are neutral).
5. Hours older than the oldest event keep the final running state.

Logs older than the block window are out of reach, so their effect on
earlier hours is not reconstructed.
"""

import asyncio
import time
from collections.abc import Callable, Sequence
from dataclasses import replace

import structlog

from vaultrate.cache.rate_cache import RateCache
from vaultrate.chain.abi import TOTAL_ASSETS, TOTAL_SUPPLY
from vaultrate.chain.events import decode_transfers
from vaultrate.chain.reader import ChainReader
from vaultrate.config import BackfillSettings
from vaultrate.exceptions import PartialReconstructionError, RateTrackerError
from vaultrate.logging import get_logger
from vaultrate.models import HOUR_SECONDS, BalanceState, TransferEvent, align_to_hour

logger = get_logger(__name__)


def reconstruct_hourly(
    current: BalanceState,
    events: Sequence[TransferEvent],
    now_hour: int,
    hours: int = 24,
) -> list[tuple[int, BalanceState]]:
    """Replay timestamped events backward from ``current``.

    Args:
        current: Vault totals observed now; every event in ``events`` is
            assumed to be already reflected in it.
        events: Transfer events with ``block_timestamp`` resolved, in any order.
        now_hour: Hour bucket of "now"; the newest reconstructed hour.
        hours: Number of hour buckets to produce.

    Returns:
        ``hours`` (hour, state) pairs ascending by hour, ending at now_hour.

    Raises:
        ValueError: An event has no block timestamp.
    """
    for event in events:
        if event.block_timestamp is None:
            raise ValueError(
                f"transfer in block {event.block_number} has no block timestamp"
            )

    # slots[i] holds the state for hour now_hour - i * HOUR_SECONDS
    slots: list[BalanceState | None] = [None] * hours
    ordered = sorted(
        events, key=lambda e: (e.block_timestamp, e.block_number, e.log_index)
    )

    state = current
    next_offset = 0
    for event in reversed(ordered):
        event_hour = align_to_hour(event.block_timestamp)  # type: ignore[arg-type]
        event_offset = (now_hour - event_hour) // HOUR_SECONDS
        while next_offset < min(event_offset, hours):
            slots[next_offset] = state
            next_offset += 1
        if event_offset >= hours:
            break
        state = state.reverse(event)

    while next_offset < hours:
        slots[next_offset] = state
        next_offset += 1

    return [
        (now_hour - offset * HOUR_SECONDS, slots[offset])  # type: ignore[misc]
        for offset in reversed(range(hours))
    ]


class EventBackfillEngine:
    """One-shot background reconstruction of the hourly series.

    Args:
        chain: Chain reader used for current state, logs and block times.
        cache: Rate cache the reconstructed hours are written to.
        vault_address: Contract whose Transfer logs are replayed.
        settings: Block window, horizon and strictness.
        decimals: Token decimals for formatting magnitudes.
        clock: Source of "now" in epoch seconds.
    """

    def __init__(
        self,
        chain: ChainReader,
        cache: RateCache,
        vault_address: str,
        settings: BackfillSettings | None = None,
        decimals: int = 18,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._chain = chain
        self._cache = cache
        self._vault_address = vault_address
        self._settings = settings or BackfillSettings()
        self._decimals = decimals
        self._clock = clock
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._hours_written: int | None = None

    @property
    def hours_written(self) -> int | None:
        """Hours written by the last completed run, or None if none completed."""
        return self._hours_written

    async def start(self) -> None:
        """Launch run() in the background."""
        if self._task is not None and not self._task.done():
            logger.warning("backfill_already_running")
            return
        self._task = asyncio.create_task(self._run_guarded())
        logger.info("backfill_started", block_window=self._settings.block_window)

    async def stop(self) -> None:
        """Cancel an in-flight run."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("backfill_stopped")

    async def _run_guarded(self) -> None:
        try:
            await self.run()
        except asyncio.CancelledError:
            logger.info("backfill_cancelled")
            raise
        except RateTrackerError as exc:
            logger.error("backfill_failed", error=str(exc))
        except Exception:
            logger.error("backfill_unexpected_error", exc_info=True)

    async def run(self) -> int:
        """Reconstruct and store the hourly series, returning hours written.

        Raises:
            ConnectivityError: Current state, head block or logs unavailable.
            PartialReconstructionError: A block time could not be resolved
                and abort_on_unresolved_block is set.
        """
        with structlog.contextvars.bound_contextvars(component="backfill"):
            now_hour = align_to_hour(int(self._clock()))
            hours = self._settings.hours

            # totals are read at the block the log window ends at
            head = await self._chain.latest_block_number()
            current = BalanceState(
                total_assets=await self._chain.call_uint(TOTAL_ASSETS, block=head),
                total_supply=await self._chain.call_uint(TOTAL_SUPPLY, block=head),
            )
            logger.info(
                "backfill_ground_truth",
                block=head,
                assets=str(current.total_assets),
                supply=str(current.total_supply),
            )

            from_block = max(head - self._settings.block_window, 0)
            logs = await self._chain.get_logs(self._vault_address, from_block, head)
            events = decode_transfers(logs)
            logger.info(
                "backfill_logs_fetched",
                from_block=from_block,
                to_block=head,
                logs=len(logs),
                transfers=len(events),
            )

            block_times = await self._resolve_block_times(
                {event.block_number for event in events}
            )
            timed = [
                replace(event, block_timestamp=block_times[event.block_number])
                for event in events
                if event.block_number in block_times
            ]
            dropped = len(events) - len(timed)
            if dropped:
                if self._settings.abort_on_unresolved_block:
                    raise PartialReconstructionError(
                        f"{dropped} transfer(s) in blocks with unresolved timestamps"
                    )
                logger.warning("backfill_transfers_dropped", count=dropped)

            series = reconstruct_hourly(current, timed, now_hour, hours)

            written = 0
            for hour, state in series:
                try:
                    await self._cache.add_historical(state.to_sample(hour, self._decimals))
                except RateTrackerError as exc:
                    logger.warning("backfill_hour_write_failed", hour=hour, error=str(exc))
                    continue
                written += 1
                logger.debug(
                    "backfill_hour_written",
                    hour=hour,
                    assets=str(state.total_assets),
                    supply=str(state.total_supply),
                )

            try:
                await self._cache.cleanup(now_hour - hours * HOUR_SECONDS)
            except RateTrackerError as exc:
                logger.warning("backfill_cleanup_failed", error=str(exc))

            self._hours_written = written
            logger.info("backfill_complete", hours_written=written, dropped=dropped)
            return written

    async def _resolve_block_times(self, block_numbers: set[int]) -> dict[int, int]:
        """Look up each block's timestamp once; failed lookups are left out."""
        block_times: dict[int, int] = {}
        for block_number in sorted(block_numbers):
            try:
                block_times[block_number] = await self._chain.get_block_timestamp(block_number)
            except RateTrackerError as exc:
                logger.warning(
                    "backfill_block_time_unresolved",
                    block=block_number,
                    error=str(exc),
                )
                continue
            if len(block_times) % 10 == 0:
                logger.debug("backfill_block_times_progress", resolved=len(block_times))
        return block_times
