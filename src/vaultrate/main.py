"""Entry point for the vault rate tracker.

Wires all components together, optionally embeds the FastAPI API, and starts
the sampler and backfill tasks. When the API is enabled (default), the
background tasks and the server share a single asyncio event loop via
uvicorn's programmatic API and FastAPI's lifespan context manager.

Handles SIGINT/SIGTERM for graceful shutdown.

Component wiring order (in _build_components):
1. Chain reader (web3 JSON-RPC)
2. Cache store (Redis or SQLite) and RateCache
3. Explorer client and PointInTimeFetcher (optional)
4. RateSampler
5. EventBackfillEngine (optional)
"""

import asyncio
import signal
import sys
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from vaultrate.backfill.engine import EventBackfillEngine
from vaultrate.backfill.point_in_time import PointInTimeFetcher
from vaultrate.cache.rate_cache import RateCache
from vaultrate.cache.redis_store import RedisCacheStore
from vaultrate.cache.sqlite_store import SqliteCacheStore
from vaultrate.cache.store import CacheStore
from vaultrate.chain.explorer import ExplorerClient
from vaultrate.chain.web3_reader import Web3ChainReader
from vaultrate.config import AppSettings
from vaultrate.exceptions import RateTrackerError
from vaultrate.logging import bind_tracker_context, get_logger, setup_logging
from vaultrate.models import HOUR_SECONDS
from vaultrate.sampler import RateSampler


def _build_store(settings: AppSettings) -> CacheStore:
    if settings.cache.backend == "sqlite":
        return SqliteCacheStore(settings.cache.sqlite_path)
    return RedisCacheStore(settings.cache)


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all components from settings.

    Note: Does NOT connect anything -- that happens in _connect().

    Returns:
        Dict mapping component names to instances. ``explorer``, ``fetcher``
        and ``backfill`` are None when disabled.
    """
    chain = Web3ChainReader(settings.chain)
    vault = chain.vault_address
    store = _build_store(settings)
    rate_cache = RateCache(store, settings.cache)
    retention_seconds = settings.sampler.retention_hours * HOUR_SECONDS

    explorer = None
    fetcher = None
    if settings.explorer.enabled:
        explorer = ExplorerClient(settings.explorer)
        if settings.sampler.record_completed_hours:
            fetcher = PointInTimeFetcher(
                explorer,
                chain,
                rate_cache,
                vault,
                decimals=settings.chain.decimals,
                retention_seconds=retention_seconds,
            )

    sampler = RateSampler(
        chain,
        rate_cache,
        settings.sampler,
        decimals=settings.chain.decimals,
        fetcher=fetcher,
    )

    backfill = None
    if settings.backfill.enabled:
        backfill = EventBackfillEngine(
            chain,
            rate_cache,
            vault,
            settings.backfill,
            decimals=settings.chain.decimals,
        )

    return {
        "chain": chain,
        "store": store,
        "rate_cache": rate_cache,
        "explorer": explorer,
        "fetcher": fetcher,
        "sampler": sampler,
        "backfill": backfill,
    }


async def _connect(components: dict[str, Any]) -> None:
    """Establish the chain and cache connections. Failure here is fatal."""
    await components["chain"].connect()
    await components["store"].ping()
    if components["explorer"] is not None:
        await components["explorer"].connect()


async def _disconnect(components: dict[str, Any]) -> None:
    if components["explorer"] is not None:
        await components["explorer"].close()
    await components["store"].close()
    await components["chain"].close()


async def _start_tasks(components: dict[str, Any]) -> None:
    if components["backfill"] is not None:
        await components["backfill"].start()
    await components["sampler"].start()


async def _stop_tasks(components: dict[str, Any]) -> None:
    await components["sampler"].stop()
    if components["backfill"] is not None:
        await components["backfill"].stop()


def _setup_signal_handlers(stop_event: asyncio.Event) -> None:
    """Register SIGINT/SIGTERM to set stop_event.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("vaultrate.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the sampler and backfill with the server, stop them on shutdown."""
    logger = get_logger("vaultrate.main")
    components = app.state.components

    await _start_tasks(components)
    logger.info("lifespan_started")

    yield

    await _stop_tasks(components)
    await _disconnect(components)
    logger.info("vault_rate_tracker_stopped")


async def run() -> None:
    """Run the vault rate tracker.

    When the API is enabled (API_ENABLED=true, the default) the sampler and
    backfill run inside the FastAPI lifespan under uvicorn. Otherwise they
    run directly until SIGINT/SIGTERM.
    """
    settings = AppSettings()
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("vaultrate.main")

    if not settings.chain.rpc_url:
        logger.critical("chain_rpc_url_not_set")
        sys.exit(1)

    components = _build_components(settings)
    bind_tracker_context(components["chain"].vault_address, settings.cache.backend)
    try:
        await _connect(components)
    except RateTrackerError as exc:
        logger.critical("startup_connection_failed", error=str(exc))
        await _disconnect(components)
        sys.exit(1)

    if settings.api.enabled:
        from vaultrate.api.app import create_app

        app = create_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components
        app.state.rate_cache = components["rate_cache"]

        logger.info(
            "starting_with_api",
            host=settings.api.host,
            port=settings.api.port,
            cache_backend=settings.cache.backend,
        )

        config = uvicorn.Config(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        stop_event = asyncio.Event()
        _setup_signal_handlers(stop_event)

        logger.info(
            "starting_without_api",
            interval=settings.sampler.interval,
            cache_backend=settings.cache.backend,
        )

        try:
            await _start_tasks(components)
            await stop_event.wait()
        finally:
            await _stop_tasks(components)
            await _disconnect(components)
            logger.info("vault_rate_tracker_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
