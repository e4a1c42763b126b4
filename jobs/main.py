"""
Indexer main entry point.

Loads configuration, builds the indexer graph and runs it until SIGINT or
SIGTERM, then stops every loop and releases connections.
"""

import asyncio
import signal
import sys
import warnings


# Suppress eth_utils network warnings about invalid ChainId
warnings.filterwarnings(
    "ignore",
    message=".*does not have a valid ChainId.*",
    category=UserWarning,
)

from loguru import logger  # noqa: E402

from jobs.health import start_health_server, stop_health_server  # noqa: E402
from tvl.config.database import async_engine, async_session_maker  # noqa: E402
from tvl.config.projects import load_tvl_config  # noqa: E402
from tvl.config.settings import settings  # noqa: E402
from tvl.repositories.record_store import RecordStore  # noqa: E402
from tvl.services.tvl_module import build_tvl_graph  # noqa: E402
from tvl.utils.logging import setup_logging  # noqa: E402


async def main() -> None:
    """Build and run the indexer graph."""
    setup_logging(settings)

    config = load_tvl_config(settings.tvl_config_path)
    store = RecordStore(async_session_maker)
    graph = build_tvl_graph(config, settings, store)
    orchestrator = graph.orchestrator

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, orchestrator.stop_event.set)

    runner = None
    try:
        await orchestrator.start()

        try:
            runner = await start_health_server(
                orchestrator, port=settings.health_check_port
            )
        except OSError as e:
            logger.warning(f"Failed to start health check server: {e}")

        await orchestrator.wait()
        logger.info("Shutdown signal received")
    finally:
        await orchestrator.stop()
        if runner is not None:
            await stop_health_server(runner)
        await graph.close()
        await async_engine.dispose()
        logger.info("Graceful shutdown complete")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Indexer stopped by user (KeyboardInterrupt)")
    except Exception as e:
        logger.exception(f"Indexer crashed: {e}")
        sys.exit(1)
