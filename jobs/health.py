"""
Health check server for indexer monitoring.

Endpoints:
    /health              status of every indexer, 503 if a loop is down
    /indexers/{id}       status of one indexer
    /readiness           200 once every loop runs
    /liveness            200 while the process answers
"""

import asyncio
import time

from aiohttp import web
from loguru import logger

from tvl.services.indexers.base import CATCHING_UP
from tvl.services.indexers.orchestrator import IndexerOrchestrator

ORCHESTRATOR_KEY = web.AppKey("orchestrator", IndexerOrchestrator)
STARTED_AT_KEY = web.AppKey("started_at", float)


def _not_initialized() -> web.Response:
    return web.json_response(
        {"status": "unhealthy", "error": "Orchestrator not initialized"},
        status=503,
    )


async def health_handler(request: web.Request) -> web.Response:
    """
    Health check endpoint.

    Returns:
        JSON response with per-indexer cursor, state and last error
    """
    orchestrator = request.app.get(ORCHESTRATOR_KEY)
    if orchestrator is None:
        return _not_initialized()

    statuses = [s.to_dict() for s in orchestrator.status()]
    healthy = orchestrator.is_healthy()
    return web.json_response(
        {
            "status": "healthy" if healthy else "stopped",
            "indexers_count": len(statuses),
            "catching_up": sum(1 for s in statuses if s["state"] == CATCHING_UP),
            "failing": sum(1 for s in statuses if s["last_error"]),
            "indexers": statuses,
        },
        status=200 if healthy else 503,
    )


async def indexer_handler(request: web.Request) -> web.Response:
    """Status of a single indexer, 404 for an unknown id."""
    orchestrator = request.app.get(ORCHESTRATOR_KEY)
    if orchestrator is None:
        return _not_initialized()

    indexer_id = request.match_info["indexer_id"]
    for status in orchestrator.status():
        if status.indexer_id == indexer_id:
            return web.json_response(status.to_dict())

    return web.json_response({"error": f"Unknown indexer: {indexer_id}"}, status=404)


async def readiness_handler(request: web.Request) -> web.Response:
    orchestrator = request.app.get(ORCHESTRATOR_KEY)
    ready = orchestrator is not None and orchestrator.is_healthy()
    return web.json_response(
        {"status": "ready" if ready else "not_ready", "ready": ready},
        status=200 if ready else 503,
    )


async def liveness_handler(request: web.Request) -> web.Response:
    started_at = request.app.get(STARTED_AT_KEY, time.monotonic())
    return web.json_response(
        {
            "status": "alive",
            "alive": True,
            "uptime_seconds": int(time.monotonic() - started_at),
        }
    )


def create_health_app(orchestrator: IndexerOrchestrator) -> web.Application:
    """Application with every health route bound to one orchestrator."""
    app = web.Application()
    app[ORCHESTRATOR_KEY] = orchestrator
    app[STARTED_AT_KEY] = time.monotonic()
    app.router.add_get("/health", health_handler)
    app.router.add_get("/indexers/{indexer_id}", indexer_handler)
    app.router.add_get("/readiness", readiness_handler)
    app.router.add_get("/liveness", liveness_handler)
    return app


async def start_health_server(
    orchestrator: IndexerOrchestrator,
    host: str = "0.0.0.0",
    port: int = 8080,
) -> web.AppRunner:
    """
    Serve health endpoints in the running event loop.

    Args:
        orchestrator: Orchestrator whose status is reported
        host: Host to bind to
        port: Port to bind to

    Returns:
        AppRunner to pass to stop_health_server()

    Raises:
        OSError: If the port cannot be bound
    """
    runner = web.AppRunner(create_health_app(orchestrator), access_log=None)
    await runner.setup()
    try:
        await web.TCPSite(runner, host, port).start()
    except OSError:
        await runner.cleanup()
        raise

    logger.info(f"Health check server listening on http://{host}:{port}/health")
    return runner


async def stop_health_server(runner: web.AppRunner, timeout: int = 5) -> None:
    """Stop the health server, giving up after timeout seconds."""
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
        logger.info("Health check server stopped")
    except TimeoutError:
        logger.warning(f"Health check server cleanup timed out after {timeout}s")
