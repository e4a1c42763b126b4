"""
Indexer orchestrator.

Validates the dependency graph, initializes indexers parents-first, runs
one loop task per indexer and stops them cooperatively.
"""

import asyncio
from collections import deque

from loguru import logger

from tvl.utils.exceptions import ConfigurationError

from .base import Indexer, IndexerStatus


class IndexerOrchestrator:
    """
    Owner of every indexer loop.

    Usage:
        orchestrator = IndexerOrchestrator()
        orchestrator.register(clock)
        orchestrator.register(block_timestamps)
        await orchestrator.start()
        ...
        await orchestrator.stop()
    """

    def __init__(self) -> None:
        self._indexers: dict[str, Indexer] = {}
        self._order: list[Indexer] = []
        self._tasks: dict[str, asyncio.Task] = {}
        self.stop_event = asyncio.Event()
        self.started = False

    @property
    def indexers(self) -> list[Indexer]:
        return list(self._indexers.values())

    def get(self, indexer_id: str) -> Indexer:
        return self._indexers[indexer_id]

    def register(self, indexer: Indexer) -> None:
        """
        Add an indexer to the graph.

        Raises:
            ConfigurationError: If the identity is already registered
        """
        if self.started:
            raise ConfigurationError("Cannot register indexers after start")
        if indexer.indexer_id in self._indexers:
            raise ConfigurationError(f"Duplicate indexer id: {indexer.indexer_id}")
        self._indexers[indexer.indexer_id] = indexer

    def register_all(self, indexers: list[Indexer]) -> None:
        for indexer in indexers:
            self.register(indexer)

    def validate(self) -> list[Indexer]:
        """
        Check the graph and return indexers in topological order.

        Raises:
            ConfigurationError: On unknown parents or dependency cycles
        """
        children: dict[str, list[str]] = {i: [] for i in self._indexers}
        in_degree: dict[str, int] = {i: 0 for i in self._indexers}

        for indexer in self._indexers.values():
            for parent in indexer.parents:
                registered = self._indexers.get(parent.indexer_id)
                if registered is None:
                    raise ConfigurationError(
                        f"Indexer {indexer.indexer_id} depends on unknown "
                        f"indexer {parent.indexer_id}"
                    )
                if registered is not parent:
                    raise ConfigurationError(
                        f"Indexer {indexer.indexer_id} depends on an unregistered "
                        f"instance of {parent.indexer_id}"
                    )
                children[parent.indexer_id].append(indexer.indexer_id)
                in_degree[indexer.indexer_id] += 1

        # Kahn's algorithm, registration order as tie-breaker
        queue = deque(i for i, degree in in_degree.items() if degree == 0)
        order: list[Indexer] = []
        while queue:
            current = queue.popleft()
            order.append(self._indexers[current])
            for child in children[current]:
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    queue.append(child)

        if len(order) != len(self._indexers):
            cyclic = sorted(i for i, degree in in_degree.items() if degree > 0)
            raise ConfigurationError(f"Dependency cycle between indexers: {', '.join(cyclic)}")

        return order

    async def initialize_all(self) -> list[Indexer]:
        """
        Validate the graph and initialize every indexer, parents first.

        Returns:
            Indexers in topological order

        Raises:
            ConfigurationError: If the graph is invalid
        """
        self._order = self.validate()
        for indexer in self._order:
            await indexer.initialize()
        return self._order

    async def start(self) -> None:
        """
        Validate, initialize and start every indexer.

        Raises:
            ConfigurationError: If the graph is invalid; nothing is started
        """
        if self.started:
            return

        await self.initialize_all()
        self.stop_event.clear()

        self.started = True
        for indexer in self._order:
            self._tasks[indexer.indexer_id] = asyncio.create_task(
                indexer.run(self.stop_event),
                name=f"indexer:{indexer.indexer_id}",
            )

        logger.success(f"[Orchestrator] Started {len(self._order)} indexers")

    async def stop(self) -> None:
        """Signal every loop to stop and wait until all have exited."""
        if not self._tasks:
            return

        logger.info(f"[Orchestrator] Stopping {len(self._tasks)} indexers...")
        self.stop_event.set()

        results = await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        for indexer_id, result in zip(self._tasks, results):
            if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                logger.error(f"[Orchestrator] Indexer {indexer_id} exited with error: {result}")

        self._tasks.clear()
        self.started = False
        logger.info("[Orchestrator] All indexers stopped")

    async def wait(self) -> None:
        """Wait until stop() is requested."""
        await self.stop_event.wait()

    def status(self) -> list[IndexerStatus]:
        """Snapshot of every indexer, parents first."""
        order = self._order or list(self._indexers.values())
        return [indexer.status() for indexer in order]

    def is_healthy(self) -> bool:
        """All loops running and none has crashed."""
        if not self.started:
            return False
        return all(not task.done() for task in self._tasks.values())
