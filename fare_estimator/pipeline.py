"""Pipeline — wires the ingest, fare and writer stages to concrete adapters.

This is the only module besides the entry points that knows about
concrete transports and sinks.

With the in-memory transport the stages hand off end-of-stream: ingest
closes the trip queue when the point source runs dry, the fare stage closes
the fare queue once its workers finish, and the writer drains and exits.
With Redis every stage runs until cancelled.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable

import structlog

from fare_estimator.broker.memory import InMemoryBroker
from fare_estimator.broker.redis_queue import RedisQueue
from fare_estimator.core.aggregator import SegmentAggregator
from fare_estimator.core.batch import BatchBuffer
from fare_estimator.core.fare import FareCalculator
from fare_estimator.core.retry import RetryConfig
from fare_estimator.processors.fares import FareProcessor
from fare_estimator.processors.trips import TripProcessor
from fare_estimator.processors.writer import FareWriter
from fare_estimator.sources.csv_source import CsvPointSource
from fare_estimator.storage.csv_sink import CsvFareSink
from fare_estimator.storage.dead_letter import JsonlDeadLetterSink

if TYPE_CHECKING:
    from structlog.typing import FilteringBoundLogger

    from fare_estimator.broker.base import MessageQueue
    from fare_estimator.config import AppConfig
    from fare_estimator.core.models import GeoPoint
    from fare_estimator.core.stats import PipelineStats
    from fare_estimator.storage.base import FareSink


@dataclass
class PipelineResult:
    trips_published: int = 0
    fares_received: int = 0


class FarePipeline:
    """Runs the configured stages over one pair of trip/fare queues."""

    def __init__(
        self,
        config: AppConfig,
        stats: PipelineStats,
        trip_queue: MessageQueue,
        fare_queue: MessageQueue,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        self._config = config
        self._stats = stats
        self._trips = trip_queue
        self._fares = fare_queue
        self._root_log = logger or structlog.get_logger()
        self._log = self._root_log.bind(component="pipeline")
        self._points: Iterable[GeoPoint] | None = None
        self._sink: FareSink | None = None
        self._owned_sink: CsvFareSink | None = None
        self._prepared = False

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        stats: PipelineStats,
        logger: FilteringBoundLogger | None = None,
    ) -> FarePipeline:
        if config.broker.backend == "redis":
            timeout = config.broker.poll_timeout_seconds
            trips = RedisQueue.from_url(config.broker.redis_url, config.broker.trip_queue, timeout)
            fares = RedisQueue.from_url(config.broker.redis_url, config.broker.fare_queue, timeout)
        else:
            broker = InMemoryBroker(max_size=config.broker.max_size)
            trips = broker.queue(config.broker.trip_queue)
            fares = broker.queue(config.broker.fare_queue)
        return cls(config, stats, trips, fares, logger)

    @property
    def trip_queue(self) -> MessageQueue:
        return self._trips

    @property
    def fare_queue(self) -> MessageQueue:
        return self._fares

    def has_stage(self, stage: str) -> bool:
        return stage in self._config.pipeline.stages

    async def check_transport(self) -> None:
        """Fail fast if a networked transport is unreachable."""
        for queue in (self._trips, self._fares):
            if isinstance(queue, RedisQueue):
                await queue.ping()

    async def prepare(
        self,
        points: Iterable[GeoPoint] | None = None,
        sink: FareSink | None = None,
    ) -> None:
        """Open every resource the enabled stages need.

        ``points`` defaults to the configured CSV file, ``sink`` to the
        configured CSV output. Raises if the transport is unreachable or a
        file cannot be opened; those failures are fatal.
        """
        cfg = self._config
        await self.check_transport()

        if self.has_stage("ingest") and points is None:
            points = CsvPointSource(cfg.input.csv_path, logger=self._root_log)
        if self.has_stage("writer") and sink is None:
            sink = self._owned_sink = CsvFareSink(cfg.output.csv_path, logger=self._root_log)
        self._points = points
        self._sink = sink
        self._prepared = True

    async def run(
        self,
        points: Iterable[GeoPoint] | None = None,
        sink: FareSink | None = None,
    ) -> PipelineResult:
        """Run every enabled stage until it finishes or the task is cancelled."""
        if not self._prepared:
            await self.prepare(points, sink)
        cfg = self._config
        points, sink = self._points, self._sink

        result = PipelineResult()
        tasks: dict[str, asyncio.Task] = {}
        if self.has_stage("ingest"):
            tasks["ingest"] = asyncio.create_task(self._run_ingest(points, result), name="ingest")
        if self.has_stage("fare"):
            tasks["fare"] = asyncio.create_task(self._run_fare(), name="fare")
        if self.has_stage("writer"):
            tasks["writer"] = asyncio.create_task(self._run_writer(sink, result), name="writer")

        if not tasks:
            self._log.warning("no_stages_enabled")
            return result

        self._log.info("pipeline_started", stages=list(tasks), backend=cfg.broker.backend)
        try:
            # asyncio.wait, unlike gather, leaves the stages alone when we are cancelled.
            done, pending = await asyncio.wait(tasks.values(),
                                               return_when=asyncio.FIRST_EXCEPTION)
            if pending:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
            for task in done:
                task.result()
        except asyncio.CancelledError:
            await self._stop(tasks)
            raise
        finally:
            if self._owned_sink is not None:
                self._owned_sink.close()
                self._owned_sink = None
            await self._close_remote()
            self._prepared = False
            self._log.info("pipeline_stopped", trips_published=result.trips_published,
                           fares_received=result.fares_received)
        return result

    async def _stop(self, tasks: dict[str, asyncio.Task]) -> None:
        """Stop upstream first so the trip flushed on shutdown still reaches the sink."""
        self._log.info("pipeline_stopping")
        local = not isinstance(self._trips, RedisQueue)

        ingest = tasks.get("ingest")
        if ingest is not None:
            ingest.cancel()
            await asyncio.gather(ingest, return_exceptions=True)

        for name, upstream in (("fare", self._trips), ("writer", self._fares)):
            if local:
                await upstream.close()
            task = tasks.get(name)
            if task is None:
                continue
            if not local:
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def _run_ingest(self, points: Iterable[GeoPoint], result: PipelineResult) -> None:
        aggregator = SegmentAggregator(
            max_speed_kmh=self._config.limits.max_speed_kmh,
            stats=self._stats,
            logger=self._root_log,
        )
        processor = TripProcessor(aggregator, self._trips, self._stats, logger=self._root_log)
        result.trips_published = await processor.run(points)
        await self._close_if_local(self._trips)

    async def _run_fare(self) -> None:
        processor = FareProcessor(
            FareCalculator(self._config.tariff()),
            self._trips,
            self._fares,
            self._stats,
            concurrency=self._config.workers.concurrency,
            logger=self._root_log,
        )
        await processor.run()
        await self._close_if_local(self._fares)

    async def _run_writer(self, sink: FareSink, result: PipelineResult) -> None:
        out = self._config.output
        dead_letter = None
        if out.dead_letter_path:
            dead_letter = JsonlDeadLetterSink(out.dead_letter_path, logger=self._root_log)
        buffer = BatchBuffer(
            sink,
            out.batch_size,
            retry=RetryConfig(max_attempts=out.retry_attempts,
                              base_delay=out.retry_base_delay_seconds),
            dead_letter=dead_letter,
            stats=self._stats,
            logger=self._root_log,
        )
        writer = FareWriter(buffer, self._fares, self._stats,
                            flush_interval_seconds=out.flush_interval_seconds,
                            logger=self._root_log)
        result.fares_received = await writer.run()

    async def _close_remote(self) -> None:
        for queue in (self._trips, self._fares):
            if isinstance(queue, RedisQueue):
                await queue.close()

    async def _close_if_local(self, queue: MessageQueue) -> None:
        # Redis consumers in other processes never see a close; only end local streams.
        if not isinstance(queue, RedisQueue):
            await queue.close()
