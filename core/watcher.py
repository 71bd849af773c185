"""
Mempool watcher: one independent pipeline per oracle.

Each oracle gets its own streamer (own WebSocket connection), its own
mined-state guard, its own PredictionChannel and its own asyncio task. No
state is shared between pipelines, so one pipeline dying (consumer gone,
subscription rejected) leaves the others running.

Usage:
    watcher = MempoolWatcher(oracles, w3, ws_url)
    watcher.start()
    prediction = await watcher.channel_for("USDC").receive()
    ...
    await watcher.stop()
"""

from __future__ import annotations

import asyncio
from typing import Callable

from web3 import AsyncWeb3

from bot_logging.logger_manager import setup_module_logger
from config.loader import get_config
from core.filters import MinedStateGuard
from core.pipeline import OraclePipeline
from core.prediction_channel import PredictionChannel
from data.pending_tx_streamer import PendingTransactionStreamer
from shared.constants import DEFAULT_REPORT_HEADER_WORDS, PREDICTION_CHANNEL_CAPACITY
from shared.types import Oracle


class MempoolWatcher:
    """Builds, launches and tears down the per-oracle pipelines."""

    def __init__(
        self,
        oracles: list[Oracle],
        w3: AsyncWeb3,
        ws_url: str,
        streamer_factory: Callable[[Oracle], PendingTransactionStreamer] | None = None,
    ) -> None:
        self._w3 = w3
        self._ws_url = ws_url
        self._streamer_factory = streamer_factory or self._default_streamer

        mempool_cfg = get_config().get_mempool_config()
        self._header_words: int = mempool_cfg.get("report_header_words", DEFAULT_REPORT_HEADER_WORDS)
        self._capacity: int = mempool_cfg.get("channel_capacity", PREDICTION_CHANNEL_CAPACITY)

        self._pipelines: dict[str, OraclePipeline] = {}
        self._channels: dict[str, PredictionChannel] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

        self._logger = setup_module_logger("watcher", "watcher.log", module_folder="Watcher_Logs")

        for oracle in oracles:
            if oracle.asset in self._pipelines:
                self._logger.warning("Duplicate oracle for %s ignored", oracle.asset)
                continue
            channel = PredictionChannel(self._capacity)
            self._channels[oracle.asset] = channel
            self._pipelines[oracle.asset] = OraclePipeline(
                oracle=oracle,
                streamer=self._streamer_factory(oracle),
                guard=MinedStateGuard(w3),
                channel=channel,
                header_words=self._header_words,
            )

    def _default_streamer(self, oracle: Oracle) -> PendingTransactionStreamer:
        return PendingTransactionStreamer(self._ws_url, self._w3, name=oracle.asset)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def assets(self) -> list[str]:
        return list(self._pipelines)

    @property
    def tasks(self) -> dict[str, asyncio.Task[None]]:
        return dict(self._tasks)

    def channel_for(self, asset: str) -> PredictionChannel:
        return self._channels[asset]

    def pipeline_for(self, asset: str) -> OraclePipeline:
        return self._pipelines[asset]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Launch one task per pipeline. Must be called from a running loop."""
        for asset, pipeline in self._pipelines.items():
            task = asyncio.create_task(pipeline.run(), name=f"pipeline:{asset}")
            task.add_done_callback(lambda done_task, a=asset: self._task_done_callback(done_task, a))
            self._tasks[asset] = task
        self._logger.info("Launched %d pipelines: %s", len(self._tasks), ", ".join(self._tasks))

    def _task_done_callback(self, task: asyncio.Task[None], asset: str) -> None:
        """Log pipeline exits and close the dead pipeline's channel; other pipelines are unaffected."""
        self._channels[asset].close()
        try:
            exc = task.exception()
        except asyncio.CancelledError:
            self._logger.info("Task %s cancelled", task.get_name())
            return
        if exc is not None:
            self._logger.error(
                "Task %s failed: %s", task.get_name(), exc, exc_info=exc
            )
        else:
            self._logger.info("Task %s finished", task.get_name())

    async def join(self) -> None:
        """Wait until every pipeline task has ended, for whatever reason."""
        if self._tasks:
            await asyncio.wait(list(self._tasks.values()))

    async def stop(self) -> None:
        """Cooperative stop, then cancel and wait for every pipeline task."""
        for pipeline in self._pipelines.values():
            pipeline.stop()
        for task in self._tasks.values():
            if not task.done():
                task.cancel()

        tasks = list(self._tasks.values())
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for task, result in zip(tasks, results):
            if isinstance(result, Exception):
                self._logger.error("Task %s exited with error: %s", task.get_name(), result)
        self._logger.info("All pipelines stopped")
