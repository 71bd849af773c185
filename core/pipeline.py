"""
Per-oracle mempool pipeline.

One instance per watched OffchainAggregator. Each pending transaction from
the streamer goes through, in order:

    destination filter -> mined-state guard -> transmit decoder
        -> median extraction -> prediction channel

Stages run sequentially per transaction in stream order. A blocked channel
send suspends the loop, so no further transactions are read from the stream
until the consumer drains the channel.

Usage:
    pipeline = OraclePipeline(oracle, streamer, guard, channel)
    task = asyncio.create_task(pipeline.run(), name=f"pipeline:{oracle.asset}")
    ...
    task.cancel()   # explicit cancellation
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from dataclasses import dataclass
from typing import TYPE_CHECKING

from bot_logging.logger_manager import log_data_entry, log_data_output, setup_module_logger
from core.filters import is_to_oracle
from core.prediction_channel import ChannelClosedError
from core.price_extractor import extract_median
from core.transmit_decoder import decode_transmit
from shared.constants import DEFAULT_REPORT_HEADER_WORDS
from shared.types import Oracle, PendingTransaction, PricePrediction

if TYPE_CHECKING:
    from core.filters import MinedStateGuard
    from core.prediction_channel import PredictionChannel
    from data.pending_tx_streamer import PendingTransactionStreamer


@dataclass
class PipelineStats:
    seen: int = 0
    matched: int = 0
    not_pending: int = 0
    undecodable: int = 0
    no_prediction: int = 0
    published: int = 0


class OraclePipeline:
    """Turns one oracle's pending transmit() calls into PricePredictions."""

    def __init__(
        self,
        oracle: Oracle,
        streamer: PendingTransactionStreamer,
        guard: MinedStateGuard,
        channel: PredictionChannel,
        header_words: int = DEFAULT_REPORT_HEADER_WORDS,
    ) -> None:
        self._oracle = oracle
        self._streamer = streamer
        self._guard = guard
        self._channel = channel
        self._header_words = header_words

        self.stats = PipelineStats()
        self._running: bool = False
        self._trace_counter: int = 0

        self._logger = setup_module_logger(
            "oracle_pipeline", "pipeline.log", module_folder="Pipeline_Logs"
        )

    @property
    def oracle(self) -> Oracle:
        return self._oracle

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """
        Consume the stream until stop(), cancellation, or a fatal error.

        ChannelClosedError (consumer gone) and StreamSetupError are fatal for
        this pipeline and propagate to the task. However run() ends, the
        channel is closed so a waiting consumer learns the pipeline is gone.
        """
        self._running = True
        self._logger.info(
            "Pipeline started for %s (%s)", self._oracle.asset, self._oracle.address
        )
        try:
            async with aclosing(self._streamer.stream()) as transactions:
                async for tx in transactions:
                    await self.process(tx)
                    if not self._running:
                        break
        except asyncio.CancelledError:
            self._logger.info("Pipeline for %s cancelled", self._oracle.asset)
            raise
        except ChannelClosedError:
            self._logger.error(
                "Consumer for %s is gone, pipeline terminating", self._oracle.asset
            )
            raise
        finally:
            self._running = False
            self._streamer.stop()
            self._channel.close()

    def stop(self) -> None:
        """Signal the run loop to stop after the current transaction."""
        self._running = False
        self._streamer.stop()

    # ------------------------------------------------------------------
    # Per-transaction processing
    # ------------------------------------------------------------------

    async def process(self, tx: PendingTransaction) -> PricePrediction | None:
        """Run one transaction through every stage. Returns the delivered prediction, if any."""
        self.stats.seen += 1

        if not is_to_oracle(tx, self._oracle.address):
            return None
        self.stats.matched += 1

        if not await self._guard.is_pending(tx):
            self.stats.not_pending += 1
            return None

        decoded = decode_transmit(tx.input)
        if decoded is None:
            self.stats.undecodable += 1
            return None

        trace_id = self._next_trace_id()
        log_data_entry(
            trace_id=trace_id,
            source_module="oracle_pipeline",
            what=f"Pending transmit() to {self._oracle.asset} aggregator",
            why="Candidate price update observed before confirmation",
            data_type="PendingTransaction",
            data={"tx_hash": tx.hash, "report_bytes": len(decoded.report)},
            previous_stage="pending_tx_streamer",
        )

        new_price = extract_median(decoded.report, self._header_words)
        if new_price is None:
            self.stats.no_prediction += 1
            self._logger.debug(
                "No observations in report of %s (%d bytes)", tx.hash, len(decoded.report)
            )
            return None

        prediction = PricePrediction(
            new_price=new_price,
            transaction=tx,
            asset=self._oracle.asset,
            oracle_address=self._oracle.address,
        )
        await self._channel.send(prediction)
        self.stats.published += 1

        self._logger.info(
            "Predicted %s price %d from pending tx %s", self._oracle.asset, new_price, tx.hash
        )
        log_data_output(
            trace_id=trace_id,
            source_module="oracle_pipeline",
            what=f"PricePrediction for {self._oracle.asset}",
            why="Median observation of pending transmit() report",
            data_type="PricePrediction",
            data=prediction.to_dict(),
            next_stage="consumer",
        )
        return prediction

    def _next_trace_id(self) -> str:
        self._trace_counter += 1
        return f"{self._oracle.asset}-{self._trace_counter:08d}"
