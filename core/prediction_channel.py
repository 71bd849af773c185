"""
Bounded delivery channel between one oracle pipeline and its consumer.

Capacity defaults to 1: while the consumer has not drained the previous
prediction, send() blocks, and with it the whole pipeline that owns the
channel. Nothing is dropped or buffered beyond capacity. Closing the channel
(consumer gone, or pipeline ended) makes pending and future sends raise
ChannelClosedError, and wakes a waiting receiver once the channel is drained.

Usage:
    channel = PredictionChannel()
    await channel.send(prediction)      # pipeline side
    prediction = await channel.receive()  # consumer side
"""

from __future__ import annotations

import asyncio

from shared.constants import PREDICTION_CHANNEL_CAPACITY
from shared.types import PricePrediction


class ChannelClosedError(Exception):
    """Raised when sending to (or receiving from a drained) closed channel."""


class PredictionChannel:
    def __init__(self, capacity: int = PREDICTION_CHANNEL_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._queue: asyncio.Queue[PricePrediction] = asyncio.Queue(maxsize=capacity)
        self._closed = asyncio.Event()

    @property
    def capacity(self) -> int:
        return self._queue.maxsize

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def qsize(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Mark the channel closed. Wakes blocked senders and waiting receivers with ChannelClosedError."""
        self._closed.set()

    async def send(self, prediction: PricePrediction) -> None:
        """Deliver a prediction, waiting while the channel is full."""
        if self._closed.is_set():
            raise ChannelClosedError("prediction channel is closed")

        put_task = asyncio.ensure_future(self._queue.put(prediction))
        closed_task = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait({put_task, closed_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closed_task.cancel()
            if not put_task.done():
                put_task.cancel()

        if put_task.done() and not put_task.cancelled():
            return
        raise ChannelClosedError("prediction channel closed while send was blocked")

    async def receive(self) -> PricePrediction:
        """Wait for the next prediction (FIFO). Buffered predictions are drained before close is reported."""
        if not self._queue.empty():
            return self._queue.get_nowait()
        if self._closed.is_set():
            raise ChannelClosedError("prediction channel is closed")

        get_task = asyncio.ensure_future(self._queue.get())
        closed_task = asyncio.ensure_future(self._closed.wait())
        try:
            await asyncio.wait({get_task, closed_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            closed_task.cancel()
            if not get_task.done():
                get_task.cancel()

        if get_task.done() and not get_task.cancelled():
            return get_task.result()
        raise ChannelClosedError("prediction channel closed while receive was waiting")
