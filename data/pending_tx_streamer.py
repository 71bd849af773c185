"""
Pending Transaction Streamer - Mempool subscription with reconnect

Purpose:
    Hold a persistent WebSocket subscription to a node's
    eth_subscribe("newPendingTransactions") channel and turn its
    notifications into PendingTransaction objects, forever.

Lifecycle:
    Disconnected -> Connecting -> Streaming -> (disconnect) -> Disconnected ...

    - A transport disconnect (connection closed, failed keep-alive ping)
      abandons the subscription and resubscribes on a fresh connection
      right away. reconnection.disconnect_delay_seconds (default 0) adds a
      pause there; the default keeps the immediate resubscribe.
    - A reconnect attempt that fails is retried forever with capped
      exponential backoff plus jitter.
    - Setup misconfiguration is fatal and raised as StreamSetupError:
      an invalid URI, a node that rejects the subscription, or a first
      connection that cannot be established at all.

Notifications carry either a transaction hash (resolved through the query
client with eth_getTransactionByHash) or, on nodes that support
["newPendingTransactions", true], the full transaction object.

Each pipeline owns its own streamer and therefore its own connection.

Usage:
    streamer = PendingTransactionStreamer(ws_url, w3)
    async for tx in streamer.stream():
        ...
"""

from __future__ import annotations

import asyncio
import itertools
import json
import random
from typing import Any, AsyncIterator, Callable

import websockets
from websockets.exceptions import ConnectionClosed, InvalidURI, WebSocketException
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound

from bot_logging.logger_manager import setup_module_logger
from config.loader import get_config
from shared.types import PendingTransaction


class StreamSetupError(Exception):
    """Raised when the pending-transaction subscription cannot be set up at all."""


class PendingTransactionStreamer:
    """
    Restartable async stream of pending transactions from one WebSocket endpoint.

    Accepts the AsyncWeb3 query client via dependency injection; it is used
    only to resolve transaction hashes into full transactions.
    """

    def __init__(
        self,
        ws_url: str,
        w3: AsyncWeb3,
        full_transactions: bool | None = None,
        connect: Callable[..., Any] | None = None,
        name: str = "",
    ) -> None:
        self._ws_url = ws_url
        self._w3 = w3
        self._connect = connect or websockets.connect
        self._name = name or "mempool"

        cfg = get_config()
        ws_cfg = cfg.get_websocket_config()
        mempool_cfg = cfg.get_mempool_config()

        conn_cfg = ws_cfg.get("connection", {})
        self._ping_interval: float = conn_cfg.get("ping_interval_seconds", 20)
        self._ping_timeout: float = conn_cfg.get("ping_timeout_seconds", 30)
        self._close_timeout: float = conn_cfg.get("close_timeout_seconds", 10)
        self._max_size: int = conn_cfg.get("max_message_size_bytes", 10 * 1024 * 1024)

        timeout_cfg = ws_cfg.get("timeouts", {})
        self._subscription_timeout: float = timeout_cfg.get(
            "subscription_response_timeout_seconds", 15.0
        )
        self._message_timeout: float = timeout_cfg.get("message_receive_timeout_seconds", 60.0)

        reconnect_cfg = ws_cfg.get("reconnection", {})
        self._disconnect_delay: float = reconnect_cfg.get("disconnect_delay_seconds", 0)
        self._base_delay: float = reconnect_cfg.get("base_delay_seconds", 2)
        self._max_delay: float = reconnect_cfg.get("max_delay_seconds", 60)
        self._jitter_max: float = reconnect_cfg.get("jitter_max_seconds", 1.0)

        if full_transactions is None:
            full_transactions = bool(mempool_cfg.get("full_transactions", False))
        self._full_transactions = full_transactions

        # Mutable state
        self._running: bool = False
        self._request_ids = itertools.count(1)
        self._reconnects: int = 0
        self._received: int = 0
        self._resolve_failures: int = 0

        self._logger = setup_module_logger(
            "pending_tx_streamer", "stream_info.log", module_folder="Mempool_Stream_Logs"
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def reconnects(self) -> int:
        return self._reconnects

    @property
    def received(self) -> int:
        return self._received

    @property
    def resolve_failures(self) -> int:
        return self._resolve_failures

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def stop(self) -> None:
        """Signal the stream to end after the current message."""
        self._running = False

    async def stream(self) -> AsyncIterator[PendingTransaction]:
        """Yield pending transactions until stop() or cancellation."""
        self._running = True
        subscribed_once = False
        failures = 0

        try:
            while self._running:
                streaming = False
                try:
                    self._logger.info("[%s] Connecting to %s...", self._name, self._ws_url)
                    async with self._connect(
                        self._ws_url,
                        ping_interval=self._ping_interval,
                        ping_timeout=self._ping_timeout,
                        close_timeout=self._close_timeout,
                        max_size=self._max_size,
                    ) as ws:
                        sub_id = await self._subscribe(ws)
                        self._logger.info("[%s] Subscribed. Subscription ID: %s", self._name, sub_id)
                        subscribed_once = True
                        streaming = True
                        failures = 0

                        while self._running:
                            message = await self._receive(ws)
                            if message is None:
                                break
                            try:
                                tx = await self._handle_message(message)
                            except Exception as e:
                                self._logger.error("[%s] Error in message loop: %s", self._name, e)
                                continue
                            if tx is not None:
                                yield tx

                except StreamSetupError:
                    raise
                except InvalidURI as e:
                    raise StreamSetupError(f"Invalid websocket URI {self._ws_url}: {e}") from e
                except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                    if not subscribed_once:
                        raise StreamSetupError(
                            f"Unable to open pending transaction stream at {self._ws_url}: {e}"
                        ) from e
                    if not streaming:
                        failures += 1
                        delay = self._backoff_delay(failures)
                        self._logger.warning(
                            "[%s] Reconnect attempt %d failed: %s. Retrying in %.1fs",
                            self._name,
                            failures,
                            e,
                            delay,
                        )
                        await asyncio.sleep(delay)
                        continue
                    self._logger.warning("[%s] Stream error: %s", self._name, e)

                if self._running:
                    self._reconnects += 1
                    self._logger.warning("[%s] Reconnecting websocket", self._name)
                    if self._disconnect_delay > 0:
                        await asyncio.sleep(self._disconnect_delay)
        finally:
            self._running = False

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def _build_subscription_params(self) -> dict[str, Any]:
        """Build the eth_subscribe JSON-RPC payload."""
        params: list[Any] = ["newPendingTransactions"]
        if self._full_transactions:
            params.append(True)
        return {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": "eth_subscribe",
            "params": params,
        }

    async def _subscribe(self, ws: Any) -> str:
        """Send eth_subscribe and wait for the subscription id."""
        request = self._build_subscription_params()
        await ws.send(json.dumps(request))

        while True:
            raw = await asyncio.wait_for(ws.recv(), timeout=self._subscription_timeout)
            try:
                response = json.loads(raw)
            except json.JSONDecodeError as e:
                self._logger.warning("[%s] Invalid JSON before subscription ack: %s", self._name, e)
                continue
            if response.get("id") != request["id"]:
                continue
            if "error" in response:
                raise StreamSetupError(
                    f"Node rejected newPendingTransactions subscription: {response['error']}"
                )
            return str(response.get("result", "unknown"))

    # ------------------------------------------------------------------
    # Message handling
    # ------------------------------------------------------------------

    async def _receive(self, ws: Any) -> dict[str, Any] | None:
        """Next decoded message, or None once the connection is gone."""
        while True:
            try:
                raw = await asyncio.wait_for(ws.recv(), timeout=self._message_timeout)
            except asyncio.TimeoutError:
                self._logger.debug("[%s] No message received, checking connection...", self._name)
                try:
                    pong_waiter = await ws.ping()
                    await asyncio.wait_for(pong_waiter, timeout=self._ping_timeout)
                except (ConnectionClosed, asyncio.TimeoutError):
                    self._logger.warning("[%s] Ping failed, reconnecting...", self._name)
                    return None
                continue
            except ConnectionClosed as e:
                self._logger.warning("[%s] Connection closed: %s", self._name, e)
                return None

            try:
                message = json.loads(raw)
            except json.JSONDecodeError as e:
                self._logger.warning("[%s] Invalid JSON message: %s", self._name, e)
                continue
            if isinstance(message, dict):
                return message

    async def _handle_message(self, message: dict[str, Any]) -> PendingTransaction | None:
        # eth_subscribe notifications have method "eth_subscription"
        if message.get("method") != "eth_subscription":
            return None
        params = message.get("params")
        if not isinstance(params, dict):
            self._logger.debug("[%s] Notification without params object: %r", self._name, params)
            return None
        result = params.get("result")
        if result is None:
            return None
        self._received += 1
        return await self._resolve(result)

    async def _resolve(self, result: Any) -> PendingTransaction | None:
        """Turn a notification payload (hash or full tx) into a PendingTransaction."""
        try:
            if isinstance(result, dict):
                return PendingTransaction.from_rpc(result)
            tx = await self._w3.eth.get_transaction(result)
            return PendingTransaction.from_rpc(tx)
        except TransactionNotFound:
            # Dropped or replaced before we could fetch it
            self._resolve_failures += 1
            self._logger.debug("[%s] Pending transaction %s no longer available", self._name, result)
            return None
        except (KeyError, ValueError, TypeError) as e:
            self._resolve_failures += 1
            self._logger.debug("[%s] Unparseable transaction payload: %s", self._name, e)
            return None
        except Exception as e:
            self._resolve_failures += 1
            self._logger.debug("[%s] Failed to resolve transaction %s: %s", self._name, result, e)
            return None

    def _backoff_delay(self, failures: int) -> float:
        return min(
            self._base_delay * (2 ** failures) + random.uniform(0, self._jitter_max),
            self._max_delay,
        )
