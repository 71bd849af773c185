"""
Chainlink Mempool Watcher: Main Entrypoint.

Single-process asyncio runner:
    1. OracleRegistry : resolve the Chainlink aggregators behind Aave V2 reserves
    2. MempoolWatcher : one pending-transaction pipeline per aggregator
    3. Consumers      : one per pipeline, logging each PricePrediction

Every pipeline owns its WebSocket subscription and a capacity-1 channel to
its consumer; pipelines share nothing but the HTTP query client.

Usage:
    RPC_HTTP_URL=https://... RPC_WS_URL=wss://... python main.py
"""

from __future__ import annotations

import asyncio
import signal
import sys

from dotenv import load_dotenv

from bot_logging.logger_manager import create_module_log_directories, setup_module_logger
from config.loader import get_config
from config.validate import ConfigValidationError, validate_all_configs
from shared.constants import DEFAULT_REPORT_HEADER_WORDS
from shared.serialization_utils import dumps_prediction

# ---------------------------------------------------------------------------
# Module logger
# ---------------------------------------------------------------------------
_logger = setup_module_logger("main", "main.log", module_folder="Main_Logs", console=True)


# ---------------------------------------------------------------------------
# Startup banner
# ---------------------------------------------------------------------------


def _log_banner(http_url: str, ws_url: str, oracle_count: int, header_words: int) -> None:
    """Log a concise startup summary."""
    _logger.info("=" * 60)
    _logger.info("Chainlink mempool watcher starting")
    _logger.info("=" * 60)
    _logger.info("  http rpc        : %s...", http_url[:25])
    _logger.info("  ws rpc          : %s...", ws_url[:25])
    _logger.info("  oracles         : %d", oracle_count)
    _logger.info("  header words    : %d", header_words)
    _logger.info("=" * 60)


# ---------------------------------------------------------------------------
# Consumer
# ---------------------------------------------------------------------------


async def _consume(asset: str, channel) -> None:
    """Drain one pipeline's channel and log every prediction."""
    from core.prediction_channel import ChannelClosedError

    try:
        while True:
            prediction = await channel.receive()
            _logger.info("[%s] %s", asset, dumps_prediction(prediction.to_dict()))
    except ChannelClosedError:
        _logger.info("[%s] Channel closed", asset)


# ---------------------------------------------------------------------------
# Main async entry
# ---------------------------------------------------------------------------


async def _run() -> int:
    """
    Wire all components and run until SIGINT/SIGTERM. Returns exit code.

    Exits non-zero when every pipeline has terminated on its own (for
    example a node that rejects the pending-transaction subscription).
    """
    # ------------------------------------------------------------------
    # 1. Load environment and validate configuration
    # ------------------------------------------------------------------
    load_dotenv()
    create_module_log_directories()

    try:
        validate_all_configs()
    except ConfigValidationError as exc:
        _logger.critical("Config validation failed:\n%s", exc)
        return 1

    cfg = get_config()
    http_url = cfg.get_http_url()
    ws_url = cfg.get_ws_url()
    header_words = cfg.get_mempool_config().get("report_header_words", DEFAULT_REPORT_HEADER_WORDS)

    # ------------------------------------------------------------------
    # 2. Initialize AsyncWeb3 query client (shared by guards and discovery)
    # ------------------------------------------------------------------
    from web3 import AsyncWeb3
    from web3.providers import AsyncHTTPProvider

    w3 = AsyncWeb3(AsyncHTTPProvider(http_url))
    if not await w3.is_connected():
        _logger.critical("Cannot connect to RPC at %s", http_url[:40])
        return 1
    chain_id = await w3.eth.chain_id
    _logger.info("Connected to chain %d", chain_id)

    # ------------------------------------------------------------------
    # 3. Resolve oracles (fatal on failure, not retried)
    # ------------------------------------------------------------------
    from core.watcher import MempoolWatcher
    from execution.oracle_registry import OracleRegistry, OracleRegistryError

    try:
        oracles = await OracleRegistry(w3).resolve()
    except OracleRegistryError as exc:
        _logger.critical("Oracle discovery failed: %s", exc)
        return 1
    if not oracles:
        _logger.critical("No oracles to watch")
        return 1
    for oracle in oracles:
        _logger.info("  %-8s %s", oracle.asset, oracle.address)

    _log_banner(http_url, ws_url, len(oracles), header_words)

    # ------------------------------------------------------------------
    # 4. Signal handling for graceful shutdown
    # ------------------------------------------------------------------
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_signal(sig: signal.Signals) -> None:
        _logger.info("Received %s, initiating graceful shutdown", sig.name)
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    # ------------------------------------------------------------------
    # 5. Launch pipelines and consumers
    # ------------------------------------------------------------------
    watcher = MempoolWatcher(oracles, w3, ws_url)
    watcher.start()
    consumers = [
        asyncio.create_task(_consume(asset, watcher.channel_for(asset)), name=f"consumer:{asset}")
        for asset in watcher.assets
    ]

    # ------------------------------------------------------------------
    # 6. Wait for shutdown signal or the end of every pipeline
    # ------------------------------------------------------------------
    exit_code = 0
    shutdown_waiter = asyncio.create_task(shutdown_event.wait(), name="shutdown")
    pipelines_waiter = asyncio.create_task(watcher.join(), name="pipelines")
    try:
        await asyncio.wait(
            {shutdown_waiter, pipelines_waiter}, return_when=asyncio.FIRST_COMPLETED
        )
        if not shutdown_event.is_set():
            _logger.critical("All pipelines terminated, exiting")
            exit_code = 1
    finally:
        shutdown_waiter.cancel()
        pipelines_waiter.cancel()
        _logger.info("Shutting down, cancelling tasks")
        await watcher.stop()
        for task in consumers:
            task.cancel()
        await asyncio.gather(*consumers, return_exceptions=True)
        _logger.info("Shutdown complete")
    return exit_code


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    """Synchronous entry point."""
    try:
        sys.exit(asyncio.run(_run()))
    except KeyboardInterrupt:
        _logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
