"""
Unit tests for main.py.

Tests cover the exit code of _run(): non-zero when every pipeline ends on
its own, zero on a shutdown signal.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from core.prediction_channel import PredictionChannel
from tests.conftest import SAMPLE_ORACLE


class FakeWatcher:
    """MempoolWatcher stand-in; pipelines either die at once or run until stopped."""

    def __init__(self, oracles, w3, ws_url, dies: bool) -> None:
        self.assets = [o.asset for o in oracles]
        self._channels = {asset: PredictionChannel() for asset in self.assets}
        self._dies = dies
        self._stopped = asyncio.Event()
        self.stop = AsyncMock(side_effect=self._stop)

    def start(self) -> None:
        if self._dies:
            for channel in self._channels.values():
                channel.close()

    def channel_for(self, asset: str) -> PredictionChannel:
        return self._channels[asset]

    async def join(self) -> None:
        if not self._dies:
            await self._stopped.wait()

    async def _stop(self) -> None:
        self._stopped.set()
        for channel in self._channels.values():
            channel.close()


async def _chain_id() -> int:
    return 1


@pytest.fixture
def run_main(mock_config_loader):
    """Patch every external dependency of main._run and return a runner."""
    mock_config_loader.get_http_url.return_value = "https://eth.example"
    mock_config_loader.get_ws_url.return_value = "wss://eth.example"

    def _run_with(dies: bool, on_signal=None):
        w3 = MagicMock()
        w3.is_connected = AsyncMock(return_value=True)
        w3.eth.chain_id = _chain_id()
        registry = MagicMock()
        registry.resolve = AsyncMock(return_value=[SAMPLE_ORACLE])
        watchers = []

        def make_watcher(oracles, w3, ws_url):
            watchers.append(FakeWatcher(oracles, w3, ws_url, dies))
            return watchers[-1]

        async def _go():
            import main

            loop = asyncio.get_running_loop()
            handlers = []
            with (
                patch("main.load_dotenv"),
                patch("main.create_module_log_directories"),
                patch("main.validate_all_configs"),
                patch("main.get_config", return_value=mock_config_loader),
                patch("web3.AsyncWeb3", return_value=w3),
                patch("web3.providers.AsyncHTTPProvider"),
                patch("execution.oracle_registry.OracleRegistry", return_value=registry),
                patch("core.watcher.MempoolWatcher", side_effect=make_watcher),
                patch.object(
                    loop, "add_signal_handler", side_effect=lambda *args: handlers.append(args)
                ),
            ):
                task = asyncio.create_task(main._run())
                if on_signal is not None:
                    await asyncio.sleep(0.05)
                    callback, *args = handlers[0][1:]
                    callback(*args)
                code = await asyncio.wait_for(task, timeout=2)
            return code, watchers[0]

        return _go()

    return _run_with


class TestRunExitCode:

    async def test_all_pipelines_dead_exits_non_zero(self, run_main):
        code, watcher = await run_main(dies=True)

        assert code == 1
        watcher.stop.assert_awaited_once()

    async def test_shutdown_signal_exits_zero(self, run_main):
        code, watcher = await run_main(dies=False, on_signal=True)

        assert code == 0
        watcher.stop.assert_awaited_once()
        assert watcher.channel_for("USDC").closed
