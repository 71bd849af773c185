"""
Chainlink oracle discovery through Aave V2: read-only wrapper.

Resolves, for every Aave V2 reserve, the OffchainAggregator that actually
receives Chainlink transmit() calls:

    AaveProtocolDataProvider.getAllReservesTokens()  -> reserves
    AaveOracle.getSourceOfAsset(reserve)             -> aggregator proxy
    EACAggregatorProxy.aggregator()                  -> OffchainAggregator

Some reserves have no Chainlink source (WETH is Aave V2's base currency, so
its price is always 1 WETH); those are logged and skipped.

Usage:
    from web3 import AsyncWeb3, AsyncHTTPProvider
    from execution.oracle_registry import OracleRegistry

    w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
    oracles = await OracleRegistry(w3).find_all()
"""

from __future__ import annotations

from web3 import AsyncWeb3, Web3

from bot_logging.logger_manager import setup_module_logger
from config.loader import get_config
from shared.constants import AAVE_V2_ORACLE, AAVE_V2_PROTOCOL_DATA_PROVIDER, DEFAULT_CHAIN_ID
from shared.types import Oracle, TokenData


class OracleRegistryError(Exception):
    """Raised when oracle discovery fails."""


class OracleRegistry:
    """
    Async read wrapper for the Aave V2 contracts used in oracle discovery.

    Accepts an AsyncWeb3 instance via dependency injection so the same
    connection can be shared with the mined-state guard.
    """

    def __init__(self, w3: AsyncWeb3, chain_id: int = DEFAULT_CHAIN_ID) -> None:
        self._w3 = w3
        cfg = get_config()
        contracts = cfg.get_chain_config(chain_id).get("contracts", {})

        self._data_provider = w3.eth.contract(
            address=Web3.to_checksum_address(
                contracts.get("aave_protocol_data_provider", AAVE_V2_PROTOCOL_DATA_PROVIDER)
            ),
            abi=cfg.get_abi("aave_protocol_data_provider"),
        )
        self._aave_oracle = w3.eth.contract(
            address=Web3.to_checksum_address(contracts.get("aave_oracle", AAVE_V2_ORACLE)),
            abi=cfg.get_abi("aave_oracle"),
        )
        self._proxy_abi = cfg.get_abi("chainlink_aggregator_proxy")
        self._oracles_config = cfg.get_oracles_config()

        self._logger = setup_module_logger(
            "oracle_registry", "oracle_registry.log", module_folder="Oracle_Registry_Logs"
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def find_all(self) -> list[Oracle]:
        """
        Return the Chainlink aggregators for all Aave V2 reserves.

        Raises OracleRegistryError when the reserve list itself cannot be read.
        Reserves whose aggregator cannot be resolved are skipped.
        """
        oracles = []
        for token in await self.reserve_list():
            try:
                address = await self.chainlink_aggregator(token.token_address)
            except OracleRegistryError as e:
                self._logger.warning("Cannot retrieve oracle for %s: %s", token.symbol, e)
                continue
            oracles.append(Oracle.create(token.symbol, address))
        self._logger.info("Resolved %d Chainlink aggregators", len(oracles))
        return oracles

    async def resolve(self) -> list[Oracle]:
        """
        Oracles to watch, honoring config/oracles.json.

        Pinned "static" entries bypass discovery entirely; otherwise discovery
        runs and the optional "assets" allow-list narrows the result.
        """
        static = self._oracles_config.get("static", [])
        if static:
            try:
                oracles = [Oracle.create(entry["asset"], entry["address"]) for entry in static]
            except (KeyError, TypeError, ValueError) as e:
                raise OracleRegistryError(f"Invalid static oracle entry: {e}") from e
            self._logger.info("Using %d pinned oracles from config", len(oracles))
            return oracles

        oracles = await self.find_all()
        allow = {a.upper() for a in self._oracles_config.get("assets", [])}
        if allow:
            oracles = [o for o in oracles if o.asset.upper() in allow]
        return oracles

    async def reserve_list(self) -> list[TokenData]:
        """Return the full list of reserves on Aave."""
        try:
            tokens = await self._data_provider.functions.getAllReservesTokens().call()
        except Exception as e:
            self._logger.error("Unable to retrieve token list: %s", e)
            raise OracleRegistryError(f"Unable to retrieve token list: {e}") from e
        return [TokenData(symbol=symbol, token_address=address) for symbol, address in tokens]

    async def chainlink_aggregator(self, reserve: str) -> str:
        """Return the aggregator behind the reserve's Chainlink proxy."""
        proxy = await self.chainlink_proxy(reserve)
        aggregator_proxy = self._w3.eth.contract(
            address=Web3.to_checksum_address(proxy),
            abi=self._proxy_abi,
        )
        try:
            return await aggregator_proxy.functions.aggregator().call()
        except Exception as e:
            raise OracleRegistryError(f"Unable to retrieve Chainlink aggregator: {e}") from e

    async def chainlink_proxy(self, reserve: str) -> str:
        """Return the Chainlink proxy Aave uses as the price source of a reserve."""
        try:
            source = await self._aave_oracle.functions.getSourceOfAsset(
                Web3.to_checksum_address(reserve)
            ).call()
        except Exception as e:
            raise OracleRegistryError(
                f"Unable to retrieve price oracle proxy for reserve {reserve}: {e}"
            ) from e
        if int(source, 16) == 0:
            raise OracleRegistryError(f"No price source configured for reserve {reserve}")
        return source
