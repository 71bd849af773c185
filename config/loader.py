"""
Configuration loader for the Chainlink mempool watcher.

Provides centralized configuration management with .env overrides.

Usage:
    from config.loader import get_config, get_env_var

    config = get_config()
    chain_config = config.get_chain_config(1)
    header_words = config.get_mempool_config().get("report_header_words", 4)
"""

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

load_dotenv()

# Resolve config directory relative to this file
_CONFIG_DIR = Path(__file__).parent
_PROJECT_ROOT = _CONFIG_DIR.parent


def _load_json(filepath: Path) -> Dict[str, Any]:
    """Load a JSON config file. Returns empty dict if file doesn't exist."""
    try:
        with open(filepath, "r") as f:
            return json.load(f)
    except FileNotFoundError:
        print(f"[CONFIG_WARN] Config file not found: {filepath}")
        return {}
    except json.JSONDecodeError as e:
        print(f"[CONFIG_ERROR] Invalid JSON in {filepath}: {e}")
        return {}


def get_env_var(var_name: str, default_value: Any, var_type: type) -> Any:
    """Get environment variable with type conversion and fallback."""
    value = os.getenv(var_name, None)
    if value is None:
        return default_value
    try:
        if var_type == bool:
            return value.lower() in ("true", "1", "yes")
        return var_type(value)
    except (ValueError, TypeError):
        return default_value


class ConfigLoader:
    """
    Central configuration manager for the mempool watcher.

    Loads configuration from JSON files in the config/ directory with .env overrides.
    All accessor methods are cached via @lru_cache.
    """

    _instance: Optional["ConfigLoader"] = None

    def __init__(self):
        self._config_dir = _CONFIG_DIR
        self._project_root = _PROJECT_ROOT

    @classmethod
    def get_instance(cls) -> "ConfigLoader":
        """Singleton accessor."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    # ------------------------------------------------------------------
    # Core config file loaders (cached)
    # ------------------------------------------------------------------

    @lru_cache(maxsize=8)
    def get_chain_config(self, chain_id: int = 1) -> Dict[str, Any]:
        """Load chain-specific config (Ethereum mainnet = 1)."""
        return _load_json(self._config_dir / "chains" / f"{chain_id}.json")

    @lru_cache(maxsize=1)
    def get_app_config(self) -> Dict[str, Any]:
        """Load general application settings."""
        return _load_json(self._config_dir / "app.json")

    @lru_cache(maxsize=1)
    def get_websocket_config(self) -> Dict[str, Any]:
        """Load WebSocket connection settings."""
        return _load_json(self._config_dir / "websocket.json")

    @lru_cache(maxsize=1)
    def get_mempool_config(self) -> Dict[str, Any]:
        """Load pending-transaction pipeline settings (header words, channel capacity)."""
        return _load_json(self._config_dir / "mempool.json")

    @lru_cache(maxsize=1)
    def get_oracles_config(self) -> Dict[str, Any]:
        """Load oracle selection settings (asset allow-list, pinned oracles)."""
        return _load_json(self._config_dir / "oracles.json")

    # ------------------------------------------------------------------
    # ABI loader
    # ------------------------------------------------------------------

    @lru_cache(maxsize=32)
    def get_abi(self, abi_name: str) -> list:
        """Load ABI from config/abis/<abi_name>.json."""
        data = _load_json(self._config_dir / "abis" / f"{abi_name}.json")
        # ABI files are either raw arrays or {"abi": [...]}
        if isinstance(data, list):
            return data
        return data.get("abi", [])

    # ------------------------------------------------------------------
    # RPC endpoints (env overrides chain config)
    # ------------------------------------------------------------------

    def get_http_url(self, chain_id: int = 1) -> str:
        """Query endpoint URL: RPC_HTTP_URL env var, else chains/<id>.json rpc.http_url."""
        rpc = self.get_chain_config(chain_id).get("rpc", {})
        return get_env_var("RPC_HTTP_URL", rpc.get("http_url", ""), str)

    def get_ws_url(self, chain_id: int = 1) -> str:
        """Streaming endpoint URL: RPC_WS_URL env var, else chains/<id>.json rpc.ws_url."""
        rpc = self.get_chain_config(chain_id).get("rpc", {})
        return get_env_var("RPC_WS_URL", rpc.get("ws_url", ""), str)

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        """Clear all cached configurations (useful for testing)."""
        for method_name in dir(self):
            method = getattr(self, method_name)
            if hasattr(method, "cache_clear"):
                method.cache_clear()


# ---------------------------------------------------------------------------
# Module-level convenience functions
# ---------------------------------------------------------------------------

def get_config() -> ConfigLoader:
    """Get the singleton ConfigLoader instance."""
    return ConfigLoader.get_instance()
