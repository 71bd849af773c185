"""
Configuration schema validation for the mempool watcher.

Validates that all required config files exist and contain required keys.
Run at startup to fail fast on misconfiguration, before any pipeline exists.
"""

from typing import Any

from config.loader import get_config


class ConfigValidationError(ValueError):
    """Raised when a required config key is missing or invalid."""

    pass


def _check_keys(config: dict[str, Any], required_keys: list[str], config_name: str) -> list[str]:
    """Check that all required keys exist in a config dict. Returns list of missing keys."""
    missing = []
    for key in required_keys:
        parts = key.split(".")
        current = config
        for part in parts:
            if not isinstance(current, dict) or part not in current:
                missing.append(key)
                break
            current = current[part]
    return missing


def validate_chain_config(config: dict[str, Any]) -> list[str]:
    """Validate chains/1.json has required fields."""
    return _check_keys(
        config,
        [
            "chain_id",
            "rpc.http_url",
            "rpc.ws_url",
            "contracts.aave_protocol_data_provider",
            "contracts.aave_oracle",
        ],
        "chains/1.json",
    )


def validate_mempool_config(config: dict[str, Any]) -> list[str]:
    """Validate mempool.json has required fields and sane values."""
    errors = _check_keys(
        config,
        [
            "report_header_words",
            "channel_capacity",
        ],
        "mempool.json",
    )
    if not errors:
        header_words = config.get("report_header_words")
        if not isinstance(header_words, int) or header_words < 0:
            errors.append("report_header_words: must be a non-negative integer")
        capacity = config.get("channel_capacity")
        if not isinstance(capacity, int) or capacity < 1:
            errors.append("channel_capacity: must be a positive integer")
    return errors


def validate_websocket_config(config: dict[str, Any]) -> list[str]:
    """Validate websocket.json has required fields."""
    return _check_keys(
        config,
        [
            "connection.ping_interval_seconds",
            "timeouts.subscription_response_timeout_seconds",
            "reconnection.base_delay_seconds",
            "reconnection.max_delay_seconds",
        ],
        "websocket.json",
    )


def validate_endpoints(http_url: str, ws_url: str) -> list[str]:
    """Validate resolved RPC endpoints (after env overrides)."""
    errors = []
    if not http_url:
        errors.append("rpc.http_url: empty (set RPC_HTTP_URL)")
    if not ws_url:
        errors.append("rpc.ws_url: empty (set RPC_WS_URL)")
    elif not ws_url.startswith(("ws://", "wss://")):
        errors.append(f"rpc.ws_url: not a websocket URL: {ws_url}")
    return errors


def validate_all_configs(chain_id: int = 1) -> None:
    """
    Validate all config files. Raises ConfigValidationError with details
    if any required keys are missing.
    """
    loader = get_config()
    all_errors: dict[str, list[str]] = {}

    validators = {
        f"chains/{chain_id}.json": (lambda: loader.get_chain_config(chain_id), validate_chain_config),
        "mempool.json": (loader.get_mempool_config, validate_mempool_config),
        "websocket.json": (loader.get_websocket_config, validate_websocket_config),
    }

    for config_name, (loader_fn, validator_fn) in validators.items():
        config = loader_fn()
        if not config:
            all_errors[config_name] = ["Config file is empty or not found"]
            continue
        errors = validator_fn(config)
        if errors:
            all_errors[config_name] = errors

    endpoint_errors = validate_endpoints(loader.get_http_url(chain_id), loader.get_ws_url(chain_id))
    if endpoint_errors:
        all_errors.setdefault("endpoints", []).extend(endpoint_errors)

    if all_errors:
        lines = ["Configuration validation failed:"]
        for config_name, errors in all_errors.items():
            lines.append(f"\n  {config_name}:")
            for error in errors:
                lines.append(f"    - missing: {error}")
        raise ConfigValidationError("\n".join(lines))
