"""
Serialization utilities for the Chainlink mempool watcher.

Provides JSON encoding for HexBytes, large integers, and web3 types so
predictions (uint256 prices, tx hashes) survive JSON consumers intact.

Usage:
    from shared.serialization_utils import DecimalEncoder
    json.dumps(prediction.to_dict(), cls=DecimalEncoder)
"""

import json
from decimal import Decimal
from json import JSONEncoder
from typing import Any

from hexbytes import HexBytes


class DecimalEncoder(JSONEncoder):
    """
    Custom JSON encoder handling Decimal, HexBytes, large integers, and web3.py types.

    Sources:
    - RFC 7159 section 6 (JSON number limits)
    - IEEE 754-2008 (double precision safe integer limit: 2^53 - 1)
    """

    # IEEE 754 double precision safe integer limit
    _MAX_SAFE_INTEGER = 2**53 - 1

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        # Handle HexBytes from web3.py (addresses, tx hashes, raw bytes)
        if isinstance(obj, HexBytes):
            return obj.to_0x_hex()
        if isinstance(obj, (bytes, bytearray)):
            return "0x" + bytes(obj).hex()
        # Handle web3.py AttributeDict (common in transaction/block responses)
        if hasattr(obj, "__iter__") and hasattr(obj, "keys"):
            return dict(obj)
        return super().default(obj)

    def encode(self, obj: Any) -> str:
        """Override encode to convert large integers to strings before JSON serialization."""
        return super().encode(self._convert_large_ints(obj))

    def _convert_large_ints(self, obj: Any) -> Any:
        """
        Recursively convert integers exceeding IEEE 754 safe limits to strings.

        Oracle answers are uint256 words and routinely exceed
        JavaScript Number.MAX_SAFE_INTEGER.
        """
        if isinstance(obj, dict):
            return {k: self._convert_large_ints(v) for k, v in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [self._convert_large_ints(item) for item in obj]
        elif isinstance(obj, bool):
            return obj
        elif isinstance(obj, int) and (obj > self._MAX_SAFE_INTEGER or obj < -self._MAX_SAFE_INTEGER):
            return str(obj)
        return obj


def dumps_prediction(payload: dict[str, Any]) -> str:
    """Serialize a prediction payload with uint256-safe encoding."""
    return json.dumps(payload, cls=DecimalEncoder)
