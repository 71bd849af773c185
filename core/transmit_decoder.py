"""
Calldata decoder for OffchainAggregator.transmit().

Pending transactions sent to an aggregator are matched against exactly one
signature:

    transmit(bytes report, bytes32[] rs, bytes32[] ss, bytes32 rawVs)

Anything else (other functions, truncated or garbage calldata) is ordinary
traffic and decodes to None. Nothing here raises on bad input.
"""

from __future__ import annotations

from typing import Union

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes
from web3 import Web3

from shared.constants import SELECTOR_SIZE, TRANSMIT_ABI_TYPES, TRANSMIT_SIGNATURE
from shared.types import DecodedReport

# 0xc9807539
TRANSMIT_SELECTOR: bytes = bytes(Web3.keccak(text=TRANSMIT_SIGNATURE)[:SELECTOR_SIZE])

CalldataLike = Union[bytes, bytearray, HexBytes, str]


def _as_bytes(calldata: CalldataLike) -> bytes | None:
    if isinstance(calldata, str):
        try:
            return bytes(HexBytes(calldata))
        except ValueError:
            return None
    return bytes(calldata)


def is_transmit_call(calldata: CalldataLike) -> bool:
    """Cheap selector check, no argument decoding."""
    data = _as_bytes(calldata)
    return data is not None and data[:SELECTOR_SIZE] == TRANSMIT_SELECTOR


def decode_transmit(calldata: CalldataLike) -> DecodedReport | None:
    """
    Decode transmit() calldata.

    Returns None on a selector mismatch or a malformed argument layout.
    """
    data = _as_bytes(calldata)
    if data is None or len(data) < SELECTOR_SIZE or data[:SELECTOR_SIZE] != TRANSMIT_SELECTOR:
        return None
    try:
        report, rs, ss, raw_vs = abi_decode(TRANSMIT_ABI_TYPES, data[SELECTOR_SIZE:])
    except (DecodingError, ValueError, OverflowError):
        return None
    return DecodedReport(
        report=bytes(report),
        rs=tuple(bytes(r) for r in rs),
        ss=tuple(bytes(s) for s in ss),
        raw_vs=bytes(raw_vs),
    )


def encode_transmit(
    report: bytes,
    rs: list[bytes] | tuple[bytes, ...] = (),
    ss: list[bytes] | tuple[bytes, ...] = (),
    raw_vs: bytes = b"\x00" * 32,
) -> bytes:
    """Build transmit() calldata (selector + ABI-encoded arguments)."""
    return TRANSMIT_SELECTOR + abi_encode(TRANSMIT_ABI_TYPES, [report, list(rs), list(ss), raw_vs])
