"""
Median price extraction from an OffchainAggregator report.

The report carries a header followed by the oracle network's observations,
one 32-byte big-endian word each, already sorted ascending by the reporting
protocol. The aggregator writes the element at index len(observations) // 2
on-chain (OffchainAggregator.sol, _transmit), so the same rule recovers the
upcoming price: by position, no re-sorting, upper median for even counts.

Usage:
    from core.price_extractor import extract_median

    price = extract_median(decoded.report)
    if price is not None:
        ...
"""

from __future__ import annotations

from shared.constants import DEFAULT_REPORT_HEADER_WORDS, WORD_SIZE


def split_words(report: bytes) -> list[int] | None:
    """
    Split a report into consecutive 32-byte words as unsigned integers.

    Returns None when the length is not a whole multiple of the word size.
    """
    if len(report) % WORD_SIZE != 0:
        return None
    return [
        int.from_bytes(report[offset : offset + WORD_SIZE], "big")
        for offset in range(0, len(report), WORD_SIZE)
    ]


def extract_observations(
    report: bytes, header_words: int = DEFAULT_REPORT_HEADER_WORDS
) -> list[int] | None:
    """Return the observation words after the header, or None for a malformed layout."""
    words = split_words(report)
    if words is None:
        return None
    return words[header_words:]


def extract_median(
    report: bytes, header_words: int = DEFAULT_REPORT_HEADER_WORDS
) -> int | None:
    """
    Median observation of a report, or None when no prediction is producible.

    None covers both a length that is not word-aligned and a report with no
    observation words after the header.
    """
    observations = extract_observations(report, header_words)
    if not observations:
        return None
    return observations[len(observations) // 2]
