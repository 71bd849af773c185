"""
Shared constants for the Chainlink mempool watcher.

Protocol addresses, calldata layout constants, and default values used across all modules.
"""

# ---------------------------------------------------------------------------
# OffchainAggregator transmit() calldata
# ---------------------------------------------------------------------------

TRANSMIT_SIGNATURE = "transmit(bytes,bytes32[],bytes32[],bytes32)"
TRANSMIT_ABI_TYPES = ["bytes", "bytes32[]", "bytes32[]", "bytes32"]
SELECTOR_SIZE = 4

# ---------------------------------------------------------------------------
# Report layout
# ---------------------------------------------------------------------------

WORD_SIZE = 32  # EVM word, one observation per word
# Header words preceding the observations in an OffchainAggregator report
# (OffchainAggregator.sol v1 layout: rawReportContext, rawObservers, then
# the observations array offset and length). Verify against the target
# aggregator version before changing.
DEFAULT_REPORT_HEADER_WORDS = 4

# ---------------------------------------------------------------------------
# Prediction delivery
# ---------------------------------------------------------------------------

PREDICTION_CHANNEL_CAPACITY = 1

# ---------------------------------------------------------------------------
# Aave V2 Ethereum Mainnet Addresses (oracle discovery)
# ---------------------------------------------------------------------------

AAVE_V2_PROTOCOL_DATA_PROVIDER = "0x057835Ad21a177dbdd3090bB1CAE03EaCF78Fc6d"
AAVE_V2_ORACLE = "0xA50ba011c48153De246E5192C8f9258A2ba79Ca9"

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_CHAIN_ID = 1
DEFAULT_RECEIPT_TIMEOUT_SECONDS = 10.0
