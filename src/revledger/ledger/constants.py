# src/revledger/ledger/constants.py
from __future__ import annotations

"""Ledger numeric constants.

All amounts are non-negative integers of the asset's smallest unit (wei for
the native currency, base units for ERC-20 style tokens).
"""

# Fixed-point scale for the reward-per-weight accumulator.
SCALE: int = 1 << 128

# Upper bound for every stored integer (uint256 domain).
UINT256_MAX: int = (1 << 256) - 1

# Fee percentages use two decimals: 100_00 == 100.00%.
MAX_PERCENT: int = 100_00

# Flat share tables for ERC721 collections use five decimals.
SHARE_TOTAL_5DP: int = 100_00000

# 1 ether in wei.
ETHER: int = 10**18

ZERO_ADDRESS: str = "0x" + "0" * 40

# Asset tags handed to payout sinks.
ASSET_NATIVE: str = "native"
ASSET_STAKE: str = "stake"

# Default credit book id for the protocol fixed cut.
PROTOCOL_BOOK: str = "protocol"
