# src/revledger/managers/__init__.py
"""
Fee managers.

Each manager is a thin adapter over the generic ClaimEngine:
  - revenue: creator per escrowed pool, protocol cut
  - staking: protocol and creator cuts, stakers share the rest
  - owner_split: ERC721 collections share a pool, paid to token holders
  - multi_recipient: fixed percentage table
"""

from __future__ import annotations

from revledger.managers.base import TreasuryManager
from revledger.managers.factory import MANAGER_TYPES, build_manager, deploy_manager
from revledger.managers.multi_recipient import MultiRecipientRevenueManager
from revledger.managers.owner_split import OwnerFeeSplitManager
from revledger.managers.revenue import RevenueManager
from revledger.managers.staking import StakingManager

__all__ = [
    "TreasuryManager",
    "RevenueManager",
    "StakingManager",
    "OwnerFeeSplitManager",
    "MultiRecipientRevenueManager",
    "MANAGER_TYPES",
    "build_manager",
    "deploy_manager",
]
