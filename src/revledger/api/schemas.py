# src/revledger/api/schemas.py
from __future__ import annotations

"""Pydantic request schemas for the HTTP API.

Amounts in responses are plain JSON integers; Python clients read them
exactly. Requests never carry amounts: claims pay whatever is owed.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class TokenRef(BaseModel):
    collection: str = Field(..., description="ERC721 collection id")
    token_id: int = Field(..., ge=0, description="Token id within the collection")


class ClaimRequest(BaseModel):
    caller: str = Field(..., min_length=1, description="Account claiming; funds are paid to it")

    # RevenueManager: restrict the claim to these pools (default: all of the caller's pools)
    pools: Optional[List[str]] = Field(default=None, description="Pool ids to claim")

    # OwnerFeeSplitManager: claim for these tokens (caller must hold each one)
    tokens: Optional[List[TokenRef]] = Field(default=None, description="Tokens to claim for")
