# src/revledger/api/routes_parts/managers.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Query, Request

from revledger.api.errors import ApiError
from revledger.api.routes_parts.common import _manager, _runtime
from revledger.api.schemas import ClaimRequest
from revledger.managers.owner_split import OwnerFeeSplitManager
from revledger.managers.revenue import RevenueManager

router = APIRouter()

Json = Dict[str, Any]


@router.get("/managers")
def list_managers(request: Request) -> Json:
    rt = _runtime(request)
    return {"ok": True, "managers": [rt.get(mid).describe() for mid in rt.ids()]}


@router.get("/managers/{manager_id}")
def get_manager(manager_id: str, request: Request) -> Json:
    return {"ok": True, "manager": _manager(request, manager_id).describe()}


@router.get("/managers/{manager_id}/claimable/{account}")
def claimable(manager_id: str, account: str, request: Request) -> Json:
    m = _manager(request, manager_id)
    return {
        "ok": True,
        "manager_id": m.manager_id,
        "account": account,
        "claimable": int(m.claimable(account)),
        "total_claimed": int(m.total_claimed(account)),
    }


@router.post("/managers/{manager_id}/claim")
def claim(manager_id: str, body: ClaimRequest, request: Request) -> Json:
    """
    Pay the caller what it is owed.

    `tokens` is only meaningful for owner_split managers and `pools` only
    for revenue managers; anything else is a bad request.
    """
    rt = _runtime(request)
    m = rt.get(manager_id)

    if body.tokens is not None:
        if not isinstance(m, OwnerFeeSplitManager):
            raise ApiError.bad_request("invalid_payload", "tokens only apply to owner_split managers", {"kind": m.KIND})
        amount = m.claim_tokens(body.caller, [(t.collection, t.token_id) for t in body.tokens])
    elif body.pools is not None:
        if not isinstance(m, RevenueManager):
            raise ApiError.bad_request("invalid_payload", "pools only apply to revenue managers", {"kind": m.KIND})
        amount = m.claim_pools(body.caller, body.pools)
    else:
        amount = m.claim(body.caller)

    rt.persist(m.manager_id)
    return {"ok": True, "manager_id": m.manager_id, "caller": body.caller, "amount": int(amount)}


@router.get("/managers/{manager_id}/events")
def events(
    manager_id: str,
    request: Request,
    since: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
) -> Json:
    m = _manager(request, manager_id)
    out = [e.to_dict() for e in m.events.since(since, limit=limit)]
    return {"ok": True, "manager_id": m.manager_id, "events": out, "last_seq": int(m.events.last_seq)}
