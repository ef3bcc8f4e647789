"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Routes Conciliations                                           ║
║                                                                              ║
║  Revue humaine d'un paiement (1:1). Toute la logique d'état vit dans         ║
║  services/conciliation_state_machine.py                                      ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional

from config import db
from routes.auth import get_current_user
from models import ConciliationCreate, ConciliationUpdate, ConciliationStatus
from services.conciliation_state_machine import (
    create_conciliation,
    update_conciliation,
    delete_conciliation,
    get_conciliation_or_raise,
)

router = APIRouter(prefix="/conciliations", tags=["Conciliations"])


@router.get("")
async def list_conciliations(
    status: Optional[ConciliationStatus] = None,
    payment_id: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
    user: dict = Depends(get_current_user)
):
    query = {}
    if status:
        query["status"] = status.value
    if payment_id:
        query["payment_id"] = payment_id

    conciliations = await db.conciliations.find(query, {"_id": 0}).sort("created_at", -1).to_list(limit)
    return {"conciliations": conciliations, "count": len(conciliations)}


@router.get("/{conciliation_id}")
async def get_conciliation(conciliation_id: str, user: dict = Depends(get_current_user)):
    conciliation = await get_conciliation_or_raise(conciliation_id)
    conciliation["payment"] = await db.payments.find_one({"id": conciliation["payment_id"]}, {"_id": 0})
    return {"conciliation": conciliation}


@router.post("")
async def create_conciliation_route(data: ConciliationCreate, user: dict = Depends(get_current_user)):
    conciliation = await create_conciliation(data, user)
    return {"success": True, "conciliation": conciliation}


@router.put("/{conciliation_id}")
async def update_conciliation_route(
    conciliation_id: str,
    data: ConciliationUpdate,
    user: dict = Depends(get_current_user)
):
    conciliation = await update_conciliation(conciliation_id, data, user)
    return {"success": True, "conciliation": conciliation}


@router.delete("/{conciliation_id}")
async def delete_conciliation_route(conciliation_id: str, user: dict = Depends(get_current_user)):
    await delete_conciliation(conciliation_id, user)
    return {"success": True}
