"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Routes Contracts                                               ║
║                                                                              ║
║  Création = reminder planifié (si client résolu)                             ║
║  Mise à jour = reminders pending synchronisés                                ║
║  DELETE = soft delete + reminders                                            ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional

from config import db
from routes.auth import get_current_user
from models import ContractCreate, ContractUpdate, BillingCycle
from services.contract_lifecycle import (
    create_contract,
    update_contract,
    soft_delete_contract,
    get_contract_or_raise,
)

router = APIRouter(prefix="/contracts", tags=["Contracts"])


@router.get("")
async def list_contracts(
    client_id: Optional[str] = None,
    billing_cycle: Optional[BillingCycle] = None,
    unassigned: bool = False,
    limit: int = Query(200, ge=1, le=1000),
    user: dict = Depends(get_current_user)
):
    query = {"deleted_at": None}
    if client_id:
        query["client_id"] = client_id
    elif unassigned:
        query["client_id"] = None
    if billing_cycle:
        query["billing_cycle"] = billing_cycle.value

    contracts = await db.contracts.find(query, {"_id": 0}).sort("next_due_date", 1).to_list(limit)
    return {"contracts": contracts, "count": len(contracts)}


@router.get("/{contract_id}")
async def get_contract(contract_id: str, user: dict = Depends(get_current_user)):
    contract = await get_contract_or_raise(contract_id)
    contract["reminders"] = await db.reminders.find(
        {"contract_id": contract_id, "deleted_at": None}, {"_id": 0}
    ).sort("scheduled_for", 1).to_list(100)
    return {"contract": contract}


@router.post("")
async def create_contract_route(data: ContractCreate, user: dict = Depends(get_current_user)):
    contract = await create_contract(data, user=user.get("email", "system"))
    return {"success": True, "contract": contract}


@router.put("/{contract_id}")
async def update_contract_route(contract_id: str, data: ContractUpdate, user: dict = Depends(get_current_user)):
    contract = await update_contract(contract_id, data, user=user.get("email", "system"))
    return {"success": True, "contract": contract}


@router.delete("/{contract_id}")
async def delete_contract_route(contract_id: str, user: dict = Depends(get_current_user)):
    await soft_delete_contract(contract_id, user=user.get("email", "system"))
    return {"success": True}
