"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Routes Clients                                                 ║
║                                                                              ║
║  CRUD clients + assign-later (contract_id on create/update)                  ║
║  DELETE = soft delete en cascade (contracts, reminders, payments)            ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional

from config import db
from routes.auth import get_current_user
from models import ClientCreate, ClientUpdate, ClientStatus
from services.contract_lifecycle import (
    create_client,
    update_client,
    soft_delete_client,
    get_client_or_raise,
)

router = APIRouter(prefix="/clients", tags=["Clients"])


@router.get("")
async def list_clients(
    status: Optional[ClientStatus] = None,
    search: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
    user: dict = Depends(get_current_user)
):
    query = {"deleted_at": None}
    if status:
        query["status"] = status.value
    if search:
        query["name"] = {"$regex": search, "$options": "i"}

    clients = await db.clients.find(query, {"_id": 0}).sort("name", 1).to_list(limit)
    return {"clients": clients, "count": len(clients)}


@router.get("/{client_id}")
async def get_client(client_id: str, user: dict = Depends(get_current_user)):
    """Client + ses contrats actifs"""
    client = await get_client_or_raise(client_id)
    client["contracts"] = await db.contracts.find(
        {"client_id": client_id, "deleted_at": None}, {"_id": 0}
    ).to_list(200)
    return {"client": client}


@router.post("")
async def create_client_route(data: ClientCreate, user: dict = Depends(get_current_user)):
    client = await create_client(data, user=user.get("email", "system"))
    return {"success": True, "client": client}


@router.put("/{client_id}")
async def update_client_route(client_id: str, data: ClientUpdate, user: dict = Depends(get_current_user)):
    client = await update_client(client_id, data, user=user.get("email", "system"))
    return {"success": True, "client": client}


@router.delete("/{client_id}")
async def delete_client_route(client_id: str, user: dict = Depends(get_current_user)):
    await soft_delete_client(client_id, user=user.get("email", "system"))
    return {"success": True}
