"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Routes Payments                                                ║
║                                                                              ║
║  contract_id / reminder_id validés contre client_id (jamais réassignés)      ║
║  status=verified direct → settlement du reminder le plus proche              ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional

from config import db
from routes.auth import get_current_user
from models import PaymentCreate, PaymentUpdate, PaymentStatusUpdate, PaymentStatus
from services.payments import (
    create_payment,
    update_payment,
    change_payment_status,
    soft_delete_payment,
    get_payment_or_raise,
)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.get("")
async def list_payments(
    client_id: Optional[str] = None,
    contract_id: Optional[str] = None,
    status: Optional[PaymentStatus] = None,
    channel: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
    user: dict = Depends(get_current_user)
):
    query = {"deleted_at": None}
    if client_id:
        query["client_id"] = client_id
    if contract_id:
        query["contract_id"] = contract_id
    if status:
        query["status"] = status.value
    if channel:
        query["channel"] = channel

    payments = await db.payments.find(query, {"_id": 0}).sort("created_at", -1).to_list(limit)
    return {"payments": payments, "count": len(payments)}


@router.get("/{payment_id}")
async def get_payment(payment_id: str, user: dict = Depends(get_current_user)):
    payment = await get_payment_or_raise(payment_id)
    payment["conciliation"] = await db.conciliations.find_one({"payment_id": payment_id}, {"_id": 0})
    return {"payment": payment}


@router.post("")
async def create_payment_route(data: PaymentCreate, user: dict = Depends(get_current_user)):
    payment = await create_payment(data, user=user.get("email", "system"))
    return {"success": True, "payment": payment}


@router.put("/{payment_id}")
async def update_payment_route(payment_id: str, data: PaymentUpdate, user: dict = Depends(get_current_user)):
    payment = await update_payment(payment_id, data, user=user.get("email", "system"))
    return {"success": True, "payment": payment}


@router.post("/{payment_id}/status")
async def payment_status_route(
    payment_id: str,
    data: PaymentStatusUpdate,
    user: dict = Depends(get_current_user)
):
    payment = await change_payment_status(payment_id, data, user=user.get("email", "system"))
    return {"success": True, "payment": payment}


@router.delete("/{payment_id}")
async def delete_payment_route(payment_id: str, user: dict = Depends(get_current_user)):
    await soft_delete_payment(payment_id, user=user.get("email", "system"))
    return {"success": True}
