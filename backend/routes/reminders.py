"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Routes Reminders                                               ║
║                                                                              ║
║  CRUD opérateur + endpoints du poller externe (bot WhatsApp):                ║
║  GET  /reminders/pending            → reminders dus (now + look_ahead)       ║
║  POST /reminders/{id}/acknowledge   → queued / sent / failed                 ║
║  GET  /reminders/{id}/message       → texte rendu depuis le template global  ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

from fastapi import APIRouter, Depends, Query
from typing import Optional

from config import db
from routes.auth import get_current_user
from models import ReminderCreate, ReminderUpdate, ReminderAcknowledge, ReminderStatus
from services.reminder_scheduler import (
    create_manual_reminder,
    update_reminder,
    soft_delete_reminder,
    acknowledge_reminder,
    list_due_reminders,
    get_reminder_or_raise,
)
from services.template_renderer import render_reminder_message

router = APIRouter(prefix="/reminders", tags=["Reminders"])


@router.get("")
async def list_reminders(
    status: Optional[ReminderStatus] = None,
    contract_id: Optional[str] = None,
    client_id: Optional[str] = None,
    limit: int = Query(200, ge=1, le=1000),
    user: dict = Depends(get_current_user)
):
    query = {"deleted_at": None}
    if status:
        query["status"] = status.value
    if contract_id:
        query["contract_id"] = contract_id
    if client_id:
        query["client_id"] = client_id

    reminders = await db.reminders.find(query, {"_id": 0}).sort("scheduled_for", 1).to_list(limit)
    return {"reminders": reminders, "count": len(reminders)}


@router.get("/pending")
async def pending_reminders(
    look_ahead: int = Query(30, description="Minutes"),
    limit: int = Query(25),
    user: dict = Depends(get_current_user)
):
    """Poller: reminders to dispatch, with client and contract embedded"""
    reminders = await list_due_reminders(look_ahead, limit)

    for reminder in reminders:
        reminder["client"] = await db.clients.find_one({"id": reminder.get("client_id")}, {"_id": 0})
        reminder["contract"] = await db.contracts.find_one({"id": reminder.get("contract_id")}, {"_id": 0})

    return {"reminders": reminders, "count": len(reminders)}


@router.get("/{reminder_id}")
async def get_reminder(reminder_id: str, user: dict = Depends(get_current_user)):
    reminder = await get_reminder_or_raise(reminder_id)
    reminder["payments"] = await db.payments.find(
        {"reminder_id": reminder_id, "deleted_at": None}, {"_id": 0}
    ).to_list(5)
    return {"reminder": reminder}


@router.get("/{reminder_id}/message")
async def get_reminder_message(reminder_id: str, user: dict = Depends(get_current_user)):
    message = await render_reminder_message(reminder_id)
    return {"reminder_id": reminder_id, "message": message}


@router.post("")
async def create_reminder_route(data: ReminderCreate, user: dict = Depends(get_current_user)):
    reminder = await create_manual_reminder(data)
    return {"success": True, "reminder": reminder}


@router.put("/{reminder_id}")
async def update_reminder_route(reminder_id: str, data: ReminderUpdate, user: dict = Depends(get_current_user)):
    reminder = await update_reminder(reminder_id, data)
    return {"success": True, "reminder": reminder}


@router.post("/{reminder_id}/acknowledge")
async def acknowledge_reminder_route(
    reminder_id: str,
    data: ReminderAcknowledge,
    user: dict = Depends(get_current_user)
):
    reminder = await acknowledge_reminder(
        reminder_id,
        status=data.status.value,
        response_payload=data.response_payload,
        acknowledged_at=data.acknowledged_at
    )
    return {"success": True, "reminder": reminder}


@router.delete("/{reminder_id}")
async def delete_reminder_route(reminder_id: str, user: dict = Depends(get_current_user)):
    await soft_delete_reminder(reminder_id)
    return {"success": True}
