"""
COBROS CRM - Payment Service

Payments entered by operators (or the bot). Relationship fields are
cross-checked against the payment's client before anything is written.
A payment verified directly (no conciliation) settles its nearest reminder.
"""

import logging
import uuid
from typing import Optional, Dict, Tuple

from config import db, now_iso
from models.payment import PaymentCreate, PaymentUpdate, PaymentStatusUpdate
from services.contract_lifecycle import get_client_or_raise
from services.due_dates import local_today
from services.errors import ValidationError, ConflictError, NotFoundError
from services.event_logger import log_event
from services.settlement import settle_payment

logger = logging.getLogger("payments")


async def validate_payment_relations(
    client_id: str,
    contract_id: Optional[str],
    reminder_id: Optional[str]
) -> Tuple[Optional[str], Optional[str]]:
    """
    Contract and reminder must belong to client_id. Never reassigned.
    Returns (contract_id, reminder_id), contract resolved from the reminder if missing.
    """
    await get_client_or_raise(client_id, field="client_id")

    if contract_id:
        contract = await db.contracts.find_one({"id": contract_id, "deleted_at": None}, {"_id": 0})
        if not contract:
            raise ValidationError("contract_id", f"Contract {contract_id} does not exist")
        if contract.get("client_id") != client_id:
            raise ValidationError("contract_id", "Contract belongs to another client")

    if reminder_id:
        reminder = await db.reminders.find_one({"id": reminder_id, "deleted_at": None}, {"_id": 0})
        if not reminder:
            raise ValidationError("reminder_id", f"Reminder {reminder_id} does not exist")
        # Contract.client_id is authoritative, reminder.client_id is a copy
        owner = await db.contracts.find_one(
            {"id": reminder.get("contract_id"), "deleted_at": None}, {"_id": 0, "client_id": 1}
        )
        if not owner or owner.get("client_id") != client_id:
            raise ValidationError("reminder_id", "Reminder belongs to another client")
        if contract_id and reminder.get("contract_id") != contract_id:
            raise ValidationError("reminder_id", "Reminder belongs to another contract")
        contract_id = contract_id or reminder.get("contract_id")

    return contract_id, reminder_id


async def get_payment_or_raise(payment_id: str) -> Dict:
    payment = await db.payments.find_one({"id": payment_id, "deleted_at": None}, {"_id": 0})
    if not payment:
        raise NotFoundError("payment", payment_id)
    return payment


async def create_payment(data: PaymentCreate, user: str = "system") -> Dict:
    contract_id, reminder_id = await validate_payment_relations(
        data.client_id, data.contract_id, data.reminder_id
    )

    now = now_iso()
    paid_at = data.paid_at or local_today()
    payment = {
        "id": str(uuid.uuid4()),
        "client_id": data.client_id,
        "contract_id": contract_id,
        "reminder_id": reminder_id,
        "amount": data.amount,
        "currency": data.currency,
        "channel": data.channel,
        "status": data.status.value,
        "reference": data.reference,
        "paid_at": paid_at.isoformat(),
        "metadata": data.metadata or {},
        "created_at": now,
        "updated_at": now,
        "deleted_at": None,
    }
    await db.payments.insert_one(payment)
    payment.pop("_id", None)

    await log_event(
        action="payment_create",
        entity_type="payment",
        entity_id=payment["id"],
        user=user,
        details={"amount": payment["amount"], "currency": payment["currency"], "status": payment["status"]},
        related={"client_id": payment["client_id"], "contract_id": contract_id, "reminder_id": reminder_id}
    )

    if payment["status"] == "verified":
        payment["settlement"] = await settle_payment(payment, user=user)

    return payment


async def update_payment(payment_id: str, data: PaymentUpdate, user: str = "system") -> Dict:
    payment = await get_payment_or_raise(payment_id)
    fields = data.model_dump(exclude_unset=True)

    contract_id = fields.get("contract_id", payment.get("contract_id"))
    reminder_id = fields.get("reminder_id", payment.get("reminder_id"))
    if "contract_id" in fields or "reminder_id" in fields:
        contract_id, reminder_id = await validate_payment_relations(
            payment["client_id"], contract_id, reminder_id
        )
        fields["contract_id"] = contract_id
        fields["reminder_id"] = reminder_id

    if "metadata" in fields:
        fields["metadata"] = {**(payment.get("metadata") or {}), **(fields["metadata"] or {})}
    if fields.get("paid_at"):
        fields["paid_at"] = fields["paid_at"].isoformat()

    fields["updated_at"] = now_iso()
    await db.payments.update_one({"id": payment_id}, {"$set": fields})
    payment.update(fields)
    return payment


async def change_payment_status(payment_id: str, data: PaymentStatusUpdate, user: str = "system") -> Dict:
    """Moving into verified settles the nearest reminder (direct path)"""
    payment = await get_payment_or_raise(payment_id)

    # Status mirrors the conciliation when one exists
    conciliation = await db.conciliations.find_one({"payment_id": payment_id}, {"_id": 0, "id": 1})
    if conciliation:
        raise ConflictError(f"Payment {payment_id} is under conciliation {conciliation['id']}")

    old_status = payment.get("status")
    new_status = data.status.value

    update = {"status": new_status, "updated_at": now_iso()}
    if data.paid_at:
        update["paid_at"] = data.paid_at.isoformat()
    if data.metadata:
        update["metadata"] = {**(payment.get("metadata") or {}), **data.metadata}

    await db.payments.update_one({"id": payment_id}, {"$set": update})
    payment.update(update)

    await log_event(
        action="payment_status_update",
        entity_type="payment",
        entity_id=payment_id,
        user=user,
        details={"old_status": old_status, "new_status": new_status}
    )

    if new_status == "verified" and old_status != "verified":
        payment["settlement"] = await settle_payment(payment, user=user)

    return payment


async def soft_delete_payment(payment_id: str, user: str = "system") -> Dict:
    payment = await get_payment_or_raise(payment_id)

    conciliation = await db.conciliations.find_one({"payment_id": payment_id}, {"_id": 0, "id": 1})
    if conciliation:
        raise ConflictError(f"Payment {payment_id} has a conciliation, delete it first")

    now = now_iso()
    await db.payments.update_one({"id": payment_id}, {"$set": {"deleted_at": now, "updated_at": now}})
    logger.info(f"Payment {payment_id} deleted by {user}")
    payment["deleted_at"] = now
    return payment
