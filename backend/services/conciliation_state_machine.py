"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Conciliation State Machine                                     ║
║                                                                              ║
║  pending → in_review → approved | rejected                                   ║
║  approved / rejected: terminal for the instance (re-approval re-settles)     ║
║                                                                              ║
║  INVARIANTS:                                                                 ║
║  - 1 conciliation max par payment (index unique = vraie garantie)            ║
║  - payment.status == PAYMENT_STATUS_MIRROR[conciliation.status]              ║
║  - approved: la transition est commitée AVANT le settlement (best-effort)    ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from typing import Optional, Dict, Any

from pymongo.errors import DuplicateKeyError

from config import db, now_iso
from models.conciliation import (
    ConciliationCreate,
    ConciliationUpdate,
    REVIEW_OUTCOMES,
    payment_status_for,
)
from services.due_dates import to_storage
from services.errors import ConflictError, NotFoundError, InvalidTransitionError
from services.event_logger import log_event
from services.messaging_client import send_message
from services.settings import get_message_settings
from services.settlement import settle_payment, payment_months
from services.template_renderer import settlement_notice

logger = logging.getLogger("conciliation")


# ════════════════════════════════════════════════════════════════════════════
# VALID STATE TRANSITIONS
# ════════════════════════════════════════════════════════════════════════════

VALID_CONCILIATION_TRANSITIONS = {
    "pending": ["pending", "in_review", "approved", "rejected"],
    "in_review": ["pending", "in_review", "approved", "rejected"],
    "approved": ["approved"],  # TERMINAL (re-approval allowed, idempotent)
    "rejected": ["rejected"],  # TERMINAL
}


def validate_conciliation_transition(conciliation_id: str, from_status: str, to_status: str) -> None:
    valid_next = VALID_CONCILIATION_TRANSITIONS.get(from_status, [])
    if to_status not in valid_next:
        raise InvalidTransitionError("conciliation", conciliation_id, from_status, to_status, valid_next)


async def get_conciliation_or_raise(conciliation_id: str) -> Dict:
    conciliation = await db.conciliations.find_one({"id": conciliation_id}, {"_id": 0})
    if not conciliation:
        raise NotFoundError("conciliation", conciliation_id)
    return conciliation


def _verified_at(value) -> str:
    return to_storage(value) if value else now_iso()


def _status_value(status) -> str:
    return getattr(status, "value", status)


# ════════════════════════════════════════════════════════════════════════════
# PHASE 1 - AUTHORITATIVE TRANSITION
# ════════════════════════════════════════════════════════════════════════════

async def create_conciliation(data: ConciliationCreate, user: Dict) -> Dict[str, Any]:
    """
    Create the review record of a payment and mirror its status.

    Raises:
        NotFoundError: payment missing or deleted
        ConflictError: a conciliation already exists for the payment
    """
    payment = await db.payments.find_one({"id": data.payment_id, "deleted_at": None}, {"_id": 0})
    if not payment:
        raise NotFoundError("payment", data.payment_id)

    # Fast path only: the unique index on payment_id is the real guard
    existing = await db.conciliations.find_one({"payment_id": data.payment_id}, {"_id": 0, "id": 1})
    if existing:
        raise ConflictError(f"Conciliation already exists for payment {data.payment_id}")

    status = _status_value(data.status)
    now = now_iso()
    conciliation = {
        "id": str(uuid.uuid4()),
        "payment_id": data.payment_id,
        "status": status,
        "notes": data.notes,
        "reviewed_by": user.get("id"),
        "verified_at": _verified_at(data.verified_at) if status in REVIEW_OUTCOMES else None,
        "created_at": now,
        "updated_at": now,
    }

    try:
        await db.conciliations.insert_one(conciliation)
    except DuplicateKeyError:
        raise ConflictError(f"Conciliation already exists for payment {data.payment_id}")
    conciliation.pop("_id", None)

    metadata = dict(payment.get("metadata") or {})
    if data.months is not None:
        metadata["months"] = data.months
    if data.contract_id:
        metadata["conciliation_contract_id"] = data.contract_id
    if data.calculated_amount is not None:
        metadata["calculated_amount"] = data.calculated_amount

    payment_update = {
        "status": payment_status_for(status).value,
        "metadata": metadata,
        "updated_at": now,
    }
    try:
        await db.payments.update_one({"id": payment["id"]}, {"$set": payment_update})
    except Exception:
        await db.conciliations.delete_one({"id": conciliation["id"]})
        raise
    payment.update(payment_update)

    logger.info(f"Conciliation {conciliation['id']} created ({status}) for payment {payment['id']}")
    await log_event(
        action="conciliation_create",
        entity_type="conciliation",
        entity_id=conciliation["id"],
        user=user.get("email", "system"),
        details={"status": status, "months": metadata.get("months")},
        related={"payment_id": payment["id"], "client_id": payment.get("client_id")}
    )

    if status == "approved":
        conciliation["settlement"] = await after_approval(conciliation, payment, user)

    return conciliation


async def update_conciliation(conciliation_id: str, data: ConciliationUpdate, user: Dict) -> Dict[str, Any]:
    conciliation = await get_conciliation_or_raise(conciliation_id)
    fields = data.model_dump(exclude_unset=True)

    old_status = conciliation["status"]
    new_status = _status_value(fields.get("status") or old_status)
    validate_conciliation_transition(conciliation_id, old_status, new_status)

    update = {"updated_at": now_iso()}
    if "notes" in fields:
        update["notes"] = fields["notes"]

    if not conciliation.get("reviewed_by"):
        update["reviewed_by"] = fields.get("reviewed_by") or user.get("id")

    if "status" in fields and fields["status"] is not None:
        update["status"] = new_status
        # Only a move into an outcome stamps verified_at
        if new_status in REVIEW_OUTCOMES and new_status != old_status:
            update["verified_at"] = _verified_at(fields.get("verified_at"))

    await db.conciliations.update_one({"id": conciliation_id}, {"$set": update})
    conciliation.update(update)

    payment = await db.payments.find_one({"id": conciliation["payment_id"]}, {"_id": 0})
    if payment and "status" in update:
        mirrored = payment_status_for(new_status).value
        await db.payments.update_one(
            {"id": payment["id"]},
            {"$set": {"status": mirrored, "updated_at": now_iso()}}
        )
        payment["status"] = mirrored

    await log_event(
        action="conciliation_update",
        entity_type="conciliation",
        entity_id=conciliation_id,
        user=user.get("email", "system"),
        details={"old_status": old_status, "new_status": new_status},
        related={"payment_id": conciliation["payment_id"]}
    )

    if payment and "status" in update and new_status == "approved":
        conciliation["settlement"] = await after_approval(
            conciliation, payment, user, notify=old_status != "approved"
        )

    return conciliation


async def delete_conciliation(conciliation_id: str, user: Dict) -> Dict[str, Any]:
    """Undo review: the payment goes back to unverified"""
    conciliation = await get_conciliation_or_raise(conciliation_id)

    await db.conciliations.delete_one({"id": conciliation_id})
    await db.payments.update_one(
        {"id": conciliation["payment_id"]},
        {"$set": {"status": "unverified", "updated_at": now_iso()}}
    )

    logger.info(f"Conciliation {conciliation_id} deleted, payment {conciliation['payment_id']} unverified")
    await log_event(
        action="conciliation_delete",
        entity_type="conciliation",
        entity_id=conciliation_id,
        user=user.get("email", "system"),
        details={"status": conciliation["status"]},
        related={"payment_id": conciliation["payment_id"]}
    )
    return conciliation


# ════════════════════════════════════════════════════════════════════════════
# PHASE 2 - DERIVED EFFECTS (never roll back the approval)
# ════════════════════════════════════════════════════════════════════════════

async def after_approval(conciliation: Dict, payment: Dict, user: Dict, notify: bool = True) -> Optional[Dict]:
    """Settlement, then the client notice (first approval only)"""
    summary = None
    try:
        summary = await settle_payment(payment, conciliation, user=user.get("email", "system"))
    except Exception as e:
        logger.exception(f"Settlement failed for conciliation {conciliation['id']}")
        await log_event(
            action="settlement_failed",
            entity_type="conciliation",
            entity_id=conciliation["id"],
            user=user.get("email", "system"),
            details={"error": str(e)},
            related={"payment_id": payment["id"]}
        )

    if notify:
        await notify_approval(payment)
    return summary


async def notify_approval(payment: Dict) -> bool:
    """Confirmation message to the client through the bot"""
    client = await db.clients.find_one({"id": payment.get("client_id")}, {"_id": 0})
    if not client or not client.get("phone"):
        return False

    settings = await get_message_settings()
    text = settlement_notice(
        client.get("name", ""),
        payment.get("amount", 0),
        payment.get("currency", ""),
        payment_months(payment) or 1,
        settings.get("company_name", "")
    )
    return await send_message(client["phone"], text)
