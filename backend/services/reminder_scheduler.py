"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Reminder Scheduler                                             ║
║                                                                              ║
║  - One outstanding reminder per contract (never double-created)              ║
║  - scheduled_for = next_due_date at REMINDER_SEND_TIME (local timezone)      ║
║  - Unassigned contracts (no client) get no reminder until assignment         ║
║  - No message is sent here: dispatch belongs to the external bot poller      ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Dict, Any, List

from config import db, now_iso
from models.contract import VALID_BILLING_CYCLES, RECURRING_CYCLES
from models.reminder import (
    OUTSTANDING_STATUSES,
    DISPATCHABLE_STATUSES,
    ENGINE_ONLY_STATUSES,
    VALID_REMINDER_TRANSITIONS,
)
from services.due_dates import (
    next_due_date,
    next_due_date_from_day_of_month,
    parse_date,
    local_today,
    localize,
    scheduled_for_due_date,
    to_local,
    to_storage,
)
from services.errors import ValidationError, InvalidTransitionError, NotFoundError
from services.event_logger import log_event

logger = logging.getLogger("reminder_scheduler")


def build_reminder_payload(contract: Dict, payload: Optional[Dict] = None) -> Dict[str, Any]:
    """Payload always carries the contract amount and its recurrence"""
    payload = dict(payload or {})

    if payload.get("amount") is None:
        payload["amount"] = str(contract.get("amount", 0))
    if not payload.get("currency"):
        payload["currency"] = contract.get("currency", "")

    recurrence = payload.get("recurrence") or contract.get("billing_cycle")
    if recurrence in VALID_BILLING_CYCLES:
        payload["recurrence"] = recurrence

    return payload


def new_reminder_doc(
    contract: Dict,
    scheduled_for: datetime,
    status: str = "pending",
    channel: str = "whatsapp",
    payload: Optional[Dict] = None
) -> Dict[str, Any]:
    now = now_iso()
    return {
        "id": str(uuid.uuid4()),
        "contract_id": contract["id"],
        "client_id": contract.get("client_id"),
        "channel": channel,
        "scheduled_for": to_storage(scheduled_for),
        "status": status,
        "payload": build_reminder_payload(contract, payload),
        "response_payload": {},
        "attempts": 0,
        "queued_at": None,
        "sent_at": None,
        "acknowledged_at": None,
        "last_attempt_at": None,
        "created_at": now,
        "updated_at": now,
        "deleted_at": None,
    }


async def get_reminder_or_raise(reminder_id: str) -> Dict:
    reminder = await db.reminders.find_one({"id": reminder_id, "deleted_at": None}, {"_id": 0})
    if not reminder:
        raise NotFoundError("reminder", reminder_id)
    return reminder


# ════════════════════════════════════════════════════════════════════════════
# CONTRACT → REMINDER
# ════════════════════════════════════════════════════════════════════════════

async def ensure_contract_due_date(contract: Dict, anchor: Optional[date] = None) -> date:
    """
    Return the contract's next_due_date, computing and persisting it
    from the billing cycle when blank.
    """
    due = parse_date(contract.get("next_due_date"))
    if due is not None:
        return due

    due = next_due_date(contract.get("billing_cycle"), anchor or local_today())
    await db.contracts.update_one(
        {"id": contract["id"]},
        {"$set": {"next_due_date": due.isoformat(), "updated_at": now_iso()}}
    )
    contract["next_due_date"] = due.isoformat()
    return due


async def schedule_contract_reminder(contract: Dict, anchor: Optional[date] = None) -> Optional[Dict]:
    """
    Create or re-target the single outstanding reminder of a contract.

    Called on contract creation and when an unassigned contract gets a client.
    Returns None when the contract has no client yet (scheduling deferred).
    """
    if not contract.get("client_id"):
        logger.info(f"Contract {contract['id']} unassigned, reminder scheduling deferred")
        return None

    due = await ensure_contract_due_date(contract, anchor)
    scheduled_for = scheduled_for_due_date(due)

    outstanding = await db.reminders.find({
        "contract_id": contract["id"],
        "deleted_at": None,
        "status": {"$in": OUTSTANDING_STATUSES}
    }, {"_id": 0}).sort("scheduled_for", 1).to_list(50)

    if outstanding:
        current = outstanding[0]
        update = {"client_id": contract["client_id"], "updated_at": now_iso()}
        if current["status"] == "pending":
            update["scheduled_for"] = to_storage(scheduled_for)
        await db.reminders.update_one({"id": current["id"]}, {"$set": update})
        current.update(update)
        logger.info(f"Reminder {current['id']} re-targeted for contract {contract['id']}")
        return current

    reminder = new_reminder_doc(contract, scheduled_for)
    await db.reminders.insert_one(reminder)
    reminder.pop("_id", None)

    logger.info(
        f"Reminder {reminder['id']} scheduled for contract {contract['id']} at {reminder['scheduled_for']}"
    )
    await log_event(
        action="reminder_schedule",
        entity_type="reminder",
        entity_id=reminder["id"],
        details={"scheduled_for": reminder["scheduled_for"], "due_date": due.isoformat()},
        related={"contract_id": contract["id"], "client_id": contract["client_id"]}
    )
    return reminder


async def retarget_pending_reminders(contract: Dict) -> int:
    """Move every pending reminder of the contract to its (new) due date"""
    due = parse_date(contract.get("next_due_date"))
    if due is None:
        return 0

    result = await db.reminders.update_many(
        {"contract_id": contract["id"], "status": "pending", "deleted_at": None},
        {"$set": {
            "scheduled_for": to_storage(scheduled_for_due_date(due)),
            "updated_at": now_iso()
        }}
    )
    return result.modified_count


async def sync_pending_payloads(contract: Dict, fields: List[str]) -> int:
    """Copy amount / recurrence changes of the contract into pending payloads"""
    reminders = await db.reminders.find(
        {"contract_id": contract["id"], "status": "pending", "deleted_at": None},
        {"_id": 0}
    ).to_list(500)

    for reminder in reminders:
        payload = dict(reminder.get("payload") or {})
        if "amount" in fields:
            payload["amount"] = str(contract.get("amount", 0))
        if "billing_cycle" in fields:
            payload["recurrence"] = contract.get("billing_cycle")
        await db.reminders.update_one(
            {"id": reminder["id"]},
            {"$set": {"payload": payload, "updated_at": now_iso()}}
        )
    return len(reminders)


# ════════════════════════════════════════════════════════════════════════════
# MANUAL REMINDERS
# ════════════════════════════════════════════════════════════════════════════

async def create_manual_reminder(data) -> Dict:
    """
    Operator-created reminder. Monthly recurrences are re-anchored on the
    requested day of month, at the requested time, starting today.
    """
    contract = await db.contracts.find_one({"id": data.contract_id, "deleted_at": None}, {"_id": 0})
    if not contract:
        raise NotFoundError("contract", data.contract_id)

    if contract.get("client_id") != data.client_id:
        raise ValidationError("client_id", "Client does not match the contract's client")

    status = data.status.value if data.status else "pending"
    if status in ENGINE_ONLY_STATUSES:
        raise ValidationError("status", f"Status '{status}' is set only by payment settlement")

    payload = build_reminder_payload(contract, data.payload)
    requested = to_local(data.scheduled_for)

    if payload.get("recurrence") == "monthly":
        day = next_due_date_from_day_of_month(requested.day, local_today())
        scheduled = localize(datetime.combine(day, requested.time()))
    else:
        scheduled = requested

    reminder = new_reminder_doc(contract, scheduled, status=status, channel=data.channel, payload=payload)
    await db.reminders.insert_one(reminder)
    reminder.pop("_id", None)
    return reminder


# ════════════════════════════════════════════════════════════════════════════
# DISPATCH POLLER BOUNDARY
# ════════════════════════════════════════════════════════════════════════════

async def list_due_reminders(look_ahead_minutes: int = 30, limit: int = 25) -> List[Dict]:
    """Pending/queued reminders due before now + look_ahead, oldest first"""
    look_ahead_minutes = max(1, look_ahead_minutes)
    limit = min(100, max(1, limit))
    deadline = datetime.now(timezone.utc) + timedelta(minutes=look_ahead_minutes)

    return await db.reminders.find({
        "status": {"$in": DISPATCHABLE_STATUSES},
        "deleted_at": None,
        "scheduled_for": {"$lte": to_storage(deadline)}
    }, {"_id": 0}).sort("scheduled_for", 1).limit(limit).to_list(limit)


def validate_reminder_transition(reminder: Dict, to_status: str) -> None:
    from_status = reminder.get("status", "pending")
    if from_status == to_status:
        return
    valid_next = VALID_REMINDER_TRANSITIONS.get(from_status, [])
    if to_status not in valid_next:
        raise InvalidTransitionError("reminder", reminder["id"], from_status, to_status, valid_next)


async def transition_reminder(reminder: Dict, to_status: str, fields: Optional[Dict] = None) -> Dict:
    """
    Status change requested from outside the settlement engine
    (operator update or poller acknowledge).
    """
    if to_status in ENGINE_ONLY_STATUSES and reminder.get("status") != to_status:
        raise ValidationError("status", f"Status '{to_status}' is set only by payment settlement")

    validate_reminder_transition(reminder, to_status)

    previous = reminder.get("status")
    now = now_iso()
    update = dict(fields or {})
    update["status"] = to_status
    update["updated_at"] = now

    if to_status == "queued" and previous != "queued":
        update["queued_at"] = now
    if to_status == "sent" and previous != "sent":
        update["sent_at"] = now
        update["last_attempt_at"] = now
        update["attempts"] = reminder.get("attempts", 0) + 1

    await db.reminders.update_one({"id": reminder["id"]}, {"$set": update})
    reminder = {**reminder, **update}

    if to_status == "sent" and previous != "sent":
        await schedule_next_occurrence(reminder)

    return reminder


async def update_reminder(reminder_id: str, data) -> Dict:
    """Operator edit. A status change goes through the transition table."""
    reminder = await get_reminder_or_raise(reminder_id)
    fields = data.model_dump(exclude_unset=True)
    status = fields.pop("status", None)

    update = {}
    if fields.get("scheduled_for"):
        update["scheduled_for"] = to_storage(fields["scheduled_for"])
    for key in ("channel", "payload", "response_payload", "attempts"):
        if fields.get(key) is not None:
            update[key] = fields[key]

    if status:
        return await transition_reminder(reminder, getattr(status, "value", status), update)

    if update:
        update["updated_at"] = now_iso()
        await db.reminders.update_one({"id": reminder_id}, {"$set": update})
        reminder.update(update)
    return reminder


async def soft_delete_reminder(reminder_id: str) -> Dict:
    reminder = await get_reminder_or_raise(reminder_id)
    now = now_iso()
    await db.reminders.update_one({"id": reminder_id}, {"$set": {"deleted_at": now, "updated_at": now}})
    reminder["deleted_at"] = now
    return reminder


async def acknowledge_reminder(
    reminder_id: str,
    status: str = "sent",
    response_payload: Optional[Dict] = None,
    acknowledged_at: Optional[datetime] = None
) -> Dict:
    reminder = await get_reminder_or_raise(reminder_id)
    merged = {**(reminder.get("response_payload") or {}), **(response_payload or {})}
    fields = {
        "response_payload": merged,
        "acknowledged_at": to_storage(acknowledged_at) if acknowledged_at else now_iso(),
    }
    return await transition_reminder(reminder, status, fields)


async def schedule_next_occurrence(reminder: Dict) -> Optional[Dict]:
    """
    After a recurring reminder is sent: create the next pending occurrence
    and advance the contract's next_due_date.
    """
    contract = await db.contracts.find_one(
        {"id": reminder.get("contract_id"), "deleted_at": None}, {"_id": 0}
    )
    if not contract:
        return None

    recurrence = (reminder.get("payload") or {}).get("recurrence") or contract.get("billing_cycle")
    if recurrence not in RECURRING_CYCLES:
        return None

    current = to_local(reminder["scheduled_for"])
    next_day = next_due_date(recurrence, current.date())
    next_at = localize(datetime.combine(next_day, current.time()))

    existing = await db.reminders.find_one({
        "contract_id": contract["id"],
        "deleted_at": None,
        "status": {"$in": DISPATCHABLE_STATUSES},
        "scheduled_for": {"$gte": to_storage(next_at)}
    })
    if existing:
        return None

    payload = {**(reminder.get("payload") or {}), "recurrence": recurrence}
    occurrence = new_reminder_doc(contract, next_at, channel=reminder.get("channel", "whatsapp"), payload=payload)
    occurrence["client_id"] = reminder.get("client_id") or contract.get("client_id")
    await db.reminders.insert_one(occurrence)
    occurrence.pop("_id", None)

    await db.contracts.update_one(
        {"id": contract["id"]},
        {"$set": {"next_due_date": next_day.isoformat(), "updated_at": now_iso()}}
    )
    logger.info(f"Next {recurrence} reminder {occurrence['id']} created for contract {contract['id']}")
    return occurrence
