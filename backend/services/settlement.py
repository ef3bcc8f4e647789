"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Settlement Allocator                                           ║
║                                                                              ║
║  SEUL module autorisé à passer un reminder en "paid".                        ║
║                                                                              ║
║  - Conciliation approuvée: metadata.months = N → N reminders futurs payés,   ║
║    un paiement dérivé "verified" par reminder (montant = source / N)         ║
║  - Paiement vérifié directement: N = months ou 1, reminder le plus proche    ║
║  - Idempotent: un reminder qui porte déjà un paiement vérifié est ignoré     ║
║  - Ordre déterministe: scheduled_for ascendant                               ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Dict, List, Tuple, Iterable

import config
from config import db, now_iso
from models.payment import SETTLEMENT_CHANNEL
from models.reminder import SETTLEABLE_STATUSES
from services.due_dates import parse_date, local_today, localize, to_storage
from services.event_logger import log_event

logger = logging.getLogger("settlement")


# ════════════════════════════════════════════════════════════════════════════
# PURE HELPERS
# ════════════════════════════════════════════════════════════════════════════

def payment_months(payment: Dict) -> int:
    """metadata.months as a non-negative int (0 when absent or invalid)"""
    raw = (payment.get("metadata") or {}).get("months")
    try:
        months = int(raw)
    except (TypeError, ValueError):
        return 0
    return max(0, months)


def split_amount(amount, months: int):
    """
    amount / months rounded to 2 decimals.
    Falls back to the full amount when the division is not feasible.
    """
    try:
        share = (Decimal(str(amount)) / Decimal(months)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ZeroDivisionError, TypeError, ValueError):
        return amount
    return float(share)


def allocate_months(
    candidates: Iterable[Dict],
    months: int,
    settled_ids: Iterable[str]
) -> Tuple[List[Dict], int]:
    """
    Fold over reminders ordered by scheduled_for.

    Returns (consumed reminders, remaining months). Reminders whose id is
    in settled_ids are skipped without consuming a month.
    """
    settled_ids = set(settled_ids)
    consumed: List[Dict] = []
    remaining = months

    for reminder in candidates:
        if remaining <= 0:
            break
        if reminder["id"] in settled_ids:
            continue
        consumed.append(reminder)
        remaining -= 1

    return consumed, remaining


def start_of_local_day(day: date) -> str:
    return to_storage(localize(datetime.combine(day, time.min)))


# ════════════════════════════════════════════════════════════════════════════
# STORE ACCESS
# ════════════════════════════════════════════════════════════════════════════

async def find_candidates(payment: Dict, floor: Optional[date]) -> List[Dict]:
    """Settleable reminders of the payment's client (and contract), oldest first"""
    query = {
        "client_id": payment["client_id"],
        "deleted_at": None,
        "status": {"$in": SETTLEABLE_STATUSES},
    }

    contract_id = (payment.get("metadata") or {}).get("conciliation_contract_id") or payment.get("contract_id")
    if contract_id:
        query["contract_id"] = contract_id
    if floor is not None:
        query["scheduled_for"] = {"$gte": start_of_local_day(floor)}

    return await db.reminders.find(query, {"_id": 0}).sort("scheduled_for", 1).to_list(500)


async def already_settled_ids(reminder_ids: List[str], source_payment_id: str) -> set:
    """Reminders already carrying a verified payment other than the source"""
    if not reminder_ids:
        return set()

    docs = await db.payments.find({
        "reminder_id": {"$in": reminder_ids},
        "status": "verified",
        "deleted_at": None,
        "id": {"$ne": source_payment_id},
    }, {"_id": 0, "reminder_id": 1}).to_list(1000)
    return {d["reminder_id"] for d in docs}


async def derived_month_indexes(source_payment_id: str) -> set:
    """month_index values already taken by live derived payments of the source"""
    docs = await db.payments.find({
        "channel": SETTLEMENT_CHANNEL,
        "status": "verified",
        "deleted_at": None,
        "metadata.source_payment_id": source_payment_id,
    }, {"_id": 0, "metadata": 1}).to_list(1000)
    return {(d.get("metadata") or {}).get("month_index") for d in docs} - {None}


def derived_payment_doc(
    source: Dict,
    reminder: Dict,
    conciliation: Optional[Dict],
    month_index: int,
    amount
) -> Dict:
    now = now_iso()
    reference = f"conciliation:{conciliation['id']}" if conciliation else f"payment:{source['id']}"
    return {
        "id": str(uuid.uuid4()),
        "client_id": source["client_id"],
        "contract_id": reminder.get("contract_id"),
        "reminder_id": reminder["id"],
        "amount": amount,
        "currency": source.get("currency"),
        "channel": SETTLEMENT_CHANNEL,
        "status": "verified",
        "reference": reference,
        "paid_at": source.get("paid_at"),
        "metadata": {
            "source_payment_id": source["id"],
            "source_conciliation_id": conciliation["id"] if conciliation else None,
            "month_index": month_index,
        },
        "created_at": now,
        "updated_at": now,
        "deleted_at": None,
    }


async def settle_reminder(
    reminder: Dict,
    source: Dict,
    conciliation: Optional[Dict],
    month_index: int,
    amount,
    derive: bool,
    session=None
) -> Optional[str]:
    """
    Settle one reminder. Returns the id of the payment now attached to it,
    or None when the reminder was settled concurrently.
    """
    derived = None
    if derive:
        derived = derived_payment_doc(source, reminder, conciliation, month_index, amount)
        await db.payments.insert_one(derived, session=session)
        payment_id = derived["id"]
    else:
        payment_id = source["id"]

    now = now_iso()
    try:
        result = await db.reminders.update_one(
            {"id": reminder["id"], "status": {"$in": SETTLEABLE_STATUSES}},
            {"$set": {
                "status": "paid",
                "acknowledged_at": now,
                "settled_by_payment_id": payment_id,
                "updated_at": now,
            }},
            session=session
        )
    except Exception:
        # A derived payment must never outlive an unsettled reminder
        if derived and session is None:
            await db.payments.delete_one({"id": derived["id"]})
        raise

    if result.modified_count == 0:
        if derived:
            await db.payments.delete_one({"id": derived["id"]}, session=session)
        return None

    if not derive:
        await db.payments.update_one(
            {"id": source["id"]},
            {"$set": {"reminder_id": reminder["id"], "updated_at": now}},
            session=session
        )

    return payment_id


# ════════════════════════════════════════════════════════════════════════════
# SETTLEMENT PASS
# ════════════════════════════════════════════════════════════════════════════

async def _run_pass(
    payment: Dict,
    conciliation: Optional[Dict],
    user: str,
    session=None
) -> Dict:
    summary = {
        "payment_id": payment["id"],
        "conciliation_id": conciliation["id"] if conciliation else None,
        "requested": 0,
        "settled": [],
        "payments": [],
        "skipped": [],
        "failed": [],
        "remaining": 0,
    }

    if conciliation:
        months = payment_months(payment)
        if months <= 0:
            return summary
        floor = parse_date(payment.get("paid_at")) or local_today()
        candidates = await find_candidates(payment, floor)
        derive = True
    else:
        months = payment_months(payment) or 1
        if payment.get("reminder_id"):
            linked = await db.reminders.find_one({
                "id": payment["reminder_id"],
                "deleted_at": None,
                "status": {"$in": SETTLEABLE_STATUSES},
            }, {"_id": 0})
            candidates = [linked] if linked else []
        else:
            candidates = await find_candidates(payment, None)
        derive = months > 1

    summary["requested"] = months
    settled_ids = await already_settled_ids([r["id"] for r in candidates], payment["id"])
    summary["skipped"] = [r["id"] for r in candidates if r["id"] in settled_ids]

    # Shares derived by earlier passes count against the budget and keep their index
    used_indexes = await derived_month_indexes(payment["id"]) if derive else set()
    free_indexes = [i for i in range(1, months + 1) if i not in used_indexes]

    consumed, remaining = allocate_months(candidates, len(free_indexes), settled_ids)
    summary["remaining"] = remaining
    amount = split_amount(payment.get("amount", 0), months) if derive else payment.get("amount", 0)

    for index, reminder in zip(free_indexes, consumed):
        try:
            payment_id = await settle_reminder(
                reminder, payment, conciliation, index, amount, derive, session=session
            )
        except Exception as e:
            if session is not None:
                raise
            logger.error(f"Settlement of reminder {reminder['id']} failed for payment {payment['id']}: {e}")
            summary["failed"].append(reminder["id"])
            continue

        if payment_id is None:
            summary["skipped"].append(reminder["id"])
            continue

        summary["settled"].append(reminder["id"])
        summary["payments"].append(payment_id)
        await log_event(
            action="reminder_settle",
            entity_type="reminder",
            entity_id=reminder["id"],
            user=user,
            details={"month_index": index, "amount": amount},
            related={
                "payment_id": payment_id,
                "source_payment_id": payment["id"],
                "conciliation_id": summary["conciliation_id"],
                "contract_id": reminder.get("contract_id"),
            }
        )

    return summary


async def settle_payment(
    payment: Dict,
    conciliation: Optional[Dict] = None,
    user: str = "system"
) -> Dict:
    """
    One settlement pass for a verified payment.

    With a conciliation: multi-month allocation from paid_at onwards.
    Without: the directly verified payment settles its nearest reminder(s).
    Safe to re-run: already settled reminders are skipped.
    """
    if config.MONGO_TRANSACTIONS:
        async with await config.client.start_session() as session:
            async with session.start_transaction():
                summary = await _run_pass(payment, conciliation, user, session=session)
    else:
        summary = await _run_pass(payment, conciliation, user)

    if summary["requested"]:
        logger.info(
            f"Settlement pass for payment {payment['id']}: "
            f"{len(summary['settled'])}/{summary['requested']} settled, "
            f"{len(summary['skipped'])} skipped, {len(summary['failed'])} failed"
        )
        await log_event(
            action="settlement_pass",
            entity_type="payment",
            entity_id=payment["id"],
            user=user,
            details={
                "requested": summary["requested"],
                "settled": len(summary["settled"]),
                "skipped": len(summary["skipped"]),
                "failed": len(summary["failed"]),
                "remaining": summary["remaining"],
            },
            related={"conciliation_id": summary["conciliation_id"]}
        )

    return summary
