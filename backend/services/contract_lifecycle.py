"""
╔══════════════════════════════════════════════════════════════════════════════╗
║  COBROS CRM - Contract & Client Lifecycle                                    ║
║                                                                              ║
║  Single place for the lifecycle hooks of contracts and clients:              ║
║  - created  → reminder scheduled (if a client is resolvable)                 ║
║  - updated  → pending reminders follow due date / amount / recurrence        ║
║  - assigned → reminder scheduled or re-targeted                              ║
║  - deleted  → soft delete cascades to reminders (and payments for clients)   ║
╚══════════════════════════════════════════════════════════════════════════════╝
"""

import logging
import uuid
from datetime import date
from typing import Optional, Dict, Any

from config import db, now_iso
from models.client import ClientCreate, ClientUpdate
from models.contract import ContractCreate, ContractUpdate
from services.errors import ValidationError, NotFoundError
from services.event_logger import log_event
from services.reminder_scheduler import (
    schedule_contract_reminder,
    retarget_pending_reminders,
    sync_pending_payloads,
)

logger = logging.getLogger("contract_lifecycle")


async def get_client_or_raise(client_id: str, field: Optional[str] = None) -> Dict:
    client = await db.clients.find_one({"id": client_id, "deleted_at": None}, {"_id": 0})
    if not client:
        if field:
            raise ValidationError(field, f"Client {client_id} does not exist")
        raise NotFoundError("client", client_id)
    return client


async def get_contract_or_raise(contract_id: str, field: Optional[str] = None) -> Dict:
    contract = await db.contracts.find_one({"id": contract_id, "deleted_at": None}, {"_id": 0})
    if not contract:
        if field:
            raise ValidationError(field, f"Contract {contract_id} does not exist")
        raise NotFoundError("contract", contract_id)
    return contract


def _storable(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Enums -> values, dates -> YYYY-MM-DD"""
    out = {}
    for key, value in fields.items():
        if hasattr(value, "value"):
            value = value.value
        elif isinstance(value, date):
            value = value.isoformat()
        out[key] = value
    return out


# ════════════════════════════════════════════════════════════════════════════
# CONTRACTS
# ════════════════════════════════════════════════════════════════════════════

async def create_contract(data: ContractCreate, user: str = "system", anchor: Optional[date] = None) -> Dict:
    if data.client_id:
        await get_client_or_raise(data.client_id, field="client_id")

    now = now_iso()
    contract = {
        "id": str(uuid.uuid4()),
        **_storable(data.model_dump()),
        "created_at": now,
        "updated_at": now,
        "deleted_at": None,
    }
    await db.contracts.insert_one(contract)
    contract.pop("_id", None)

    await log_event(
        action="contract_create",
        entity_type="contract",
        entity_id=contract["id"],
        user=user,
        details={"billing_cycle": contract["billing_cycle"], "amount": contract["amount"]},
        related={"client_id": contract.get("client_id")}
    )

    await schedule_contract_reminder(contract, anchor)
    return contract


async def update_contract(contract_id: str, data: ContractUpdate, user: str = "system") -> Dict:
    contract = await get_contract_or_raise(contract_id)
    fields = _storable(data.model_dump(exclude_unset=True))

    new_client_id = fields.get("client_id")
    assigning = False
    if "client_id" in fields:
        current_client_id = contract.get("client_id")
        if new_client_id is None or new_client_id == current_client_id:
            fields.pop("client_id")
        elif current_client_id:
            raise ValidationError("client_id", "Contract already belongs to another client")
        else:
            await get_client_or_raise(new_client_id, field="client_id")
            assigning = True

    changed = [k for k, v in fields.items() if contract.get(k) != v]
    if not changed:
        return contract

    fields["updated_at"] = now_iso()
    await db.contracts.update_one({"id": contract_id}, {"$set": fields})
    contract.update(fields)

    await contract_updated(contract, changed)

    if assigning:
        await log_event(
            action="contract_assign",
            entity_type="contract",
            entity_id=contract_id,
            user=user,
            related={"client_id": new_client_id}
        )

    return contract


async def contract_updated(contract: Dict, changed: list) -> None:
    """Contract "updated" hook: keep pending reminders in step"""
    if "client_id" in changed:
        await schedule_contract_reminder(contract)
    elif "next_due_date" in changed:
        moved = await retarget_pending_reminders(contract)
        logger.info(f"Contract {contract['id']} due date changed, {moved} pending reminder(s) re-targeted")

    payload_fields = [f for f in ("amount", "billing_cycle") if f in changed]
    if payload_fields:
        await sync_pending_payloads(contract, payload_fields)


async def soft_delete_contract(contract_id: str, user: str = "system") -> Dict:
    """Soft delete a contract and, in the same operation, all its reminders"""
    contract = await get_contract_or_raise(contract_id)
    now = now_iso()

    await db.contracts.update_one({"id": contract_id}, {"$set": {"deleted_at": now, "updated_at": now}})
    result = await db.reminders.update_many(
        {"contract_id": contract_id, "deleted_at": None},
        {"$set": {"deleted_at": now, "updated_at": now}}
    )

    logger.info(f"Contract {contract_id} deleted with {result.modified_count} reminder(s)")
    await log_event(
        action="contract_delete",
        entity_type="contract",
        entity_id=contract_id,
        user=user,
        details={"reminders_deleted": result.modified_count},
        related={"client_id": contract.get("client_id")}
    )
    contract["deleted_at"] = now
    return contract


# ════════════════════════════════════════════════════════════════════════════
# CLIENTS
# ════════════════════════════════════════════════════════════════════════════

async def assign_contract_to_client(contract_id: str, client_id: str, user: str = "system") -> Dict:
    """Assign-later workflow: attach an unassigned contract to a client"""
    contract = await get_contract_or_raise(contract_id, field="contract_id")
    if contract.get("client_id") and contract["client_id"] != client_id:
        raise ValidationError("contract_id", "Contract already belongs to another client")
    return await update_contract(contract_id, ContractUpdate(client_id=client_id), user=user)


async def create_client(data: ClientCreate, user: str = "system") -> Dict:
    if data.contract_id:
        contract = await get_contract_or_raise(data.contract_id, field="contract_id")
        if contract.get("client_id"):
            raise ValidationError("contract_id", "Contract already belongs to another client")

    now = now_iso()
    client = {
        "id": str(uuid.uuid4()),
        **_storable(data.model_dump(exclude={"contract_id"})),
        "created_at": now,
        "updated_at": now,
        "deleted_at": None,
    }
    await db.clients.insert_one(client)
    client.pop("_id", None)

    if data.contract_id:
        await assign_contract_to_client(data.contract_id, client["id"], user=user)

    return client


async def update_client(client_id: str, data: ClientUpdate, user: str = "system") -> Dict:
    client = await get_client_or_raise(client_id)
    fields = _storable(data.model_dump(exclude_unset=True, exclude={"contract_id"}))

    if data.contract_id:
        await assign_contract_to_client(data.contract_id, client_id, user=user)

    if fields:
        fields["updated_at"] = now_iso()
        await db.clients.update_one({"id": client_id}, {"$set": fields})
        client.update(fields)

    return client


async def soft_delete_client(client_id: str, user: str = "system") -> Dict:
    """
    Cascade: contracts (through soft_delete_contract, so reminders go too),
    payments soft-deleted, their conciliations removed.
    """
    client = await get_client_or_raise(client_id)
    now = now_iso()

    contracts = await db.contracts.find(
        {"client_id": client_id, "deleted_at": None}, {"_id": 0, "id": 1}
    ).to_list(1000)
    for contract in contracts:
        await soft_delete_contract(contract["id"], user=user)

    payments = await db.payments.find(
        {"client_id": client_id, "deleted_at": None}, {"_id": 0, "id": 1}
    ).to_list(10000)
    payment_ids = [p["id"] for p in payments]
    if payment_ids:
        await db.conciliations.delete_many({"payment_id": {"$in": payment_ids}})
        await db.payments.update_many(
            {"id": {"$in": payment_ids}},
            {"$set": {"deleted_at": now, "updated_at": now}}
        )

    await db.clients.update_one({"id": client_id}, {"$set": {"deleted_at": now, "updated_at": now}})

    await log_event(
        action="client_delete",
        entity_type="client",
        entity_id=client_id,
        user=user,
        details={"contracts_deleted": len(contracts), "payments_deleted": len(payment_ids)}
    )
    client["deleted_at"] = now
    return client
